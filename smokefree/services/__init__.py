"""
High-level use cases for the SmokeFree identity core.

Each service module orchestrates repositories/adapters to implement business
rules (register, login, subscribe, expire memberships, etc.).

Routers (FastAPI endpoints) call these services instead of touching the
database session directly.
"""
