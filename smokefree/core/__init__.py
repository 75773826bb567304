"""
Core utilities shared across the SmokeFree identity core.

This package hosts configuration, logging, the injectable clock, the error
taxonomy, password hashing and the SMTP mailer. Services depend on these
primitives instead of importing FastAPI or touching the environment directly.
"""
