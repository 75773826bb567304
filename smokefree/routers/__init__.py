"""
FastAPI routers grouped by domain (auth, subscriptions).

Each file inside this package exposes an APIRouter that create_app() includes.
Routers only parse input and call services from the app's ServiceContainer.
"""
