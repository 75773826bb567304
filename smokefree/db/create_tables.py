"""Utility script to create the initial database schema."""
from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from smokefree.core.config import get_settings
from smokefree.db.session import Database


def create_all() -> None:
    settings = get_settings()
    db = Database(settings.database_url, timeout_seconds=settings.storage_timeout_seconds)
    try:
        db.create_all()
    finally:
        db.dispose()


if __name__ == "__main__":
    try:
        create_all()
        print("Database tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
