#!/usr/bin/env python3
"""
Create the tables and insert the default membership plans when none exist.

Usage:
  python scripts/seed_plans.py [--database-url sqlite:///./smokefree.db] [--list]
"""
from __future__ import annotations

import argparse
import dataclasses

from smokefree.app_factory import build_container
from smokefree.core.config import get_settings


def main() -> None:
    ap = argparse.ArgumentParser(description="Seed default membership plans")
    ap.add_argument("--database-url", help="Override DATABASE_URL")
    ap.add_argument("--list", action="store_true", help="Print the plans after seeding")
    args = ap.parse_args()

    settings = get_settings()
    if args.database_url:
        settings = dataclasses.replace(settings, database_url=args.database_url)
    container = build_container(settings)
    try:
        container.db.create_all()
        added = container.catalog.seed_defaults()
        if added:
            print(f"Inserted {added} default plans")
        else:
            print("Plans already present; nothing inserted")
        if args.list:
            for plan in container.catalog.list_plans():
                print(f"  #{plan.id:<3} {plan.name:<16} {plan.duration_days:>6} days  {plan.price}")
    finally:
        container.db.dispose()


if __name__ == "__main__":
    main()
