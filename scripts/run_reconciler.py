#!/usr/bin/env python3
"""
Run the membership expiration sweep outside the web process.

Usage:
  python scripts/run_reconciler.py            # one sweep, then exit
  python scripts/run_reconciler.py --loop     # keep sweeping on RECONCILER_INTERVAL_SECONDS
"""
from __future__ import annotations

import argparse
import asyncio

from smokefree.app_factory import build_container


async def _loop(container) -> None:
    await container.worker.start()
    try:
        while container.worker.running:
            await asyncio.sleep(3600)
    finally:
        await container.worker.stop()


def main() -> None:
    ap = argparse.ArgumentParser(description="Expire lapsed memberships and demote members")
    ap.add_argument("--loop", action="store_true", help="Run forever on the configured interval")
    args = ap.parse_args()

    container = build_container()
    try:
        if args.loop:
            try:
                asyncio.run(_loop(container))
            except KeyboardInterrupt:
                pass
            return
        report = container.reconciler.sweep()
        print(
            f"expired={len(report.expired_memberships)} "
            f"demoted={len(report.demoted_accounts)} "
            f"failed={len(report.failed_accounts)}"
        )
        if report.failed_accounts:
            raise SystemExit(1)
    finally:
        container.db.dispose()


if __name__ == "__main__":
    main()
