#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from sqlalchemy import inspect  # noqa: E402

from app.core.config import IS_PROD  # noqa: E402
from app.core.database import SessionLocal, engine  # noqa: E402
from app.core.logging_setup import configure_logging  # noqa: E402
from app.services.discount_seed import SAMPLE_DISCOUNTS, seed_discounts  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Insert the sample storefront coupons.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Allow seeding a production database",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    if IS_PROD and not args.force:
        print("Refusing to seed sample coupons in production without --force.")
        return 1

    if not inspect(engine).has_table("discounts"):
        print("Table discounts not found. Run `alembic upgrade head` first.")
        return 1

    db = SessionLocal()
    try:
        inserted = seed_discounts(db, SAMPLE_DISCOUNTS)
    finally:
        db.close()

    if inserted:
        print(f"Inserted coupons: {', '.join(inserted)}")
    else:
        print("All sample coupons already present.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
