# hms_billing/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from hms_billing.db.session import engine as default_engine
from hms_billing.db.base import Base

logger = logging.getLogger(__name__)


def run(fresh: bool = False, *, engine: Engine | None = None) -> None:
    eng = engine or default_engine
    if fresh:
        logger.warning("Dropping ALL billing tables (dev only) ...")
        Base.metadata.drop_all(bind=eng)

    logger.info("Creating all missing tables ...")
    Base.metadata.create_all(bind=eng)
    logger.info("Existing tables: %s", sorted(inspect(eng).get_table_names()))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        description="Initialize the billing database (create tables).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(fresh=args.fresh)
