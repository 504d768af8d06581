#!/usr/bin/env python3
"""
Import an xlsx price sheet into one store and wait for the bulk update.
Usage: python scripts/run_import.py <store_id> <prices.xlsx>

Failed and skipped rows are written next to the input file.
"""

import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from price_sheets.config import settings
from price_sheets.db import SQLiteDatabase
from price_sheets.processor import ImportPipeline, UsageLedger
from price_sheets.shopify import ShopifyClient
from price_sheets.sheets import SpreadsheetError, read_import_rows, write_rows_workbook

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def write_report(input_path: str, suffix: str, rows, title: str):
    if not rows:
        return
    base, _ = os.path.splitext(input_path)
    path = f"{base}_{suffix}.xlsx"
    with open(path, "wb") as f:
        f.write(write_rows_workbook(rows, title))
    logger.info(f"Wrote {len(rows)} {suffix} rows to {path}")


async def main(store_id: str, input_path: str):
    with open(input_path, "rb") as f:
        content = f.read()

    try:
        columns, rows = read_import_rows(content)
    except SpreadsheetError as e:
        logger.error(str(e))
        sys.exit(1)

    db = SQLiteDatabase(settings.database_path)
    await db.initialize()

    try:
        store = await db.get_store(store_id)
        if not store:
            logger.error(f"Store {store_id} not found")
            sys.exit(1)

        logger.info(f"Importing {len(rows)} rows into '{store.name}'...")
        async with ShopifyClient(store.shopify_domain, store.api_token) as client:
            pipeline = ImportPipeline(client, UsageLedger(db), store.id)
            result = await pipeline.run(rows, columns=columns)

        summary = result.summary
        if not result.success:
            logger.error(f"Import stopped at {result.phase.value}: {result.error}")
            sys.exit(1)

        logger.info(
            f"Import finished: {summary.total} rows, {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        for error in summary.errors:
            logger.warning(f"  {error}")

        write_report(input_path, "failed", summary.failed_rows, "Failed")
        write_report(input_path, "skipped", summary.skipped_rows, "Skipped")

        if summary.errors:
            sys.exit(1)

    finally:
        await db.close()


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python scripts/run_import.py <store_id> <prices.xlsx>")
        sys.exit(1)

    asyncio.run(main(sys.argv[1], sys.argv[2]))
