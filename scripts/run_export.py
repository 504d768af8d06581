#!/usr/bin/env python3
"""
Run a price export for one store and write it to an xlsx file.
Usage: python scripts/run_export.py <store_id> [output.xlsx]

This runs the export as a standalone script, not through the web server.
"""

import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from price_sheets.config import settings
from price_sheets.db import SQLiteDatabase
from price_sheets.processor import ExportPipeline
from price_sheets.shopify import ShopifyClient
from price_sheets.sheets import write_export_workbook
from price_sheets.sheets.workbook import EXPORT_FILENAME

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


async def main(store_id: str, output_path: str):
    db = SQLiteDatabase(settings.database_path)
    await db.initialize()

    try:
        store = await db.get_store(store_id)
        if not store:
            logger.error(f"Store {store_id} not found")
            sys.exit(1)

        logger.info(f"Starting export for '{store.name}'...")
        async with ShopifyClient(store.shopify_domain, store.api_token) as client:
            result = await ExportPipeline(client).run()

        if not result.success:
            logger.error(f"Export failed ({result.status.value}): {result.error}")
            sys.exit(1)

        with open(output_path, "wb") as f:
            f.write(write_export_workbook(result.rows))
        logger.info(f"Wrote {len(result.rows)} rows to {output_path}")

    finally:
        await db.close()


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("Usage: python scripts/run_export.py <store_id> [output.xlsx]")
        sys.exit(1)

    asyncio.run(main(sys.argv[1], sys.argv[2] if len(sys.argv) == 3 else EXPORT_FILENAME))
