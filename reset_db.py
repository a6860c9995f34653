"""
Drop and recreate the BuildLedger tables (development only).

Usage: python reset_db.py
"""

import asyncio
import logging

from buildledger.core.database import close_db, reset_tables


async def main() -> None:
    try:
        tables = await reset_tables()
    finally:
        await close_db()
    print(f"Database reset completed: {', '.join(tables)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
