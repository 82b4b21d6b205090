"""CLI script to create database tables."""
import asyncio

from panorama_api.db import create_tables
from panorama_api.settings import settings


async def main():
    """Create all database tables."""
    await create_tables()
    print(f"Tables created successfully in {settings.DATABASE_URL}")


if __name__ == "__main__":
    asyncio.run(main())
