"""Create the database and tables from the SQLModel models."""
import asyncio
import logging

from core.database import close_db, init_db
from core.logging_config import LogConfig, setup_logging, stop_queue_listener


async def main():
    setup_logging(LogConfig(enable_file_logging=False))
    try:
        await init_db()
        logging.getLogger("main").info("Database tables ready")
    finally:
        await close_db()
        stop_queue_listener()


if __name__ == "__main__":
    asyncio.run(main())
