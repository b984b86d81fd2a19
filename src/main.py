"""Entry point for the token-sentinel pipeline."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from src.api.server import run_api_server
from src.db.database import close_db, init_db
from src.services import build_services
from src.utils.logger import setup_logger


async def main() -> None:
    setup_logger(json_logs=settings.log_json, level=settings.log_level)
    logger.info(f"Starting token-sentinel on chain {settings.chain_id}...")

    await init_db()
    services = build_services()

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    services.start()
    waiters = [asyncio.create_task(shutdown_event.wait())]
    if settings.api_enabled:
        waiters.append(asyncio.create_task(run_api_server(services)))

    # Wait for either the API server to exit or a shutdown signal
    done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await services.stop()
    await close_db()
    logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
