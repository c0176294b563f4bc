"""Unified entry point for the API server and the status sweep.

This script launches the FastAPI application and a loop that
periodically persists derived activity statuses, so a deployment
without an external cron still keeps stored statuses fresh.

Host and port are read from ``API_HOST`` and ``API_PORT``; the sweep
interval from ``STATUS_SWEEP_INTERVAL`` (seconds, ``0`` disables the
loop).

Usage:
    python run.py
"""
import asyncio
import logging
import os

from uvicorn import Config, Server

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import init_db
from evntly_api.app.main import app
from evntly_api.app.services.status_service import StatusService

logger = logging.getLogger("evntly_api.run")


async def run_api() -> None:
    """Start the API using Uvicorn."""
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    config = Config(app=app, host=host, port=port, reload=False, log_level=settings.log_level.lower())
    server = Server(config)
    await server.serve()


async def run_status_sweep(interval: int) -> None:
    """Refresh stored activity statuses every ``interval`` seconds."""
    init_db()
    while True:
        try:
            await StatusService.refresh_activity_statuses()
        except Exception:
            # A failed sweep is retried on the next tick.
            logger.exception("Status sweep failed")
        await asyncio.sleep(interval)


async def main() -> None:
    """Run the API and the sweep concurrently."""
    tasks = [asyncio.create_task(run_api())]
    if settings.status_sweep_interval > 0:
        tasks.append(asyncio.create_task(run_status_sweep(settings.status_sweep_interval)))
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for task in done:
        if exception := task.exception():
            logger.exception("Exception in service", exc_info=exception)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
