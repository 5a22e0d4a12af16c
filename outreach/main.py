"""Process entry point helpers: logging setup and the serve loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import TYPE_CHECKING

from outreach.config import settings

if TYPE_CHECKING:
    from outreach.discovery.engine import DiscoveryEngine

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Apply the process-wide log format and level (default from settings)."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, (level or settings.log_level).upper()),
    )


async def serve(engine: DiscoveryEngine, stop_event: asyncio.Event | None = None) -> None:
    """Start *engine*, wait for SIGINT/SIGTERM (or *stop_event*), then stop every task."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops)
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)

    await engine.start()
    logger.info("Outreach discovery running; waiting for shutdown signal")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await engine.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)
