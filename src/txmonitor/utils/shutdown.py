from __future__ import annotations

import asyncio
import signal
import threading
from typing import Optional

from loguru import logger

_STOP_EVENT = threading.Event()


def request_stop() -> None:
    _STOP_EVENT.set()


def stopping() -> bool:
    return _STOP_EVENT.is_set()


async def wait_for_stop(poll_seconds: float = 0.2) -> None:
    while not stopping():
        await asyncio.sleep(poll_seconds)


def install_signal_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Route SIGINT/SIGTERM to the stop flag so the monitor can flush before exiting."""

    def _handler(signum, frame=None):  # pragma: no cover
        logger.info(f"[Shutdown] Received signal {signum}; stopping")
        request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            if loop is not None:
                loop.add_signal_handler(sig, _handler, sig)
            else:
                signal.signal(sig, _handler)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops have no add_signal_handler
            signal.signal(sig, _handler)
