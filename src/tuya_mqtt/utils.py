from __future__ import annotations

import asyncio
import json
import os
import signal
from collections.abc import Coroutine
from typing import Any

from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.structs import GlobalObject

logger = get_logger(__name__)
g = GlobalObject()


def send_signal(signal_num: int):
    """Send a signal to the current process.

    Args:
        signal_num (int): The signal number to send.

    """
    try:
        logger.debug("Sending signal %s to process %s", signal_num, os.getpid())
        os.kill(os.getpid(), signal_num)
    except OSError:
        logger.exception("Failed to send signal %s to process", signal_num)
        raise


def send_sigterm():
    """Ask the bridge to shut down gracefully."""
    send_signal(signal.SIGTERM)


async def _async_signal_cleanup():
    logger.info("tuya-mqtt: Starting signal cleanup...")
    if g.bridge:
        logger.debug("Stopping bridge...")
        await g.bridge.stop()
    logger.info("tuya-mqtt: Signal cleanup completed")


def signal_handler(signum):
    logger.info("tuya-mqtt: Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
    loop = g.loop or asyncio.get_event_loop()
    _ = loop.create_task(_async_signal_cleanup())


def parse_json_object(payload: str | bytes) -> dict[str, Any] | list[Any] | None:
    """Return the decoded payload when it is a JSON object or array, else None.

    Scalars such as ``"1"`` or ``"true"`` are valid JSON but are treated as
    plain text commands.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None
    if isinstance(data, dict | list):
        return data
    return None


def spawn(coro: Coroutine[Any, Any, Any], tasks: set[asyncio.Task[Any]], name: str, lp: str) -> asyncio.Task[Any]:
    """Run ``coro`` in the background, keep a strong reference and log its failure."""
    task = asyncio.create_task(coro, name=name)
    tasks.add(task)

    def _done(t: asyncio.Task[Any]) -> None:
        tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error("%s background task %s failed: %r", lp, t.get_name(), exc, extra={"task": t.get_name()})

    task.add_done_callback(_done)
    return task
