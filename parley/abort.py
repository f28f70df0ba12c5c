"""User-abortable execution of loading work.

An AbortSignal may be tripped from anywhere (a SIGINT handler, another
thread, a UI callback). `abortable_run` polls it while the work runs and
cancels the work as soon as it trips; all partial results are dropped.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Optional, TypeVar

from rich.console import Console

from .errors import InputAborted

logger = logging.getLogger("parley.abort")

T = TypeVar("T")

# How often the signal is checked while work is in flight
POLL_INTERVAL = 0.05


class AbortSignal:
    """Thread-safe flag tripped by Ctrl-C / Ctrl-D or programmatically."""

    def __init__(self):
        self._event = threading.Event()
        self._ctrlc = False
        self._ctrld = False

    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        self._event.set()

    def set_ctrlc(self) -> None:
        self._ctrlc = True
        self._event.set()

    def set_ctrld(self) -> None:
        self._ctrld = True
        self._event.set()

    def aborted_ctrlc(self) -> bool:
        return self._ctrlc

    def aborted_ctrld(self) -> bool:
        return self._ctrld

    def reset(self) -> None:
        self._ctrlc = False
        self._ctrld = False
        self._event.clear()


async def abortable_run(work: Awaitable[T], abort_signal: AbortSignal) -> T:
    """Await `work`, cancelling it and raising InputAborted if the signal trips."""
    task = asyncio.ensure_future(work)
    try:
        while not task.done():
            if abort_signal.aborted():
                logger.info("Abort requested, cancelling in-flight work")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    # the abort outcome wins over a late failure
                    logger.debug(f"Work failed while aborting: {e}")
                raise InputAborted()
            await asyncio.wait({task}, timeout=POLL_INTERVAL)
        return task.result()
    finally:
        if not task.done():
            task.cancel()


async def abortable_run_with_spinner(
    work: Awaitable[T],
    message: str,
    abort_signal: AbortSignal,
    console: Optional[Console] = None,
) -> T:
    """abortable_run with a rich status spinner on stderr."""
    console = console or Console(stderr=True)
    with console.status(f"[dim]{message}…[/dim]", spinner="dots"):
        return await abortable_run(work, abort_signal)
