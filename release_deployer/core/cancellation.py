"""Operator cancellation with deferral around critical sections"""

import asyncio
import logging
import signal
import sys
from contextlib import contextmanager
from typing import Optional

from ..api.exceptions import DeploymentCancelled

logger = logging.getLogger(__name__)


class CancellationController:
    """Turns SIGINT/SIGTERM into cancellation of the deployment task

    Outside a deferred section a request cancels the attached task
    immediately. Inside one the request is only recorded and must be
    honored by the owner once the section is left.
    """

    def __init__(self):
        self.requested = False
        self.interrupt_count = 0
        self._deferred_depth = 0
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_deferred(self) -> bool:
        return self._deferred_depth > 0

    def attach(self, task: asyncio.Task) -> None:
        self._task = task

    def request(self) -> None:
        """Record a cancellation request and act on it if allowed"""
        self.interrupt_count += 1
        self.requested = True

        if self.is_deferred:
            logger.warning("Cancellation requested during a critical section; deferring")
            return

        if self._task is not None and not self._task.done():
            logger.warning("Cancellation requested; stopping deployment")
            self._task.cancel()

    @contextmanager
    def deferred(self):
        """Section during which cancellation only sets a flag"""
        self._deferred_depth += 1
        try:
            yield
        finally:
            self._deferred_depth -= 1

    def raise_if_requested(self, stage: Optional[str] = None) -> None:
        if self.requested:
            raise DeploymentCancelled(stage)

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Route SIGINT and SIGTERM to :meth:`request`"""
        if sys.platform == "win32":
            return
        self._loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._loop.add_signal_handler(sig, self.request)

    def remove_signal_handlers(self) -> None:
        if self._loop is None:
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._loop.remove_signal_handler(sig)
        self._loop = None
