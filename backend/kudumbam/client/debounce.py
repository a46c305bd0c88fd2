"""
Kudumbam — Debouncer
Runs a callback once input has settled: every trigger within the delay
cancels the pending call and starts the wait again.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional

from kudumbam.utils.logger import logger


class Debouncer:
    def __init__(self, delay_seconds: float, callback: Callable[..., Any]):
        self.delay_seconds = delay_seconds
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, *args, **kwargs) -> asyncio.Task:
        """Must be called from a running event loop."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(args, kwargs))
        return self._task

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Await the pending call, if any (a cancelled call counts as done)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, args, kwargs) -> None:
        await asyncio.sleep(self.delay_seconds)
        try:
            result = self.callback(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"⏱️ Debounced call failed: {e}")
