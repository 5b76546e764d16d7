from __future__ import annotations

import asyncio
import dataclasses as dc
import time
from collections.abc import Awaitable
from typing import TypeVar

from dnslink.errors import AbortError, ResolveTimeoutError

T = TypeVar('T')


@dc.dataclass(slots=True)
class Cancellation:
    '''
    A cooperative cancellation token threaded through every lookup of
    a resolution. A timeout is just a token with a deadline.

    Parameters
    ----------
    timeout : float | None
        _Seconds from creation until the token fires on its own_
    '''
    timeout: float | None = None
    _event: asyncio.Event = dc.field(default_factory=asyncio.Event, init=False)
    _deadline: float | None = dc.field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.timeout is not None:
            self._deadline = time.monotonic() + self.timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        '''
        Raises
        ------
        AbortError
            _cancel() was called_
        ResolveTimeoutError
            _the deadline passed_
        '''
        if self._event.is_set():
            raise AbortError()
        if self.expired:
            raise ResolveTimeoutError(self.timeout)

    async def run(self, aw: Awaitable[T]) -> T:
        '''
        Awaits `aw` unless the token fires first, in which case the
        underlying task is cancelled and the abort is raised.

        Parameters
        ----------
        aw : Awaitable[T]
            _A coroutine, future or task_

        Returns
        -------
        T
        '''
        task = asyncio.ensure_future(aw)
        if self.cancelled:
            await _discard(task)
            self.check()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            await _discard(waiter)

        if task in done:
            return task.result()

        await _discard(task)
        if self._deadline is not None and not self._event.is_set():
            raise ResolveTimeoutError(self.timeout)
        raise AbortError()


async def _discard(task: asyncio.Future) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
