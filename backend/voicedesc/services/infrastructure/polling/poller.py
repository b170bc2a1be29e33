"""
Async Operation Poller

Drives a caller-supplied status check until the operation reaches a
terminal state or the deadline passes. Waits between checks are
suspension points (``asyncio.sleep`` / ``Event.wait``), so other jobs keep
running while one job waits on a slow external operation.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from voicedesc.core.exceptions import PollCancelled, PollTimeout
from voicedesc.core.logging import get_logger

logger = get_logger(__name__, component="poller")

_NOTHING = object()


class PollState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PollStatus:
    """One status-check observation.

    ``payload`` is the progress information reported to the caller on
    non-terminal checks; ``result`` carries the terminal value and
    ``error`` the provider's failure message.
    """
    state: PollState
    payload: Any = None
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def pending(cls, payload: Any = None) -> "PollStatus":
        return cls(PollState.PENDING, payload=payload)

    @classmethod
    def succeeded(cls, result: Any = None, payload: Any = None) -> "PollStatus":
        return cls(PollState.SUCCEEDED, payload=payload, result=result)

    @classmethod
    def failed(cls, error: str, payload: Any = None) -> "PollStatus":
        return cls(PollState.FAILED, payload=payload, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.state is not PollState.PENDING


@dataclass(frozen=True)
class PollOutcome:
    status: PollStatus
    attempts: int
    elapsed: float


StatusCheck = Callable[[], Union[PollStatus, Awaitable[PollStatus]]]
ProgressCallback = Callable[[Any], Union[None, Awaitable[None]]]


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class AsyncOperationPoller:
    """Repeatedly invoke a status check until terminal, deadline or cancel.

    Args:
        interval: Seconds between checks
        deadline: Seconds from the first check after which polling gives up
        suppress_duplicates: Skip the progress callback when the payload is
            identical to the previous reported one
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        interval: float,
        deadline: float,
        suppress_duplicates: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        if deadline <= 0:
            raise ValueError("deadline must be > 0")
        self.interval = interval
        self.deadline = deadline
        self.suppress_duplicates = suppress_duplicates
        self._clock = clock

    async def poll(
        self,
        check: StatusCheck,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Poll ``check`` until it returns a terminal status.

        Returns:
            PollOutcome with the terminal status and the number of checks made

        Raises:
            PollTimeout: Deadline passed; carries the last observed payload
            PollCancelled: ``cancel`` was set before or during a wait
        """
        started = self._clock()
        deadline_at = started + self.deadline
        attempts = 0
        last_payload: Any = None
        last_reported: Any = _NOTHING

        while True:
            if cancel is not None and cancel.is_set():
                raise PollCancelled(attempts=attempts)

            status: PollStatus = await _maybe_await(check())
            attempts += 1

            if status.is_terminal:
                elapsed = self._clock() - started
                logger.debug(
                    "Operation reached terminal state",
                    extra={"state": status.state.value, "attempts": attempts, "elapsed": elapsed},
                )
                return PollOutcome(status=status, attempts=attempts, elapsed=elapsed)

            last_payload = status.payload
            if on_progress is not None and not (
                self.suppress_duplicates and status.payload == last_reported
            ):
                await _maybe_await(on_progress(status.payload))
                last_reported = status.payload

            remaining = deadline_at - self._clock()
            if remaining <= 0:
                raise self._timeout(last_payload, attempts)

            if await self._wait(min(self.interval, remaining), cancel):
                logger.info("Polling cancelled", extra={"attempts": attempts})
                raise PollCancelled(attempts=attempts)

            if self._clock() >= deadline_at:
                raise self._timeout(last_payload, attempts)

    def _timeout(self, last_payload: Any, attempts: int) -> PollTimeout:
        logger.warning(
            "Polling deadline exceeded",
            extra={"attempts": attempts, "deadline_seconds": self.deadline},
        )
        return PollTimeout(
            f"Operation did not finish within {self.deadline:g}s",
            last_payload=last_payload,
            attempts=attempts,
        )

    @staticmethod
    async def _wait(delay: float, cancel: Optional[asyncio.Event]) -> bool:
        """Sleep for ``delay`` seconds; True if cancelled while waiting."""
        if cancel is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

