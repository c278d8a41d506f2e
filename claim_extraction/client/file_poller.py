"""
Readiness polling for uploaded documents.

File-capable backends process an upload asynchronously. Instead of an ad
hoc sleep loop, readiness is tracked as an explicit state machine:

    pending -> processing -> ready | failed

Polling is bounded by a maximum attempt count and driven by tenacity.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from claim_extraction.client.errors import (
    AdapterMalformedOutputError,
    AdapterTimeoutError,
    AdapterUnavailableError,
)
from claim_extraction.config import get_logger


logger = get_logger(__name__)


class PollState(str, Enum):
    """Processing state of an uploaded file."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PollState.READY, PollState.FAILED)


# Allowed transitions; staying in the same state is always allowed.
_TRANSITIONS: dict[PollState, frozenset[PollState]] = {
    PollState.PENDING: frozenset(
        {PollState.PROCESSING, PollState.READY, PollState.FAILED}
    ),
    PollState.PROCESSING: frozenset({PollState.READY, PollState.FAILED}),
    PollState.READY: frozenset(),
    PollState.FAILED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class PollOutcome:
    """
    Terminal result of a polling run.

    Attributes:
        resource_id: Identifier of the polled file.
        state: Final state (always READY; failures raise).
        attempts: Number of status checks performed.
        elapsed_ms: Total time spent polling.
    """

    resource_id: str
    state: PollState
    attempts: int
    elapsed_ms: int


class FilePoller:
    """
    Bounded poll state machine for one uploaded file.

    Example:
        poller = FilePoller("file-abc", fetch_state, max_attempts=30, interval_seconds=2)
        outcome = await poller.wait_until_ready()
    """

    def __init__(
        self,
        resource_id: str,
        fetch_state: Callable[[], Awaitable[PollState]],
        max_attempts: int = 30,
        interval_seconds: float = 2.0,
    ) -> None:
        """
        Initialize the poller.

        Args:
            resource_id: Identifier of the file being polled (for logging).
            fetch_state: Coroutine function returning the current state.
            max_attempts: Maximum number of status checks.
            interval_seconds: Delay between checks.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.resource_id = resource_id
        self._fetch_state = fetch_state
        self._max_attempts = max_attempts
        self._interval_seconds = interval_seconds
        self._state = PollState.PENDING
        self._attempts = 0

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    def _transition(self, new_state: PollState) -> None:
        if new_state == self._state:
            return
        if new_state not in _TRANSITIONS[self._state]:
            raise AdapterMalformedOutputError(
                f"Illegal state transition for {self.resource_id}: "
                f"{self._state.value} -> {new_state.value}"
            )
        logger.debug(
            "file_poll_transition",
            resource_id=self.resource_id,
            from_state=self._state.value,
            to_state=new_state.value,
            attempt=self._attempts,
        )
        self._state = new_state

    async def _check(self) -> PollState:
        self._attempts += 1
        self._transition(await self._fetch_state())
        return self._state

    async def wait_until_ready(self) -> PollOutcome:
        """
        Poll until the file is ready.

        Returns:
            PollOutcome describing the successful run.

        Raises:
            AdapterUnavailableError: If the backend reports the file failed.
            AdapterTimeoutError: If the file is not ready within max_attempts.
            AdapterMalformedOutputError: If the backend reports an illegal transition.
        """
        start_time = time.perf_counter()
        retryer = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_fixed(self._interval_seconds),
            retry=retry_if_result(lambda state: not state.is_terminal),
        )

        try:
            state = await retryer(self._check)
        except RetryError as e:
            raise AdapterTimeoutError(
                f"File {self.resource_id} not ready after {self._attempts} checks "
                f"(last state: {self._state.value})"
            ) from e

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        if state == PollState.FAILED:
            logger.warning(
                "file_processing_failed",
                resource_id=self.resource_id,
                attempts=self._attempts,
            )
            raise AdapterUnavailableError(f"Backend failed to process file {self.resource_id}")

        logger.info(
            "file_ready",
            resource_id=self.resource_id,
            attempts=self._attempts,
            elapsed_ms=elapsed_ms,
        )
        return PollOutcome(
            resource_id=self.resource_id,
            state=state,
            attempts=self._attempts,
            elapsed_ms=elapsed_ms,
        )
