"""In-process mailbox between the OAuth callback and the Discord interaction.

The callback finishes on the web side; the user is still looking at the
ephemeral "click to verify" reply on the Discord side. The orchestrator
deposits the outcome under the user's id, and one shared poll loop edits
the waiting reply. Everything here is process-local and lost on restart.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final, Protocol

from discord.ext import tasks

log: Final = logging.getLogger("veribot")

POLL_INTERVAL_SECONDS: Final[float] = 2.0
POLL_TIMEOUT_SECONDS: Final[float] = 300.0


class Acknowledgment(Protocol):
    async def edit_original_response(self, *, content: str, view: Any) -> Any: ...


@dataclass(slots=True)
class PendingOutcome:
    message: str
    success: bool
    created_at: float


@dataclass(slots=True)
class _Registration:
    ack: Acknowledgment
    started_at: float


class CoordinationChannel:
    def __init__(
        self,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = POLL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout
        self._clock = clock
        self._acks: dict[str, _Registration] = {}
        self._outcomes: dict[str, PendingOutcome] = {}
        self._poller = tasks.loop(seconds=poll_interval)(self.tick)

    # ----- mailbox -----
    def register(self, handle: str, ack: Acknowledgment) -> None:
        """Attach the interaction waiting on ``handle``, replacing any older one.

        An outcome already held for ``handle`` belongs to an earlier attempt,
        since the OAuth link for this one is only shown after registering.
        """
        handle = str(handle)
        if self._outcomes.pop(handle, None) is not None:
            log.debug("Discarded stale outcome for %s", handle)
        self._acks[handle] = _Registration(ack=ack, started_at=self._clock())
        self.start()

    def deposit(self, handle: str, message: str, *, success: bool) -> None:
        self._outcomes[str(handle)] = PendingOutcome(
            message=message, success=success, created_at=self._clock()
        )

    def try_take(self, handle: str) -> PendingOutcome | None:
        return self._outcomes.pop(str(handle), None)

    def is_waiting(self, handle: str) -> bool:
        return str(handle) in self._acks

    def has_outcome(self, handle: str) -> bool:
        return str(handle) in self._outcomes

    def sweep(self, now: float | None = None) -> None:
        """Drop acknowledgments and outcomes older than the poll timeout."""
        now = self._clock() if now is None else now
        for handle, registration in list(self._acks.items()):
            if now - registration.started_at > self._timeout:
                del self._acks[handle]
                log.debug("Verification poll for %s timed out", handle)
        for handle, outcome in list(self._outcomes.items()):
            if now - outcome.created_at > self._timeout:
                del self._outcomes[handle]
                log.debug("Discarded unclaimed outcome for %s", handle)

    # ----- polling -----
    async def tick(self) -> None:
        for handle, registration in list(self._acks.items()):
            if self._acks.get(handle) is not registration:
                continue
            outcome = self.try_take(handle)
            if outcome is None:
                continue
            del self._acks[handle]
            await self._finalize(handle, registration.ack, outcome)
        self.sweep()

    async def _finalize(
        self, handle: str, ack: Acknowledgment, outcome: PendingOutcome
    ) -> None:
        try:
            await ack.edit_original_response(content=outcome.message, view=None)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to update verification reply for %s: %s", handle, exc)
            return
        log.info("Delivered verification result to %s", handle)

    def start(self) -> None:
        if not self._poller.is_running():
            self._poller.start()

    def close(self) -> None:
        self._poller.cancel()


__all__ = ["Acknowledgment", "CoordinationChannel", "PendingOutcome"]
