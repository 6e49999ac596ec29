"""Receipt Handle — awaitable confirmation lifecycle of one operation.

A handle polls the rollup for its operation (by transaction hash, or by
priority-operation serial id for deposits) and feeds each report into a
ReceiptStateMachine. Polling uses tenacity's AsyncRetrying: retry while the
awaited stage is not reached, stop after the configured timeout.

    handle = await executor.submit(transfer)
    await handle.await_committed()   # suspends until the batch is committed
    await handle.await_verified()    # ... and until it is verified
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_delay, wait_fixed

from rollup_harness.domain.enums import ReceiptStatus
from rollup_harness.domain.exceptions import ConfirmationTimeoutError, RejectedOperationError
from rollup_harness.domain.state_machine import ReceiptStateMachine
from rollup_harness.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from rollup_harness.domain.models import ReceiptReport

logger = get_logger(__name__)

_RANK = {
    ReceiptStatus.SUBMITTED: 0,
    ReceiptStatus.COMMITTED: 1,
    ReceiptStatus.VERIFIED: 2,
}


@dataclass(frozen=True)
class ConfirmationPolicy:
    """Bounds for confirmation waits, in seconds."""

    commit_timeout: float = 120.0
    verify_timeout: float = 600.0
    poll_interval: float = 1.0


def _status_of(report: ReceiptReport) -> ReceiptStatus:
    if report.executed and report.success is False:
        return ReceiptStatus.REJECTED
    if report.verified:
        return ReceiptStatus.VERIFIED
    if report.committed:
        return ReceiptStatus.COMMITTED
    return ReceiptStatus.SUBMITTED


class ReceiptHandle:
    """In-flight lifecycle of a submitted operation."""

    def __init__(
        self,
        reference: str,
        poll: Callable[[], Awaitable[ReceiptReport]],
        policy: ConfirmationPolicy | None = None,
    ) -> None:
        """Args:
            reference: Transaction hash or "priority-op:<serial id>", for logs and errors.
            poll: Coroutine function returning the ledger's current report.
            policy: Timeouts and poll interval.
        """
        self.reference = reference
        self._poll = poll
        self._policy = policy or ConfirmationPolicy()
        self._machine = ReceiptStateMachine()
        self._fail_reason: str | None = None

    @property
    def status(self) -> ReceiptStatus:
        return ReceiptStatus(self._machine.status)

    @property
    def fail_reason(self) -> str | None:
        return self._fail_reason

    async def await_committed(self) -> ReceiptHandle:
        """Suspend until the operation is in a committed batch.

        Raises:
            RejectedOperationError: If the ledger rejected the operation.
            ConfirmationTimeoutError: If not committed within the commit timeout.
        """
        await self._await(ReceiptStatus.COMMITTED, self._policy.commit_timeout)
        return self

    async def await_verified(self) -> ReceiptHandle:
        """Suspend until the batch holding the operation is verified.

        Raises:
            RejectedOperationError: If the ledger rejected the operation.
            ConfirmationTimeoutError: If not verified within the verify timeout.
        """
        await self._await(ReceiptStatus.VERIFIED, self._policy.verify_timeout)
        return self

    async def refresh(self) -> ReceiptStatus:
        """Poll the ledger once and apply the report to the state machine."""
        if self._machine.is_terminal:
            return self.status

        report = await self._poll()
        observed = _status_of(report)

        if observed is ReceiptStatus.REJECTED:
            self._fail_reason = report.fail_reason or "unknown reason"
            self._machine.advance_to(ReceiptStatus.REJECTED.value)
            logger.warning(
                "receipt.rejected",
                reference=self.reference,
                reason=self._fail_reason,
            )
        elif _RANK[observed] > _RANK[self.status]:
            fired = self._machine.advance_to(observed.value)
            logger.debug("receipt.advanced", reference=self.reference, events=fired)

        return self.status

    def _reached(self, target: ReceiptStatus) -> bool:
        if self.status is ReceiptStatus.REJECTED:
            raise RejectedOperationError(self.reference, self._fail_reason or "unknown reason")
        return _RANK[self.status] >= _RANK[target]

    async def _await(self, target: ReceiptStatus, timeout: float) -> None:
        if self._reached(target):
            return

        retrying = AsyncRetrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(self._policy.poll_interval),
            retry=retry_if_result(lambda reached: not reached),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self.refresh()
                    reached = self._reached(target)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(reached)
        except RetryError as exc:
            logger.warning(
                "receipt.timeout",
                reference=self.reference,
                stage=target.value,
                timeout=timeout,
                status=self.status.value,
            )
            raise ConfirmationTimeoutError(
                self.reference, target.value, timeout, self.status.value
            ) from exc
