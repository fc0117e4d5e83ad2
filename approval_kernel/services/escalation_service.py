"""
approval_kernel.services.escalation_service -- Periodic escalation sweep.

Responsibility:
    Find pending requests whose current-step deadline has elapsed and
    escalate each one.  This is the entry point an external scheduler
    (cron, a job runner) calls; the engine itself holds no timers.

Architecture position:
    Kernel > Services.  Owns its transactions: unlike the other services it
    receives a session *factory* and commits one transaction per request.

Invariants enforced:
    - Per-request isolation: each escalation runs in its own transaction, so
      a lost race or an invalid transition on one request never rolls back
      the others.
    - Requests are re-checked under lock by ``ApprovalRequestService.escalate``;
      the due list is only a candidate list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.domain.clock import Clock, SystemClock, ensure_utc
from approval_kernel.domain.ports import IdentityDirectory, NotificationDispatcher
from approval_kernel.exceptions import ApprovalKernelError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.services.approval_request_service import ApprovalRequestService

logger = get_logger("services.escalation")


@dataclass(frozen=True)
class EscalationFailure:
    request_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class EscalationSweepResult:
    """What one sweep did."""

    as_of: datetime
    escalated: tuple[UUID, ...] = ()
    resolved: tuple[UUID, ...] = ()
    failed: tuple[EscalationFailure, ...] = field(default=())

    @property
    def candidates(self) -> int:
        return len(self.escalated) + len(self.failed)


class EscalationService:
    """Runs escalation sweeps, one transaction per due request."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        directory: IdentityDirectory,
        notifier: NotificationDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory
        self._notifier = notifier
        self._clock = clock or SystemClock()

    def find_due(self, as_of: datetime) -> list[UUID]:
        with self._session_factory() as session:
            return RequestSelector(session).due_for_escalation(ensure_utc(as_of))

    def run_sweep(self, as_of: datetime | None = None) -> EscalationSweepResult:
        """Escalate every request whose deadline elapsed by ``as_of``.

        Returns:
            EscalationSweepResult listing escalated requests, those that
            reached a terminal status as a result, and per-request failures.
        """
        as_of = ensure_utc(as_of) if as_of is not None else self._clock.now()
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._sweep(as_of)

    def _sweep(self, as_of: datetime) -> EscalationSweepResult:
        due = self.find_due(as_of)
        logger.info("escalation_sweep_started", extra={"as_of": as_of, "due": len(due)})

        escalated: list[UUID] = []
        resolved: list[UUID] = []
        failed: list[EscalationFailure] = []

        for request_id in due:
            try:
                with self._session_factory.begin() as session:
                    service = ApprovalRequestService(
                        session, self._directory, notifier=self._notifier, clock=self._clock,
                    )
                    request = service.escalate(request_id, as_of=as_of)
            except ApprovalKernelError as exc:
                logger.warning(
                    "escalation_skipped",
                    extra={"request_id": str(request_id), "error_code": exc.code},
                    exc_info=True,
                )
                failed.append(EscalationFailure(request_id, exc.code, str(exc)))
                continue

            escalated.append(request_id)
            if request.is_terminal:
                resolved.append(request_id)

        logger.info(
            "escalation_sweep_completed",
            extra={
                "as_of": as_of,
                "escalated": len(escalated),
                "resolved": len(resolved),
                "failed": len(failed),
            },
        )
        return EscalationSweepResult(
            as_of=as_of,
            escalated=tuple(escalated),
            resolved=tuple(resolved),
            failed=tuple(failed),
        )
