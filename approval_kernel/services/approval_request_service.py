"""
approval_kernel.services.approval_request_service -- Approval request state machine.

Responsibility:
    The aggregate root of the approval engine and the only component that
    mutates request state: submission, approver decisions, delegation,
    comments, send-back, timeout escalation, cancellation and recovery of
    blocked requests.  Evaluation itself is delegated to the pure engines.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/,
    and the pure engines.

Invariants enforced:
    - Status changes follow ``REQUEST_TRANSITIONS``; terminal statuses are
      final.  An action landing after a terminal write is rejected.
    - Every evaluation re-reads the workflow version frozen on the request.
    - Single writer per request: the row is loaded ``FOR UPDATE`` and every
      mutation bumps the optimistic ``version`` column.  A lost race raises
      StaleStateError and nothing is written.
    - The action log is append-only; verdicts are recomputed from it.
    - The ``submit`` action is recorded against the first step that opens
      (or blocks); a fully skipped chain has no actions.
    - Notifications are dispatched only after the flush succeeds.

Failure modes:
    - NoActiveWorkflowError / DuplicateRequestError on submit.
    - RequestNotFoundError for an unknown request id.
    - RequestAlreadyResolvedError / InvalidTransitionError /
      EscalationNotDueError for actions not allowed in the current state.
    - UnauthorizedApproverError for actors outside the eligible set.
    - StaleStateError when a concurrent writer won.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from approval_engines.approvers import widen_with_role
from approval_engines.consensus import tally
from approval_engines.escalation import (
    compute_deadline,
    is_escalation_due,
    plan_escalation,
)
from approval_engines.sequencer import SequencerOutcome, advance
from approval_kernel.db.types import to_json_value
from approval_kernel.domain.clock import Clock, SystemClock, ensure_utc
from approval_kernel.domain.ports import (
    IdentityDirectory,
    NotificationDispatcher,
    NotificationType,
    WorkflowNotification,
)
from approval_kernel.domain.request import (
    APPROVER_DECISIONS,
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATUSES,
    ActionType,
    ApprovalRequest,
    RequestContext,
    RequestStatus,
    Verdict,
)
from approval_kernel.domain.workflow import WorkflowDefinition, WorkflowStep
from approval_kernel.exceptions import (
    DuplicateRequestError,
    EscalationNotDueError,
    InvalidTransitionError,
    RequestAlreadyResolvedError,
    RequestNotFoundError,
    StaleStateError,
    UnauthorizedApproverError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.request import ApprovalActionModel, ApprovalRequestModel
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.selectors.workflow_selector import WorkflowSelector
from approval_kernel.services.base import BaseService
from approval_kernel.services.notification_dispatcher import (
    LoggingNotificationDispatcher,
)

logger = get_logger("services.approval_request")

_SEQUENCE_CONSTRAINT_MARKERS = (
    "uq_approval_actions_sequence",
    "approval_actions.request_id, approval_actions.sequence",
)
_OPEN_ENTITY_MARKERS = (
    "ix_approval_requests_open_entity",
    "approval_requests.entity_type, approval_requests.entity_id",
)


class ApprovalRequestService(BaseService[ApprovalRequestModel]):
    """
    Drives approval requests through their workflow.

    Contract:
        Every public mutator loads the request under lock, validates the
        transition, appends to the action log, re-runs the engines, flushes,
        and only then dispatches notifications.  The caller commits.
    """

    def __init__(
        self,
        session: Session,
        directory: IdentityDirectory,
        notifier: NotificationDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(session)
        self._directory = directory
        self._notifier = notifier or LoggingNotificationDispatcher()
        self._clock = clock or SystemClock()
        self._workflows = WorkflowSelector(session)
        self._requests = RequestSelector(session)
        self._outbox: list[WorkflowNotification] = []

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: str,
        entity_id: str,
        field_values: Mapping[str, Any],
        submitted_by: str,
        entity_number: str | None = None,
    ) -> ApprovalRequest:
        """Create a request bound to the active workflow version and open its
        first applicable step.

        Raises:
            NoActiveWorkflowError: No version is active for ``entity_type``.
            DuplicateRequestError: The document already has an open request.
        """
        self._outbox.clear()
        existing = self._requests.get_by_entity(entity_type, entity_id, open_only=True)
        if existing is not None:
            raise DuplicateRequestError(entity_type, entity_id, str(existing.request_id))

        definition = self._workflows.get_active_definition(entity_type)
        now = self._clock.now()

        model = ApprovalRequestModel(
            id=uuid4(),
            workflow_id=definition.workflow_id,
            workflow_version=definition.version,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_number=entity_number,
            field_values=to_json_value(dict(field_values)),
            submitted_by=submitted_by,
            status=RequestStatus.PENDING.value,
            current_step_order=0,
            eligible_approvers=[],
            escalation_count=0,
            action_count=0,
            submitted_at=now,
        )
        self.session.add(model)

        with LogContext.bind(
            request_id=str(model.id),
            actor_id=submitted_by,
            entity_type=entity_type,
            workflow_id=str(definition.workflow_id),
        ):
            outcome = advance(
                definition, self._context(model), self._directory, after_order=0,
            )
            if outcome.step is not None:
                self._append_action(
                    model, outcome.step.step_id, ActionType.SUBMIT, submitted_by, now,
                )
            self._apply_outcome(model, outcome, now)

            try:
                self.session.flush()
            except IntegrityError as exc:
                if _mentions(exc, _OPEN_ENTITY_MARKERS):
                    raise DuplicateRequestError(entity_type, entity_id, "concurrent") from exc
                raise

            logger.info(
                "approval_request_submitted",
                extra={
                    "entity_id": entity_id,
                    "workflow_version": definition.version,
                    "status": model.status,
                    "current_step_order": model.current_step_order,
                },
            )
            self._dispatch_outbox()
        return model.to_dto()

    # ------------------------------------------------------------------
    # Approver decisions
    # ------------------------------------------------------------------

    def record_action(
        self,
        request_id: UUID,
        step_id: UUID,
        actor_id: str,
        decision: ActionType | str,
        comment: str = "",
        expected_version: int | None = None,
    ) -> ApprovalRequest:
        """Record an approve/reject decision and advance the request.

        Args:
            expected_version: If given, the request version the caller last
                read; a mismatch raises StaleStateError without writing.
        """
        decision = ActionType(decision)
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id, expected_version)
            if decision not in APPROVER_DECISIONS:
                raise InvalidTransitionError(
                    str(request_id), model.status,
                    f"'{decision.value}' is not an approver decision",
                )
            self._require_actionable(model)
            self._require_current_step(model, step_id)
            self._require_eligible(model, actor_id)

            now = self._clock.now()
            definition = self._workflows.get_definition(model.workflow_id)
            step = self._current_step(model, definition)

            self._append_action(model, step.step_id, decision, actor_id, now, comment=comment)
            logger.info(
                "approval_action_recorded",
                extra={
                    "step_order": step.step_order,
                    "decision": decision.value,
                },
            )
            self._evaluate_step(model, definition, step, now)
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    def approve(self, request_id: UUID, step_id: UUID, actor_id: str,
                comment: str = "") -> ApprovalRequest:
        return self.record_action(request_id, step_id, actor_id, ActionType.APPROVE, comment)

    def reject(self, request_id: UUID, step_id: UUID, actor_id: str,
               comment: str = "") -> ApprovalRequest:
        return self.record_action(request_id, step_id, actor_id, ActionType.REJECT, comment)

    def delegate(
        self,
        request_id: UUID,
        step_id: UUID,
        actor_id: str,
        delegate_to: str,
        comment: str = "",
    ) -> ApprovalRequest:
        """Hand the actor's place on the current step to another active user.

        The delegate replaces the delegator in the eligible set.  An actor
        who already decided on the step cannot delegate.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id)
            self._require_actionable(model)
            self._require_current_step(model, step_id)
            self._require_eligible(model, actor_id)

            if delegate_to == actor_id:
                raise InvalidTransitionError(
                    str(request_id), model.status, "cannot delegate to self",
                )
            if delegate_to in model.eligible_approvers:
                raise InvalidTransitionError(
                    str(request_id), model.status,
                    f"{delegate_to} is already an eligible approver",
                )
            if not self._directory.is_user_active(delegate_to):
                raise InvalidTransitionError(
                    str(request_id), model.status,
                    f"delegate {delegate_to} is not an active user",
                )
            decided = any(
                a.step_id == step_id
                and a.actor_id == actor_id
                and ActionType(a.action) in APPROVER_DECISIONS
                for a in model.actions
            )
            if decided:
                raise InvalidTransitionError(
                    str(request_id), model.status,
                    "actor has already decided on this step",
                )

            now = self._clock.now()
            definition = self._workflows.get_definition(model.workflow_id)
            step = self._current_step(model, definition)

            self._append_action(
                model, step.step_id, ActionType.DELEGATE, actor_id, now,
                comment=comment, delegated_to=delegate_to,
            )
            eligible = (set(model.eligible_approvers) - {actor_id}) | {delegate_to}
            model.eligible_approvers = sorted(eligible)
            self._notify(
                model, NotificationType.STEP_OPENED, {delegate_to},
                step_name=step.step_name, detail=f"delegated by {actor_id}",
            )
            logger.info(
                "approval_step_delegated",
                extra={"step_order": step.step_order, "delegated_to": delegate_to},
            )
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    def add_comment(self, request_id: UUID, actor_id: str, comment: str) -> ApprovalRequest:
        """Append a comment to the current step.  Never affects the verdict.

        Allowed for the submitter and the current eligible approvers.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id)
            self._require_open(model)
            if not comment.strip():
                raise InvalidTransitionError(
                    str(request_id), model.status, "comment text is required",
                )
            if actor_id != model.submitted_by and actor_id not in model.eligible_approvers:
                raise UnauthorizedApproverError(
                    str(request_id), actor_id, str(model.current_step_id),
                )
            if model.current_step_id is None:
                raise InvalidTransitionError(
                    str(request_id), model.status, "request has no current step",
                )
            self._append_action(
                model, model.current_step_id, ActionType.COMMENT, actor_id,
                self._clock.now(), comment=comment,
            )
            self._flush(model)
        return model.to_dto()

    def send_back(
        self,
        request_id: UUID,
        step_id: UUID,
        actor_id: str,
        comment: str,
    ) -> ApprovalRequest:
        """Return the request to its submitter for changes.

        The request closes as ``returned``; the submitter may then submit
        the document again, which starts a new request on the active
        workflow version.  A comment stating what to change is required.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id)
            self._require_actionable(model)
            self._require_current_step(model, step_id)
            self._require_eligible(model, actor_id)
            if not comment.strip():
                raise InvalidTransitionError(
                    str(request_id), model.status, "send-back requires a comment",
                )

            now = self._clock.now()
            definition = self._workflows.get_definition(model.workflow_id)
            step = self._current_step(model, definition)

            self._append_action(
                model, step.step_id, ActionType.SEND_BACK, actor_id, now, comment=comment,
            )
            recipients = set(model.eligible_approvers) | {model.submitted_by}
            self._close(model, RequestStatus.RETURNED, now)
            self._notify(
                model, NotificationType.REQUEST_RESOLVED, recipients,
                step_name=step.step_name, status=RequestStatus.RETURNED.value,
                detail=comment,
            )
            logger.info("approval_request_returned", extra={"step_order": step.step_order})
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def escalate(
        self,
        request_id: UUID,
        step_id: UUID | None = None,
        as_of: datetime | None = None,
    ) -> ApprovalRequest:
        """Apply the current step's escalation action once its deadline elapsed.

        Args:
            step_id: If given, must be the current step.
            as_of: Evaluation time (defaults to the clock); re-arming
                computes the new deadline from this instant.  A naive value
                is read as UTC.

        Raises:
            EscalationNotDueError: The step has no deadline or it has not
                elapsed yet.
        """
        with LogContext.bind(request_id=str(request_id)):
            model = self._load_for_update(request_id)
            self._require_actionable(model)
            if step_id is not None:
                self._require_current_step(model, step_id)

            now = ensure_utc(as_of) if as_of is not None else self._clock.now()
            if not is_escalation_due(model.step_deadline_at, now):
                deadline = model.step_deadline_at
                raise EscalationNotDueError(
                    str(request_id), model.status,
                    deadline.isoformat() if deadline is not None else None,
                )

            definition = self._workflows.get_definition(model.workflow_id)
            step = self._current_step(model, definition)
            plan = plan_escalation(step)

            self._append_action(
                model, step.step_id, plan.action, None, now,
                comment=f"step timed out after {step.timeout_hours}h",
            )
            model.escalation_count += 1
            model.escalated_at = now

            if plan.widen_to_role:
                widened = widen_with_role(
                    frozenset(model.eligible_approvers), plan.widen_to_role, self._directory,
                )
                model.eligible_approvers = sorted(widened)
            if plan.rearm:
                model.step_deadline_at = compute_deadline(step, now)
            if plan.notify:
                self._notify(
                    model, NotificationType.ESCALATION,
                    set(model.eligible_approvers) | {model.submitted_by},
                    step_name=step.step_name,
                    detail=f"escalation #{model.escalation_count}",
                )

            logger.warning(
                "approval_step_escalated",
                extra={
                    "step_order": step.step_order,
                    "escalation_action": step.escalation_action.value,
                    "escalation_count": model.escalation_count,
                    "widened_to_role": plan.widen_to_role,
                },
            )
            if plan.decides_step:
                self._evaluate_step(model, definition, step, now)
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def cancel(self, request_id: UUID, actor_id: str, reason: str = "") -> ApprovalRequest:
        """Administrative override to ``cancelled`` from any non-terminal state."""
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id)
            self._require_open(model)
            recipients = set(model.eligible_approvers) | {model.submitted_by}
            self._close(model, RequestStatus.CANCELLED, self._clock.now())
            self._notify(
                model, NotificationType.REQUEST_RESOLVED, recipients,
                status=RequestStatus.CANCELLED.value, detail=reason,
            )
            logger.info("approval_request_cancelled", extra={"reason": reason})
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    def retry_blocked(self, request_id: UUID, actor_id: str) -> ApprovalRequest:
        """Re-run activation of a blocked request's current step.

        Used after the directory (or an approver assignment) was fixed.  The
        request stays ``blocked`` if the step still cannot open.
        """
        with LogContext.bind(request_id=str(request_id), actor_id=actor_id):
            model = self._load_for_update(request_id)
            self._require_open(model)
            if RequestStatus(model.status) != RequestStatus.BLOCKED:
                raise InvalidTransitionError(
                    str(request_id), model.status, "request is not blocked",
                )
            definition = self._workflows.get_definition(model.workflow_id)
            now = self._clock.now()
            outcome = advance(
                definition, self._context(model), self._directory,
                after_order=max(model.current_step_order - 1, 0),
            )
            self._apply_outcome(model, outcome, now)
            logger.info(
                "approval_request_retried",
                extra={"status": model.status, "current_step_order": model.current_step_order},
            )
            self._flush(model)
            self._dispatch_outbox()
        return model.to_dto()

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        return self._requests.get(request_id)

    # ------------------------------------------------------------------
    # Transition internals
    # ------------------------------------------------------------------

    def _evaluate_step(
        self,
        model: ApprovalRequestModel,
        definition: WorkflowDefinition,
        step: WorkflowStep,
        now: datetime,
    ) -> None:
        """Re-run consensus on the current step and transition on a verdict."""
        result = tally(step, frozenset(model.eligible_approvers), self._action_records(model))
        logger.debug(
            "approval_step_tallied",
            extra={
                "step_order": step.step_order,
                "verdict": result.verdict.value,
                "approved": result.approved,
                "rejected": result.rejected,
                "eligible": result.eligible,
            },
        )
        if result.verdict == Verdict.PENDING:
            return
        if result.verdict == Verdict.REJECTED:
            recipients = set(model.eligible_approvers) | {model.submitted_by}
            self._close(model, RequestStatus.REJECTED, now)
            self._notify(
                model, NotificationType.REQUEST_RESOLVED, recipients,
                step_name=step.step_name, status=RequestStatus.REJECTED.value,
            )
            logger.info("approval_request_rejected", extra={"step_order": step.step_order})
            return

        logger.info("approval_step_satisfied", extra={"step_order": step.step_order})
        outcome = advance(
            definition, self._context(model), self._directory,
            after_order=step.step_order,
        )
        self._apply_outcome(model, outcome, now)

    def _apply_outcome(
        self,
        model: ApprovalRequestModel,
        outcome: SequencerOutcome,
        now: datetime,
    ) -> None:
        """Move the request to wherever the sequencer landed."""
        for skipped in outcome.skipped:
            logger.info(
                "approval_step_skipped",
                extra={"step_order": skipped.step.step_order, "reason": skipped.reason},
            )

        if outcome.completed:
            self._close(model, RequestStatus.APPROVED, now)
            self._notify(
                model, NotificationType.REQUEST_RESOLVED, {model.submitted_by},
                status=RequestStatus.APPROVED.value,
            )
            logger.info("approval_request_approved")
            return

        step = outcome.step
        model.current_step_id = step.step_id
        model.current_step_order = step.step_order
        model.route_to_role = outcome.route_to_role
        model.escalation_count = 0
        model.escalated_at = None

        if outcome.blocked:
            self._transition(model, RequestStatus.BLOCKED)
            model.eligible_approvers = []
            model.step_opened_at = None
            model.step_deadline_at = None
            model.blocked_reason = str(outcome.error)
            self._notify(
                model, NotificationType.REQUEST_BLOCKED, {model.submitted_by},
                step_name=step.step_name, status=RequestStatus.BLOCKED.value,
                detail=str(outcome.error),
            )
            logger.error(
                "approval_request_blocked",
                extra={
                    "step_order": step.step_order,
                    "error_code": outcome.error.code,
                    "reason": str(outcome.error),
                },
            )
            return

        resolution = outcome.resolution
        for degradation in resolution.degradations:
            logger.warning(
                "approver_dropped",
                extra={
                    "step_order": step.step_order,
                    "approver_type": degradation.approver_type.value,
                    "approver_value": degradation.approver_value,
                    "reason": degradation.reason,
                },
            )

        self._transition(model, RequestStatus.PENDING)
        model.eligible_approvers = sorted(resolution.approvers)
        model.step_opened_at = now
        model.step_deadline_at = compute_deadline(step, now)
        model.blocked_reason = None
        self._notify(
            model, NotificationType.STEP_OPENED, set(resolution.approvers),
            step_name=step.step_name,
        )
        logger.info(
            "approval_step_opened",
            extra={
                "step_order": step.step_order,
                "step_name": step.step_name,
                "approval_type": step.approval_type.value,
                "eligible_count": len(resolution.approvers),
                "route_to_role": outcome.route_to_role,
                "deadline": model.step_deadline_at,
            },
        )

    def _close(self, model: ApprovalRequestModel, status: RequestStatus, now: datetime) -> None:
        self._transition(model, status)
        model.completed_at = now
        model.step_deadline_at = None
        model.eligible_approvers = []

    def _transition(self, model: ApprovalRequestModel, target: RequestStatus) -> None:
        current = RequestStatus(model.status)
        if target not in REQUEST_TRANSITIONS[current]:
            raise InvalidTransitionError(
                str(model.id), current.value,
                f"cannot move from {current.value} to {target.value}",
            )
        model.status = target.value

    def _append_action(
        self,
        model: ApprovalRequestModel,
        step_id: UUID,
        action: ActionType,
        actor_id: str | None,
        now: datetime,
        comment: str = "",
        delegated_to: str | None = None,
    ) -> None:
        # Bumping action_count dirties the request row so its version moves
        model.action_count += 1
        model.actions.append(ApprovalActionModel(
            id=uuid4(),
            request_id=model.id,
            step_id=step_id,
            sequence=model.action_count,
            action=action.value,
            actor_id=actor_id,
            delegated_to=delegated_to,
            comment=comment,
            acted_at=now,
        ))

    # ------------------------------------------------------------------
    # Loading and guards
    # ------------------------------------------------------------------

    def _load_for_update(
        self,
        request_id: UUID,
        expected_version: int | None = None,
    ) -> ApprovalRequestModel:
        self._outbox.clear()
        model = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        if expected_version is not None and model.version != expected_version:
            raise StaleStateError(str(request_id), expected_version, model.version)
        return model

    def _require_open(self, model: ApprovalRequestModel) -> None:
        status = RequestStatus(model.status)
        if status in TERMINAL_REQUEST_STATUSES:
            raise RequestAlreadyResolvedError(str(model.id), status.value)

    def _require_actionable(self, model: ApprovalRequestModel) -> None:
        self._require_open(model)
        if RequestStatus(model.status) == RequestStatus.BLOCKED:
            raise InvalidTransitionError(
                str(model.id), model.status,
                "request is blocked pending administrator intervention",
            )

    def _require_current_step(self, model: ApprovalRequestModel, step_id: UUID) -> None:
        if model.current_step_id != step_id:
            raise InvalidTransitionError(
                str(model.id), model.status,
                f"step {step_id} is not the current step",
            )

    def _require_eligible(self, model: ApprovalRequestModel, actor_id: str) -> None:
        if actor_id not in (model.eligible_approvers or ()):
            raise UnauthorizedApproverError(
                str(model.id), actor_id, str(model.current_step_id),
            )

    def _current_step(
        self, model: ApprovalRequestModel, definition: WorkflowDefinition,
    ) -> WorkflowStep:
        step = definition.step_by_id(model.current_step_id)
        if step is None:
            raise InvalidTransitionError(
                str(model.id), model.status,
                f"current step {model.current_step_id} is not part of "
                f"workflow v{definition.version}",
            )
        return step

    def _flush(self, model: ApprovalRequestModel) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("approval_request_stale", extra={"error": str(exc)})
            raise StaleStateError(str(model.id)) from exc
        except IntegrityError as exc:
            if _mentions(exc, _SEQUENCE_CONSTRAINT_MARKERS):
                logger.warning("approval_action_sequence_conflict")
                raise StaleStateError(str(model.id)) from exc
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _context(self, model: ApprovalRequestModel) -> RequestContext:
        return RequestContext(
            submitted_by=model.submitted_by,
            field_values=dict(model.field_values or {}),
            entity_type=model.entity_type,
            entity_id=model.entity_id,
        )

    @staticmethod
    def _action_records(model: ApprovalRequestModel):
        return [a.to_dto() for a in model.actions]

    def _notify(
        self,
        model: ApprovalRequestModel,
        notification_type: NotificationType,
        recipients: Iterable[str],
        step_name: str | None = None,
        status: str | None = None,
        detail: str = "",
    ) -> None:
        self._outbox.append(WorkflowNotification(
            type=notification_type,
            recipients=frozenset(recipients),
            request_id=model.id,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            entity_number=model.entity_number,
            step_name=step_name,
            status=status or model.status,
            detail=detail,
        ))

    def _dispatch_outbox(self) -> None:
        pending, self._outbox = self._outbox, []
        for notification in pending:
            self._notifier.dispatch(notification)


def _mentions(exc: IntegrityError, markers: tuple[str, ...]) -> bool:
    text = str(exc.orig)
    return any(marker in text for marker in markers)
