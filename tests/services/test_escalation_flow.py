"""
Tests for timeout escalation on a single request.

Each escalation action is driven through ApprovalRequestService.escalate
with an explicit ``as_of`` instant; the deterministic clock never moves on
its own.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from approval_config import StepDraft
from approval_kernel.domain.ports import NotificationType
from approval_kernel.domain.request import ActionType, RequestStatus
from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    ApproverType,
    EscalationAction,
)
from approval_kernel.exceptions import (
    EscalationNotDueError,
    InvalidTransitionError,
    RequestAlreadyResolvedError,
)

PO = "purchase_order"

# Matches the deterministic_clock fixture
START_TIME = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def role(name: str) -> ApproverSpec:
    return ApproverSpec(ApproverType.ROLE, name)


def submit(request_service, entity_id="PO-9001"):
    return request_service.submit(
        PO, entity_id, {"total_amount": 75000}, submitted_by="rita", entity_number=entity_id,
    )


class TestDeadline:

    def test_deadline_set_when_step_opens(self, request_service, install_workflow):
        install_workflow(PO, StepDraft("Finance", timeout_hours=24, approvers=(role("finance_manager"),)))
        request = submit(request_service)
        assert request.step_opened_at == START_TIME
        assert request.step_deadline_at == START_TIME + timedelta(hours=24)

    def test_no_deadline_without_timeout(self, request_service, install_workflow):
        install_workflow(PO, StepDraft("Finance", approvers=(role("finance_manager"),)))
        request = submit(request_service)
        assert request.step_deadline_at is None
        with pytest.raises(EscalationNotDueError, match="no timeout"):
            request_service.escalate(request.request_id, as_of=START_TIME + timedelta(days=30))

    def test_not_due_before_deadline(self, request_service, install_workflow):
        install_workflow(PO, StepDraft(
            "Finance", timeout_hours=24,
            escalation_action=EscalationAction.AUTO_REJECT,
            approvers=(role("finance_manager"),),
        ))
        request = submit(request_service)
        with pytest.raises(EscalationNotDueError):
            request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=23))
        assert request_service.get_request(request.request_id).status == RequestStatus.PENDING


class TestAutoReject:

    def test_rejects_after_timeout(self, request_service, install_workflow, notifier):
        install_workflow(PO, StepDraft(
            "Budget committee",
            approval_type=ApprovalType.PERCENTAGE,
            required_percentage=Decimal("50"),
            timeout_hours=24,
            escalation_action=EscalationAction.AUTO_REJECT,
            approvers=(role("budget_committee"),),
        ))
        request = submit(request_service)
        request_service.approve(request.request_id, request.current_step_id, "b1")

        request = request_service.escalate(
            request.request_id, request.current_step_id, as_of=START_TIME + timedelta(hours=24),
        )

        assert request.status == RequestStatus.REJECTED
        last = request.actions[-1]
        assert last.action == ActionType.AUTO_REJECT
        assert last.actor_id is None
        assert "24h" in last.comment
        assert notifier.of_type(NotificationType.REQUEST_RESOLVED)[-1].status == "rejected"

    def test_cannot_escalate_resolved_request(self, request_service, install_workflow):
        install_workflow(PO, StepDraft(
            "Finance", timeout_hours=1,
            escalation_action=EscalationAction.AUTO_REJECT,
            approvers=(role("finance_manager"),),
        ))
        request = submit(request_service)
        request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=1))
        with pytest.raises(RequestAlreadyResolvedError):
            request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=2))


class TestAutoApprove:

    def test_advances_to_next_step(self, request_service, install_workflow):
        install_workflow(
            PO,
            StepDraft(
                "Buyer lead", timeout_hours=8,
                escalation_action=EscalationAction.AUTO_APPROVE,
                approvers=(role("manager"),),
            ),
            StepDraft("CFO", approvers=(role("cfo"),)),
        )
        request = submit(request_service)
        as_of = START_TIME + timedelta(hours=9)
        request = request_service.escalate(request.request_id, as_of=as_of)

        assert request.status == RequestStatus.PENDING
        assert request.current_step_order == 2
        assert request.eligible_approvers == {"carol"}
        assert request.step_opened_at == as_of
        assert request.escalation_count == 0
        assert [a.action for a in request.actions] == [ActionType.SUBMIT, ActionType.AUTO_APPROVE]


class TestNotify:

    def test_notifies_and_rearms(self, request_service, install_workflow, notifier, captured_logs):
        install_workflow(PO, StepDraft("Finance", timeout_hours=24, approvers=(role("finance_manager"),)))
        request = submit(request_service)
        notifier.clear()

        as_of = START_TIME + timedelta(hours=30)
        request = request_service.escalate(request.request_id, as_of=as_of)

        assert request.status == RequestStatus.PENDING
        assert request.escalation_count == 1
        assert request.escalated_at == as_of
        assert request.step_deadline_at == as_of + timedelta(hours=24)
        assert request.actions[-1].action == ActionType.ESCALATE

        sent = notifier.of_type(NotificationType.ESCALATION)
        assert len(sent) == 1
        assert sent[0].recipients == {"fiona", "felix", "rita"}

        records = [r for r in captured_logs() if r["message"] == "approval_step_escalated"]
        assert records[0]["level"] == "WARNING"
        assert records[0]["escalation_count"] == 1

    def test_naive_as_of_is_read_as_utc(self, request_service, install_workflow):
        install_workflow(PO, StepDraft("Finance", timeout_hours=24, approvers=(role("finance_manager"),)))
        request = submit(request_service)

        as_of = START_TIME + timedelta(hours=30)
        request = request_service.escalate(request.request_id, as_of=as_of.replace(tzinfo=None))
        assert request.escalated_at == as_of
        assert request.step_deadline_at == as_of + timedelta(hours=24)

    def test_repeated_escalation_counts_up(self, request_service, install_workflow):
        install_workflow(PO, StepDraft("Finance", timeout_hours=24, approvers=(role("finance_manager"),)))
        request = submit(request_service)
        request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=24))
        with pytest.raises(EscalationNotDueError):
            request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=47))
        request = request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=48))
        assert request.escalation_count == 2

    def test_approvers_can_still_decide_after_escalation(self, request_service, install_workflow):
        install_workflow(PO, StepDraft("Finance", timeout_hours=24, approvers=(role("finance_manager"),)))
        request = submit(request_service)
        request = request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=25))
        request = request_service.approve(request.request_id, request.current_step_id, "felix")
        assert request.status == RequestStatus.APPROVED


class TestEscalateToRole:

    def test_widens_eligible_set(self, request_service, install_workflow, notifier):
        install_workflow(PO, StepDraft(
            "Finance", timeout_hours=48,
            escalation_action=EscalationAction.ESCALATE_TO_ROLE,
            escalation_role="controller",
            approvers=(role("finance_manager"),),
        ))
        request = submit(request_service)
        request = request_service.escalate(request.request_id, as_of=START_TIME + timedelta(hours=48))

        assert request.eligible_approvers == {"fiona", "felix", "cody"}
        assert notifier.of_type(NotificationType.ESCALATION)[-1].recipients == {
            "fiona", "felix", "cody", "rita",
        }

        request = request_service.approve(request.request_id, request.current_step_id, "cody")
        assert request.status == RequestStatus.APPROVED

    def test_wrong_step_is_rejected(self, request_service, install_workflow):
        definition = install_workflow(
            PO,
            StepDraft("Buyer lead", timeout_hours=1, approvers=(role("manager"),)),
            StepDraft("CFO", approvers=(role("cfo"),)),
        )
        request = submit(request_service)
        with pytest.raises(InvalidTransitionError):
            request_service.escalate(
                request.request_id, definition.step_by_order(2).step_id,
                as_of=START_TIME + timedelta(hours=2),
            )
