"""Tests for the escalation clock helpers."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from approval_engines.escalation import (
    compute_deadline,
    is_escalation_due,
    plan_escalation,
)
from approval_kernel.domain.request import ActionType
from approval_kernel.domain.workflow import EscalationAction, WorkflowStep

OPENED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_step(timeout_hours=24, action=EscalationAction.NOTIFY, role=None) -> WorkflowStep:
    return WorkflowStep(
        step_id=uuid4(), step_order=1, step_name="Review",
        timeout_hours=timeout_hours, escalation_action=action, escalation_role=role,
    )


class TestDeadline:

    def test_deadline_is_opened_plus_timeout(self):
        assert compute_deadline(make_step(48), OPENED) == OPENED + timedelta(hours=48)

    def test_no_timeout_no_deadline(self):
        assert compute_deadline(make_step(None), OPENED) is None

    def test_due_at_and_after_deadline(self):
        deadline = OPENED + timedelta(hours=24)
        assert not is_escalation_due(deadline, deadline - timedelta(seconds=1))
        assert is_escalation_due(deadline, deadline)
        assert is_escalation_due(deadline, deadline + timedelta(days=3))

    def test_never_due_without_deadline(self):
        assert not is_escalation_due(None, OPENED + timedelta(days=365))


class TestPlan:

    def test_notify_rearms_and_notifies(self):
        plan = plan_escalation(make_step())
        assert plan.action == ActionType.ESCALATE
        assert plan.rearm and plan.notify
        assert not plan.decides_step

    @pytest.mark.parametrize("action,expected", [
        (EscalationAction.AUTO_APPROVE, ActionType.AUTO_APPROVE),
        (EscalationAction.AUTO_REJECT, ActionType.AUTO_REJECT),
    ])
    def test_auto_actions_decide_without_rearm(self, action, expected):
        plan = plan_escalation(make_step(action=action))
        assert plan.action == expected
        assert plan.decides_step
        assert not plan.rearm

    def test_escalate_to_role_widens(self):
        plan = plan_escalation(make_step(action=EscalationAction.ESCALATE_TO_ROLE, role="controller"))
        assert plan.widen_to_role == "controller"
        assert plan.rearm and plan.notify
