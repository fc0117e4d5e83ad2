"""Tests for workflow definition validation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from approval_engines.validation import check_definition, check_step, validate_definition
from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    ApproverType,
    EscalationAction,
    StepCondition,
    WorkflowDefinition,
    WorkflowStep,
)
from approval_kernel.exceptions import (
    InvalidConditionError,
    InvalidStepConfigurationError,
)

MANAGER = (ApproverSpec(ApproverType.ROLE, "manager"),)


def make_step(order=1, **overrides) -> WorkflowStep:
    fields = dict(
        step_id=uuid4(), step_order=order, step_name=f"step {order}", approvers=MANAGER,
    )
    fields.update(overrides)
    return WorkflowStep(**fields)


def make_definition(*steps) -> WorkflowDefinition:
    return WorkflowDefinition(
        workflow_id=uuid4(), entity_type="purchase_requisition", name="PR", version=1, steps=steps,
    )


class TestDefinition:

    def test_valid_definition_passes(self):
        validate_definition(make_definition(make_step(1), make_step(2)))

    def test_no_steps(self):
        with pytest.raises(InvalidStepConfigurationError, match="no steps"):
            validate_definition(make_definition())

    def test_gap_in_orders(self):
        with pytest.raises(InvalidStepConfigurationError, match="without gaps"):
            validate_definition(make_definition(make_step(1), make_step(3)))

    def test_check_definition_collects_everything(self):
        problems = check_definition(make_definition(
            make_step(1, approvers=()),
            make_step(2, timeout_hours=0),
        ))
        assert len(problems) == 2


class TestStep:

    def test_percentage_needs_threshold(self):
        problems = check_step(make_step(approval_type=ApprovalType.PERCENTAGE))
        assert "required_percentage" in str(problems[0])

    @pytest.mark.parametrize("pct", ["0", "100.01", "-5"])
    def test_percentage_out_of_range(self, pct):
        step = make_step(approval_type=ApprovalType.PERCENTAGE, required_percentage=Decimal(pct))
        assert check_step(step)

    def test_percentage_only_on_percentage_steps(self):
        assert check_step(make_step(required_percentage=Decimal("50")))

    def test_escalate_to_role_needs_role(self):
        step = make_step(escalation_action=EscalationAction.ESCALATE_TO_ROLE)
        assert "escalation_role" in str(check_step(step)[0])

    def test_role_and_user_need_values(self):
        step = make_step(approvers=(ApproverSpec(ApproverType.ROLE), ApproverSpec(ApproverType.USER)))
        assert len(check_step(step)) == 2

    def test_derived_approvers_need_no_value(self):
        step = make_step(approvers=(ApproverSpec(ApproverType.REQUESTOR_MANAGER),))
        assert check_step(step) == []

    def test_condition_problems_are_reported(self):
        step = make_step(conditions=(StepCondition("amount", "around", 5),))
        problems = check_step(step)
        assert isinstance(problems[0], InvalidConditionError)

    def test_unknown_approval_type_string(self):
        step = make_step(approval_type="majority")
        assert "unknown approval_type" in str(check_step(step)[0])
