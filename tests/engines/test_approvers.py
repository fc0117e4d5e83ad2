"""
Tests for the pure approver resolver.

Resolution happens against the directory as it is at activation time;
inactive or missing users degrade the result instead of failing it.
"""

from uuid import uuid4

import pytest

from approval_engines.approvers import (
    resolve_approvers,
    resolve_step_approvers,
    widen_with_role,
)
from approval_kernel.domain.request import RequestContext
from approval_kernel.domain.workflow import ApproverSpec, ApproverType, WorkflowStep
from approval_kernel.exceptions import ApproverResolutionError


def spec(approver_type: ApproverType, value: str | None = None) -> ApproverSpec:
    return ApproverSpec(approver_type, value)


def make_step(*approvers: ApproverSpec) -> WorkflowStep:
    return WorkflowStep(
        step_id=uuid4(), step_order=1, step_name="Review", approvers=approvers,
    )


@pytest.fixture
def context():
    return RequestContext(
        submitted_by="rita",
        field_values={"department": "operations", "cost_center_id": "CC-100"},
    )


class TestResolveApprovers:

    def test_role_expands_to_active_members(self, directory, context):
        result = resolve_approvers([spec(ApproverType.ROLE, "finance_manager")], context, directory)
        assert result.approvers == {"fiona", "felix"}
        assert result.degradations == ()

    def test_role_expansion_skips_inactive_members(self, directory, context):
        directory.deactivate("felix")
        result = resolve_approvers([spec(ApproverType.ROLE, "finance_manager")], context, directory)
        assert result.approvers == {"fiona"}

    def test_role_is_read_at_resolution_time(self, directory, context):
        before = resolve_approvers([spec(ApproverType.ROLE, "cfo")], context, directory)
        directory.grant("cody", "cfo")
        after = resolve_approvers([spec(ApproverType.ROLE, "cfo")], context, directory)
        assert before.approvers == {"carol"}
        assert after.approvers == {"carol", "cody"}

    def test_inactive_user_is_dropped_and_reported(self, directory, context):
        directory.deactivate("carol")
        result = resolve_approvers(
            [spec(ApproverType.USER, "carol"), spec(ApproverType.USER, "cody")],
            context, directory,
        )
        assert result.approvers == {"cody"}
        assert len(result.degradations) == 1
        assert result.degradations[0].approver_value == "carol"
        assert result.dropped_labels() == ("user:carol",)

    def test_unknown_user_is_dropped(self, directory, context):
        result = resolve_approvers([spec(ApproverType.USER, "ghost")], context, directory)
        assert result.is_empty
        assert "inactive or missing" in result.degradations[0].reason

    def test_union_collapses_duplicates(self, directory, context):
        result = resolve_approvers(
            [
                spec(ApproverType.ROLE, "finance_manager"),
                spec(ApproverType.USER, "fiona"),
            ],
            context, directory,
        )
        assert result.approvers == {"fiona", "felix"}

    def test_empty_role_is_a_degradation(self, directory, context):
        result = resolve_approvers([spec(ApproverType.ROLE, "nobody")], context, directory)
        assert result.is_empty
        assert result.degradations[0].reason == "role has no active members"


class TestDerivedApprovers:

    def test_requestor_manager(self, directory, context):
        result = resolve_approvers([spec(ApproverType.REQUESTOR_MANAGER)], context, directory)
        assert result.approvers == {"mark"}

    def test_requestor_without_manager_degrades(self, directory):
        context = RequestContext(submitted_by="olga")
        result = resolve_approvers([spec(ApproverType.REQUESTOR_MANAGER)], context, directory)
        assert result.is_empty
        assert result.degradations[0].reason == "no manager on record"

    def test_department_head_from_document_field(self, directory, context):
        result = resolve_approvers([spec(ApproverType.DEPARTMENT_HEAD)], context, directory)
        assert result.approvers == {"helen"}

    def test_department_head_from_explicit_value(self, directory):
        directory.departments["finance"] = "carol"
        result = resolve_approvers(
            [spec(ApproverType.DEPARTMENT_HEAD, "finance")],
            RequestContext(submitted_by="rita"), directory,
        )
        assert result.approvers == {"carol"}

    def test_cost_center_owner_from_document_field(self, directory, context):
        result = resolve_approvers([spec(ApproverType.COST_CENTER_OWNER)], context, directory)
        assert result.approvers == {"dave"}

    def test_cost_center_missing_from_document_degrades(self, directory):
        result = resolve_approvers(
            [spec(ApproverType.COST_CENTER_OWNER)],
            RequestContext(submitted_by="rita"), directory,
        )
        assert result.is_empty
        assert result.degradations[0].reason == "no cost center to resolve"

    def test_inactive_manager_degrades(self, directory, context):
        directory.deactivate("mark")
        result = resolve_approvers([spec(ApproverType.REQUESTOR_MANAGER)], context, directory)
        assert result.is_empty
        assert "mark" in result.degradations[0].reason


class TestResolveStepApprovers:

    def test_empty_union_raises(self, directory, context):
        directory.deactivate("carol")
        step = make_step(spec(ApproverType.USER, "carol"))
        with pytest.raises(ApproverResolutionError) as exc_info:
            resolve_step_approvers(step, context, directory)
        assert exc_info.value.dropped == ("user:carol",)

    def test_route_target_replaces_stored_specs(self, directory, context):
        step = make_step(spec(ApproverType.ROLE, "finance_manager"))
        result = resolve_step_approvers(step, context, directory, route_to_role="cfo")
        assert result.approvers == {"carol"}

    def test_partial_degradation_still_opens(self, directory, context):
        directory.deactivate("carol")
        step = make_step(spec(ApproverType.USER, "carol"), spec(ApproverType.ROLE, "controller"))
        result = resolve_step_approvers(step, context, directory)
        assert result.approvers == {"cody"}
        assert len(result.degradations) == 1


class TestWidenWithRole:

    def test_adds_role_members(self, directory):
        assert widen_with_role(frozenset({"fiona"}), "controller", directory) == {"fiona", "cody"}

    def test_empty_role_leaves_set_unchanged(self, directory):
        assert widen_with_role(frozenset({"fiona"}), "nobody", directory) == {"fiona"}
