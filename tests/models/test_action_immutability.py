"""
The action log is append-only at the ORM level.
"""

import pytest
from sqlalchemy import select

from approval_config import StepDraft
from approval_kernel.domain.workflow import ApproverSpec, ApproverType
from approval_kernel.exceptions import ImmutabilityViolationError
from approval_kernel.models.request import ApprovalActionModel


@pytest.fixture
def submitted(install_workflow, request_service):
    install_workflow(
        "purchase_requisition",
        StepDraft("Manager", approvers=(ApproverSpec(ApproverType.ROLE, "manager"),)),
    )
    return request_service.submit("purchase_requisition", "PR-1", {}, "rita")


def first_action(session, request_id):
    return session.execute(
        select(ApprovalActionModel).where(ApprovalActionModel.request_id == request_id)
    ).scalars().first()


class TestActionImmutability:

    def test_update_rejected(self, session, submitted):
        action = first_action(session, submitted.request_id)
        action.comment = "rewritten"
        with pytest.raises(ImmutabilityViolationError, match="cannot modify"):
            session.flush()

    def test_delete_rejected(self, session, submitted):
        action = first_action(session, submitted.request_id)
        session.delete(action)
        with pytest.raises(ImmutabilityViolationError, match="cannot delete"):
            session.flush()

    def test_appending_is_allowed(self, session, submitted, request_service):
        request_service.add_comment(submitted.request_id, "rita", "any update?")
        count = len(session.execute(
            select(ApprovalActionModel).where(ApprovalActionModel.request_id == submitted.request_id)
        ).scalars().all())
        assert count == 2
