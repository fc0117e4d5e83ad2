"""
Module: approval_kernel.selectors.request_selector
Responsibility: Read-only queries over approval requests and their action
    history: lookup by id or by document, filtered listings, the approver
    inbox, and the escalation sweep's due list.
Architecture position: Kernel > Selectors.

Failure modes:
    - RequestNotFoundError from get() and history() for an unknown id.
    - Listing methods return empty lists, never raise, on absence of data.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from approval_kernel.domain.request import (
    PENDING_STATUSES,
    ApprovalActionRecord,
    ApprovalRequest,
    RequestStatus,
)
from approval_kernel.exceptions import RequestNotFoundError
from approval_kernel.models.request import ApprovalActionModel, ApprovalRequestModel
from approval_kernel.selectors.base import BaseSelector

_PENDING_VALUES = tuple(s.value for s in PENDING_STATUSES)


class RequestSelector(BaseSelector[ApprovalRequestModel]):
    """
    Selector for approval request queries.

    Guarantees:
        - Read-only.
        - Multi-request results are ordered by submission time, oldest first.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, request_id: UUID) -> ApprovalRequest:
        model = self.session.get(ApprovalRequestModel, request_id)
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model.to_dto()

    def get_by_entity(
        self,
        entity_type: str,
        entity_id: str,
        open_only: bool = False,
    ) -> ApprovalRequest | None:
        """Most recent request for a document, optionally only a non-terminal one."""
        stmt = (
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.entity_type == entity_type)
            .where(ApprovalRequestModel.entity_id == entity_id)
        )
        if open_only:
            stmt = stmt.where(ApprovalRequestModel.status.in_(_PENDING_VALUES))
        stmt = stmt.order_by(ApprovalRequestModel.submitted_at.desc())
        model = self.session.execute(stmt).scalars().first()
        return model.to_dto() if model is not None else None

    def list_requests(
        self,
        status: RequestStatus | None = None,
        entity_type: str | None = None,
        submitted_by: str | None = None,
        limit: int | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestModel)
        if status is not None:
            stmt = stmt.where(ApprovalRequestModel.status == RequestStatus(status).value)
        if entity_type is not None:
            stmt = stmt.where(ApprovalRequestModel.entity_type == entity_type)
        if submitted_by is not None:
            stmt = stmt.where(ApprovalRequestModel.submitted_by == submitted_by)
        stmt = stmt.order_by(ApprovalRequestModel.submitted_at)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def pending_for_user(self, user_id: str) -> list[ApprovalRequest]:
        """Pending requests whose current eligible set contains ``user_id``.

        Eligible sets are stored as JSON, so membership is checked here
        rather than in SQL to stay portable across backends.
        """
        models = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.status == RequestStatus.PENDING.value)
            .order_by(ApprovalRequestModel.submitted_at)
        ).scalars().all()
        return [
            m.to_dto() for m in models
            if user_id in (m.eligible_approvers or ())
        ]

    def history(self, request_id: UUID) -> list[ApprovalActionRecord]:
        """The request's full action log in sequence order."""
        if self.session.get(ApprovalRequestModel, request_id) is None:
            raise RequestNotFoundError(str(request_id))
        models = self.session.execute(
            select(ApprovalActionModel)
            .where(ApprovalActionModel.request_id == request_id)
            .order_by(ApprovalActionModel.sequence)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def due_for_escalation(self, as_of: datetime) -> list[UUID]:
        """Ids of pending requests whose current-step deadline has elapsed."""
        return list(self.session.execute(
            select(ApprovalRequestModel.id)
            .where(ApprovalRequestModel.status == RequestStatus.PENDING.value)
            .where(ApprovalRequestModel.step_deadline_at.is_not(None))
            .where(ApprovalRequestModel.step_deadline_at <= as_of)
            .order_by(ApprovalRequestModel.step_deadline_at)
        ).scalars().all())

    def count_for_workflow(self, workflow_id: UUID) -> int:
        """Number of requests referencing a workflow version."""
        return self.session.execute(
            select(func.count(ApprovalRequestModel.id))
            .where(ApprovalRequestModel.workflow_id == workflow_id)
        ).scalar_one()
