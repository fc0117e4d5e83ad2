"""
Module: approval_kernel.models.request
Responsibility: ORM persistence for approval requests and their append-only
    action log.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Single writer per request: ``version`` is the mapper's version_id_col,
      so a flush against a row another transaction already changed raises
      StaleDataError (translated to StaleStateError by the service layer).
    - Action sequence numbers are unique per request; a lost append race
      surfaces as IntegrityError on ``uq_approval_actions_sequence``.
    - Actions are immutable once created -- no UPDATE, no DELETE.
    - At most one non-terminal request per (entity_type, entity_id), via a
      partial unique index.
    - Status values are limited by a check constraint; transition rules live
      in the service layer.

Failure modes:
    - ImmutabilityViolationError on action UPDATE/DELETE.
    - StaleDataError on a concurrent request update.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.db.types import JSONValue
from approval_kernel.domain.request import (
    ActionType,
    ApprovalActionRecord,
    ApprovalRequest,
    RequestStatus,
)
from approval_kernel.exceptions import ImmutabilityViolationError


class ApprovalRequestModel(Base):
    """Persistent approval request (aggregate root).

    Contract:
        Mutated only by ApprovalRequestService.  Terminal statuses
        (approved, rejected, returned, cancelled) are final.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'blocked', 'approved', 'rejected', "
            "'returned', 'cancelled')",
            name="ck_approval_requests_valid_status",
        ),
        Index("ix_approval_requests_entity", "entity_type", "entity_id", "status"),
        # At most one open request per document
        Index(
            "ix_approval_requests_open_entity",
            "entity_type", "entity_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'blocked')"),
            sqlite_where=text("status IN ('pending', 'blocked')"),
        ),
        Index("ix_approval_requests_deadline", "status", "step_deadline_at"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_workflows.id"), nullable=False,
    )
    workflow_version: Mapped[int] = mapped_column(nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    field_values: Mapped[dict[str, Any]] = mapped_column(
        JSONValue, default=dict, nullable=False,
    )
    submitted_by: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=RequestStatus.PENDING.value, nullable=False,
    )

    current_step_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_steps.id"), nullable=True,
    )
    current_step_order: Mapped[int] = mapped_column(default=0, nullable=False)
    eligible_approvers: Mapped[list[str]] = mapped_column(
        JSON, default=list, nullable=False,
    )
    route_to_role: Mapped[str | None] = mapped_column(String(100), nullable=True)

    step_opened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    step_deadline_at: Mapped[datetime | None] = mapped_column(nullable=True)
    escalation_count: Mapped[int] = mapped_column(default=0, nullable=False)
    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Next action sequence number minus one; bumped on every append so the
    # version column moves even when nothing else on the row changes.
    action_count: Mapped[int] = mapped_column(default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    actions: Mapped[list["ApprovalActionModel"]] = relationship(
        "ApprovalActionModel",
        back_populates="request",
        order_by="ApprovalActionModel.sequence",
        lazy="selectin",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.id} {self.entity_type}/{self.entity_id} "
            f"status={self.status} step={self.current_step_order}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalRequest(
            request_id=self.id,
            workflow_id=self.workflow_id,
            workflow_version=self.workflow_version,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            status=RequestStatus(self.status),
            submitted_by=self.submitted_by,
            entity_number=self.entity_number,
            field_values=dict(self.field_values or {}),
            current_step_id=self.current_step_id,
            current_step_order=self.current_step_order,
            eligible_approvers=frozenset(self.eligible_approvers or ()),
            route_to_role=self.route_to_role,
            step_opened_at=self.step_opened_at,
            step_deadline_at=self.step_deadline_at,
            escalation_count=self.escalation_count,
            escalated_at=self.escalated_at,
            blocked_reason=self.blocked_reason,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
            version=self.version,
            actions=tuple(a.to_dto() for a in self.actions),
        )


class ApprovalActionModel(Base):
    """One entry in a request's action log. Append-only."""

    __tablename__ = "approval_actions"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "sequence", name="uq_approval_actions_sequence",
        ),
        Index("ix_approval_actions_step", "request_id", "step_id"),
        CheckConstraint(
            "action IN ('submit', 'approve', 'reject', 'escalate', "
            "'auto_approve', 'auto_reject', 'delegate', 'comment', "
            "'send_back')",
            name="ck_approval_actions_valid_action",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_requests.id"), nullable=False,
    )
    step_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_steps.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delegated_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    acted_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped[ApprovalRequestModel] = relationship(
        "ApprovalRequestModel", back_populates="actions",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction #{self.sequence} {self.action} "
            f"request={self.request_id} actor={self.actor_id}>"
        )

    def to_dto(self) -> ApprovalActionRecord:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalActionRecord(
            action_id=self.id,
            request_id=self.request_id,
            step_id=self.step_id,
            action=ActionType(self.action),
            sequence=self.sequence,
            actor_id=self.actor_id,
            comment=self.comment,
            delegated_to=self.delegated_to,
            acted_at=self.acted_at,
        )


# =============================================================================
# ORM-Level Immutability for Actions (Append-Only)
# =============================================================================


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot delete",
    )
