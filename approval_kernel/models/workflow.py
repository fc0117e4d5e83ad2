"""
Module: approval_kernel.models.workflow
Responsibility: ORM persistence for versioned workflow definitions, their
    ordered steps, approver specifications and activation conditions.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - (entity_type, version) is unique: versions are monotonically numbered
      per entity type.
    - (workflow_id, step_order) is unique within a version.
    - At most one active version per entity type, via a partial unique
      index on entity_type where is_active.

Failure modes:
    - IntegrityError on duplicate version, duplicate step_order or a
      second active version.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.db.types import JSONValue
from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    ApproverType,
    EscalationAction,
    StepCondition,
    WorkflowDefinition,
    WorkflowStep,
)


class WorkflowDefinitionModel(Base):
    """One version of an approval workflow for an entity type."""

    __tablename__ = "approval_workflows"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "version", name="uq_approval_workflows_version",
        ),
        Index(
            "ix_approval_workflows_active",
            "entity_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        CheckConstraint("version >= 1", name="ck_approval_workflows_version"),
    )

    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    definition_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    steps: Mapped[list["StepModel"]] = relationship(
        "StepModel",
        back_populates="workflow",
        order_by="StepModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowDefinition {self.entity_type} v{self.version} "
            f"active={self.is_active}>"
        )

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to frozen domain DTO."""
        return WorkflowDefinition(
            workflow_id=self.id,
            entity_type=self.entity_type,
            name=self.name,
            version=self.version,
            is_active=self.is_active,
            steps=tuple(s.to_dto() for s in self.steps),
            description=self.description,
            definition_hash=self.definition_hash,
        )


class StepModel(Base):
    """One gate in a workflow version's chain."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "step_order", name="uq_approval_steps_order",
        ),
        CheckConstraint("step_order >= 1", name="ck_approval_steps_order"),
        CheckConstraint(
            "approval_type IN ('any', 'all', 'percentage')",
            name="ck_approval_steps_approval_type",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflows.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approval_type: Mapped[str] = mapped_column(
        String(50),
        default=ApprovalType.ANY.value, nullable=False,
    )
    required_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    can_skip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timeout_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_action: Mapped[str] = mapped_column(
        String(50),
        default=EscalationAction.NOTIFY.value, nullable=False,
    )
    escalation_role: Mapped[str | None] = mapped_column(String(100), nullable=True)

    workflow: Mapped[WorkflowDefinitionModel] = relationship(
        "WorkflowDefinitionModel", back_populates="steps",
    )
    approvers: Mapped[list["StepApproverModel"]] = relationship(
        "StepApproverModel",
        back_populates="step",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    conditions: Mapped[list["ConditionModel"]] = relationship(
        "ConditionModel",
        back_populates="step",
        order_by="ConditionModel.condition_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Step {self.step_order} {self.step_name} ({self.approval_type})>"

    def to_dto(self) -> WorkflowStep:
        """Convert ORM model to frozen domain DTO."""
        percentage = self.required_percentage
        return WorkflowStep(
            step_id=self.id,
            step_order=self.step_order,
            step_name=self.step_name,
            approval_type=ApprovalType(self.approval_type),
            required_percentage=Decimal(percentage) if percentage is not None else None,
            can_skip=self.can_skip,
            timeout_hours=self.timeout_hours,
            escalation_action=EscalationAction(self.escalation_action),
            escalation_role=self.escalation_role,
            approvers=tuple(a.to_dto() for a in self.approvers),
            conditions=tuple(c.to_dto() for c in self.conditions),
        )


class StepApproverModel(Base):
    """Abstract approver reference on a step."""

    __tablename__ = "step_approvers"

    __table_args__ = (
        Index("ix_step_approvers_step_id", "step_id"),
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    approver_type: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_value: Mapped[str | None] = mapped_column(String(100), nullable=True)

    step: Mapped[StepModel] = relationship("StepModel", back_populates="approvers")

    def to_dto(self) -> ApproverSpec:
        return ApproverSpec(
            approver_type=ApproverType(self.approver_type),
            approver_value=self.approver_value,
        )


class ConditionModel(Base):
    """Activation predicate on a step.

    ``operator`` and ``action`` are stored as free strings; the evaluator
    rejects unknown values with InvalidConditionError.
    """

    __tablename__ = "approval_conditions"

    __table_args__ = (
        Index("ix_approval_conditions_step_id", "step_id"),
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_path: Mapped[str] = mapped_column(String(255), nullable=False)
    operator: Mapped[str] = mapped_column(String(50), nullable=False)
    value: Mapped[Any] = mapped_column(JSONValue(none_as_null=True), nullable=True)
    action: Mapped[str] = mapped_column(String(50), default="require", nullable=False)
    route_to_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition_order: Mapped[int] = mapped_column(default=0, nullable=False)

    step: Mapped[StepModel] = relationship("StepModel", back_populates="conditions")

    def to_dto(self) -> StepCondition:
        return StepCondition(
            field_path=self.field_path,
            operator=self.operator,
            value=self.value,
            action=self.action,
            route_to_role=self.route_to_role,
            condition_order=self.condition_order,
        )
