"""SQLAlchemy models.

`ClientPortal` and `ClientDeliverable` belong to the surrounding CRM; they are
modelled here only as far as the approval engine reads and writes them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deliverable_approval.db.base import Base, new_id, utc_now
from deliverable_approval.engine.errors import ImmutableRecordError


class ClientPortal(Base):
    __tablename__ = "client_portals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    token: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    client_name: Mapped[str] = mapped_column(String(255))
    client_email: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    deliverables: Mapped[list[ClientDeliverable]] = relationship(back_populates="portal")


class ClientDeliverable(Base):
    __tablename__ = "client_deliverables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    portal_id: Mapped[str] = mapped_column(
        ForeignKey("client_portals.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32), default="delivered")
    workflow_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(255))
    client_feedback: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    portal: Mapped[ClientPortal] = relationship(back_populates="deliverables")


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    __table_args__ = (
        # current_step is set exactly while the workflow is open.
        CheckConstraint(
            "(status IN ('approved', 'rejected') AND current_step IS NULL) OR "
            "(status IN ('pending', 'in_progress') AND current_step >= 1)",
            name="ck_approval_workflows_state",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    deliverable_id: Mapped[str] = mapped_column(
        ForeignKey("client_deliverables.id", ondelete="CASCADE"), unique=True
    )
    workflow_type: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), default="pending")
    current_step: Mapped[int | None] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    steps: Mapped[list[ApprovalStep]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="ApprovalStep.step_number",
    )


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "step_number", name="uq_approval_steps_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("approval_workflows.id", ondelete="CASCADE"), index=True
    )
    step_number: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    approver_type: Mapped[str] = mapped_column(String(32))
    approver_id: Mapped[str | None] = mapped_column(String(64))
    approver_name: Mapped[str | None] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(32), default="pending")
    comments: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(255))

    workflow: Mapped[ApprovalWorkflow] = relationship(back_populates="steps")


class ApprovalSignature(Base):
    __tablename__ = "approval_signatures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("approval_workflows.id", ondelete="CASCADE"), index=True
    )
    # Weak reference: steps are recreated on redefinition, signatures are not.
    step_id: Mapped[str | None] = mapped_column(String(36), index=True)
    signer_type: Mapped[str] = mapped_column(String(32))
    signer_name: Mapped[str] = mapped_column(String(255))
    signer_email: Mapped[str | None] = mapped_column(String(255))
    signature_data: Mapped[str] = mapped_column(Text)
    signature_method: Mapped[str] = mapped_column(String(16))
    ip_address: Mapped[str] = mapped_column(String(64))
    user_agent: Mapped[str] = mapped_column(Text)
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class ApprovalHistory(Base):
    __tablename__ = "approval_history"

    # Autoincrement doubles as the tie-breaker for entries sharing a timestamp.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("approval_workflows.id", ondelete="CASCADE"), index=True
    )
    step_id: Mapped[str | None] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(32))
    actor_type: Mapped[str] = mapped_column(String(32))
    actor_name: Mapped[str] = mapped_column(String(255))
    comments: Mapped[str | None] = mapped_column(Text)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


def _refuse_mutation(_mapper: object, _connection: object, target: object) -> None:
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only")


for _model in (ApprovalSignature, ApprovalHistory):
    event.listen(_model, "before_update", _refuse_mutation)
    event.listen(_model, "before_delete", _refuse_mutation)
