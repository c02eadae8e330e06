import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receipts.db import Base


class DeliveryStatus(enum.Enum):
    active = "active"
    completed = "completed"
    expired = "expired"
    revoked = "revoked"


# ---------------------------------------------------------------------------
# Stacks: named, reusable bundles of workspace documents
# ---------------------------------------------------------------------------


class Stack(Base):
    __tablename__ = "receipt_stacks"
    __table_args__ = (Index("ix_receipt_stacks_workspace_id", "workspace_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(400))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "StackItem",
        back_populates="stack",
        cascade="all, delete-orphan",
        order_by="StackItem.added_at",
    )

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def document_ids(self) -> list[uuid.UUID]:
        return [item.document_id for item in self.items]


class StackItem(Base):
    __tablename__ = "receipt_stack_items"
    __table_args__ = (
        UniqueConstraint("stack_id", "document_id", name="uq_receipt_stack_items_doc"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    stack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("receipt_stacks.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    added_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    stack = relationship("Stack", back_populates="items")
    document = relationship("Document")


# ---------------------------------------------------------------------------
# Deliveries: a frozen set of documents sent behind one public link
# ---------------------------------------------------------------------------


class StackDelivery(Base):
    __tablename__ = "stack_deliveries"
    __table_args__ = (
        UniqueConstraint("public_id", name="uq_stack_deliveries_public_id"),
        Index("ix_stack_deliveries_workspace_id", "workspace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    stack_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("receipt_stacks.id")
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    public_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus), default=DeliveryStatus.active
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    workspace = relationship("Workspace")
    documents = relationship(
        "StackDeliveryDocument",
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="StackDeliveryDocument.position",
    )
    recipients = relationship(
        "StackDeliveryRecipient",
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="StackDeliveryRecipient.created_at",
    )

    @property
    def document_count(self) -> int:
        return len(self.documents)


class StackDeliveryDocument(Base):
    __tablename__ = "stack_delivery_documents"
    __table_args__ = (
        UniqueConstraint(
            "delivery_id", "document_id", name="uq_stack_delivery_documents_doc"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stack_deliveries.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required: Mapped[bool] = mapped_column(Boolean, default=True)

    delivery = relationship("StackDelivery", back_populates="documents")
    document = relationship("Document")


class StackDeliveryRecipient(Base):
    __tablename__ = "stack_delivery_recipients"
    __table_args__ = (
        UniqueConstraint("delivery_id", "email", name="uq_stack_delivery_recipients_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stack_deliveries.id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(120))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    delivery = relationship("StackDelivery", back_populates="recipients")
    acknowledgements = relationship(
        "StackAcknowledgement",
        back_populates="recipient",
        cascade="all, delete-orphan",
    )


class StackAcknowledgement(Base):
    __tablename__ = "stack_document_acknowledgements"
    __table_args__ = (
        UniqueConstraint(
            "delivery_recipient_id",
            "document_id",
            name="uq_stack_document_acknowledgements_doc",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    delivery_recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stack_delivery_recipients.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    completion_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("completions.id")
    )
    ack_method: Mapped[str] = mapped_column(String(40), default="public_link")
    # "metadata" is reserved on declarative classes
    evidence: Mapped[dict | None] = mapped_column("metadata", JSON)

    acknowledged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    recipient = relationship("StackDeliveryRecipient", back_populates="acknowledgements")


class StackReceipt(Base):
    __tablename__ = "stack_acknowledgement_receipts"
    __table_args__ = (
        UniqueConstraint(
            "delivery_recipient_id",
            "delivery_id",
            name="uq_stack_acknowledgement_receipts_recipient",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    delivery_recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stack_delivery_recipients.id"), nullable=False
    )
    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stack_deliveries.id"), nullable=False
    )
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workspaces.id"), nullable=False
    )
    stack_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("receipt_stacks.id")
    )
    summary: Mapped[dict | None] = mapped_column(JSON)
    evidence: Mapped[dict | None] = mapped_column(JSON)
    outstanding_count: Mapped[int] = mapped_column(Integer, default=0)

    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
