"""stacks, templates, responsibilities

Revision ID: 8b42e6c1d0f3
Revises: 3f1c9a7d2b10
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "8b42e6c1d0f3"
down_revision = "3f1c9a7d2b10"
branch_labels = None
depends_on = None

DELIVERY_STATUSES = ("active", "completed", "expired", "revoked")


def upgrade() -> None:
    sa.Enum(*DELIVERY_STATUSES, name="deliverystatus").create(
        op.get_bind(), checkfirst=True
    )
    delivery_status = sa.Enum(
        *DELIVERY_STATUSES, name="deliverystatus", create_type=False
    )

    # --- Templates ---
    op.create_table(
        "workspace_templates",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=280), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("updated_by", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["updated_by"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspace_id", "name", name="uq_workspace_templates_name"),
    )

    # --- Responsibility & activity ---
    op.create_table(
        "document_responsibilities",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("coverage_role", sa.String(length=40), nullable=True),
        sa.Column("assigned_by", sa.UUID(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["assigned_by"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id", "account_id", name="uq_document_responsibilities_doc_account"
        ),
    )
    op.create_index(
        "ix_document_responsibilities_workspace_id",
        "document_responsibilities",
        ["workspace_id"],
    )

    op.create_table(
        "document_user_activity",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=True),
        sa.Column("last_action", sa.String(length=40), nullable=True),
        sa.Column("last_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "account_id", "document_id", name="uq_document_user_activity_account_doc"
        ),
    )

    # --- Stacks ---
    op.create_table(
        "receipt_stacks",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("owner_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=400), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.ForeignKeyConstraint(["owner_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_receipt_stacks_workspace_id", "receipt_stacks", ["workspace_id"])

    op.create_table(
        "receipt_stack_items",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("stack_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("added_by", sa.UUID(), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["stack_id"], ["receipt_stacks.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["added_by"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stack_id", "document_id", name="uq_receipt_stack_items_doc"),
    )

    op.create_table(
        "stack_deliveries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("stack_id", sa.UUID(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("public_id", sa.String(length=64), nullable=False),
        sa.Column("status", delivery_status, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.ForeignKeyConstraint(["stack_id"], ["receipt_stacks.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_id", name="uq_stack_deliveries_public_id"),
    )
    op.create_index(
        "ix_stack_deliveries_workspace_id", "stack_deliveries", ["workspace_id"]
    )

    op.create_table(
        "stack_delivery_documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("delivery_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(["delivery_id"], ["stack_deliveries.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "delivery_id", "document_id", name="uq_stack_delivery_documents_doc"
        ),
    )

    op.create_table(
        "stack_delivery_recipients",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("delivery_id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["delivery_id"], ["stack_deliveries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "delivery_id", "email", name="uq_stack_delivery_recipients_email"
        ),
    )

    op.create_table(
        "stack_document_acknowledgements",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("delivery_recipient_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("completion_id", sa.UUID(), nullable=True),
        sa.Column("ack_method", sa.String(length=40), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["delivery_recipient_id"], ["stack_delivery_recipients.id"]
        ),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["completion_id"], ["completions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "delivery_recipient_id",
            "document_id",
            name="uq_stack_document_acknowledgements_doc",
        ),
    )

    op.create_table(
        "stack_acknowledgement_receipts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("delivery_recipient_id", sa.UUID(), nullable=False),
        sa.Column("delivery_id", sa.UUID(), nullable=False),
        sa.Column("workspace_id", sa.UUID(), nullable=False),
        sa.Column("stack_id", sa.UUID(), nullable=True),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("evidence", sa.JSON(), nullable=True),
        sa.Column("outstanding_count", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["delivery_recipient_id"], ["stack_delivery_recipients.id"]
        ),
        sa.ForeignKeyConstraint(["delivery_id"], ["stack_deliveries.id"]),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"]),
        sa.ForeignKeyConstraint(["stack_id"], ["receipt_stacks.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "delivery_recipient_id",
            "delivery_id",
            name="uq_stack_acknowledgement_receipts_recipient",
        ),
    )


def downgrade() -> None:
    op.drop_table("stack_acknowledgement_receipts")
    op.drop_table("stack_document_acknowledgements")
    op.drop_table("stack_delivery_recipients")
    op.drop_table("stack_delivery_documents")
    op.drop_index("ix_stack_deliveries_workspace_id", table_name="stack_deliveries")
    op.drop_table("stack_deliveries")
    op.drop_table("receipt_stack_items")
    op.drop_index("ix_receipt_stacks_workspace_id", table_name="receipt_stacks")
    op.drop_table("receipt_stacks")

    op.drop_table("document_user_activity")
    op.drop_index(
        "ix_document_responsibilities_workspace_id",
        table_name="document_responsibilities",
    )
    op.drop_table("document_responsibilities")
    op.drop_table("workspace_templates")

    sa.Enum(name="deliverystatus").drop(op.get_bind(), checkfirst=True)
