"""Initial schema: entities, templates, documents, suppliers, invoices, bulk jobs.

Revision ID: 001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Entities
    op.create_table(
        "entities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("settings", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Invoice templates
    op.create_table(
        "invoice_templates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("entities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), server_default="image"),
        sa.Column("source_key", sa.String(1000)),
        sa.Column("source_width", sa.Float, server_default="0"),
        sa.Column("source_height", sa.Float, server_default="0"),
        sa.Column("page_count", sa.Integer, server_default="1"),
        sa.Column("content", sa.Text, server_default="[]"),
        sa.Column("is_draft", sa.Boolean, server_default=sa.true()),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_invoice_templates_entity_id", "invoice_templates", ["entity_id"])

    # Bulk generation jobs
    op.create_table(
        "bulk_generation_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("entities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("template_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("invoice_templates.id", ondelete="SET NULL")),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("total_rows", sa.Integer, server_default="0"),
        sa.Column("total_batches", sa.Integer, server_default="0"),
        sa.Column("processed_rows", sa.Integer, server_default="0"),
        sa.Column("success_count", sa.Integer, server_default="0"),
        sa.Column("failure_count", sa.Integer, server_default="0"),
        sa.Column("error_log", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("result_key", sa.String(1000)),
        sa.Column("result_url", sa.String(2000)),
        sa.Column("notify_email", sa.String(255)),
        sa.Column("finalization_claimed_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_bulk_generation_jobs_entity_id", "bulk_generation_jobs", ["entity_id"])
    op.create_index("ix_bulk_generation_jobs_status", "bulk_generation_jobs", ["status"])

    # Batch idempotency records
    op.create_table(
        "bulk_job_batches",
        sa.Column("job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bulk_generation_jobs.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("batch_index", sa.Integer, primary_key=True),
        sa.Column("row_count", sa.Integer, nullable=False),
        sa.Column("success_count", sa.Integer, server_default="0"),
        sa.Column("failure_count", sa.Integer, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Generated documents
    op.create_table(
        "generated_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("entities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("template_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("invoice_templates.id", ondelete="SET NULL")),
        sa.Column("bulk_job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bulk_generation_jobs.id", ondelete="SET NULL")),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=False),
        sa.Column("storage_key", sa.String(1000)),
        sa.Column("file_size", sa.Integer),
        sa.Column("values", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_generated_documents_entity_id", "generated_documents", ["entity_id"])
    op.create_index("ix_generated_documents_template_id", "generated_documents", ["template_id"])
    op.create_index("ix_generated_documents_bulk_job_id", "generated_documents", ["bulk_job_id"])

    # Suppliers
    op.create_table(
        "suppliers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("entities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_key", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_is_placeholder", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("entity_id", "name_key", name="uq_suppliers_entity_name"),
    )
    op.create_index("ix_suppliers_entity_id", "suppliers", ["entity_id"])

    # Invoices
    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("entities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("suppliers.id", ondelete="SET NULL")),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("generated_documents.id", ondelete="SET NULL")),
        sa.Column("invoice_number", sa.String(100), nullable=False),
        sa.Column("amount", sa.Float, server_default="0"),
        sa.Column("currency", sa.String(10), server_default="USD"),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("description", sa.String(2000)),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_invoices_entity_id", "invoices", ["entity_id"])
    op.create_index("ix_invoices_supplier_id", "invoices", ["supplier_id"])


def downgrade() -> None:
    op.drop_table("invoices")
    op.drop_table("suppliers")
    op.drop_table("generated_documents")
    op.drop_table("bulk_job_batches")
    op.drop_table("bulk_generation_jobs")
    op.drop_table("invoice_templates")
    op.drop_table("entities")
