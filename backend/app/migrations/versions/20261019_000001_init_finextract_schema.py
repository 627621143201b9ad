"""init finextract schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _jsonb(name: str, *, nullable: bool = True, default: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        nullable=nullable,
        server_default=sa.text(default) if default else None,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "templates",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True)),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("document_type", sa.String(length=64), nullable=False, server_default=sa.text("'other'")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'active'")),
        _jsonb("fields", nullable=False, default="'[]'::jsonb"),
        _jsonb("settings", nullable=False, default="'{}'::jsonb"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _jsonb("tags", nullable=False, default="'[]'::jsonb"),
        sa.Column("accuracy", sa.Float()),
        sa.Column("documents_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_used", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_templates_user", "templates", ["user_id"])
    op.create_index("idx_templates_public", "templates", ["is_public"])

    op.create_table(
        "documents",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_type", sa.String(length=128), nullable=False),
        sa.Column("document_type", sa.String(length=64), nullable=False, server_default=sa.text("'other'")),
        sa.Column("description", sa.Text()),
        sa.Column("template", sa.String(length=255), nullable=False, server_default=sa.text("'auto'")),
        sa.Column(
            "template_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("templates.id", ondelete="SET NULL"),
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'uploaded'")),
        sa.Column("upload_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_date", sa.DateTime(timezone=True)),
        sa.Column("confidence", sa.Integer()),
        sa.Column("pages", sa.Integer()),
        sa.Column("fields_extracted", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _jsonb("extracted_fields"),
        _jsonb("structured_data"),
        sa.Column("ai_provider", sa.String(length=32)),
        sa.Column("ai_model", sa.String(length=64)),
        sa.Column("processing_time_ms", sa.Integer()),
        _jsonb("processing_history", nullable=False, default="'[]'::jsonb"),
        sa.CheckConstraint(
            "status IN ('uploaded', 'processing', 'completed', 'error')",
            name="chk_document_status",
        ),
    )
    op.create_index("idx_documents_user", "documents", ["user_id"])
    op.create_index("idx_documents_template", "documents", ["template_id"])

    op.create_table(
        "exports",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(length=64), nullable=False, server_default=sa.text("'document_export'")),
        sa.Column("format", sa.String(length=16), nullable=False),
        _jsonb("filters", nullable=False, default="'{}'::jsonb"),
        _jsonb("include_fields", nullable=False, default="'[]'::jsonb"),
        _jsonb("settings", nullable=False, default="'{}'::jsonb"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("file_path", sa.Text()),
        sa.Column("file_size", sa.Integer()),
        sa.Column("records_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text()),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("format IN ('json', 'csv', 'excel')", name="chk_export_format"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'expired')",
            name="chk_export_status",
        ),
    )
    op.create_index("idx_exports_user", "exports", ["user_id"])

    op.create_table(
        "audit_logs",
        _uuid_pk(),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        _jsonb("old_value"),
        _jsonb("new_value"),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True)),
        sa.Column("ip_address", postgresql.INET()),
        sa.Column("user_agent", sa.Text()),
        _jsonb("metadata"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_timestamp", "audit_logs", ["timestamp"])


def downgrade() -> None:
    op.drop_index("idx_audit_timestamp", table_name="audit_logs")
    op.drop_index("idx_audit_action", table_name="audit_logs")
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("idx_exports_user", table_name="exports")
    op.drop_table("exports")
    op.drop_index("idx_documents_template", table_name="documents")
    op.drop_index("idx_documents_user", table_name="documents")
    op.drop_table("documents")
    op.drop_index("idx_templates_public", table_name="templates")
    op.drop_index("idx_templates_user", table_name="templates")
    op.drop_table("templates")
