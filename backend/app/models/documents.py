import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
INET_TYPE = String(45).with_variant(INET, "postgresql")

DOCUMENT_STATUSES = ("uploaded", "processing", "completed", "error")
EXPORT_STATUSES = ("pending", "processing", "completed", "failed", "expired")


class Template(Base):
    __tablename__ = "templates"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID_TYPE)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    document_type = Column(String(64), nullable=False, default="other")
    status = Column(String(32), nullable=False, default="active", server_default=text("'active'"))
    fields = Column(JSON_TYPE, nullable=False, default=list)
    settings = Column(JSON_TYPE, nullable=False, default=dict)
    is_public = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    is_favorite = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    tags = Column(JSON_TYPE, nullable=False, default=list)
    accuracy = Column(Float)
    documents_processed = Column(Integer, nullable=False, default=0, server_default=text("0"))
    last_used = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_templates_user", "user_id"),
        Index("idx_templates_public", "is_public"),
    )


class Document(Base):
    __tablename__ = "documents"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID_TYPE, nullable=False)
    name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(Text, nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(128), nullable=False)
    document_type = Column(String(64), nullable=False, default="other")
    description = Column(Text)
    template = Column(String(255), nullable=False, default="auto", server_default=text("'auto'"))
    template_id = Column(UUID_TYPE, ForeignKey("templates.id", ondelete="SET NULL"))
    status = Column(String(32), nullable=False, default="uploaded", server_default=text("'uploaded'"))
    upload_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_date = Column(DateTime(timezone=True))
    confidence = Column(Integer)
    pages = Column(Integer)
    fields_extracted = Column(Integer, nullable=False, default=0, server_default=text("0"))
    extracted_fields = Column(JSON_TYPE)
    structured_data = Column(JSON_TYPE)
    ai_provider = Column(String(32))
    ai_model = Column(String(64))
    processing_time_ms = Column(Integer)
    processing_history = Column(JSON_TYPE, nullable=False, default=list)

    template_ref = relationship("Template")

    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded', 'processing', 'completed', 'error')",
            name="chk_document_status",
        ),
        Index("idx_documents_user", "user_id"),
        Index("idx_documents_template", "template_id"),
    )


class ExportJob(Base):
    __tablename__ = "exports"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID_TYPE, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(String(64), nullable=False, default="document_export")
    format = Column(String(16), nullable=False)
    filters = Column(JSON_TYPE, nullable=False, default=dict)
    include_fields = Column(JSON_TYPE, nullable=False, default=list)
    settings = Column(JSON_TYPE, nullable=False, default=dict)
    status = Column(String(32), nullable=False, default="pending", server_default=text("'pending'"))
    file_path = Column(Text)
    file_size = Column(Integer)
    records_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    download_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0, server_default=text("0"))

    __table_args__ = (
        CheckConstraint("format IN ('json', 'csv', 'excel')", name="chk_export_format"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'expired')",
            name="chk_export_status",
        ),
        Index("idx_exports_user", "user_id"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUID_TYPE, primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(UUID_TYPE)
    ip_address = Column(INET_TYPE)
    user_agent = Column(Text)
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
