from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CsvList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    database_url: str = ""

    storage_documents_bucket: str = "documents"
    storage_exports_bucket: str = "exports"
    document_url_ttl_seconds: int = 3600
    export_url_ttl_seconds: int = 24 * 60 * 60
    export_retention_days: int = 7
    max_upload_bytes: int = 10 * 1024 * 1024

    # --- AI ---
    ai_provider: str = Field(
        default="openai",
        validation_alias=AliasChoices("AI_PROVIDER"),
    )
    ai_model: str = Field(
        default="",
        validation_alias=AliasChoices("AI_MODEL"),
    )
    openai_api_key: str = ""
    groq_api_key: str = ""
    google_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
    )
    ai_temperature: float = 0.1
    ai_max_tokens: int = 4096
    ai_timeout_seconds: float = 60.0
    ai_max_retries: int = 1
    ai_debug_store_raw: bool = Field(
        default=False,
        validation_alias=AliasChoices("AI_DEBUG_STORE_RAW"),
    )

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: CsvList = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "address",
            "ssn",
            "tax_id",
            "iban",
            "account_number",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    rate_limit_api_enabled: bool = False
    rate_limit_api_per_min: int = 300
    rate_limit_upload_per_min: int = 20
    trusted_proxy_cidrs: CsvList = Field(default_factory=list)

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )

    cors_allow_origins: CsvList = Field(default_factory=list)
    cors_allow_methods: CsvList = Field(default_factory=lambda: [
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "OPTIONS",
    ])
    cors_allow_headers: CsvList = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "pii_redaction_fields",
        "trusted_proxy_cidrs",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or "openai"
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
