"""Centralized configuration for docs-search-mapping using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IndexingErrorPolicy(str, Enum):
    """What happens to a document when one of its fields cannot be dispatched."""

    FAIL = "fail"
    LENIENT = "lenient"


class AnalyzerErrorPolicy(str, Enum):
    """What happens to an analyzer context when a named analyzer cannot be resolved."""

    FAIL_FAST = "fail_fast"
    BEST_EFFORT = "best_effort"


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every variable is prefixed with ``SEARCH_MAPPING_`` (for example
    ``SEARCH_MAPPING_INDEXING_ERROR_POLICY=lenient``).
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_MAPPING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Error policies
    indexing_error_policy: IndexingErrorPolicy = Field(
        default=IndexingErrorPolicy.FAIL,
        description="'fail' aborts the whole document on a field error, 'lenient' skips only that field",
    )
    analyzer_error_policy: AnalyzerErrorPolicy = Field(
        default=AnalyzerErrorPolicy.FAIL_FAST,
        description="'fail_fast' aborts analyzer context construction, 'best_effort' omits the field",
    )
    smart_fallback_on_incompatible: bool = Field(
        default=False,
        description="Infer a field type from the value when the declared type cannot accept it",
    )

    # Result window
    default_rows: int = Field(default=10, ge=0, description="Rows returned when a query does not ask")
    max_rows: int = Field(default=10000, ge=1, description="Upper bound for start + rows")
    default_snippet_length: int = Field(default=300, ge=20, description="Highlight snippet length")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    service_name: str = Field(default="docs-search-mapping", description="Service name for traces")

    @model_validator(mode="after")
    def _check_window(self) -> "Settings":
        if self.default_rows > self.max_rows:
            raise ValueError("SEARCH_MAPPING_DEFAULT_ROWS cannot exceed SEARCH_MAPPING_MAX_ROWS")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
