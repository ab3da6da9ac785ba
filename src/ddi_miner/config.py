"""
Configuration management for ddi_miner.

Uses pydantic-settings for environment variable loading and validation.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DDI_MINER_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # SQL Server connection
    db_server: str = Field(default="localhost", description="SQL Server hostname")
    db_name: str = Field(default="ddi_miner", description="Database name")
    db_driver: str = Field(
        default="ODBC Driver 18 for SQL Server",
        description="ODBC driver name",
    )
    db_trusted_connection: bool = Field(
        default=True,
        description="Use Windows authentication",
    )
    db_username: str | None = Field(default=None, description="SQL username (if not trusted)")
    db_password: str | None = Field(default=None, description="SQL password (if not trusted)")

    # Data directories
    data_dir: Path = Field(default=Path("data"), description="Root data directory")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Outbound HTTP
    http_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    user_agent: str = Field(
        default="ddi-miner/0.1 (DDI evidence extractor)",
        description="User-Agent header sent to source APIs",
    )
    ncbi_api_key: str | None = Field(default=None, description="NCBI E-utilities API key")
    openfda_api_key: str | None = Field(default=None, description="openFDA API key")

    # Caching
    cache_ttl_hours: float = Field(default=24.0, description="TTL for fetched documents")
    cache_max_size: int = Field(default=1000, description="Max entries per cache")

    # Mining defaults
    batch_size: int = Field(default=5, description="Drugs mined concurrently per batch")
    delay_between_batches_ms: int = Field(
        default=2000,
        description="Pause between drug batches (milliseconds)",
    )
    persist_batch_size: int = Field(default=50, description="Records per store insert")
    min_composite_score: float = Field(default=30.0, description="Quality filter threshold")
    min_confidence: float = Field(default=40.0, description="Quality filter threshold (0-100)")
    require_mechanism: bool = Field(
        default=False,
        description="Drop records whose mechanism is not specified",
    )
    max_clinical_trials_per_drug: int = Field(default=50, description="Trial search cap")
    max_regulatory_labels_per_drug: int = Field(default=20, description="Label search cap")
    max_publications_per_drug: int = Field(default=100, description="PubMed search cap")

    @property
    def raw_dir(self) -> Path:
        """Directory for raw fetched documents."""
        return self.data_dir / "raw"

    @property
    def gold_dir(self) -> Path:
        """Directory for curated evidence tables."""
        return self.data_dir / "gold"

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def connection_string(self) -> str:
        """Build connection string for mssql-python.

        Format: SERVER=host;DATABASE=db;UID=user;PWD=pass;...
        """
        parts = [
            f"SERVER={self.db_server}",
            f"DATABASE={self.db_name}",
        ]
        if self.db_trusted_connection:
            parts.append("Trusted_Connection=yes")
        else:
            if self.db_username:
                parts.append(f"UID={self.db_username}")
            if self.db_password:
                parts.append(f"PWD={self.db_password}")
        parts.append("TrustServerCertificate=yes")
        parts.append("Encrypt=yes")
        return ";".join(parts)


# Global settings instance
settings = Settings()
