"""Library configuration using Pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sharepoint_fs.core.exceptions import SharePointConfigurationError

DEFAULT_CHUNK_SIZE = 65536
CERT_FINGERPRINT_LENGTH = 40


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Site
    sharepoint_site_url: str = ""

    # App-only certificate authentication
    sharepoint_auth_scope: str = ""
    sharepoint_client_id: str = ""
    sharepoint_tenant_id: str = ""
    sharepoint_cert_passphrase: str = ""
    sharepoint_cert_fingerprint: str = ""
    sharepoint_cert_private_key_file: str = ""

    # Transfer
    sharepoint_chunk_size: int = DEFAULT_CHUNK_SIZE
    sharepoint_request_timeout: float = 60.0

    # Application
    environment: Literal["development", "staging", "production"] = "development"
    sharepoint_debug: bool = False

    # Logging
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        return v.upper() if isinstance(v, str) else "INFO"

    @field_validator("sharepoint_debug", mode="before")
    @classmethod
    def parse_debug_flag(cls, v: str | bool | None) -> bool:
        """Treat Y, YES and TRUE (any case) as enabled, anything else as off."""
        if isinstance(v, str):
            return v.strip().upper() in ("Y", "YES", "TRUE")
        return bool(v)

    @field_validator("sharepoint_auth_scope")
    @classmethod
    def validate_auth_scope(cls, v: str) -> str:
        """Auth scope must be a SharePoint tenant .default scope."""
        lowered = v.lower()
        if v and not (
            lowered.startswith("https://")
            and lowered.endswith(".sharepoint.com/.default")
        ):
            raise ValueError(
                "SHAREPOINT_AUTH_SCOPE value is not valid - it must begin with "
                '"https://" and end with ".sharepoint.com/.default"'
            )
        return v

    @field_validator("sharepoint_cert_fingerprint")
    @classmethod
    def validate_cert_fingerprint(cls, v: str) -> str:
        """Certificate fingerprint is a SHA-1 thumbprint in hex."""
        if v and len(v) != CERT_FINGERPRINT_LENGTH:
            raise ValueError(
                "SHAREPOINT_CERT_FINGERPRINT value is not valid - it must be "
                f"exactly {CERT_FINGERPRINT_LENGTH} characters in length"
            )
        return v

    @field_validator("sharepoint_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Chunk size must be positive."""
        if v <= 0:
            raise ValueError("SHAREPOINT_CHUNK_SIZE must be greater than zero")
        return v

    @model_validator(mode="after")
    def validate_private_key_file(self) -> "Settings":
        """Private key file, when given, must exist."""
        key_file = self.sharepoint_cert_private_key_file
        if key_file and not Path(key_file).is_file():
            raise ValueError(
                f"specified sharepoint certificate private key file "
                f"('{key_file}') does not exist"
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def missing_sharepoint_settings(self) -> list[str]:
        """Names of the required environment variables that are not set."""
        required = {
            "SHAREPOINT_AUTH_SCOPE": self.sharepoint_auth_scope,
            "SHAREPOINT_CLIENT_ID": self.sharepoint_client_id,
            "SHAREPOINT_TENANT_ID": self.sharepoint_tenant_id,
            "SHAREPOINT_CERT_PASSPHRASE": self.sharepoint_cert_passphrase,
            "SHAREPOINT_CERT_FINGERPRINT": self.sharepoint_cert_fingerprint,
            "SHAREPOINT_CERT_PRIVATE_KEY_FILE": self.sharepoint_cert_private_key_file,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_sharepoint_configured(self) -> bool:
        """Check if certificate authentication can be attempted."""
        return not self.missing_sharepoint_settings

    def require_sharepoint(self) -> None:
        """Raise if any setting needed for authentication is missing.

        Raises:
            SharePointConfigurationError: Listing every missing variable
        """
        missing = self.missing_sharepoint_settings
        if missing:
            raise SharePointConfigurationError(
                "SharePoint configuration errors:\n"
                + "\n".join(
                    f"  - {name} environment variable has not been set"
                    for name in missing
                )
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
