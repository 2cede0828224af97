"""OIDC validation configuration settings.

Loaded from environment variables with OIDC_ prefix.
Follows Pydantic BaseSettings pattern for type-safe configuration.

Environment Variables:
    OIDC_ISSUER: OIDC issuer URL accepted by the static providers getter
    OIDC_CLIENT_IDS: Accepted audience values (comma-separated)
    OIDC_ALGORITHMS: Accepted JWS algorithms (comma-separated)
    OIDC_LEEWAY: Clock skew tolerance for exp/nbf in seconds
    OIDC_HTTP_TIMEOUT: Discovery/JWKS fetch timeout in seconds
    OIDC_DISCOVERY_PATH: Well-known discovery path appended to the issuer
    OIDC_REALM: Realm advertised in WWW-Authenticate
    OIDC_PREWARM: Resolve signing keys during application startup
    OIDC_MIN_REFRESH_INTERVAL: Seconds between key refreshes of one issuer on misses
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from oidc_gate.providers import Provider

DEFAULT_DISCOVERY_PATH = "/.well-known/openid-configuration"


class OIDCSettings(BaseSettings):
    """OIDC validation configuration loaded from environment variables.

    Example:
        >>> settings = OIDCSettings(issuer="https://idp.example.com", client_ids=["client-42"])
        >>> settings.is_configured()
        True
        >>> settings.providers()
        [Provider(issuer='https://idp.example.com', client_ids=('client-42',))]
    """

    model_config = SettingsConfigDict(
        env_prefix="OIDC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    issuer: str = Field(
        default="",
        description="OIDC issuer URL",
    )
    client_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Client IDs accepted in the aud claim",
    )
    algorithms: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["RS256"],
        description="JWS algorithms accepted for ID token signatures",
    )
    leeway: int = Field(
        default=0,
        ge=0,
        le=300,
        description="Clock skew tolerance for exp/nbf in seconds",
    )
    http_timeout: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Discovery and JWKS fetch timeout in seconds",
    )
    discovery_path: str = Field(
        default=DEFAULT_DISCOVERY_PATH,
        description="Well-known discovery path appended to the issuer URL",
    )
    realm: str = Field(
        default="API",
        description="Realm advertised in WWW-Authenticate headers",
    )
    prewarm: bool = Field(
        default=True,
        description="Resolve signing keys for configured issuers at startup",
    )
    min_refresh_interval: float = Field(
        default=5.0,
        ge=0,
        le=3600,
        description="Seconds after a key refresh during which misses do not refetch",
    )

    @field_validator("client_ids", "algorithms", mode="before")
    @classmethod
    def split_comma_separated(cls, v: Any) -> Any:
        """Accept comma-separated strings from the environment.

        Args:
            v: Raw value (string from env, or list from code).

        Returns:
            List of non-empty, stripped entries.
        """
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("algorithms")
    @classmethod
    def reject_none_algorithm(cls, v: list[str]) -> list[str]:
        """Refuse unsigned tokens.

        Raises:
            ValueError: If the list is empty or contains ``none``.
        """
        if not v:
            raise ValueError("OIDC_ALGORITHMS must name at least one algorithm")
        if any(alg.lower() == "none" for alg in v):
            raise ValueError("OIDC_ALGORITHMS must not contain 'none'")
        return v

    @field_validator("discovery_path")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    def is_configured(self) -> bool:
        """Check if a static provider can be built (non-throwing).

        Returns:
            True if both issuer and at least one client ID are set.
        """
        return bool(self.issuer and self.client_ids)

    def providers(self) -> list[Provider]:
        """Build the static provider list from issuer and client IDs.

        Returns:
            Single-element provider list, or an empty list when unconfigured.
        """
        if not self.is_configured():
            return []
        return [Provider(self.issuer, tuple(self.client_ids))]


@lru_cache(maxsize=1)
def get_oidc_settings() -> OIDCSettings:
    """Get singleton OIDCSettings instance.

    Cached for performance - settings are loaded once per application lifecycle.
    Clear cache with ``get_oidc_settings.cache_clear()`` for testing.

    Returns:
        OIDCSettings instance with configuration from environment.
    """
    return OIDCSettings()
