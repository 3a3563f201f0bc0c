"""
Configuration Management
Environment-based settings for the edge router, the API service and the database.

Settings are loaded once at startup into frozen models and passed explicitly
to the components that need them. Anything required but absent stops the
process before it binds a port.
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.schemas.routing import DeploymentMode, ServiceEndpoint
from shared.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

SettingsT = TypeVar("SettingsT", bound=BaseSettings)

_BASE_CONFIG = SettingsConfigDict(
    env_prefix="",
    env_file=".env",
    case_sensitive=False,
    extra="ignore",
    frozen=True,
)


def _require_text(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value.strip()


def _normalize_mode(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _normalize_prefix(value: str) -> str:
    value = value.strip()
    if not value.startswith("/") or value == "/":
        raise ValueError("must start with '/' and name a path segment")
    return value.rstrip("/")


class DatabaseSettings(BaseSettings):
    """Database connection settings; no credential has a default"""

    model_config = _BASE_CONFIG

    postgres_host: str
    postgres_port: int = Field(default=5432, ge=1, le=65535)
    postgres_user: str
    postgres_password: SecretStr
    postgres_db: str

    @field_validator("postgres_host", "postgres_user", "postgres_db")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("postgres_password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("must not be empty")
        return v

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for asyncpg.connect / asyncpg.create_pool"""
        return {
            "host": self.postgres_host,
            "port": self.postgres_port,
            "user": self.postgres_user,
            "password": self.postgres_password.get_secret_value(),
            "database": self.postgres_db,
        }

    def log_config(self):
        """Log configuration (without sensitive data)"""
        logger.info(f"Database Host: {self.postgres_host}:{self.postgres_port}")
        logger.info(f"Database: {self.postgres_db}")
        logger.info(f"User: {self.postgres_user}")


class EdgeRouterSettings(BaseSettings):
    """Edge router settings"""

    model_config = _BASE_CONFIG

    deployment_mode: DeploymentMode

    router_host: str = "0.0.0.0"
    router_port: int = Field(default=80, ge=1, le=65535)
    api_prefix: str = "/api"
    # Router health endpoints live under this prefix, clear of the SPA path space
    router_health_prefix: str = "/_edge"

    # Upstreams, addressed by logical service name
    api_service_url: str = "http://api:8000"
    frontend_dev_url: str = "http://frontend:5173"

    # Production asset tree
    static_root: Optional[str] = None
    entry_document: str = "index.html"

    upstream_connect_timeout: float = Field(default=5.0, gt=0)
    upstream_read_timeout: float = Field(default=60.0, gt=0)
    shutdown_grace_period: int = Field(default=10, ge=0)

    @field_validator("deployment_mode", mode="before")
    @classmethod
    def validate_mode(cls, v: Any) -> Any:
        return _normalize_mode(v)

    @field_validator("api_prefix", "router_health_prefix")
    @classmethod
    def validate_prefixes(cls, v: str) -> str:
        return _normalize_prefix(v)

    @field_validator("api_service_url", "frontend_dev_url")
    @classmethod
    def validate_upstream_url(cls, v: str) -> str:
        ServiceEndpoint.from_url("upstream", v)
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_static_root(self) -> "EdgeRouterSettings":
        if self.deployment_mode is DeploymentMode.PRODUCTION:
            if not self.static_root or not self.static_root.strip():
                raise ValueError("STATIC_ROOT is required in production mode")
        return self

    @model_validator(mode="after")
    def validate_distinct_prefixes(self) -> "EdgeRouterSettings":
        if self.router_health_prefix == self.api_prefix:
            raise ValueError("ROUTER_HEALTH_PREFIX must differ from API_PREFIX")
        return self

    @property
    def api_endpoint(self) -> ServiceEndpoint:
        return ServiceEndpoint.from_url("api", self.api_service_url)

    @property
    def frontend_endpoint(self) -> ServiceEndpoint:
        return ServiceEndpoint.from_url("frontend", self.frontend_dev_url)

    def log_config(self):
        """Log configuration"""
        logger.info(f"Mode: {self.deployment_mode.value}")
        logger.info(f"Listening: {self.router_host}:{self.router_port}")
        logger.info(f"API prefix: {self.api_prefix}")
        logger.info(f"Router health: {self.router_health_prefix}/health")
        if self.deployment_mode is DeploymentMode.PRODUCTION:
            logger.info(f"Static root: {self.static_root}")


class ApiServiceSettings(BaseSettings):
    """API service settings; database settings are loaded alongside"""

    model_config = _BASE_CONFIG

    deployment_mode: DeploymentMode
    database: DatabaseSettings

    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8000, ge=1, le=65535)
    api_prefix: str = "/api"

    # Readiness gate
    db_ready_timeout: float = Field(default=60.0, gt=0)
    db_ready_initial_delay: float = Field(default=0.5, gt=0)
    db_ready_max_delay: float = Field(default=5.0, gt=0)

    db_pool_min_size: int = Field(default=1, ge=0)
    db_pool_max_size: int = Field(default=10, ge=1)

    seed_sample_data: bool = True
    shutdown_grace_period: int = Field(default=10, ge=0)

    @field_validator("deployment_mode", mode="before")
    @classmethod
    def validate_mode(cls, v: Any) -> Any:
        return _normalize_mode(v)

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        return _normalize_prefix(v)

    @model_validator(mode="after")
    def validate_pool(self) -> "ApiServiceSettings":
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError("db_pool_min_size must not exceed db_pool_max_size")
        return self


def _describe(exc: ValidationError) -> ConfigurationError:
    """Build a diagnostic naming environment variables, never their values"""
    fields = []
    problems = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        name = "_".join(loc).upper() or "SETTINGS"
        fields.append(name)
        problems.append(f"{name} ({error.get('msg', 'invalid')})")
    message = "Missing or invalid configuration: " + ", ".join(problems)
    return ConfigurationError(message, fields=fields)


def _build(settings_cls: Type[SettingsT], **overrides: Any) -> SettingsT:
    try:
        return settings_cls(**overrides)
    except ValidationError as exc:
        raise _describe(exc) from None


def load_database_settings(**overrides: Any) -> DatabaseSettings:
    return _build(DatabaseSettings, **overrides)


def load_edge_settings(**overrides: Any) -> EdgeRouterSettings:
    """Load edge router settings, raising ConfigurationError if incomplete"""
    return _build(EdgeRouterSettings, **overrides)


def load_api_settings(**overrides: Any) -> ApiServiceSettings:
    """Load API service settings, raising ConfigurationError if incomplete"""
    database = overrides.pop("database", None) or load_database_settings()
    return _build(ApiServiceSettings, database=database, **overrides)
