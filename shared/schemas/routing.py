"""
Routing Schemas
Deployment modes, route rules, service endpoints and the per-mode routing table
"""

import posixpath
from enum import Enum
from typing import FrozenSet, Iterable, List, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.utils.errors import ConfigurationError


class DeploymentMode(str, Enum):
    """Deployment mode, fixed at composition time"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class RouteTarget(str, Enum):
    """Where the edge router sends a matched request"""
    API = "api"
    FRONTEND = "frontend"
    STATIC = "static"
    ROUTER = "router"


class RouteRule(BaseModel):
    """A path prefix bound to a target for a set of modes"""
    model_config = ConfigDict(frozen=True)

    prefix: str = Field(..., description="Path prefix, segment aligned")
    target: RouteTarget = Field(..., description="Target that serves matching paths")
    modes: FrozenSet[DeploymentMode] = Field(..., min_length=1, description="Modes the rule is active in")

    @field_validator("prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError("Route prefix must start with '/'")
        if len(v) > 1:
            v = v.rstrip("/") or "/"
        return v

    def matches(self, path: str) -> bool:
        """Segment-aware prefix test: '/api' matches '/api' and '/api/x', not '/apiary'"""
        if self.prefix == "/":
            return True
        return path == self.prefix or path.startswith(self.prefix + "/")


class ServiceEndpoint(BaseModel):
    """A service addressed by its logical name on the internal network"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Logical service name")
    host: str = Field(..., min_length=1, description="Hostname resolved by the internal network")
    port: int = Field(..., ge=1, le=65535)
    scheme: str = Field(default="http", pattern=r"^https?$")

    @classmethod
    def from_url(cls, name: str, url: str) -> "ServiceEndpoint":
        """Parse 'http://api:8000' into an endpoint"""
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Invalid upstream URL for {name}")
        port = parts.port or (443 if parts.scheme == "https" else 80)
        return cls(name=name, host=parts.hostname, port=port, scheme=parts.scheme)

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    def websocket_url(self, path: str, query: str = "") -> str:
        scheme = "wss" if self.scheme == "https" else "ws"
        url = f"{scheme}://{self.host}:{self.port}{path}"
        if query:
            url = f"{url}?{query}"
        return url


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes and dot segments; a trailing slash is kept"""
    if not path:
        return "/"
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    if path.endswith("/") and normalized != "/":
        normalized += "/"
    return normalized


def default_route_rules(api_prefix: str = "/api", health_prefix: str = "/_edge") -> List[RouteRule]:
    """Rules shared by every deployment: API and router health in both modes, a per-mode root fallback"""
    return [
        RouteRule(
            prefix=health_prefix,
            target=RouteTarget.ROUTER,
            modes=frozenset({DeploymentMode.DEVELOPMENT, DeploymentMode.PRODUCTION}),
        ),
        RouteRule(
            prefix=api_prefix,
            target=RouteTarget.API,
            modes=frozenset({DeploymentMode.DEVELOPMENT, DeploymentMode.PRODUCTION}),
        ),
        RouteRule(prefix="/", target=RouteTarget.FRONTEND, modes=frozenset({DeploymentMode.DEVELOPMENT})),
        RouteRule(prefix="/", target=RouteTarget.STATIC, modes=frozenset({DeploymentMode.PRODUCTION})),
    ]


class RoutingTable:
    """
    Active rule set for a single deployment mode.

    Precedence is longest-prefix-match. A root rule is mandatory and prefixes
    are unique per mode, so every path matches exactly one rule.
    """

    def __init__(self, mode: DeploymentMode, rules: Iterable[RouteRule]):
        self.mode = mode
        active = [rule for rule in rules if mode in rule.modes]

        seen = set()
        for rule in active:
            if rule.prefix in seen:
                raise ConfigurationError(
                    f"Duplicate route prefix '{rule.prefix}' for mode {mode.value}",
                    fields=["API_PREFIX", "ROUTER_HEALTH_PREFIX"],
                )
            seen.add(rule.prefix)
        if "/" not in seen:
            raise ConfigurationError(f"No root route defined for mode {mode.value}")

        self._rules: Tuple[RouteRule, ...] = tuple(
            sorted(active, key=lambda rule: len(rule.prefix), reverse=True)
        )

    @property
    def rules(self) -> Tuple[RouteRule, ...]:
        return self._rules

    @property
    def targets(self) -> FrozenSet[RouteTarget]:
        return frozenset(rule.target for rule in self._rules)

    def match(self, path: str) -> RouteRule:
        normalized = normalize_path(path)
        for rule in self._rules:
            if rule.matches(normalized):
                return rule
        # unreachable: the root rule matches everything
        raise LookupError(path)

