"""
Shared data schemas for edgestack

This package contains the routing and composition schemas used by every service.
"""

from .routing import (
    DeploymentMode,
    RouteRule,
    RouteTarget,
    RoutingTable,
    ServiceEndpoint,
    default_route_rules,
    normalize_path,
)

__all__ = [
    "DeploymentMode",
    "RouteRule",
    "RouteTarget",
    "RoutingTable",
    "ServiceEndpoint",
    "default_route_rules",
    "normalize_path",
]

__version__ = "1.0.0"
