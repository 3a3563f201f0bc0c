"""
Composition switch for edgestack

Picks, once per process, the routing variant and the API supervision strategy
for a deployment mode. Request handling never looks at the mode again; it
only sees the routing table built here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Union

from shared.schemas.routing import DeploymentMode, RouteTarget, RoutingTable, default_route_rules


class FrontendKind(str, Enum):
    """Concrete frontend implementation behind the router"""
    LIVE_RELOAD_SERVER = "live_reload_server"
    STATIC_BUNDLE = "static_bundle"


class Supervision(str, Enum):
    """How the API process is supervised"""
    RELOAD_ON_CHANGE = "reload_on_change"
    SINGLE_RUN = "single_run"


@dataclass(frozen=True)
class DevRouting:
    """Non-API traffic goes to the live-reload dev server, upgrades included"""
    mode: ClassVar[DeploymentMode] = DeploymentMode.DEVELOPMENT
    frontend: ClassVar[FrontendKind] = FrontendKind.LIVE_RELOAD_SERVER
    fallback: ClassVar[RouteTarget] = RouteTarget.FRONTEND

    def route_table(self, api_prefix: str = "/api", health_prefix: str = "/_edge") -> RoutingTable:
        return RoutingTable(self.mode, default_route_rules(api_prefix, health_prefix))


@dataclass(frozen=True)
class ProdRouting:
    """Non-API traffic is served from the prebuilt asset tree"""
    mode: ClassVar[DeploymentMode] = DeploymentMode.PRODUCTION
    frontend: ClassVar[FrontendKind] = FrontendKind.STATIC_BUNDLE
    fallback: ClassVar[RouteTarget] = RouteTarget.STATIC

    def route_table(self, api_prefix: str = "/api", health_prefix: str = "/_edge") -> RoutingTable:
        return RoutingTable(self.mode, default_route_rules(api_prefix, health_prefix))


RoutingVariant = Union[DevRouting, ProdRouting]


@dataclass(frozen=True)
class CompositionPlan:
    """Everything a deployment mode decides, resolved up front"""
    mode: DeploymentMode
    routing: RoutingVariant
    api_supervision: Supervision

    @property
    def frontend(self) -> FrontendKind:
        return self.routing.frontend

    @property
    def reload_api(self) -> bool:
        return self.api_supervision is Supervision.RELOAD_ON_CHANGE


_PLANS: Dict[DeploymentMode, CompositionPlan] = {
    DeploymentMode.DEVELOPMENT: CompositionPlan(
        mode=DeploymentMode.DEVELOPMENT,
        routing=DevRouting(),
        api_supervision=Supervision.RELOAD_ON_CHANGE,
    ),
    DeploymentMode.PRODUCTION: CompositionPlan(
        mode=DeploymentMode.PRODUCTION,
        routing=ProdRouting(),
        api_supervision=Supervision.SINGLE_RUN,
    ),
}


def plan_for(mode: DeploymentMode) -> CompositionPlan:
    """Return the composition plan for a deployment mode"""
    return _PLANS[DeploymentMode(mode)]
