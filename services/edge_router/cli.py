"""
Edge router entry point

Usage:
    edge-router                      # listen on ROUTER_HOST:ROUTER_PORT
    edge-router --port 8080
    python -m services.edge_router

Settings come from the environment (see shared.utils.config). Incomplete
configuration exits with status 2 before any port is bound.
"""

import argparse
from typing import List, Optional

import structlog
import uvicorn

from shared.utils.config import load_edge_settings
from shared.utils.errors import ConfigurationError
from shared.utils.logger import init_logging

from .app.main import create_app

logger = structlog.get_logger(__name__)

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edge-router",
        description="Path-based ingress for the API service and the frontend",
    )
    parser.add_argument("--host", help="Override ROUTER_HOST")
    parser.add_argument("--port", type=int, help="Override ROUTER_PORT")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    init_logging()

    overrides = {}
    if args.host:
        overrides["router_host"] = args.host
    if args.port:
        overrides["router_port"] = args.port

    try:
        settings = load_edge_settings(**overrides)
        app = create_app(settings)
    except ConfigurationError as e:
        logger.error("Edge router configuration error", error=str(e), fields=list(e.fields))
        return EXIT_CONFIG_ERROR

    settings.log_config()
    uvicorn.run(
        app,
        host=settings.router_host,
        port=settings.router_port,
        timeout_graceful_shutdown=settings.shutdown_grace_period,
        log_config=None,
    )
    return 0
