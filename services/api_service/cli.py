"""
API service entry point

Usage:
    api-service                 # same as 'serve'
    api-service serve
    api-service reset --yes     # drop all application data

'serve' restarts on source changes in development and runs once in
production. 'reset' is the only operation that removes stored data.
"""

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

import structlog
import uvicorn

from shared.utils.composition import plan_for
from shared.utils.config import ApiServiceSettings, load_api_settings
from shared.utils.database import DatabaseManager, wait_for_database
from shared.utils.errors import ConfigurationError, DependencyNotReadyError
from shared.utils.logger import init_logging

from .app.main import create_app
from .app.utils.database import ItemRepository

logger = structlog.get_logger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_NOT_CONFIRMED = 1
EXIT_DEPENDENCY_ERROR = 3

APP_FACTORY = "services.api_service.app.main:create_app"
SERVICE_DIR = Path(__file__).resolve().parent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="api-service", description="edgestack API service")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the API service")
    serve.add_argument("--host", help="Override API_HOST")
    serve.add_argument("--port", type=int, help="Override API_PORT")

    reset = subparsers.add_parser("reset", help="Drop all application data")
    reset.add_argument("--yes", action="store_true", help="Confirm the destructive reset")
    return parser


def serve(settings: ApiServiceSettings) -> int:
    plan = plan_for(settings.deployment_mode)
    logger.info(
        "Launching API service",
        mode=plan.mode.value,
        supervision=plan.api_supervision.value,
    )
    settings.database.log_config()

    options = {}
    if plan.reload_api:
        # The reloader imports the factory in its worker, which reads settings again
        app = APP_FACTORY
        options["factory"] = True
        options["reload_dirs"] = [str(SERVICE_DIR), str(SERVICE_DIR.parent.parent / "shared")]
    else:
        app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        reload=plan.reload_api,
        timeout_graceful_shutdown=settings.shutdown_grace_period,
        log_config=None,
        **options
    )
    return 0


async def reset_database(settings: ApiServiceSettings) -> None:
    """Drop application tables and the seed marker"""
    await wait_for_database(
        settings.database,
        max_wait=settings.db_ready_timeout,
        initial_delay=settings.db_ready_initial_delay,
        max_delay=settings.db_ready_max_delay,
    )
    db = DatabaseManager(settings.database, min_size=1, max_size=1)
    await db.initialize()
    try:
        await ItemRepository(db).reset()
    finally:
        await db.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "serve"
    init_logging()

    if command == "reset" and not args.yes:
        logger.error("Refusing to reset without --yes; this permanently deletes stored data")
        return EXIT_NOT_CONFIRMED

    overrides = {}
    if command == "serve" and getattr(args, "host", None):
        overrides["api_host"] = args.host
    if command == "serve" and getattr(args, "port", None):
        overrides["api_port"] = args.port

    try:
        settings = load_api_settings(**overrides)
    except ConfigurationError as e:
        logger.error("API service configuration error", error=str(e), fields=list(e.fields))
        return EXIT_CONFIG_ERROR

    if command == "reset":
        try:
            asyncio.run(reset_database(settings))
        except ConfigurationError as e:
            logger.error("Reset failed", error=str(e), fields=list(e.fields))
            return EXIT_CONFIG_ERROR
        except DependencyNotReadyError as e:
            logger.error("Reset failed", error=str(e))
            return EXIT_DEPENDENCY_ERROR
        logger.warning("Database reset complete", database=settings.database.postgres_db)
        return 0

    return serve(settings)
