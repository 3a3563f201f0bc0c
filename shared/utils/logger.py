"""
Logging utilities for edgestack

Provides centralized logging configuration: stdlib logging through dictConfig,
with structlog layered on top for keyword-style structured events.
"""

import copy
import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml

MODE_SECTIONS = ('development', 'production')

# Default logging configuration
DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'detailed': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'json': {
            'format': '%(message)s'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'INFO',
            'formatter': 'default',
            'stream': 'ext://sys.stdout'
        }
    },
    'root': {
        'level': 'INFO',
        'handlers': ['console']
    },
    'loggers': {
        'edgestack': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'services': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'shared': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'uvicorn': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'uvicorn.access': {
            'level': 'WARNING',
            'handlers': ['console'],
            'propagate': False
        }
    },
    'development': {
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': 'DEBUG',
                'formatter': 'default',
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            name: {'level': 'DEBUG', 'handlers': ['console'], 'propagate': False}
            for name in ('edgestack', 'services', 'shared')
        }
    }
}


def load_logging_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a dictConfig mapping

    Args:
        config_path: Path to a YAML logging configuration file

    Returns:
        Logging configuration dict; the built-in default when no file is usable
    """
    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path, 'r') as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                return loaded
            logging.getLogger(__name__).warning(
                "Ignoring logging config %s: not a mapping", config_path
            )
    return copy.deepcopy(DEFAULT_LOGGING_CONFIG)


def configure_structlog(log_format: str = 'default') -> None:
    """Route structlog through stdlib logging"""
    if log_format == 'json':
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.format_exc_info,
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> Dict[str, Any]:
    """
    Setup logging configuration

    Args:
        config_path: Path to logging configuration file
        log_level: Override log level
        log_format: Override log format ('default', 'detailed', 'json')

    Returns:
        The configuration that was applied
    """
    config = load_logging_config(config_path)

    # Apply mode-specific overrides; sections for other modes are discarded
    environment = os.getenv('DEPLOYMENT_MODE', 'development').strip().lower()
    sections = {mode: config.pop(mode) for mode in MODE_SECTIONS if mode in config}
    env_config = sections.get(environment)
    if env_config:
        if 'handlers' in env_config:
            config.setdefault('handlers', {}).update(env_config['handlers'])
        if 'loggers' in env_config:
            config.setdefault('loggers', {}).update(env_config['loggers'])

    # Override log level if specified
    if log_level:
        log_level = log_level.upper()
        for name, logger_config in config.get('loggers', {}).items():
            if name != 'uvicorn.access':
                logger_config['level'] = log_level
        for handler_config in config.get('handlers', {}).values():
            handler_config['level'] = log_level
        if 'root' in config:
            config['root']['level'] = log_level

    # Override log format if specified
    if log_format and log_format in config.get('formatters', {}):
        for handler_config in config.get('handlers', {}).values():
            handler_config['formatter'] = log_format

    logging.config.dictConfig(config)
    if not log_format:
        log_format = config.get('handlers', {}).get('console', {}).get('formatter', 'default')
    configure_structlog(log_format)
    return config


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


class RequestLogger:
    """Logger for HTTP requests"""

    def __init__(self, name: str = "edgestack.requests"):
        self.logger = structlog.get_logger(name)

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        response_time: float,
        target: Optional[str] = None,
        ip_address: Optional[str] = None,
    ):
        """Log HTTP request"""
        self.logger.info(
            "Request completed",
            method=method,
            path=path,
            status_code=status_code,
            response_time=round(response_time, 4),
            target=target,
            client_ip=ip_address,
        )


def get_request_logger() -> RequestLogger:
    """Get request logger instance"""
    return RequestLogger()


def init_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> Dict[str, Any]:
    """Initialize logging from environment variables"""
    config_path = os.getenv('LOGGING_CONFIG_PATH')
    log_level = log_level or os.getenv('LOG_LEVEL')
    log_format = log_format or os.getenv('LOG_FORMAT')

    return setup_logging(config_path, log_level, log_format)
