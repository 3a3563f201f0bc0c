"""
Shared utilities for edgestack

This package contains common utilities used across the edge router and the
API service. Modules that depend on shared.schemas (config, composition,
database) are imported by their full path.
"""

from .errors import (
    ConfigurationError,
    DependencyNotReadyError,
    EdgestackError,
    UpstreamUnavailableError,
)
from .logger import get_logger, get_request_logger, init_logging, setup_logging

__all__ = [
    "ConfigurationError",
    "DependencyNotReadyError",
    "EdgestackError",
    "UpstreamUnavailableError",
    "get_logger",
    "get_request_logger",
    "init_logging",
    "setup_logging",
]

__version__ = "1.0.0"
