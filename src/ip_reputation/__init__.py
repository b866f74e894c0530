# Client library for the IP reputation service

import logging

from .api.client import ReputationClient, Response, __version__
from .api.errors import (
    ConfigurationError,
    InvalidIPError,
    ReputationClientError,
    TransportError,
    ValidationError,
)
from .config.settings import ClientConfig

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ReputationClient",
    "Response",
    "ClientConfig",
    "ReputationClientError",
    "ConfigurationError",
    "ValidationError",
    "InvalidIPError",
    "TransportError",
    "__version__",
]
