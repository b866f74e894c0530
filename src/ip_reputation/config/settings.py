import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlsplit

from dotenv import load_dotenv

from ..api.errors import ConfigurationError

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_TIMEOUT_MS = 1000

ENV_SERVICE_URL = "IPREPUTATION_SERVICE_URL"
ENV_ID = "IPREPUTATION_ID"
ENV_KEY = "IPREPUTATION_KEY"
ENV_TIMEOUT = "IPREPUTATION_TIMEOUT"


@dataclass(frozen=True)
class ClientConfig:
    """Reputation service connection settings

    service_url: base URL of the service (http or https)
    id, key: Hawk credentials
    timeout: per-request limit in milliseconds
    """

    service_url: Optional[str] = None
    id: Optional[str] = None
    key: Optional[str] = None
    timeout: Optional[int] = None

    def __post_init__(self):
        missing = [f.name for f in fields(self) if getattr(self, f.name) in (None, "")]
        if missing:
            raise ConfigurationError(
                f"Missing required config parameter(s): {', '.join(missing)}"
            )

        for name in ("service_url", "id", "key"):
            if not isinstance(getattr(self, name), str):
                raise ConfigurationError(f"Config parameter {name} must be a string")

        parts = urlsplit(self.service_url)
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise ConfigurationError(
                f"Invalid serviceUrl scheme {parts.scheme!r}, expected http or https"
            )
        if not parts.hostname:
            raise ConfigurationError(f"serviceUrl has no host: {self.service_url}")

        if isinstance(self.timeout, bool) or not isinstance(self.timeout, int) or self.timeout <= 0:
            raise ConfigurationError("Config parameter timeout must be a positive integer (ms)")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    def url_for(self, path: str) -> str:
        """Absolute URL of a resource path under service_url"""
        return self.service_url.rstrip("/") + path

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Client config must be a mapping or ClientConfig")
        return cls(**{f.name: data.get(f.name) for f in fields(cls)})

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, os.PathLike]] = None) -> "ClientConfig":
        """Read settings from the environment, after loading a .env file

        Meant for the calling application; the client never reads the
        environment on its own.
        """
        load_dotenv(env_file)

        timeout = os.getenv(ENV_TIMEOUT, str(DEFAULT_TIMEOUT_MS))
        try:
            timeout = int(timeout)
        except ValueError:
            raise ConfigurationError(f"{ENV_TIMEOUT} must be an integer, got {timeout!r}") from None

        return cls(
            service_url=os.getenv(ENV_SERVICE_URL),
            id=os.getenv(ENV_ID),
            key=os.getenv(ENV_KEY),
            timeout=timeout,
        )


def load_config(config: Union[ClientConfig, Mapping[str, Any], None]) -> ClientConfig:
    """Validate whatever the caller passed to the client constructor"""
    if isinstance(config, ClientConfig):
        return config
    if config is None:
        raise ConfigurationError("Client config is required")
    return ClientConfig.from_mapping(config)
