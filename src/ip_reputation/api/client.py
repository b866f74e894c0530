import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

import aiohttp

from ..config.settings import ClientConfig, load_config
from ..utils.crypto import Credentials, HawkSigner
from ..utils.ip import is_valid_ip
from .errors import InvalidIPError, transport_error

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Response:
    """Outcome of a request that reached the service

    404 and 409 are returned here, not raised; branch on status_code.
    """

    status_code: int
    body: Any = None


class ReputationClient:
    """Client for an IP reputation service (tigerblood API)

    Usage:
        client = ReputationClient({
            "service_url": "https://reputation.example.com",
            "id": "root",
            "key": "toor",
            "timeout": 500,
        })
        response = await client.get("127.0.0.1")
        if response.status_code == 200:
            score = response.body["Reputation"]
    """

    # operation -> (HTTP method, path template)
    ROUTES = {
        "get": ("GET", "/{ip}"),
        "add": ("POST", "/"),
        "update": ("PUT", "/{ip}"),
        "remove": ("DELETE", "/{ip}"),
        "send_violation": ("PUT", "/violations/{ip}"),
    }
    CONTENT_TYPE = "application/json"
    USER_AGENT = f"ip-reputation-client/{__version__}"

    def __init__(self, config: Union[ClientConfig, Mapping[str, Any]]):
        self.config = load_config(config)
        self.credentials = Credentials(self.config.id, self.config.key)
        self.headers = {
            "Accept": self.CONTENT_TYPE,
            "User-Agent": self.USER_AGENT,
        }

    async def get(self, ip: str) -> Response:
        """Fetch the reputation record of an IP (200) or 404 if none is set"""
        self._check_ip(ip)
        return await self._send("get", ip)

    async def add(self, ip: str, reputation: int) -> Response:
        """Set the reputation of a new IP; 409 if one is already set"""
        self._check_ip(ip)
        self._check_reputation(reputation)
        return await self._send("add", ip, {"IP": ip, "Reputation": reputation})

    async def update(self, ip: str, reputation: int) -> Response:
        """Change the reputation of a known IP; 404 if none is set"""
        self._check_ip(ip)
        self._check_reputation(reputation)
        return await self._send("update", ip, {"Reputation": reputation})

    async def remove(self, ip: str) -> Response:
        """Delete the reputation of an IP; 200 whether or not it existed"""
        self._check_ip(ip)
        return await self._send("remove", ip)

    async def send_violation(self, ip: str, violation_type: str) -> Response:
        """Report a violation; the service applies the penalty configured for its type"""
        self._check_ip(ip)
        if not isinstance(violation_type, str):
            raise TypeError(f"violation_type must be a string, got {type(violation_type).__name__}")
        if not violation_type:
            raise ValueError("violation_type must not be empty")
        return await self._send("send_violation", ip, {"IP": ip, "Violation": violation_type})

    @staticmethod
    def _check_ip(ip):
        if not is_valid_ip(ip):
            raise InvalidIPError()

    @staticmethod
    def _check_reputation(reputation):
        if isinstance(reputation, bool) or not isinstance(reputation, int):
            raise TypeError(f"reputation must be an integer, got {type(reputation).__name__}")

    def _build_request(self, operation: str, ip: str,
                       body: Optional[Dict[str, Any]] = None):
        """Method, URL, headers and payload of a signed request"""
        method, template = self.ROUTES[operation]
        url = self.config.url_for(template.format(ip=ip))
        payload = json.dumps(body) if body is not None else None

        headers = dict(self.headers)
        if payload is not None:
            headers["Content-Type"] = self.CONTENT_TYPE
        headers["Authorization"] = HawkSigner.header(
            method,
            url,
            HawkSigner.timestamp(),
            HawkSigner.nonce(),
            self.credentials,
            payload=payload,
            content_type=self.CONTENT_TYPE if payload is not None else None,
        )
        return method, url, headers, payload

    async def _send(self, operation: str, ip: str,
                    body: Optional[Dict[str, Any]] = None) -> Response:
        return await self._make_request(*self._build_request(operation, ip, body))

    async def _make_request(self, method: str, url: str, headers: Dict[str, str],
                            payload: Optional[str]) -> Response:
        """One HTTP exchange, bounded as a whole by the configured timeout"""
        logger.debug("%s %s", method, url)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, headers=headers, data=payload) as response:
                    status = response.status
                    text = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = transport_error(e)
            logger.warning("%s %s failed: %s", method, url, error.code)
            raise error from e

        logger.debug("%s %s -> %d", method, url, status)
        return Response(status, decode_body(status, text))


def decode_body(status: int, text: str) -> Any:
    """JSON body, the error text of a failed request, or None"""
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        if status >= 400:
            return text.strip()
        return None
