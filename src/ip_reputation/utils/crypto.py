import base64
import secrets
import time
from typing import NamedTuple, Optional
from urllib.parse import urlsplit

from cryptography.hazmat.primitives import hashes, hmac

HAWK_VERSION = 1
DEFAULT_PORTS = {"http": 80, "https": 443}


class Credentials(NamedTuple):
    """Hawk credentials issued by the reputation service"""
    id: str
    key: str


class HawkSigner:
    """Hawk request signing (HMAC-SHA256)

    Every method is a pure function of its arguments: the signer holds no
    state, so each request is authenticated on its own without a session.
    """

    @staticmethod
    def _digest(data: bytes) -> str:
        digest = hashes.Hash(hashes.SHA256())
        digest.update(data)
        return base64.b64encode(digest.finalize()).decode("ascii")

    @staticmethod
    def _hmac(key: str, data: bytes) -> str:
        mac = hmac.HMAC(key.encode("utf-8"), hashes.SHA256())
        mac.update(data)
        return base64.b64encode(mac.finalize()).decode("ascii")

    @staticmethod
    def timestamp() -> int:
        """Current time in whole seconds"""
        return int(time.time())

    @staticmethod
    def nonce() -> str:
        """Six random URL-safe characters"""
        return secrets.token_urlsafe(4)

    @staticmethod
    def payload_hash(payload: str, content_type: str) -> str:
        """Hash of the request body as defined by hawk.1.payload"""
        mime = content_type.split(";")[0].strip().lower()
        normalized = f"hawk.{HAWK_VERSION}.payload\n{mime}\n{payload}\n"
        return HawkSigner._digest(normalized.encode("utf-8"))

    @staticmethod
    def normalized_string(method: str, url: str, timestamp: int, nonce: str,
                          payload_hash: Optional[str] = None,
                          ext: Optional[str] = None) -> str:
        """hawk.1.header string the MAC is computed over"""
        parts = urlsplit(url)
        resource = parts.path or "/"
        if parts.query:
            resource = f"{resource}?{parts.query}"
        port = parts.port or DEFAULT_PORTS[parts.scheme.lower()]
        ext = (ext or "").replace("\\", "\\\\").replace("\n", "\\n")
        return (
            f"hawk.{HAWK_VERSION}.header\n"
            f"{timestamp}\n"
            f"{nonce}\n"
            f"{method.upper()}\n"
            f"{resource}\n"
            f"{parts.hostname.lower()}\n"
            f"{port}\n"
            f"{payload_hash or ''}\n"
            f"{ext}\n"
        )

    @staticmethod
    def header(method: str, url: str, timestamp: int, nonce: str,
               credentials: Credentials, payload: Optional[str] = None,
               content_type: Optional[str] = None,
               ext: Optional[str] = None) -> str:
        """Build the Authorization header value for one request"""
        payload_hash = None
        if payload is not None:
            payload_hash = HawkSigner.payload_hash(payload, content_type or "")

        normalized = HawkSigner.normalized_string(
            method, url, timestamp, nonce, payload_hash, ext
        )
        mac = HawkSigner._hmac(credentials.key, normalized.encode("utf-8"))

        fields = [
            f'id="{credentials.id}"',
            f'ts="{timestamp}"',
            f'nonce="{nonce}"',
        ]
        if payload_hash:
            fields.append(f'hash="{payload_hash}"')
        if ext:
            fields.append(f'ext="{ext}"')
        fields.append(f'mac="{mac}"')
        return "Hawk " + ", ".join(fields)
