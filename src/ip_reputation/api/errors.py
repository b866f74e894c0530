import asyncio
import errno
import socket
import ssl
from typing import Iterator, Optional

import aiohttp

INVALID_IP_MESSAGE = "Invalid IP."

# OpenSSL X509_V_ERR_* verify codes, named the way Node's tls module names them
CERT_ERROR_CODES = {
    2: "UNABLE_TO_GET_ISSUER_CERT",
    9: "CERT_NOT_YET_VALID",
    10: "CERT_HAS_EXPIRED",
    18: "DEPTH_ZERO_SELF_SIGNED_CERT",
    19: "SELF_SIGNED_CERT_IN_CHAIN",
    20: "UNABLE_TO_GET_ISSUER_CERT_LOCALLY",
    21: "UNABLE_TO_VERIFY_LEAF_SIGNATURE",
    23: "CERT_REVOKED",
    62: "ERR_TLS_CERT_ALTNAME_INVALID",
}


class ReputationClientError(Exception):
    """Base class for everything the client raises"""


class ConfigurationError(ReputationClientError, ValueError):
    """Client configuration is missing a field or holds an invalid value"""


class ValidationError(ReputationClientError, ValueError):
    """Caller input rejected before any request was sent"""


class InvalidIPError(ValidationError):
    def __init__(self, message: str = INVALID_IP_MESSAGE):
        super().__init__(message)


class TransportError(ReputationClientError):
    """No response could be obtained from the reputation service

    ``code`` is a stable string such as ``ETIMEDOUT`` or ``CERT_HAS_EXPIRED``;
    the underlying aiohttp exception is kept as ``__cause__``.
    """

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code

    def __str__(self):
        return f"{self.code}: {self.args[0]}"


def _iter_chain(exc: BaseException) -> Iterator[BaseException]:
    """Walk an exception and everything it wraps (aiohttp -> ssl/socket)"""
    pending = [exc]
    seen = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        linked = [
            current.__cause__,
            current.__context__,
            getattr(current, "os_error", None),
            getattr(current, "certificate_error", None),
        ]
        linked.extend(current.args)
        pending.extend(item for item in linked if isinstance(item, BaseException))


def _certificate_code(exc: BaseException) -> Optional[str]:
    for item in _iter_chain(exc):
        if isinstance(item, ssl.SSLCertVerificationError):
            return CERT_ERROR_CODES.get(item.verify_code, "CERT_VERIFICATION_FAILED")
    return None


def _connection_code(exc: BaseException) -> str:
    for item in _iter_chain(exc):
        if isinstance(item, socket.gaierror):
            return "ENOTFOUND"
        if type(item).__name__ == "ClientConnectorDNSError":
            return "ENOTFOUND"
    for item in _iter_chain(exc):
        if isinstance(item, OSError) and item.errno in errno.errorcode:
            return errno.errorcode[item.errno]
    return "ECONNERROR"


def error_code(exc: BaseException) -> str:
    """Map an aiohttp or timeout exception to a transport error code"""
    if isinstance(exc, asyncio.TimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, (aiohttp.ClientSSLError, ssl.SSLError)):
        return _certificate_code(exc) or "EPROTO"
    if isinstance(exc, aiohttp.ServerDisconnectedError):
        return "ECONNRESET"
    if isinstance(exc, (aiohttp.ClientConnectionError, OSError)):
        return _connection_code(exc)
    return "EREQUEST"


def transport_error(exc: BaseException) -> TransportError:
    """TransportError carrying the mapped code of a transport exception"""
    message = str(exc) or type(exc).__name__
    return TransportError(message, error_code(exc))
