"""Single blocking HTTP requests against candidate apps, with classified failures."""

from __future__ import annotations

import errno
import http.client
import json
import socket
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from ..output import one_line

# Failure kinds, in classification priority order.
CONN_REFUSED = "CONN_REFUSED"
TIMEOUT = "TIMEOUT"
DNS = "DNS"
NET_UNREACHABLE = "NET_UNREACHABLE"
HOST_UNREACHABLE = "HOST_UNREACHABLE"
TLS = "TLS"
HTTP_NON_2XX = "HTTP_NON_2XX"
REQUEST_FAILED = "REQUEST_FAILED"

_CODES: Dict[str, str] = {
    CONN_REFUSED: "ERR_HEALTH_CONNREFUSED",
    TIMEOUT: "ERR_HEALTH_TIMEOUT",
    DNS: "ERR_HEALTH_DNS",
    NET_UNREACHABLE: "ERR_HEALTH_NETUNREACH",
    HOST_UNREACHABLE: "ERR_HEALTH_HOSTUNREACH",
    TLS: "ERR_HEALTH_TLS",
    REQUEST_FAILED: "ERR_HEALTH_REQUEST_FAILED",
}

_LOOPBACK_REWRITES = {"localhost", "0.0.0.0", "::", "[::]"}


@dataclass
class HttpError:
    kind: str
    code: str
    message: str
    url: str
    connected: bool = False
    cause: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "causeCode": self.cause,
            "connected": self.connected,
            "url": self.url,
        }


@dataclass
class HttpResult:
    """Outcome of one request. ``ok`` means an HTTP response arrived, whatever its status."""

    ok: bool
    url: str
    status_code: Optional[int] = None
    body_text: Optional[str] = None
    json: Any = None
    json_error: Optional[str] = None
    error: Optional[HttpError] = None

    @property
    def is_success(self) -> bool:
        return self.ok and self.status_code is not None and 200 <= self.status_code <= 299


def code_for_kind(kind: str, status: Optional[int] = None) -> str:
    if kind == HTTP_NON_2XX:
        return f"ERR_HEALTH_HTTP_{status}" if status is not None else "ERR_HEALTH_HTTP_NULL"
    return _CODES.get(kind, _CODES[REQUEST_FAILED])


def normalize_client_url(url: str) -> str:
    """Rewrite bind-all and ``localhost`` hosts to the IPv4 loopback address."""
    parts = urlsplit(url)
    host = (parts.hostname or "").strip().lower()
    if host not in _LOOPBACK_REWRITES:
        return url
    netloc = "127.0.0.1"
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def http_request_json(url: str, *, method: str = "GET", timeout: float = 4.0) -> HttpResult:
    """Issue one request and parse the body as JSON when possible.

    The TCP connect is performed separately. A timeout with no connection
    means the app is not listening yet (``CONN_REFUSED``); a connection
    followed by silence is a genuine ``TIMEOUT``.
    """
    target = normalize_client_url(url)
    parts = urlsplit(target)
    host = parts.hostname or "127.0.0.1"
    secure = parts.scheme == "https"
    port = parts.port or (443 if secure else 80)
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"

    if secure:
        conn: http.client.HTTPConnection = http.client.HTTPSConnection(
            host, port, timeout=timeout, context=ssl.create_default_context()
        )
    else:
        conn = http.client.HTTPConnection(host, port, timeout=timeout)

    connected = False
    try:
        conn.connect()
        connected = True
        conn.request(method.upper(), path, headers={"Accept": "application/json"})
        response = conn.getresponse()
        raw = response.read()
        status = response.status
    except (OSError, http.client.HTTPException) as exc:
        return HttpResult(ok=False, url=target, error=_classify(exc, target, host, port, connected))
    finally:
        conn.close()

    body = raw.decode("utf-8", errors="replace")
    parsed: Any = None
    json_error: Optional[str] = None
    try:
        parsed = json.loads(body)
    except ValueError as exc:
        json_error = str(exc)
    return HttpResult(
        ok=True,
        url=target,
        status_code=status,
        body_text=body,
        json=parsed,
        json_error=json_error,
    )


def _classify(
    exc: BaseException, url: str, host: str, port: int, connected: bool
) -> HttpError:
    kind = REQUEST_FAILED
    message = one_line(str(exc) or exc.__class__.__name__)
    cause = exc.__class__.__name__
    if isinstance(exc, ssl.SSLError):
        kind = TLS
    elif isinstance(exc, ConnectionRefusedError):
        kind = CONN_REFUSED
    elif isinstance(exc, (TimeoutError, socket.timeout)):
        kind = TIMEOUT if connected else CONN_REFUSED
        message = "timeout"
    elif isinstance(exc, socket.gaierror):
        kind = DNS
    elif isinstance(exc, OSError) and exc.errno == errno.ENETUNREACH:
        kind = NET_UNREACHABLE
    elif isinstance(exc, OSError) and exc.errno == errno.EHOSTUNREACH:
        kind = HOST_UNREACHABLE
    if kind == CONN_REFUSED:
        message = f"connect ECONNREFUSED {host}:{port}"
    return HttpError(
        kind=kind,
        code=code_for_kind(kind),
        message=message,
        url=url,
        connected=connected,
        cause=cause,
    )


__all__ = [
    "CONN_REFUSED",
    "DNS",
    "HOST_UNREACHABLE",
    "HTTP_NON_2XX",
    "HttpError",
    "HttpResult",
    "NET_UNREACHABLE",
    "REQUEST_FAILED",
    "TIMEOUT",
    "TLS",
    "code_for_kind",
    "http_request_json",
    "normalize_client_url",
]
