"""Outbound transports for http, https, socks4 and socks5 proxies."""

import asyncio
import errno
import socket
from dataclasses import dataclass, field
from urllib.parse import quote
from uuid import UUID

import aiohttp
from aiohttp_socks import ProxyConnectionError, ProxyConnector, ProxyTimeoutError

from src.database.models import ProxyProtocol
from src.modules.proxies.cache import ProxySnapshot

SOCKS_PROTOCOLS = {ProxyProtocol.SOCKS4.value, ProxyProtocol.SOCKS5.value}
KNOWN_PROTOCOLS = {p.value for p in ProxyProtocol}

RETRYABLE_ERRNOS = {
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
}


def normalize_protocol(protocol: str | None) -> str:
    value = (protocol or "").lower()
    return value if value in KNOWN_PROTOCOLS else ProxyProtocol.HTTPS.value


def proxy_url(proxy: ProxySnapshot, include_credentials: bool = True) -> str:
    """``protocol://[username:password@]host:port``"""
    protocol = normalize_protocol(proxy.protocol)
    auth = ""
    if include_credentials and proxy.username:
        auth = quote(proxy.username, safe="")
        if proxy.password:
            auth += ":" + quote(proxy.password, safe="")
        auth += "@"
    return f"{protocol}://{auth}{proxy.host}:{proxy.port}"


@dataclass
class ProxyTransport:
    proxy_id: UUID
    protocol: str
    connector: aiohttp.BaseConnector | None = None
    proxy: str | None = None
    proxy_auth: aiohttp.BasicAuth | None = field(default=None, repr=False)

    def request_kwargs(self) -> dict:
        if self.proxy is None:
            return {}
        return {"proxy": self.proxy, "proxy_auth": self.proxy_auth}


def build_transport(proxy: ProxySnapshot) -> ProxyTransport:
    """Socks proxies need their own connector; http(s) proxies ride on aiohttp."""
    protocol = normalize_protocol(proxy.protocol)
    if protocol in SOCKS_PROTOCOLS:
        return ProxyTransport(
            proxy_id=proxy.id,
            protocol=protocol,
            connector=ProxyConnector.from_url(proxy_url(proxy)),
        )

    auth = None
    if proxy.username:
        auth = aiohttp.BasicAuth(proxy.username, proxy.password or "")
    return ProxyTransport(
        proxy_id=proxy.id,
        protocol=protocol,
        proxy=proxy_url(proxy, include_credentials=False),
        proxy_auth=auth,
    )


def is_retryable_error(exc: BaseException) -> bool:
    """Network-level failures worth one direct retry: refused, reset,
    timed out, unreachable or unresolvable."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, (ProxyConnectionError, ProxyTimeoutError)):
        return True
    if isinstance(
        exc,
        (
            aiohttp.ClientConnectorError,
            aiohttp.ServerDisconnectedError,
            aiohttp.ServerTimeoutError,
            aiohttp.ClientProxyConnectionError,
        ),
    ):
        return True
    if isinstance(exc, socket.gaierror):
        return True
    if isinstance(exc, OSError) and exc.errno in RETRYABLE_ERRNOS:
        return True
    return False
