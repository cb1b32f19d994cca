"""
Layered reachability probe for the Vigil monitor.

A probe runs three diagnostic layers strictly in order: DNS resolution of
the URL host, a raw TCP connect to the resolved address, and an HTTP GET
with redirect following. A failing layer short-circuits the layers after
it. Every layer is bounded by the same timeout, and the probe never
raises: all failure modes are recorded on the returned ProbeResult.
"""

import asyncio
import contextlib
import ipaddress
import socket
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
import idna

from .audit_logger import AuditLogger
from .config import ProbeConfig
from .enums import ErrorKind
from .models import ProbeResult


Resolver = Callable[[str, int], Awaitable[str]]
Connector = Callable[[str, int], Awaitable[None]]
Clock = Callable[[], datetime]

DEFAULT_PORTS = {"http": 80, "https": 443}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def resolve_host(host: str, port: int) -> str:
    """Resolve ``host`` to the first stream-socket address."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"no addresses found for {host}")
    return infos[0][4][0]


async def open_tcp(address: str, port: int) -> None:
    """Open and immediately close a TCP connection."""
    _, writer = await asyncio.open_connection(address, port)
    writer.close()
    # The connect already succeeded; a close-time reset does not change that
    with contextlib.suppress(OSError):
        await writer.wait_closed()


def split_target(url: str) -> tuple[str, int]:
    """
    Extract the ASCII host and effective port from a target URL.

    Raises:
        ValueError: If the URL has no usable scheme, host or port
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"unsupported URL scheme: {parsed.scheme or '(none)'}")
    host = parsed.hostname
    if not host:
        raise ValueError("URL has no host")
    port = parsed.port or DEFAULT_PORTS[scheme]

    try:
        ipaddress.ip_address(host)
        return host, port
    except ValueError:
        pass

    # ASCII names go to the resolver as-is; labels such as ``my_host`` are
    # valid for DNS and hosts files even though IDNA rejects them
    if host.isascii():
        return host, port

    try:
        ascii_host = idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ValueError(f"invalid hostname {host!r}: {e}") from e
    return ascii_host, port


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _elapsed_ms(started: float) -> int:
    return max(0, round((time.perf_counter() - started) * 1000))


class Prober:
    """
    Runs layered DNS -> TCP -> HTTP checks against target URLs.

    The resolver, TCP connector, HTTP transport and clock are injectable so
    each layer can be exercised without real network access. Use as an async
    context manager to share one HTTP client across many probes; outside a
    context a short-lived client is created per probe.
    """

    def __init__(
        self,
        config: Optional[ProbeConfig] = None,
        resolver: Optional[Resolver] = None,
        connector: Optional[Connector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Clock] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._config = config or ProbeConfig()
        self._timeout = self._config.timeout_seconds
        self._resolver = resolver or resolve_host
        self._connector = connector or open_tcp
        self._transport = transport
        self._clock = clock or utc_now
        self._logger = logger
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "Prober":
        self._client = self._build_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def timeout_ms(self) -> int:
        return self._config.timeout_ms

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=True,
            headers={"User-Agent": self._config.user_agent},
        )

    async def probe(self, url: str, target_id: Optional[int] = None) -> ProbeResult:
        """
        Run one diagnostic pass against ``url``.

        Returns:
            ProbeResult; ``overall_status`` is UP only if the HTTP layer
            answered with a status code below 400
        """
        # DNS layer
        try:
            host, port = split_target(url)
        except ValueError as e:
            return self._dns_failure(url, target_id, _describe(e))

        try:
            resolved_ip = await asyncio.wait_for(
                self._resolver(host, port), self._timeout
            )
        except asyncio.TimeoutError:
            return self._dns_failure(
                url, target_id, f"resolution timed out after {self.timeout_ms}ms"
            )
        except Exception as e:
            return self._dns_failure(url, target_id, _describe(e))

        # TCP layer
        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._connector(resolved_ip, port), self._timeout)
        except asyncio.TimeoutError:
            return self._tcp_failure(
                url, target_id, resolved_ip, _elapsed_ms(started), "connect timed out"
            )
        except Exception as e:
            return self._tcp_failure(
                url, target_id, resolved_ip, _elapsed_ms(started), _describe(e)
            )
        tcp_latency_ms = _elapsed_ms(started)

        # HTTP layer
        started = time.perf_counter()
        status_code = 0
        error_cause: Optional[str] = None
        try:
            response = await asyncio.wait_for(self._get(url), self._timeout)
            status_code = response.status_code
            if status_code >= 400:
                error_cause = f"HTTP {status_code}"
        except asyncio.TimeoutError:
            error_cause = f"request aborted after {self.timeout_ms}ms"
        except Exception as e:
            error_cause = _describe(e)
        http_latency_ms = _elapsed_ms(started)

        http_ok = 0 < status_code < 400
        if not http_ok:
            self._log_debug("HTTP layer failed", {"url": url, "cause": error_cause})

        return ProbeResult(
            target_id=target_id,
            timestamp=self._clock(),
            dns_ok=True,
            resolved_ip=resolved_ip,
            tcp_ok=True,
            tcp_latency_ms=tcp_latency_ms,
            http_ok=http_ok,
            http_status_code=status_code,
            http_latency_ms=http_latency_ms,
            error_kind=None if http_ok else ErrorKind.HTTP_FAILURE,
            error_cause=None if http_ok else error_cause,
        )

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url)
        async with self._build_client() as client:
            return await client.get(url)

    def _dns_failure(
        self, url: str, target_id: Optional[int], cause: str
    ) -> ProbeResult:
        self._log_debug("DNS layer failed", {"url": url, "cause": cause})
        return ProbeResult(
            target_id=target_id,
            timestamp=self._clock(),
            error_kind=ErrorKind.DNS_FAILURE,
            error_cause=cause,
        )

    def _tcp_failure(
        self,
        url: str,
        target_id: Optional[int],
        resolved_ip: str,
        latency_ms: int,
        cause: str,
    ) -> ProbeResult:
        # The detail stays "TCP_FAILURE"; the cause only goes to the log
        self._log_debug("TCP layer failed", {"url": url, "ip": resolved_ip, "cause": cause})
        return ProbeResult(
            target_id=target_id,
            timestamp=self._clock(),
            dns_ok=True,
            resolved_ip=resolved_ip,
            tcp_ok=False,
            tcp_latency_ms=latency_ms,
            error_kind=ErrorKind.TCP_FAILURE,
        )

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.debug("Prober", message, data)
