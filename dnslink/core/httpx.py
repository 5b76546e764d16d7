import dataclasses as dc

import httpx

from dnslink.core.retries import AsyncRetries

HttpxExceptions = (
    httpx.ConnectError,
    httpx.ReadTimeout,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
    httpx.ProxyError,
    httpx.NetworkError,
    httpx.HTTPStatusError,
)


def httpxretry(
    *,
    attempts: int = 3,
    delay: float = 0.5,
    jitter: float = 0.1,
) -> AsyncRetries:
    return AsyncRetries(
        attempts=attempts,
        delay=delay,
        jitter=jitter,
        retry_on=HttpxExceptions,
    )


@dc.dataclass(slots=True)
class ClientOptions:
    '''
    Options for configuring the HTTPX AsyncClient used for
    DNS-over-HTTPS queries.
    '''
    timeout: float = 10
    max_connections: int = 10
    max_keepalive: int = 5
    keep_alive_expiry: int = 15
    connect_timeout: float = 5
    read_timeout: float = 5
    http2: bool = True
    verify: bool = True
    follow_redirects: bool = True
    headers: dict[str, str] = dc.field(default_factory=dict)

    @property
    def httpx_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self.timeout,
            connect=self.connect_timeout,
            read=self.read_timeout,
        )

    @property
    def httpx_limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive,
            keepalive_expiry=self.keep_alive_expiry,
        )


DOH_JSON_HEADERS = {
    'Accept': 'application/dns-json',
}


def make_httpx_client(
    options: ClientOptions | None = None,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    options = options or ClientOptions()
    merged = {**DOH_JSON_HEADERS, **options.headers, **(headers or {})}
    return httpx.AsyncClient(
        timeout=options.httpx_timeout,
        headers=merged,
        limits=options.httpx_limits,
        http2=options.http2,
        verify=options.verify,
        follow_redirects=options.follow_redirects,
        transport=transport,
    )
