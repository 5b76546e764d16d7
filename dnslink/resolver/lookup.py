from __future__ import annotations

import dataclasses as dc
import random
import re
from typing import Final, Protocol, Self

import dns.asyncresolver
import dns.exception
import dns.nameserver
import dns.rdatatype
import dns.resolver
import httpx
import msgspec
from loguru import logger

from dnslink.core.httpx import ClientOptions, httpxretry, make_httpx_client
from dnslink.core.retries import AsyncRetries, NoAttemptsLeftError
from dnslink.errors import DnsLookupError, DomainNotFoundError
from dnslink.resolver.models import TxtEntry

DOH_ENDPOINTS: Final[dict[str, str]] = {
    'cloudflare': 'https://cloudflare-dns.com/dns-query',
    'google': 'https://dns.google/resolve',
    'quad9': 'https://dns.quad9.net:5053/dns-query',
}

_TXT_RDTYPE: Final[int] = 16
_QUOTED_CHUNK = re.compile(r'"((?:[^"\\]|\\.)*)"')
_ESCAPE = re.compile(r'\\(\d{3}|.)')


class TxtLookup(Protocol):
    '''
    Turns a domain name into its TXT records.

    Implementations raise `DomainNotFoundError` when the name does not
    exist and `DnsLookupError` for every other failure.
    '''

    async def __call__(
        self,
        domain: str,
        *,
        timeout: float | None = None,
    ) -> list[TxtEntry]: ...


@dc.dataclass(slots=True)
class DnsConfig:
    '''
    Options for plain DNS lookups.
    '''
    filename: str = "/etc/resolv.conf"
    configure: bool = True
    nameservers: list[str] = dc.field(default_factory=list)
    lifetime: float = 5.0
    tcp: bool = False


def _split_host_port(server: str, default_port: int = 53) -> tuple[str, int]:
    if server.startswith('['):
        host, _, rest = server[1:].partition(']')
        port = rest.lstrip(':')
        return host, int(port) if port else default_port
    if server.count(':') == 1:
        host, port = server.split(':')
        return host, int(port)
    return server, default_port


def create_aiodns_resolver(options: DnsConfig | None = None) -> dns.asyncresolver.Resolver:
    options = options or DnsConfig()
    if not options.nameservers:
        return dns.asyncresolver.Resolver(
            configure=options.configure,
            filename=options.filename,
        )

    resolver = dns.asyncresolver.Resolver(configure=False)
    resolver.nameservers = [
        dns.nameserver.Do53Nameserver(*_split_host_port(server))
        for server in options.nameservers
    ]
    return resolver


@dc.dataclass(slots=True)
class DnsTxtLookup:
    '''
    TXT lookups over conventional DNS using dnspython.
    '''
    resolver: dns.asyncresolver.Resolver
    options: DnsConfig = dc.field(default_factory=DnsConfig)

    @classmethod
    def create(cls, config: DnsConfig | None = None) -> Self:
        config = config or DnsConfig()
        return cls(resolver=create_aiodns_resolver(config), options=config)

    async def __call__(
        self,
        domain: str,
        *,
        timeout: float | None = None,
    ) -> list[TxtEntry]:
        lifetime = self.options.lifetime
        if timeout is not None:
            lifetime = min(lifetime, timeout)

        logger.debug(f'dns: querying TXT {domain}')
        try:
            answer = await self.resolver.resolve(
                domain,
                dns.rdatatype.TXT,
                lifetime=lifetime,
                tcp=self.options.tcp,
                search=False,
            )
        except dns.resolver.NXDOMAIN as exc:
            raise DomainNotFoundError(domain) from exc
        except dns.resolver.NoAnswer:
            return []
        except dns.exception.Timeout as exc:
            raise DnsLookupError(domain, f'Timeout while querying TXT {domain}') from exc
        except dns.exception.DNSException as exc:
            raise DnsLookupError(domain, f'Error querying TXT {domain}: {exc}') from exc

        ttl = answer.rrset.ttl if answer.rrset is not None else 0
        return [
            TxtEntry(text=b''.join(rdata.strings).decode('utf-8', 'replace'), ttl=ttl)
            for rdata in answer
        ]


class DohAnswer(msgspec.Struct):
    name: str = ''
    type: int = 0
    ttl: int = msgspec.field(default=0, name='TTL')
    data: str = ''


class DohResponse(msgspec.Struct):
    status: int = msgspec.field(name='Status')
    answer: list[DohAnswer] = msgspec.field(default_factory=list, name='Answer')


def _unescape(chunk: str) -> str:
    def replace(match: re.Match[str]) -> str:
        escaped = match.group(1)
        if escaped.isdigit():
            return chr(int(escaped))
        return escaped

    return _ESCAPE.sub(replace, chunk)


def decode_txt_data(data: str) -> str:
    '''
    Decodes the presentation form of TXT rdata used in DNS JSON answers,
    `"chunk one" "chunk two"`, into a single string. Unquoted data is
    returned as-is.
    '''
    data = data.strip()
    if not data.startswith('"'):
        return data
    return ''.join(_unescape(chunk) for chunk in _QUOTED_CHUNK.findall(data))


def resolve_endpoints(endpoints: list[str] | None) -> list[str]:
    '''
    Maps preset names (`cloudflare`, `google`, `quad9`) to their URLs.
    Anything else is taken as a URL, `https://` being added when missing.
    '''
    if not endpoints:
        return list(DOH_ENDPOINTS.values())

    urls: list[str] = []
    for endpoint in endpoints:
        if endpoint in DOH_ENDPOINTS:
            urls.append(DOH_ENDPOINTS[endpoint])
        elif '://' in endpoint:
            urls.append(endpoint)
        else:
            urls.append(f'https://{endpoint}')
    return urls


@dc.dataclass(slots=True)
class DohConfig:
    '''
    Options for DNS-over-HTTPS lookups.
    '''
    endpoints: list[str] = dc.field(default_factory=list)
    attempts: int = 3
    delay: float = 0.5
    jitter: float = 0.1
    client: ClientOptions = dc.field(default_factory=ClientOptions)


@dc.dataclass
class DohTxtLookup:
    '''
    TXT lookups through the DNS JSON API of a DNS-over-HTTPS server.
    One endpoint is picked at random per query, transport errors are
    retried against it.
    '''
    config: DohConfig = dc.field(default_factory=DohConfig)
    client: httpx.AsyncClient | None = None
    _owns_client: bool = dc.field(default=False, init=False)
    _retries: AsyncRetries = dc.field(init=False)

    def __post_init__(self) -> None:
        self._retries = httpxretry(
            attempts=self.config.attempts,
            delay=self.config.delay,
            jitter=self.config.jitter,
        )

    @property
    def endpoints(self) -> list[str]:
        return resolve_endpoints(self.config.endpoints)

    async def __aenter__(self) -> Self:
        self._ensure_client()
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = make_httpx_client(self.config.client)
            self._owns_client = True
        return self.client

    async def _query(
        self,
        endpoint: str,
        domain: str,
        timeout: float | None,
    ) -> httpx.Response:
        kwargs = {}
        if timeout is not None:
            kwargs['timeout'] = timeout
        response = await self._ensure_client().get(
            endpoint,
            params={'name': domain, 'type': 'TXT'},
            **kwargs,
        )
        response.raise_for_status()
        return response

    async def __call__(
        self,
        domain: str,
        *,
        timeout: float | None = None,
    ) -> list[TxtEntry]:
        endpoint = random.choice(self.endpoints)
        logger.debug(f'doh: querying TXT {domain} via {endpoint}')
        try:
            response = await self._retries.call_with_retries(
                self._query, endpoint, domain, timeout
            )
        except NoAttemptsLeftError as exc:
            raise DnsLookupError(
                domain,
                f'DNS-over-HTTPS query for {domain} at {endpoint} failed: {exc.__cause__!r}',
            ) from exc

        try:
            payload = msgspec.json.decode(response.content, type=DohResponse)
        except msgspec.DecodeError as exc:
            raise DnsLookupError(
                domain, f'Malformed DNS-over-HTTPS response from {endpoint}: {exc}'
            ) from exc

        if payload.status == 3:
            raise DomainNotFoundError(domain)
        if payload.status != 0:
            raise DnsLookupError(
                domain,
                f'{endpoint} answered rcode {payload.status} for {domain}',
                rcode=payload.status,
            )

        return [
            TxtEntry(text=decode_txt_data(answer.data), ttl=answer.ttl)
            for answer in payload.answer
            if answer.type == _TXT_RDTYPE
        ]


def create_lookup(
    *,
    dns_servers: bool | list[str] | None = None,
    doh_endpoints: bool | list[str] | None = None,
    dns_config: DnsConfig | None = None,
    doh_config: DohConfig | None = None,
) -> DnsTxtLookup | DohTxtLookup:
    '''
    Builds a lookup adapter from CLI-style options. `True` means "use
    the defaults of that mode", a list names servers/endpoints. When both
    modes are requested one of them is chosen at random.

    Parameters
    ----------
    dns_servers : bool | list[str] | None, optional
        by default None
    doh_endpoints : bool | list[str] | None, optional
        by default None

    Returns
    -------
    DnsTxtLookup | DohTxtLookup
    '''
    modes = [
        mode
        for mode, requested in (('dns', dns_servers), ('doh', doh_endpoints))
        if requested
    ]
    mode = random.choice(modes) if modes else 'dns'

    if mode == 'doh':
        doh_config = doh_config or DohConfig()
        if isinstance(doh_endpoints, list):
            doh_config.endpoints = doh_endpoints
        return DohTxtLookup(config=doh_config)

    dns_config = dns_config or DnsConfig()
    if isinstance(dns_servers, list):
        dns_config.nameservers = dns_servers
    return DnsTxtLookup.create(dns_config)
