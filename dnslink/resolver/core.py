from __future__ import annotations

import asyncio
import dataclasses as dc
from typing import Self

from loguru import logger

from dnslink.core.cancel import Cancellation
from dnslink.errors import DomainNotFoundError, InvalidDomainError
from dnslink.resolver import entries as entry_utils
from dnslink.resolver.domain import TargetError, parse_target
from dnslink.resolver.lookup import DnsTxtLookup, TxtLookup
from dnslink.resolver.models import (
    MAX_REDIRECTS,
    REDIRECT_KEY,
    AnyLogEntry,
    DomainTarget,
    EndlessRedirect,
    Fallback,
    FQDNReason,
    InvalidRedirect,
    LinkSet,
    PathSegment,
    RecursivePrefix,
    Redirect,
    Resolve,
    ResolutionResult,
    TooManyRedirects,
    TxtEntry,
    UnusedEntry,
    flatten_links,
)


@dc.dataclass(slots=True)
class ResolveOptions:
    '''
    Options for a single resolution.

    Parameters
    ----------
    recursive : bool
        _Follow `dnslink=/dns/<domain>` redirects_, by default True
    lookup_txt : TxtLookup | None
        _The TXT lookup adapter, a system DNS adapter when None_
    cancellation : Cancellation | None
        _Token to abort the resolution with_
    timeout : float | None
        _Overall deadline in seconds, used when no token is given_
    max_redirects : int
        _Hop bound of the redirect chain_, by default 32
    strict : bool
        _Reject non-ascii entries and malformed percent-escapes_
    speculative_fallback : bool
        _Query the bare domain alongside the prefixed one_
    '''
    recursive: bool = True
    lookup_txt: TxtLookup | None = None
    cancellation: Cancellation | None = None
    timeout: float | None = None
    max_redirects: int = MAX_REDIRECTS
    strict: bool = True
    speculative_fallback: bool = True


def derive_path(log: list[AnyLogEntry]) -> list[PathSegment]:
    '''
    Collects the pathname/search fragments of `RESOLVE` and `REDIRECT`
    entries, most recent first.
    '''
    path: list[PathSegment] = []
    for entry in reversed(log):
        if not isinstance(entry, (Resolve, Redirect)):
            continue
        if entry.pathname is None and entry.search is None:
            continue
        path.append(PathSegment(pathname=entry.pathname, search=entry.search))
    return path


@dc.dataclass(slots=True)
class _Step:
    target: DomainTarget
    records: list[TxtEntry]
    fallback: bool = False


@dc.dataclass(slots=True, kw_only=True)
class _ResolutionRun:
    '''
    State of one resolution: the target cursor, the visited chain and
    the log. Created per call, never shared.
    '''
    lookup_txt: TxtLookup
    options: ResolveOptions
    cancellation: Cancellation
    chain: list[str] = dc.field(default_factory=list)
    log: list[AnyLogEntry] = dc.field(default_factory=list)

    async def _lookup(self, domain: str) -> list[TxtEntry] | None:
        '''
        None means the name does not exist.
        '''
        try:
            return await self.lookup_txt(domain, timeout=self.cancellation.remaining)
        except DomainNotFoundError:
            return None

    def _start(self, domain: str) -> asyncio.Task[list[TxtEntry] | None]:
        return asyncio.ensure_future(self._lookup(domain))

    def _usable(self, records: list[TxtEntry] | None) -> bool:
        if not records:
            return False
        parsed, _ = entry_utils.parse_entries(records, strict=self.options.strict)
        return bool(parsed)

    async def _query(self, target: DomainTarget) -> _Step:
        '''
        Queries the prefixed domain, falling back to the bare domain
        when the prefixed one yields no usable entries. With speculative
        fallback both queries start together.
        '''
        self.cancellation.check()
        primary_task = self._start(target.domain)
        fallback_task = None
        if self.options.speculative_fallback:
            fallback_task = self._start(target.bare_domain)

        try:
            records = await self.cancellation.run(primary_task)
            if self._usable(records):
                return _Step(target=target, records=records or [])

            invalid_primary = records or []
            self.cancellation.check()
            logger.debug(f'{target.domain}: no usable entries, falling back to {target.bare_domain}')
            if fallback_task is None:
                fallback_task = self._start(target.bare_domain)
            fallback_records = await self.cancellation.run(fallback_task)
        finally:
            if fallback_task is not None:
                await _abandon(fallback_task)

        return _Step(
            target=target,
            records=[*invalid_primary, *(fallback_records or [])],
            fallback=True,
        )

    def _resolved(self, target: DomainTarget, links: LinkSet) -> ResolutionResult:
        self.log.append(_domain_entry(Resolve, target))
        if self.options.recursive:
            links.pop(REDIRECT_KEY, None)
        logger.debug(f'{target.domain}: resolved keys {list(links)}')
        return ResolutionResult(
            links=links,
            path=derive_path(self.log),
            log=self.log,
            txt_entries=flatten_links(links),
        )

    def _failed(self, target: DomainTarget, entry: AnyLogEntry) -> ResolutionResult:
        self.log.append(_domain_entry(Resolve, target))
        self.log.append(entry)
        logger.debug(f'{target.domain}: resolution failed with {entry.code.value}')
        return ResolutionResult(links={}, path=derive_path(self.log), log=self.log)

    def _redirect_target(self, value: str) -> DomainTarget | None:
        parsed = parse_target(value)
        if not isinstance(parsed, TargetError):
            return parsed

        if parsed.reason is FQDNReason.RECURSIVE_DNSLINK_PREFIX:
            self.log.append(RecursivePrefix(domain=value))
        else:
            self.log.append(InvalidRedirect(domain=value, reason=parsed.reason.value))
        logger.debug(f'ignoring invalid redirect {value!r}: {parsed.reason.value}')
        return None

    async def run(self, target: DomainTarget) -> ResolutionResult:
        while True:
            self.cancellation.check()
            step = await self._query(target)
            self.cancellation.check()

            if step.fallback:
                self.log.append(Fallback(domain=target.bare_domain))

            parsed, invalid = entry_utils.parse_entries(
                step.records, strict=self.options.strict
            )
            self.log.extend(invalid)
            aggregation = entry_utils.aggregate(parsed)
            self.log.extend(aggregation.discarded)
            links = aggregation.links

            if not self.options.recursive or REDIRECT_KEY not in links:
                return self._resolved(target, links)

            redirect_value = links[REDIRECT_KEY][0].value
            next_target = self._redirect_target(redirect_value)
            if next_target is None:
                return self._resolved(target, links)

            for key, key_entries in aggregation.entries.items():
                if key == REDIRECT_KEY:
                    continue
                self.log.extend(UnusedEntry(entry=e.source_text) for e in key_entries)

            self.chain.append(target.domain)
            if next_target.domain in self.chain:
                return self._failed(target, _domain_entry(EndlessRedirect, next_target))
            if len(self.chain) >= self.options.max_redirects:
                return self._failed(target, _domain_entry(TooManyRedirects, next_target))

            logger.debug(f'{target.domain}: redirecting to {next_target.domain}')
            self.log.append(_domain_entry(Redirect, target))
            target = next_target


async def _abandon(task: asyncio.Future) -> None:
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)


def _domain_entry(cls, target: DomainTarget):
    return cls(domain=target.domain, pathname=target.pathname, search=target.search)


def validate_domain(domain: str) -> DomainTarget:
    '''
    Parses the input domain of a resolution.

    Raises
    ------
    InvalidDomainError
        _The domain is not a valid FQDN_
    '''
    parsed = parse_target(domain)
    if isinstance(parsed, TargetError):
        raise InvalidDomainError(parsed.domain, parsed.reason.value)
    return parsed


@dc.dataclass(slots=True)
class DnsLinkResolver:
    '''
    Resolves DNSLink entries of domains with an injected TXT lookup
    adapter. Holds no per-resolution state, so one instance can serve
    any number of concurrent `resolve` calls.
    '''
    lookup_txt: TxtLookup
    options: ResolveOptions = dc.field(default_factory=ResolveOptions)

    @classmethod
    def create(
        cls,
        *,
        lookup_txt: TxtLookup | None = None,
        options: ResolveOptions | None = None,
    ) -> Self:
        options = options or ResolveOptions()
        lookup_txt = lookup_txt or options.lookup_txt or DnsTxtLookup.create()
        return cls(lookup_txt=lookup_txt, options=options)

    async def resolve(
        self,
        domain: str,
        *,
        cancellation: Cancellation | None = None,
    ) -> ResolutionResult:
        '''
        Resolves the DNSLink entries of `domain`.

        Parameters
        ----------
        domain : str
            _A hostname, optionally URL-shaped (`example.com/path?a=b`)_
        cancellation : Cancellation | None, optional
            _Overrides the token of the options_

        Returns
        -------
        ResolutionResult

        Raises
        ------
        InvalidDomainError
            _The input is not a valid domain, raised before any lookup_
        DnsLookupError
            _A lookup failed for a reason other than NXDOMAIN_
        AbortError
            _The token was cancelled or its deadline passed_
        '''
        target = validate_domain(domain)
        cancellation = (
            cancellation
            or self.options.cancellation
            or Cancellation(timeout=self.options.timeout)
        )
        logger.debug(f'resolving {target.domain}')
        run = _ResolutionRun(
            lookup_txt=self.lookup_txt,
            options=self.options,
            cancellation=cancellation,
        )
        return await run.run(target)


async def resolve(
    domain: str,
    *,
    options: ResolveOptions | None = None,
    lookup_txt: TxtLookup | None = None,
    cancellation: Cancellation | None = None,
) -> ResolutionResult:
    '''
    Resolves the DNSLink entries of `domain`, following redirects.

    Parameters
    ----------
    domain : str
        _The domain to resolve_
    options : ResolveOptions | None, optional
        by default None
    lookup_txt : TxtLookup | None, optional
        _Overrides `options.lookup_txt`_
    cancellation : Cancellation | None, optional
        _Overrides `options.cancellation`_

    Returns
    -------
    ResolutionResult
    '''
    resolver = DnsLinkResolver.create(lookup_txt=lookup_txt, options=options)
    return await resolver.resolve(domain, cancellation=cancellation)
