'''
Normalization and validation of lookup targets: input hostnames and
the values of redirect entries.
'''
from __future__ import annotations

import dataclasses as dc
import re
import urllib.parse
from typing import Final

from dnslink.resolver.models import DNS_PREFIX, DomainTarget, FQDNReason

MAX_DOMAIN_LENGTH: Final[int] = 253 - len(DNS_PREFIX)
MAX_LABEL_LENGTH: Final[int] = 63

_LABEL_RE = re.compile(r'[A-Za-z0-9_-]+')


@dc.dataclass(slots=True, frozen=True)
class TargetError:
    '''
    Why a target could not be parsed. `domain` is the best-effort
    normalized form, used for reporting.
    '''
    domain: str
    reason: FQDNReason


def strip_trailing_dot(domain: str) -> str:
    if domain.endswith('.'):
        return domain[:-1]
    return domain


def check_fqdn(domain: str) -> FQDNReason | None:
    '''
    Checks the shape of a fully qualified domain name, reserving
    room for the `_dnslink.` prefix.

    Parameters
    ----------
    domain : str
        _The domain without prefix or trailing dot_

    Returns
    -------
    FQDNReason | None
        _None when the domain is valid_
    '''
    if len(domain) > MAX_DOMAIN_LENGTH:
        return FQDNReason.TOO_LONG

    for label in domain.split('.'):
        if not label:
            return FQDNReason.EMPTY_PART
        if len(label) > MAX_LABEL_LENGTH:
            return FQDNReason.TOO_LONG
        if not _LABEL_RE.fullmatch(label):
            return FQDNReason.INVALID_LABEL
    return None


def _split_url(raw: str) -> tuple[str, str | None, dict[str, list[str]] | None]:
    url = raw if raw.startswith('//') else f'//{raw}'
    parts = urllib.parse.urlsplit(url)
    host = urllib.parse.unquote(parts.netloc)

    pathname = parts.path or None
    if pathname == '/':
        pathname = None

    search = None
    if parts.query:
        search = urllib.parse.parse_qs(parts.query, keep_blank_values=True)
    return host, pathname, search


def normalize_domain(domain: str) -> str | TargetError:
    '''
    Lowercases, strips the trailing dot and one `_dnslink.` prefix, then
    validates.

    Returns
    -------
    str | TargetError
        _The bare domain or the reason it was rejected_
    '''
    domain = strip_trailing_dot(domain)
    # non-ascii stays as is, so it can't lowercase into a valid label
    if domain.isascii():
        domain = domain.lower()
    if domain.startswith(DNS_PREFIX):
        domain = domain[len(DNS_PREFIX):]
        if domain.startswith(DNS_PREFIX):
            return TargetError(domain, FQDNReason.RECURSIVE_DNSLINK_PREFIX)

    if any(ch.isspace() for ch in domain):
        return TargetError(domain, FQDNReason.INVALID_CHARACTER)

    if reason := check_fqdn(domain):
        return TargetError(domain, reason)
    return domain


def parse_target(raw: str) -> DomainTarget | TargetError:
    '''
    Parses an input hostname or a redirect value into a lookup target.

    Accepts plain domains (`example.com`, `example.com.`,
    `_dnslink.example.com`) as well as URL-shaped values
    (`example.com/some/path?a=b`, `//example.com/path`), in which case
    the path and query are kept on the target.

    Parameters
    ----------
    raw : str

    Returns
    -------
    DomainTarget | TargetError
        _A target whose domain carries the `_dnslink.` prefix_
    '''
    raw = raw.strip()
    if ' ' in raw:
        return TargetError(raw, FQDNReason.INVALID_CHARACTER)

    try:
        host, pathname, search = _split_url(raw)
    except ValueError:
        return TargetError(raw, FQDNReason.INVALID_CHARACTER)

    normalized = normalize_domain(host)
    if isinstance(normalized, TargetError):
        return normalized

    return DomainTarget(
        domain=f'{DNS_PREFIX}{normalized}',
        pathname=pathname,
        search=search,
    )
