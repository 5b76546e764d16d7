from __future__ import annotations

import dataclasses as dc
from enum import Enum
from typing import Final

import msgspec

DNS_PREFIX: Final[str] = '_dnslink.'
TXT_PREFIX: Final[str] = 'dnslink='
REDIRECT_KEY: Final[str] = 'dns'
MAX_REDIRECTS: Final[int] = 32


class LogCode(str, Enum):
    RESOLVE = 'RESOLVE'
    REDIRECT = 'REDIRECT'
    CONFLICT_ENTRY = 'CONFLICT_ENTRY'
    INVALID_ENTRY = 'INVALID_ENTRY'
    ENDLESS_REDIRECT = 'ENDLESS_REDIRECT'
    INVALID_REDIRECT = 'INVALID_REDIRECT'
    TOO_MANY_REDIRECTS = 'TOO_MANY_REDIRECTS'
    UNUSED_ENTRY = 'UNUSED_ENTRY'
    RECURSIVE_DNSLINK_PREFIX = 'RECURSIVE_DNSLINK_PREFIX'
    FALLBACK = 'FALLBACK'


class EntryReason(str, Enum):
    WRONG_START = 'WRONG_START'
    KEY_MISSING = 'KEY_MISSING'
    NO_VALUE = 'NO_VALUE'
    INVALID_CHARACTER = 'INVALID_CHARACTER'
    INVALID_ENCODING = 'INVALID_ENCODING'


class FQDNReason(str, Enum):
    EMPTY_PART = 'EMPTY_PART'
    TOO_LONG = 'TOO_LONG'
    INVALID_CHARACTER = 'INVALID_CHARACTER'
    INVALID_LABEL = 'INVALID_LABEL'
    RECURSIVE_DNSLINK_PREFIX = 'RECURSIVE_DNSLINK_PREFIX'


CODE_MEANING: Final[dict[LogCode, str]] = {
    LogCode.RESOLVE: 'Resolved entries for this domain.',
    LogCode.REDIRECT: 'Redirecting away from this domain.',
    LogCode.CONFLICT_ENTRY: 'Entry conflicts with another entry, it is ignored.',
    LogCode.INVALID_ENTRY: 'Entry misformatted, cant be used.',
    LogCode.ENDLESS_REDIRECT: 'Redirect points back into the chain already visited.',
    LogCode.INVALID_REDIRECT: 'Redirect target is not a valid domain.',
    LogCode.TOO_MANY_REDIRECTS: f'More than {MAX_REDIRECTS} redirects, aborting.',
    LogCode.UNUSED_ENTRY: 'Entry is ignored because a redirect takes precedence.',
    LogCode.RECURSIVE_DNSLINK_PREFIX: 'A domain may carry the _dnslink. prefix only once.',
    LogCode.FALLBACK: 'Falling back to domain without _dnslink prefix.',
}

ENTRY_REASON_MEANING: Final[dict[EntryReason, str]] = {
    EntryReason.WRONG_START: 'A DNSLink entry needs to start with a /.',
    EntryReason.KEY_MISSING: 'A DNSLink entry needs to have a key, like: dnslink=/key/value.',
    EntryReason.NO_VALUE: 'A DNSLink entry needs to have a value, like: dnslink=/key/value.',
    EntryReason.INVALID_CHARACTER: 'A DNSLink entry may only contain printable ascii characters.',
    EntryReason.INVALID_ENCODING: 'A DNSLink value contains a malformed percent-encoding.',
}

FQDN_REASON_MEANING: Final[dict[FQDNReason, str]] = {
    FQDNReason.EMPTY_PART: 'A FQDN may not contain empty parts.',
    FQDNReason.TOO_LONG: 'A FQDN may be max 253 characters which each subdomain not exceeding 63 characters.',
    FQDNReason.INVALID_CHARACTER: 'A domain may not contain whitespace.',
    FQDNReason.INVALID_LABEL: 'A FQDN label may only contain letters, digits, - and _.',
    FQDNReason.RECURSIVE_DNSLINK_PREFIX: 'A domain may carry the _dnslink. prefix only once.',
}


class LogEntry(
    msgspec.Struct,
    frozen=True,
    omit_defaults=True,
    tag_field='code',
):
    '''
    Base of the closed set of log variants, serialized with
    their `code` as tag.
    '''

    @property
    def code(self) -> LogCode:
        return LogCode(self.__struct_config__.tag)


class DomainLogEntry(LogEntry, frozen=True, omit_defaults=True):
    domain: str
    pathname: str | None = None
    search: dict[str, list[str]] | None = None


class EntryLogEntry(LogEntry, frozen=True, omit_defaults=True):
    entry: str


class Resolve(DomainLogEntry, frozen=True, omit_defaults=True, tag='RESOLVE'): ...


class Redirect(DomainLogEntry, frozen=True, omit_defaults=True, tag='REDIRECT'): ...


class EndlessRedirect(DomainLogEntry, frozen=True, omit_defaults=True, tag='ENDLESS_REDIRECT'): ...


class TooManyRedirects(DomainLogEntry, frozen=True, omit_defaults=True, tag='TOO_MANY_REDIRECTS'): ...


class Fallback(DomainLogEntry, frozen=True, omit_defaults=True, tag='FALLBACK'): ...


class InvalidRedirect(DomainLogEntry, frozen=True, omit_defaults=True, tag='INVALID_REDIRECT'):
    reason: str | None = None


class RecursivePrefix(DomainLogEntry, frozen=True, omit_defaults=True, tag='RECURSIVE_DNSLINK_PREFIX'): ...


class ConflictEntry(EntryLogEntry, frozen=True, omit_defaults=True, tag='CONFLICT_ENTRY'): ...


class UnusedEntry(EntryLogEntry, frozen=True, omit_defaults=True, tag='UNUSED_ENTRY'): ...


class InvalidEntry(EntryLogEntry, frozen=True, omit_defaults=True, tag='INVALID_ENTRY'):
    reason: str


AnyLogEntry = (
    Resolve
    | Redirect
    | EndlessRedirect
    | TooManyRedirects
    | Fallback
    | InvalidRedirect
    | RecursivePrefix
    | ConflictEntry
    | UnusedEntry
    | InvalidEntry
)


class LinkValue(msgspec.Struct, frozen=True):
    value: str
    ttl: int


class PathSegment(msgspec.Struct, frozen=True, omit_defaults=True):
    pathname: str | None = None
    search: dict[str, list[str]] | None = None


LinkSet = dict[str, list[LinkValue]]


def flatten_links(links: LinkSet) -> list[LinkValue]:
    return [
        LinkValue(value=f'/{key}/{link.value}', ttl=link.ttl)
        for key in sorted(links)
        for link in sorted(links[key], key=lambda link: link.value)
    ]


class ResolutionResult(msgspec.Struct):
    '''
    The outcome of one `resolve()` call.

    `links` maps each key to its values sorted lexicographically, `path`
    lists the pathname/search fragments met along the redirect chain
    from the final domain back to the input, `log` explains every
    decision taken on the way. `txt_entries` flattens `links` back into
    `/key/value` form, sorted by key and then by value.
    '''
    links: LinkSet = msgspec.field(default_factory=dict)
    path: list[PathSegment] = msgspec.field(default_factory=list)
    log: list[AnyLogEntry] = msgspec.field(default_factory=list)
    txt_entries: list[LinkValue] = msgspec.field(default_factory=list)

    def first(self, key: str) -> str | None:
        '''
        The winning (lexicographically smallest) value for `key`.
        '''
        if not (values := self.links.get(key)):
            return None
        return values[0].value

    def values(self) -> dict[str, str]:
        return {
            key: values[0].value
            for key, values in self.links.items()
            if values
        }


@dc.dataclass(slots=True, frozen=True)
class TxtEntry:
    '''
    A raw TXT record as returned by a lookup adapter.
    '''
    text: str
    ttl: int


@dc.dataclass(slots=True, frozen=True)
class ParsedEntry:
    key: str
    value: str
    source_text: str
    ttl: int


@dc.dataclass(slots=True, frozen=True)
class DomainTarget:
    '''
    A lookup target: always the `_dnslink.`-prefixed domain plus any
    path or query carried by a URL-shaped input.
    '''
    domain: str
    pathname: str | None = None
    search: dict[str, list[str]] | None = None

    @property
    def bare_domain(self) -> str:
        if self.domain.startswith(DNS_PREFIX):
            return self.domain[len(DNS_PREFIX):]
        return self.domain
