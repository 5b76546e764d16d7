from __future__ import annotations

import dataclasses as dc
import re
import urllib.parse
from collections.abc import Iterable

from dnslink.resolver.models import (
    REDIRECT_KEY,
    TXT_PREFIX,
    ConflictEntry,
    EntryReason,
    InvalidEntry,
    LinkSet,
    LinkValue,
    ParsedEntry,
    TxtEntry,
)

# https://datatracker.ietf.org/doc/html/rfc4343#section-2.1
_PRINTABLE_ASCII = re.compile(r'[\x20-\x7e]*')
_BROKEN_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def _has_valid_encoding(value: str) -> bool:
    if _BROKEN_ESCAPE.search(value):
        return False
    try:
        urllib.parse.unquote_to_bytes(value).decode('utf-8')
    except UnicodeDecodeError:
        return False
    return True


def validate_entry(text: str, *, strict: bool = True) -> tuple[str, str] | EntryReason:
    '''
    Validates a single `dnslink=/key/value` TXT string.

    Parameters
    ----------
    text : str
        _The TXT string, including the `dnslink=` marker_
    strict : bool, optional
        _Also reject non printable-ascii characters and malformed
        percent-escapes in the value_, by default True

    Returns
    -------
    tuple[str, str] | EntryReason
        _`(key, value)` or the reason the entry is invalid_
    '''
    entry = text[len(TXT_PREFIX):].strip()
    if not entry.startswith('/'):
        return EntryReason.WRONG_START

    if strict and not _PRINTABLE_ASCII.fullmatch(entry):
        return EntryReason.INVALID_CHARACTER

    parts = entry.split('/')[1:]
    key = parts[0].strip() if parts else ''
    if not key:
        return EntryReason.KEY_MISSING

    value = '/'.join(parts[1:]).strip()
    if not value:
        return EntryReason.NO_VALUE

    if strict and not _has_valid_encoding(value):
        return EntryReason.INVALID_ENCODING

    return key, value


def parse_entries(
    records: Iterable[TxtEntry],
    *,
    strict: bool = True,
) -> tuple[list[ParsedEntry], list[InvalidEntry]]:
    '''
    Picks the `dnslink=` records out of a TXT answer and validates them.
    Records without the marker are ignored without a log entry.
    '''
    parsed: list[ParsedEntry] = []
    invalid: list[InvalidEntry] = []
    for record in records:
        if not record.text.startswith(TXT_PREFIX):
            continue
        result = validate_entry(record.text, strict=strict)
        if isinstance(result, EntryReason):
            invalid.append(InvalidEntry(entry=record.text, reason=result.value))
            continue
        key, value = result
        parsed.append(
            ParsedEntry(key=key, value=value, source_text=record.text, ttl=record.ttl)
        )
    return parsed, invalid


@dc.dataclass(slots=True)
class Aggregation:
    links: LinkSet = dc.field(default_factory=dict)
    entries: dict[str, list[ParsedEntry]] = dc.field(default_factory=dict)
    discarded: list[ConflictEntry] = dc.field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.links


def aggregate(
    entries: Iterable[ParsedEntry],
    *,
    redirect_key: str = REDIRECT_KEY,
) -> Aggregation:
    '''
    Groups validated entries by key.

    Keys keep first-seen order, values of each key are sorted
    lexicographically. A repeated `(key, value)` pair is a conflict: the
    first copy stays, later ones are discarded. The redirect key may only
    point to one domain, so only its smallest value survives and every
    other value is discarded as a conflict.

    Parameters
    ----------
    entries : Iterable[ParsedEntry]
    redirect_key : str, optional
        by default "dns"

    Returns
    -------
    Aggregation
    '''
    result = Aggregation()
    by_key: dict[str, dict[str, ParsedEntry]] = {}
    for entry in entries:
        seen = by_key.setdefault(entry.key, {})
        if entry.value in seen:
            result.discarded.append(ConflictEntry(entry=entry.source_text))
            continue
        seen[entry.value] = entry

    for key, seen in by_key.items():
        ordered = sorted(seen.values(), key=lambda e: e.value)
        if key == redirect_key and len(ordered) > 1:
            winner, *losers = ordered
            result.discarded.extend(
                ConflictEntry(entry=loser.source_text) for loser in losers
            )
            ordered = [winner]
        result.entries[key] = ordered
        result.links[key] = [LinkValue(value=e.value, ttl=e.ttl) for e in ordered]

    return result
