from .core import (
    DnsLinkResolver,
    ResolveOptions,
    derive_path,
    resolve,
    validate_domain,
)
from .domain import TargetError, check_fqdn, parse_target
from .entries import Aggregation, aggregate, parse_entries, validate_entry
from .lookup import (
    DnsConfig,
    DnsTxtLookup,
    DohConfig,
    DohTxtLookup,
    TxtLookup,
    create_lookup,
)
from .models import (
    CODE_MEANING,
    ENTRY_REASON_MEANING,
    FQDN_REASON_MEANING,
    DNS_PREFIX,
    MAX_REDIRECTS,
    REDIRECT_KEY,
    TXT_PREFIX,
    AnyLogEntry,
    ConflictEntry,
    DomainTarget,
    EndlessRedirect,
    EntryReason,
    Fallback,
    FQDNReason,
    InvalidEntry,
    InvalidRedirect,
    LinkValue,
    LogCode,
    LogEntry,
    ParsedEntry,
    PathSegment,
    RecursivePrefix,
    Redirect,
    Resolve,
    ResolutionResult,
    TooManyRedirects,
    TxtEntry,
    UnusedEntry,
)

__all__ = [
    "DnsLinkResolver",
    "ResolveOptions",
    "derive_path",
    "resolve",
    "validate_domain",
    "TargetError",
    "check_fqdn",
    "parse_target",
    "Aggregation",
    "aggregate",
    "parse_entries",
    "validate_entry",
    "DnsConfig",
    "DnsTxtLookup",
    "DohConfig",
    "DohTxtLookup",
    "TxtLookup",
    "create_lookup",
    "CODE_MEANING",
    "ENTRY_REASON_MEANING",
    "FQDN_REASON_MEANING",
    "DNS_PREFIX",
    "MAX_REDIRECTS",
    "REDIRECT_KEY",
    "TXT_PREFIX",
    "AnyLogEntry",
    "ConflictEntry",
    "DomainTarget",
    "EndlessRedirect",
    "EntryReason",
    "Fallback",
    "FQDNReason",
    "InvalidEntry",
    "InvalidRedirect",
    "LinkValue",
    "LogCode",
    "LogEntry",
    "ParsedEntry",
    "PathSegment",
    "RecursivePrefix",
    "Redirect",
    "Resolve",
    "ResolutionResult",
    "TooManyRedirects",
    "TxtEntry",
    "UnusedEntry",
]
