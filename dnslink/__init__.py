from loguru import logger

from dnslink.core.cancel import Cancellation
from dnslink.errors import (
    AbortError,
    DnsLinkError,
    DnsLookupError,
    DomainNotFoundError,
    InvalidDomainError,
    ResolveTimeoutError,
)
from dnslink.resolver import (
    DnsLinkResolver,
    LogCode,
    ResolutionResult,
    ResolveOptions,
    resolve,
)

__version__ = "0.1.0"

logger.disable("dnslink")

__all__ = [
    "Cancellation",
    "AbortError",
    "DnsLinkError",
    "DnsLookupError",
    "DomainNotFoundError",
    "InvalidDomainError",
    "ResolveTimeoutError",
    "DnsLinkResolver",
    "LogCode",
    "ResolutionResult",
    "ResolveOptions",
    "resolve",
]
