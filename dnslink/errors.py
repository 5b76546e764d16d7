from __future__ import annotations


class DnsLinkError(Exception): ...


class InvalidDomainError(DnsLinkError, ValueError):
    '''
    Raised before any lookup when the input domain is not a valid FQDN.

    Parameters
    ----------
    domain : str
        _The (normalized) domain that failed validation_
    reason : str
        _One of the `FQDNReason` codes_
    '''

    def __init__(self, domain: str, reason: str) -> None:
        super().__init__(f'Invalid input domain: {domain} ({reason})')
        self.domain = domain
        self.reason = reason


class DnsLookupError(DnsLinkError):
    '''
    A TXT lookup failed for a reason other than the name not existing.
    '''

    def __init__(
        self,
        domain: str,
        message: str | None = None,
        *,
        rcode: int | None = None,
    ) -> None:
        super().__init__(message or f'TXT lookup failed for {domain}')
        self.domain = domain
        self.rcode = rcode


class DomainNotFoundError(DnsLookupError):
    '''
    The queried name does not exist (NXDOMAIN).
    '''

    def __init__(self, domain: str) -> None:
        super().__init__(domain, f'Domain {domain} does not exist', rcode=3)


class AbortError(DnsLinkError):
    def __init__(self, message: str = 'The operation was aborted') -> None:
        super().__init__(message)


class ResolveTimeoutError(AbortError, TimeoutError):
    def __init__(self, timeout: float | None = None) -> None:
        message = 'The operation timed out'
        if timeout is not None:
            message = f'The operation timed out after {timeout}s'
        super().__init__(message)
        self.timeout = timeout
