from __future__ import annotations

import asyncio
import dataclasses as dc

import pytest

from dnslink.errors import DomainNotFoundError
from dnslink.resolver.models import TxtEntry


@dc.dataclass
class FakeTxtLookup:
    """
    In-memory TXT lookup. Missing names raise DomainNotFoundError,
    exception values are raised as-is.
    """

    records: dict[str, list[str] | BaseException] = dc.field(default_factory=dict)
    ttl: int = 300
    delays: dict[str, float] = dc.field(default_factory=dict)
    calls: list[str] = dc.field(default_factory=list)
    cancelled: list[str] = dc.field(default_factory=list)

    async def __call__(self, domain: str, *, timeout: float | None = None) -> list[TxtEntry]:
        self.calls.append(domain)
        if delay := self.delays.get(domain):
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled.append(domain)
                raise

        answer = self.records.get(domain)
        if answer is None:
            raise DomainNotFoundError(domain)
        if isinstance(answer, BaseException):
            raise answer
        return [TxtEntry(text=text, ttl=self.ttl) for text in answer]


@pytest.fixture
def fake_lookup() -> FakeTxtLookup:
    return FakeTxtLookup()
