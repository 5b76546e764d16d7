import asyncio

import msgspec
import pytest

from dnslink.core.cancel import Cancellation
from dnslink.errors import AbortError, DnsLookupError, InvalidDomainError, ResolveTimeoutError
from dnslink.resolver import DnsLinkResolver, ResolveOptions, resolve
from dnslink.resolver.models import (
    ConflictEntry,
    EndlessRedirect,
    Fallback,
    InvalidEntry,
    InvalidRedirect,
    LinkValue,
    LogCode,
    PathSegment,
    RecursivePrefix,
    Redirect,
    Resolve,
    TooManyRedirects,
    UnusedEntry,
)

QM = "QmXNosdfz3WQUHncsYBTw7diwYzCibVhrJmEhNNaMPQBQF"


def _resolve(lookup, domain, **options):
    return asyncio.run(resolve(domain, options=ResolveOptions(lookup_txt=lookup, **options)))


def _codes(result):
    return [entry.code for entry in result.log]


def test_resolves_prefixed_entry(fake_lookup):
    fake_lookup.records["_dnslink.dnslink.dev"] = [f"dnslink=/ipfs/{QM}"]

    result = _resolve(fake_lookup, "dnslink.dev")

    assert result.links == {"ipfs": [LinkValue(value=QM, ttl=300)]}
    assert result.values() == {"ipfs": QM}
    assert result.first("ipfs") == QM
    assert result.first("ipns") is None
    assert result.log == [Resolve(domain="_dnslink.dnslink.dev")]
    assert result.path == []


def test_no_records_at_all(fake_lookup):
    result = _resolve(fake_lookup, "nothing.example")

    assert result.links == {}
    assert set(_codes(result)) <= {LogCode.FALLBACK, LogCode.RESOLVE}
    assert result.log == [
        Fallback(domain="nothing.example"),
        Resolve(domain="_dnslink.nothing.example"),
    ]


def test_falls_back_to_bare_domain(fake_lookup):
    fake_lookup.records["example.com"] = ["v=spf1 -all", "dnslink=/ipfs/QmBare"]

    result = _resolve(fake_lookup, "example.com")

    assert result.values() == {"ipfs": "QmBare"}
    assert _codes(result) == [LogCode.FALLBACK, LogCode.RESOLVE]


def test_invalid_prefixed_entries_trigger_fallback_and_are_logged(fake_lookup):
    fake_lookup.records["_dnslink.example.com"] = [f"dnslink=ipfs/{QM}"]
    fake_lookup.records["example.com"] = ["dnslink=/ipfs/QmBare"]

    result = _resolve(fake_lookup, "example.com")

    assert result.values() == {"ipfs": "QmBare"}
    assert result.log == [
        Fallback(domain="example.com"),
        InvalidEntry(entry=f"dnslink=ipfs/{QM}", reason="WRONG_START"),
        Resolve(domain="_dnslink.example.com"),
    ]


def test_usable_prefixed_entries_skip_fallback(fake_lookup):
    fake_lookup.records["_dnslink.example.com"] = ["dnslink=/ipfs/QmPrefixed"]
    fake_lookup.records["example.com"] = ["dnslink=/ipfs/QmBare"]

    result = _resolve(fake_lookup, "example.com", speculative_fallback=False)

    assert result.values() == {"ipfs": "QmPrefixed"}
    assert fake_lookup.calls == ["_dnslink.example.com"]


def test_speculative_fallback_queries_both_names(fake_lookup):
    fake_lookup.records["_dnslink.example.com"] = ["dnslink=/ipfs/QmPrefixed"]
    fake_lookup.delays["example.com"] = 10

    result = _resolve(fake_lookup, "example.com")

    assert result.values() == {"ipfs": "QmPrefixed"}
    assert fake_lookup.calls == ["_dnslink.example.com", "example.com"]
    assert fake_lookup.cancelled == ["example.com"]


def test_invalid_entry_is_logged(fake_lookup):
    fake_lookup.records["_dnslink.example.com"] = [
        f"dnslink=ipfs/{QM}",
        "dnslink=/ipns/example.org",
    ]

    result = _resolve(fake_lookup, "example.com")

    assert result.values() == {"ipns": "example.org"}
    assert result.log[0] == InvalidEntry(entry=f"dnslink=ipfs/{QM}", reason="WRONG_START")


def test_multiple_values_per_key_are_sorted(fake_lookup):
    fake_lookup.records["_dnslink.example.com"] = ["dnslink=/ipfs/b", "dnslink=/ipfs/a"]

    result = _resolve(fake_lookup, "example.com")

    assert [link.value for link in result.links["ipfs"]] == ["a", "b"]
    assert LogCode.CONFLICT_ENTRY not in _codes(result)


def test_redirect_is_followed(fake_lookup):
    fake_lookup.records["_dnslink.dnslink.dev"] = ["dnslink=/dns/website.ipfs.io"]
    fake_lookup.records["_dnslink.website.ipfs.io"] = ["dnslink=/ipfs/QmWebsite"]

    result = _resolve(fake_lookup, "dnslink.dev")

    assert "_dnslink.website.ipfs.io" in fake_lookup.calls
    assert result.values() == {"ipfs": "QmWebsite"}
    assert result.log == [
        Redirect(domain="_dnslink.dnslink.dev"),
        Resolve(domain="_dnslink.website.ipfs.io"),
    ]


def test_redirect_chain_collects_path(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com/foo?x=1"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/dns/c.com/bar"]
    fake_lookup.records["_dnslink.c.com"] = ["dnslink=/ipfs/QmC"]

    result = _resolve(fake_lookup, "a.com")

    assert result.values() == {"ipfs": "QmC"}
    assert result.log == [
        Redirect(domain="_dnslink.a.com"),
        Redirect(domain="_dnslink.b.com", pathname="/foo", search={"x": ["1"]}),
        Resolve(domain="_dnslink.c.com", pathname="/bar"),
    ]
    assert result.path == [
        PathSegment(pathname="/bar"),
        PathSegment(pathname="/foo", search={"x": ["1"]}),
    ]


def test_input_path_is_part_of_the_result(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/ipfs/QmA"]

    result = _resolve(fake_lookup, "a.com/index.html")

    assert result.path == [PathSegment(pathname="/index.html")]


def test_redirect_makes_other_entries_unused(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/ipfs/QmA", "dnslink=/dns/b.com"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/ipfs/QmB"]

    result = _resolve(fake_lookup, "a.com")

    assert result.values() == {"ipfs": "QmB"}
    assert UnusedEntry(entry="dnslink=/ipfs/QmA") in result.log


def test_conflicting_redirects_use_smallest(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/c.com", "dnslink=/dns/b.com"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/ipfs/QmB"]

    result = _resolve(fake_lookup, "a.com")

    assert result.values() == {"ipfs": "QmB"}
    conflicts = [entry for entry in result.log if isinstance(entry, ConflictEntry)]
    assert conflicts == [ConflictEntry(entry="dnslink=/dns/c.com")]


def test_endless_redirect(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/dns/a.com"]

    result = _resolve(fake_lookup, "a.com")

    assert result.links == {}
    assert result.log == [
        Redirect(domain="_dnslink.a.com"),
        Resolve(domain="_dnslink.b.com"),
        EndlessRedirect(domain="_dnslink.a.com"),
    ]


def test_self_redirect_is_endless(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/_dnslink.a.com"]

    result = _resolve(fake_lookup, "a.com")

    assert result.links == {}
    assert _codes(result)[-1] is LogCode.ENDLESS_REDIRECT


def test_too_many_redirects(fake_lookup):
    for i in range(40):
        fake_lookup.records[f"_dnslink.d{i}.com"] = [f"dnslink=/dns/d{i + 1}.com"]

    result = _resolve(fake_lookup, "d0.com", speculative_fallback=False)

    assert result.links == {}
    assert result.log[-1] == TooManyRedirects(domain="_dnslink.d32.com")
    assert result.log[-2] == Resolve(domain="_dnslink.d31.com")
    assert _codes(result).count(LogCode.REDIRECT) == 31
    assert len(fake_lookup.calls) == 32


def test_hop_bound_is_configurable(fake_lookup):
    for i in range(5):
        fake_lookup.records[f"_dnslink.d{i}.com"] = [f"dnslink=/dns/d{i + 1}.com"]

    result = _resolve(fake_lookup, "d0.com", max_redirects=2, speculative_fallback=False)

    assert _codes(result) == [LogCode.REDIRECT, LogCode.RESOLVE, LogCode.TOO_MANY_REDIRECTS]
    assert len(fake_lookup.calls) == 2


def test_invalid_redirect_resolves_current_domain(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/a..b", "dnslink=/ipfs/QmA"]

    result = _resolve(fake_lookup, "a.com")

    assert result.values() == {"ipfs": "QmA"}
    assert result.log == [
        InvalidRedirect(domain="a..b", reason="EMPTY_PART"),
        Resolve(domain="_dnslink.a.com"),
    ]


def test_redirect_with_space_is_invalid(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com c.com"]

    result = _resolve(fake_lookup, "a.com")

    assert result.links == {}
    assert result.log[0] == InvalidRedirect(domain="b.com c.com", reason="INVALID_CHARACTER")


def test_double_prefixed_redirect(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/_dnslink._dnslink.b.com"]

    result = _resolve(fake_lookup, "a.com")

    assert result.links == {}
    assert result.log == [
        RecursivePrefix(domain="_dnslink._dnslink.b.com"),
        Resolve(domain="_dnslink.a.com"),
    ]


def test_non_recursive_keeps_redirect_key(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com", "dnslink=/ipfs/QmA"]

    result = _resolve(fake_lookup, "a.com", recursive=False)

    assert result.values() == {"dns": "b.com", "ipfs": "QmA"}
    assert "_dnslink.b.com" not in fake_lookup.calls
    assert result.log == [Resolve(domain="_dnslink.a.com")]


def test_invalid_input_domain_raises_before_lookup(fake_lookup):
    with pytest.raises(InvalidDomainError) as exc_info:
        _resolve(fake_lookup, "a..b")

    assert exc_info.value.reason == "EMPTY_PART"
    assert fake_lookup.calls == []


def test_lookup_errors_propagate(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = DnsLookupError("_dnslink.a.com", rcode=2)

    with pytest.raises(DnsLookupError):
        _resolve(fake_lookup, "a.com")


def test_failing_fallback_propagates(fake_lookup):
    fake_lookup.records["a.com"] = DnsLookupError("a.com")

    with pytest.raises(DnsLookupError):
        _resolve(fake_lookup, "a.com", speculative_fallback=False)


def test_precancelled_token_issues_no_query(fake_lookup):
    token = Cancellation()
    token.cancel()

    with pytest.raises(AbortError):
        _resolve(fake_lookup, "a.com", cancellation=token)
    assert fake_lookup.calls == []


def test_cancel_aborts_inflight_queries(fake_lookup):
    fake_lookup.delays["_dnslink.a.com"] = 10
    fake_lookup.delays["a.com"] = 10

    async def main():
        token = Cancellation()
        resolver = DnsLinkResolver.create(lookup_txt=fake_lookup)
        task = asyncio.ensure_future(resolver.resolve("a.com", cancellation=token))
        await asyncio.sleep(0.01)
        token.cancel()
        with pytest.raises(AbortError):
            await task

    asyncio.run(main())
    assert sorted(fake_lookup.cancelled) == ["_dnslink.a.com", "a.com"]


def test_timeout_is_a_deadline(fake_lookup):
    fake_lookup.delays["_dnslink.a.com"] = 10

    with pytest.raises(ResolveTimeoutError):
        _resolve(fake_lookup, "a.com", timeout=0.05)


def test_task_cancellation_propagates(fake_lookup):
    fake_lookup.delays["_dnslink.a.com"] = 10

    async def main():
        task = asyncio.ensure_future(
            resolve("a.com", options=ResolveOptions(lookup_txt=fake_lookup))
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())


def test_concurrent_resolutions_are_independent(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/ipfs/QmB"]
    fake_lookup.records["_dnslink.c.com"] = ["dnslink=/ipfs/QmC"]

    async def main():
        resolver = DnsLinkResolver.create(lookup_txt=fake_lookup)
        return await asyncio.gather(resolver.resolve("a.com"), resolver.resolve("c.com"))

    first, second = asyncio.run(main())
    assert first.values() == {"ipfs": "QmB"}
    assert second.values() == {"ipfs": "QmC"}
    assert second.log == [Resolve(domain="_dnslink.c.com")]


def test_result_serializes_with_codes(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/ipfs/QmA", "dnslink=/ipfs/QmA"]

    result = _resolve(fake_lookup, "a.com")

    assert msgspec.to_builtins(result) == {
        "links": {"ipfs": [{"value": "QmA", "ttl": 300}]},
        "path": [],
        "log": [
            {"code": "CONFLICT_ENTRY", "entry": "dnslink=/ipfs/QmA"},
            {"code": "RESOLVE", "domain": "_dnslink.a.com"},
        ],
        "txt_entries": [{"value": "/ipfs/QmA", "ttl": 300}],
    }


def test_scheme_shaped_redirect_is_invalid(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/https://b.com/x", "dnslink=/ipfs/QmA"]
    fake_lookup.records["_dnslink.https:"] = ["dnslink=/ipfs/QmWrong"]

    result = _resolve(fake_lookup, "a.com", speculative_fallback=False)

    assert result.values() == {"ipfs": "QmA"}
    assert result.log == [
        InvalidRedirect(domain="https://b.com/x", reason="INVALID_LABEL"),
        Resolve(domain="_dnslink.a.com"),
    ]
    assert fake_lookup.calls == ["_dnslink.a.com"]


def test_mixed_case_cycle_is_endless(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/B.com"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/dns/A.com"]

    result = _resolve(fake_lookup, "a.com", speculative_fallback=False)

    assert result.log == [
        Redirect(domain="_dnslink.a.com"),
        Resolve(domain="_dnslink.b.com"),
        EndlessRedirect(domain="_dnslink.a.com"),
    ]
    assert fake_lookup.calls == ["_dnslink.a.com", "_dnslink.b.com"]


def test_txt_entries_are_sorted_by_key_then_value(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = [
        "dnslink=/ipns/b",
        "dnslink=/ipfs/QmB",
        "dnslink=/ipfs/QmA",
    ]

    result = _resolve(fake_lookup, "a.com")

    assert result.txt_entries == [
        LinkValue(value="/ipfs/QmA", ttl=300),
        LinkValue(value="/ipfs/QmB", ttl=300),
        LinkValue(value="/ipns/b", ttl=300),
    ]


def test_txt_entries_follow_the_final_domain(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/b.com", "dnslink=/ipfs/QmA"]
    fake_lookup.records["_dnslink.b.com"] = ["dnslink=/ipfs/QmB"]

    result = _resolve(fake_lookup, "a.com")

    assert result.txt_entries == [LinkValue(value="/ipfs/QmB", ttl=300)]


def test_failed_resolution_has_no_txt_entries(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/dns/a.com"]

    result = _resolve(fake_lookup, "a.com")

    assert result.txt_entries == []


def test_input_with_port_raises(fake_lookup):
    with pytest.raises(InvalidDomainError) as exc_info:
        _resolve(fake_lookup, "a.com:8080")

    assert exc_info.value.reason == "INVALID_LABEL"
    assert fake_lookup.calls == []


def test_abandoned_fallback_is_finished_before_returning(fake_lookup):
    fake_lookup.records["_dnslink.a.com"] = ["dnslink=/ipfs/QmA"]
    fake_lookup.delays["a.com"] = 10

    async def main():
        result = await resolve("a.com", options=ResolveOptions(lookup_txt=fake_lookup))
        pending = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
        return result, pending

    result, pending = asyncio.run(main())

    assert result.values() == {"ipfs": "QmA"}
    assert pending == []
    assert fake_lookup.cancelled == ["a.com"]
