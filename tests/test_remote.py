"""Tests for remote state reconstruction."""

import pytest

from fakes import (
    PUBKEY,
    FakeBlobEndpoint,
    FakeEventEndpoint,
    FakeSigner,
    advertisement,
    sha,
)
from nsite_deploy.errors import RemoteFetchFailure
from nsite_deploy.sync.events import FILE_KIND
from nsite_deploy.sync.models import FileRecord
from nsite_deploy.sync.remote import (
    check_availability,
    fetch_remote_files,
    merge_remote_records,
)


class TestMerge:
    def test_newest_event_wins(self):
        old = advertisement("/a.html", sha("v1"), created_at=100)
        new = advertisement("/a.html", sha("v2"), created_at=200)

        [record] = merge_remote_records([("r1", new), ("r2", old)])

        assert record.content_hash == sha("v2")
        assert record.remote_event_id == new.id
        assert record.created_at == 200

    def test_found_on_lists_endpoints_serving_winner(self):
        old = advertisement("/a.html", sha("v1"), created_at=100)
        new = advertisement("/a.html", sha("v2"), created_at=200)

        [record] = merge_remote_records(
            [("r1", new), ("r2", old), ("r3", new)]
        )

        assert record.found_on_event_endpoints == frozenset({"r1", "r3"})

    def test_case_variants_collapse(self):
        upper = advertisement("/Index.html", sha("a"))
        lower = advertisement("/index.html", sha("b"))

        records = merge_remote_records([("r", lower), ("r", upper)])

        assert [r.path for r in records] == ["/Index.html"]

    def test_site_filtering(self):
        root = advertisement("/a", sha("root"))
        blog = advertisement("/a", sha("blog"), site="blog")

        observed = [("r", root), ("r", blog)]
        assert [r.content_hash for r in merge_remote_records(observed)] == [
            sha("root")
        ]
        assert [
            r.content_hash
            for r in merge_remote_records(observed, "blog")
        ] == [sha("blog")]

    def test_invalid_events_dropped(self):
        bad_hash = advertisement("/a", "not-a-hash")
        bad_path = advertisement("/../etc/passwd", sha("x"))
        good = advertisement("/b", sha("b"))

        records = merge_remote_records(
            [("r", bad_hash), ("r", bad_path), ("r", good)]
        )

        assert [r.path for r in records] == ["/b"]

    def test_sorted_by_path(self):
        events = [advertisement(p, sha(p)) for p in ("/z", "/a", "/m")]
        records = merge_remote_records(("r", e) for e in events)
        assert [r.path for r in records] == ["/a", "/m", "/z"]


class TestFetch:
    async def test_queries_signer_pubkey(self, make_ctx):
        relay = FakeEventEndpoint(events=(advertisement("/a", sha("a")),))

        records = await fetch_remote_files(make_ctx([], [relay]))

        assert relay.queries == [{"kinds": [FILE_KIND], "authors": [PUBKEY]}]
        assert [r.path for r in records] == ["/a"]
        assert records[0].found_on_event_endpoints == frozenset(
            {relay.endpoint_id}
        )

    async def test_other_authors_ignored(self, make_ctx):
        foreign = advertisement("/a", sha("a"), pubkey="cd" * 32)
        relay = FakeEventEndpoint(events=(foreign,))
        assert await fetch_remote_files(make_ctx([], [relay])) == []

    async def test_partial_endpoint_failure_tolerated(self, make_ctx):
        good = FakeEventEndpoint(
            "wss://good.test", events=(advertisement("/a", sha("a")),)
        )
        bad = FakeEventEndpoint("wss://bad.test", fail_query=True)

        records = await fetch_remote_files(make_ctx([], [bad, good]))

        assert [r.path for r in records] == ["/a"]

    async def test_all_endpoints_failing_raises(self, make_ctx):
        ctx = make_ctx([], [FakeEventEndpoint(fail_query=True)])
        with pytest.raises(RemoteFetchFailure, match="All 1"):
            await fetch_remote_files(ctx)

    async def test_no_endpoints_raises(self, make_ctx):
        with pytest.raises(RemoteFetchFailure):
            await fetch_remote_files(make_ctx([], []))

    async def test_signer_failure_raises(self, make_ctx):
        ctx = make_ctx([], [FakeEventEndpoint()], signer=FakeSigner(fail=True))
        with pytest.raises(RemoteFetchFailure, match="signer offline"):
            await fetch_remote_files(ctx)

    async def test_slow_endpoint_times_out(self, make_ctx):
        slow = FakeEventEndpoint("wss://slow.test", delay=1.0)
        fast = FakeEventEndpoint(
            "wss://fast.test", events=(advertisement("/a", sha("a")),)
        )
        ctx = make_ctx([], [slow, fast], request_timeout=0.05)

        records = await fetch_remote_files(ctx)

        assert [r.path for r in records] == ["/a"]


class TestAvailability:
    async def test_marks_endpoints_holding_content(self, make_ctx):
        a = FakeBlobEndpoint("https://a.test", present=(sha("x"),))
        b = FakeBlobEndpoint("https://b.test")
        records = [
            FileRecord(path="/x", content_hash=sha("x")),
            FileRecord(path="/y", content_hash=sha("y")),
        ]

        checked = await check_availability(make_ctx([a, b]), records)

        assert checked[0].available_on_blob_endpoints == frozenset({"https://a.test"})
        assert checked[1].available_on_blob_endpoints == frozenset()

    async def test_probe_errors_count_as_missing(self, make_ctx):
        blob = FakeBlobEndpoint()

        async def broken(content_hash):
            raise ConnectionError("down")

        blob.exists = broken
        [checked] = await check_availability(
            make_ctx([blob]), [FileRecord(path="/x", content_hash=sha("x"))]
        )
        assert checked.available_on_blob_endpoints == frozenset()

    async def test_without_blob_endpoints_unchanged(self, make_ctx):
        records = [FileRecord(path="/x", content_hash=sha("x"))]
        assert await check_availability(make_ctx([]), records) == records
