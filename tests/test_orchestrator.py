"""End-to-end tests for SyncOrchestrator using in-memory endpoints."""

import pytest

from fakes import FakeBlobEndpoint, FakeEventEndpoint, FakeSigner, advertisement, sha
from nsite_deploy.sync.events import (
    DELETE_KIND,
    FILE_KIND,
    NAMED_MANIFEST_KIND,
    ROOT_MANIFEST_KIND,
)
from nsite_deploy.sync.ignore import IgnoreRules
from nsite_deploy.sync.models import (
    ManifestMetadata,
    PropagationStrength,
    SyncPhase,
)
from nsite_deploy.sync.orchestrator import SyncOrchestrator
from nsite_deploy.sync.scanner import LocalDirectory


@pytest.fixture
def deployed_site(site_dir):
    """Local index+about; remote index (same content) + old."""
    root = site_dir({"index.html": "A", "about.html": "B"})
    relay = FakeEventEndpoint(
        events=(
            advertisement("/index.html", sha("A")),
            advertisement("/old.html", sha("C")),
        )
    )
    return root, relay


class TestFullRun:
    async def test_upload_unchanged_and_purge(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint()
        orchestrator = SyncOrchestrator(
            make_ctx([blob], [relay]), purge=True, assume_yes=True
        )

        report = await orchestrator.run(root)

        assert report.phase == SyncPhase.DONE
        assert [r.file.path for r in report.results] == ["/about.html"]
        assert [r.path for r in report.unchanged] == ["/index.html"]
        assert [r.path for r in report.to_delete] == ["/old.html"]
        assert list(blob.blobs) == [sha("B")]

        assert report.manifest.paths == {
            "/about.html": sha("B"),
            "/index.html": sha("A"),
        }
        assert report.manifest_published
        assert [r.path for r in report.deleted] == ["/old.html"]
        assert relay.published_kinds() == [FILE_KIND, ROOT_MANIFEST_KIND, DELETE_KIND]
        assert report.summary() == {
            "uploaded": 1,
            "unchanged": 1,
            "deleted": 1,
            "failed": 0,
            "manifest_event_id": report.manifest_event_id,
        }
        assert report.errors == []
        assert orchestrator.history == [
            SyncPhase.IDLE,
            SyncPhase.SCANNING_LOCAL,
            SyncPhase.FETCHING_REMOTE,
            SyncPhase.COMPARING,
            SyncPhase.UPLOADING,
            SyncPhase.PUBLISHING_MANIFEST,
            SyncPhase.PURGING,
            SyncPhase.DONE,
        ]

    async def test_second_run_is_a_no_op(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint()
        ctx = make_ctx([blob], [relay])
        await SyncOrchestrator(ctx, purge=True, assume_yes=True).run(root)

        report = await SyncOrchestrator(ctx, purge=True, assume_yes=True).run(root)

        assert report.results == []
        assert sorted(r.path for r in report.unchanged) == [
            "/about.html",
            "/index.html",
        ]
        assert report.to_delete == []
        assert blob.puts == [sha("B")]

    async def test_propagation_reported(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint(present=(sha("A"),))

        report = await SyncOrchestrator(
            make_ctx([blob], [relay]), check_availability=True
        ).run(root)

        stats = report.propagation
        assert stats.total_files == 2
        assert stats.relay_strength == PropagationStrength.FRAGILE
        assert stats.files_on_all_servers == 1

    async def test_propagation_without_availability_check(
        self, make_ctx, deployed_site
    ):
        root, relay = deployed_site

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay])
        ).run(root)

        assert report.propagation.relay_strength == PropagationStrength.FRAGILE
        assert report.propagation.server_strength is None

    async def test_case_duplicates_deploy_once(self, make_ctx, site_dir):
        root = site_dir({"A.html": "upper", "a.html": "lower"})
        blob = FakeBlobEndpoint()

        report = await SyncOrchestrator(
            make_ctx([blob], [FakeEventEndpoint()])
        ).run(root)

        assert [r.file.path for r in report.results] == ["/A.html"]
        assert report.manifest.paths == {"/A.html": sha("upper")}
        assert list(blob.blobs) == [sha("upper")]

    async def test_manifest_metadata(self, make_ctx, site_dir):
        relay = FakeEventEndpoint()
        metadata = ManifestMetadata(title="Home", relays=["wss://relay-a.test"])

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay]), metadata=metadata
        ).run(site_dir({"index.html": "x"}))

        assert report.manifest.title == "Home"
        manifest_event = relay.published[-1][0]
        assert manifest_event.tag_value("title") == "Home"
        assert manifest_event.tag_value("relay") == "wss://relay-a.test"


class TestDegradedRuns:
    async def test_unreadable_root_fails(self, make_ctx, tmp_path):
        relay = FakeEventEndpoint()
        orchestrator = SyncOrchestrator(make_ctx([FakeBlobEndpoint()], [relay]))

        report = await orchestrator.run(tmp_path / "missing")

        assert report.phase == SyncPhase.FAILED
        assert "not a directory" in report.errors[0]
        assert orchestrator.history[-1] == SyncPhase.FAILED
        assert relay.queries == []

    async def test_remote_fetch_failure_uploads_everything(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A", "about.html": "B"})
        relay = FakeEventEndpoint(fail_query=True)

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay])
        ).run(root)

        assert report.phase == SyncPhase.DONE
        assert len(report.uploaded) == 2
        assert any("Remote fetch failed" in e for e in report.errors)
        assert report.propagation is None

    async def test_unreadable_file_reported(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A"})
        (root / "broken.html").symlink_to(root / "gone.html")

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [FakeEventEndpoint()])
        ).run(root)

        assert report.phase == SyncPhase.DONE
        assert [r.file.path for r in report.results] == ["/index.html"]
        assert report.local_errors[0].startswith("/broken.html")

    async def test_no_blob_endpoints(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A"})
        relay = FakeEventEndpoint()

        report = await SyncOrchestrator(make_ctx([], [relay])).run(root)

        assert report.phase == SyncPhase.DONE
        assert report.errors == ["No blob endpoints configured for upload"]
        assert [r.file.path for r in report.failed] == ["/index.html"]
        assert report.manifest is None
        assert relay.published == []

    async def test_partial_upload_failure(self, make_ctx, site_dir):
        root = site_dir({"a.html": "A", "b.html": "B", "c.html": "C"})
        blob = FakeBlobEndpoint(fail_hashes=(sha("B"),))

        report = await SyncOrchestrator(
            make_ctx([blob], [FakeEventEndpoint()])
        ).run(root)

        assert [r.file.path for r in report.failed] == ["/b.html"]
        assert sorted(report.manifest.paths) == ["/a.html", "/c.html"]

    async def test_signer_offline(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A"})
        ctx = make_ctx(
            [FakeBlobEndpoint()], [FakeEventEndpoint()], signer=FakeSigner(fail=True)
        )

        report = await SyncOrchestrator(ctx).run(root)

        assert report.phase == SyncPhase.DONE
        assert len(report.uploaded) == 1
        assert not report.uploaded[0].event_published
        assert any("Manifest not signed" in e for e in report.errors)
        assert report.manifest_event_id is None

    async def test_manifest_rejected(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A"})

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [FakeEventEndpoint(reject=True)])
        ).run(root)

        assert not report.manifest_published
        assert "Manifest was not accepted by any event endpoint" in report.errors


class TestModes:
    async def test_dry_run_changes_nothing(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint()
        orchestrator = SyncOrchestrator(
            make_ctx([blob], [relay]), purge=True, assume_yes=True
        )

        report = await orchestrator.run(root, dry_run=True)

        assert report.dry_run
        assert [r.path for r in report.to_upload] == ["/about.html"]
        assert [r.path for r in report.to_delete] == ["/old.html"]
        assert report.results == []
        assert blob.puts == []
        assert relay.published == []
        assert SyncPhase.UPLOADING not in orchestrator.history

    async def test_force_reuploads_unchanged(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint()

        report = await SyncOrchestrator(
            make_ctx([blob], [relay]), force=True
        ).run(root)

        assert sorted(r.file.path for r in report.results) == [
            "/about.html",
            "/index.html",
        ]
        assert report.unchanged == []
        assert sorted(report.manifest.paths) == ["/about.html", "/index.html"]

    async def test_named_site_isolated_from_root(self, make_ctx, deployed_site):
        root, relay = deployed_site

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay], site_id="blog"),
            purge=True,
            assume_yes=True,
        ).run(root)

        assert report.site_id == "blog"
        assert len(report.uploaded) == 2
        assert report.to_delete == []
        assert NAMED_MANIFEST_KIND in relay.published_kinds()
        assert DELETE_KIND not in relay.published_kinds()

    async def test_prepared_directory_source(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A", "draft.html": "D"})
        directory = LocalDirectory(root, ignore=IgnoreRules(["draft.html"]))

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [FakeEventEndpoint()])
        ).run(directory)

        assert [r.file.path for r in report.results] == ["/index.html"]

    async def test_fallback_page(self, make_ctx, site_dir):
        root = site_dir({"index.html": "shell"})
        blob = FakeBlobEndpoint()

        report = await SyncOrchestrator(
            make_ctx([blob], [FakeEventEndpoint()]), fallback="/index.html"
        ).run(root)

        assert report.manifest.paths == {
            "/404.html": sha("shell"),
            "/index.html": sha("shell"),
        }


class TestPurgeConfirmation:
    async def test_without_confirmation_nothing_deleted(self, make_ctx, deployed_site):
        root, relay = deployed_site

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay]), purge=True
        ).run(root)

        assert not report.purge.confirmed
        assert [r.path for r in report.purge.orphans] == ["/old.html"]
        assert DELETE_KIND not in relay.published_kinds()

    async def test_sync_confirm_declined(self, make_ctx, deployed_site):
        root, relay = deployed_site
        asked = []

        def confirm(orphans):
            asked.append([o.path for o in orphans])
            return False

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay]), purge=True, confirm=confirm
        ).run(root)

        assert asked == [["/old.html"]]
        assert report.deleted == []

    async def test_async_confirm_accepted(self, make_ctx, deployed_site):
        root, relay = deployed_site

        async def confirm(orphans):
            return True

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay]), purge=True, confirm=confirm
        ).run(root)

        assert [r.path for r in report.deleted] == ["/old.html"]

    async def test_purge_patterns(self, make_ctx, site_dir):
        root = site_dir({"index.html": "A"})
        relay = FakeEventEndpoint(
            events=(
                advertisement("/blog/old.html", sha("1")),
                advertisement("/keep.txt", sha("2")),
            )
        )

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [relay]),
            purge=True,
            assume_yes=True,
            purge_patterns=["/blog/*"],
        ).run(root)

        assert [r.path for r in report.deleted] == ["/blog/old.html"]

    async def test_no_confirmation_asked_without_orphans(self, make_ctx, site_dir):
        def confirm(orphans):
            raise AssertionError("should not ask")

        report = await SyncOrchestrator(
            make_ctx([FakeBlobEndpoint()], [FakeEventEndpoint()]),
            purge=True,
            confirm=confirm,
        ).run(site_dir({"index.html": "A"}))

        assert report.purge.success


class TestCancellation:
    async def test_cancel_before_run(self, make_ctx, deployed_site):
        root, relay = deployed_site
        blob = FakeBlobEndpoint()
        orchestrator = SyncOrchestrator(make_ctx([blob], [relay]))
        orchestrator.cancel()

        report = await orchestrator.run(root)

        assert report.cancelled
        assert report.phase == SyncPhase.DONE
        assert blob.puts == []
        assert relay.published == []

    async def test_cancel_during_upload(self, make_ctx, site_dir):
        root = site_dir({f"{i}.html": str(i) for i in range(4)})
        blob = FakeBlobEndpoint()
        relay = FakeEventEndpoint()

        def on_progress(snapshot):
            if snapshot.completed == 1:
                orchestrator.cancel()

        orchestrator = SyncOrchestrator(
            make_ctx([blob], [relay], concurrency=1, on_progress=on_progress)
        )

        report = await orchestrator.run(root)

        assert report.cancelled
        assert len(report.uploaded) == 1
        assert len(report.skipped) == 3
        assert report.failed == []
        assert report.manifest is None
        assert ROOT_MANIFEST_KIND not in relay.published_kinds()
