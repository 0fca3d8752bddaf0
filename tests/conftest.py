"""Shared pytest fixtures for nsite-deploy tests."""

import pytest

from fakes import FakeBlobEndpoint, FakeEventEndpoint, FakeSigner
from nsite_deploy.sync.context import SyncContext


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def blob():
    return FakeBlobEndpoint()


@pytest.fixture
def relay():
    return FakeEventEndpoint()


@pytest.fixture
def make_ctx(signer):
    """Factory for SyncContext with fake collaborators."""

    def _make(blobs=(), relays=(), **kwargs):
        kwargs.setdefault("request_timeout", 2.0)
        return SyncContext(
            signer=kwargs.pop("signer", signer),
            blob_endpoints=blobs,
            event_endpoints=relays,
            **kwargs,
        )

    return _make


@pytest.fixture
def site_dir(tmp_path):
    """Factory that writes a dict of site files under tmp_path/site."""

    def _make(files: dict[str, str | bytes]):
        root = tmp_path / "site"
        root.mkdir(exist_ok=True)
        for rel, content in files.items():
            target = root / rel.lstrip("/")
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                content = content.encode()
            target.write_bytes(content)
        return root

    return _make
