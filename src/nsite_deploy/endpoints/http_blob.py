"""Blob endpoint adapter speaking the content-addressed HTTP upload API.

``PUT {base}/upload`` stores a blob, ``HEAD {base}/{sha256}`` checks for
one.  Uploads carry an ``Authorization: Nostr <base64 event>`` header
signed by the injected signer.
"""

import base64
import json
import logging
import threading
from typing import Any, Callable, TypeVar

import requests

from nsite_deploy import __version__
from nsite_deploy.core.async_utils import run_sync
from nsite_deploy.errors import (
    EndpointError,
    EndpointNetworkFailure,
    EndpointTimeout,
    SignerUnavailable,
)
from nsite_deploy.sync.events import blob_upload_auth
from nsite_deploy.sync.models import BlobPutResult, FailureKind
from nsite_deploy.validators import validate_content_hash

from .base import Signer
from .signer import sign

T = TypeVar("T")
logger = logging.getLogger(__name__)


class HttpBlobEndpoint:
    def __init__(
        self,
        url: str,
        signer: Signer | None = None,
        timeout: tuple[float, float] = (10, 60),
        verify: bool = True,
    ):
        self.base_url = url.rstrip("/")
        self.endpoint_id = self.base_url
        self.signer = signer
        self.timeout = timeout
        self.verify = verify
        self._thread_local = threading.local()

    def __repr__(self) -> str:
        return f"HttpBlobEndpoint({self.base_url!r})"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = self.verify
        session.headers["User-Agent"] = f"nsite-deploy/{__version__}"
        return session

    def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking request, translating transport errors."""
        try:
            return func(*args)
        except requests.Timeout as exc:
            raise EndpointTimeout(self.endpoint_id, str(exc)) from exc
        except requests.RequestException as exc:
            raise EndpointNetworkFailure(self.endpoint_id, str(exc)) from exc

    def _head(self, content_hash: str) -> int:
        response = self._get_session().head(
            f"{self.base_url}/{content_hash}",
            timeout=self.timeout,
            allow_redirects=True,
        )
        return response.status_code

    def _upload(
        self, data: bytes, headers: dict[str, str]
    ) -> requests.Response:
        return self._get_session().put(
            f"{self.base_url}/upload",
            data=data,
            headers=headers,
            timeout=self.timeout,
        )

    async def _authorization(self, content_hash: str) -> str:
        event = await sign(self.signer, blob_upload_auth(content_hash))
        encoded = base64.b64encode(
            json.dumps(event.model_dump()).encode("utf-8")
        ).decode("ascii")
        return f"Nostr {encoded}"

    async def exists(self, content_hash: str) -> bool:
        """
        Whether the endpoint already serves *content_hash*.

        Raises:
            EndpointTimeout, EndpointNetworkFailure: On transport errors.
        """
        status = await run_sync(self._call, self._head, content_hash)
        return status == 200

    async def put(self, content_hash: str, data: bytes) -> BlobPutResult:
        """
        Upload *data* unless the endpoint already has it.

        HTTP refusals come back as a failed ``BlobPutResult``: 4xx as
        ``rejected``, 5xx as ``network``.  Transport errors raise
        ``EndpointTimeout`` or ``EndpointNetworkFailure``.  A failed
        existence check is not fatal; the upload is tried anyway.
        """
        ok, reason = validate_content_hash(content_hash)
        if not ok:
            return BlobPutResult(
                success=False, error=reason, failure=FailureKind.REJECTED
            )

        try:
            if await self.exists(content_hash):
                logger.debug(
                    "%s already has %s", self.endpoint_id, content_hash
                )
                return BlobPutResult(success=True, already_exists=True)
        except EndpointError as exc:
            logger.debug("Preflight failed, uploading anyway: %s", exc)

        headers = {
            "Content-Type": "application/octet-stream",
            "X-SHA-256": content_hash,
        }
        if self.signer is not None:
            try:
                headers["Authorization"] = await self._authorization(
                    content_hash
                )
            except SignerUnavailable as exc:
                return BlobPutResult(
                    success=False,
                    error=str(exc),
                    failure=FailureKind.REJECTED,
                )

        response = await run_sync(self._call, self._upload, data, headers)
        if response.ok:
            return BlobPutResult(success=True)

        detail = response.text.strip()[:200] or response.reason
        failure = (
            FailureKind.REJECTED
            if 400 <= response.status_code < 500
            else FailureKind.NETWORK
        )
        return BlobPutResult(
            success=False,
            error=f"HTTP {response.status_code}: {detail}",
            failure=failure,
        )
