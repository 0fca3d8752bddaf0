"""Signer helpers.

Signer errors of any kind are reported as ``SignerUnavailable`` so the
caller can decide whether to re-prompt; nothing here retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nsite_deploy.core.async_utils import with_timeout
from nsite_deploy.errors import SignerUnavailable

if TYPE_CHECKING:
    from nsite_deploy.sync.models import EventTemplate, SignedEvent

    from .base import Signer

logger = logging.getLogger(__name__)


class SerializedSigner:
    """Wrap a signer so only one signing call runs at a time.

    For signers that cannot handle concurrent requests, such as a remote
    session or a hardware device.
    """

    def __init__(self, inner: Signer) -> None:
        self.inner = inner
        self._lock = asyncio.Lock()
        self._pubkey: str | None = None

    async def get_public_key(self) -> str:
        if self._pubkey is None:
            async with self._lock:
                if self._pubkey is None:
                    self._pubkey = await self.inner.get_public_key()
        return self._pubkey

    async def sign_event(self, template: EventTemplate) -> SignedEvent:
        async with self._lock:
            return await self.inner.sign_event(template)


async def sign(
    signer: Signer,
    template: EventTemplate,
    timeout: float | None = None,
) -> SignedEvent:
    """Sign *template*, mapping any failure to ``SignerUnavailable``."""
    try:
        return await with_timeout(signer.sign_event(template), timeout)
    except SignerUnavailable:
        raise
    except TimeoutError as exc:
        raise SignerUnavailable(
            f"Signer timed out after {timeout}s (kind {template.kind})"
        ) from exc
    except Exception as exc:
        logger.debug("Signing kind %d failed", template.kind, exc_info=True)
        raise SignerUnavailable(f"Signing failed: {exc}") from exc


async def get_public_key(signer: Signer, timeout: float | None = None) -> str:
    """Fetch the signer's public key, mapping failures to ``SignerUnavailable``."""
    try:
        return await with_timeout(signer.get_public_key(), timeout)
    except SignerUnavailable:
        raise
    except TimeoutError as exc:
        raise SignerUnavailable(
            f"Signer timed out after {timeout}s fetching public key"
        ) from exc
    except Exception as exc:
        raise SignerUnavailable(f"Public key unavailable: {exc}") from exc
