"""Async client for Circle's Iris attestation API."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from ..config import settings
from ..core.bridge.models import AttestationPoll
from .base import AttestationClient

logger = logging.getLogger(__name__)


class IrisAttestationClient(AttestationClient):
    """Thin wrapper around ``GET {base_url}/{messageHash}``.

    Every call is a single request: transport failures and non-2xx answers
    come back as an error poll, never as a silent retry.
    """

    name = "iris"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.attestation_api_url).rstrip("/")
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self.timeout_s)
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
        }

    async def fetch_attestation(self, message_hash: str) -> AttestationPoll:
        url = f"{self.base_url}/{message_hash}"
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.RequestError as exc:
            logger.warning("Attestation request failed for %s: %s", message_hash, exc)
            return AttestationPoll.failed(f"{type(exc).__name__}: {exc}")

        if response.status_code >= 400:
            return AttestationPoll.failed(f"API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return AttestationPoll.failed("API error: invalid JSON body")

        status = str(data.get("status") or "").lower()
        attestation = data.get("attestation")
        if status == "complete" and attestation and attestation != "PENDING":
            return AttestationPoll.complete(attestation)

        # "pending_confirmations" and friends
        return AttestationPoll.pending()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
