"""
Content-addressed storage of credentials on IPFS.

Talks to an IPFS node through its HTTP RPC API (``/api/v0``). Every call is
bounded by a timeout; failures surface as ``UpstreamUnavailable``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vc_trust.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    """External content-addressed blob store."""

    def add_json(self, data: Any) -> str:
        ...

    def fetch_json(self, address: str) -> Any:
        ...

    def is_available(self) -> bool:
        ...


class IPFSClient:
    """Minimal IPFS HTTP API client."""

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL of the node's HTTP API.
            timeout: Per-request timeout in seconds.
            max_retries: Upload retries after the first attempt.
            retry_delay: Base delay for exponential backoff between uploads.
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def add_json(self, data: Any) -> str:
        """Upload a JSON document, pinned, as CIDv1. Returns the CID."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay),
            retry=retry_if_exception_type(UpstreamUnavailable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        cid = retrying(self._add_once, data)
        logger.info("Uploaded to IPFS: %s", cid)
        return cid

    def fetch_json(self, address: str) -> Any:
        """Fetch and parse the JSON document stored under ``address``."""
        response = self._post("cat", params={"arg": address})
        try:
            return json.loads(response.content)
        except ValueError as e:
            raise UpstreamUnavailable(f"Content at {address} is not valid JSON") from e

    def is_available(self) -> bool:
        """Check whether the node answers."""
        try:
            self._post("id")
        except UpstreamUnavailable as e:
            logger.warning("IPFS is not available: %s", e)
            return False
        return True

    def _add_once(self, data: Any) -> str:
        payload = json.dumps(data, indent=2).encode("utf-8")
        response = self._post(
            "add",
            params={"pin": "true", "cid-version": "1"},
            files={"file": ("credential.json", payload, "application/json")},
        )
        try:
            return response.json()["Hash"]
        except (ValueError, KeyError) as e:
            raise UpstreamUnavailable(f"Unexpected IPFS add response: {response.text[:200]}") from e

    def _post(self, command: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.api_url}/api/v0/{command}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"HTTP error from IPFS {command}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailable(f"Network error reaching IPFS: {e}") from e
