"""Instance metadata lookups (EC2 IMDSv2)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from ..errors import ExternalLookupFailed

LOGGER = logging.getLogger(__name__)

TOKEN_PATH = "api/token"
TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"
PRIVATE_IP_PATH = "local-ipv4"


class InstanceMetadataProvider(Protocol):
    """Resolve instance metadata values by path."""

    def lookup(self, path: str) -> str:
        """Return the metadata value stored at *path*."""
        ...


@dataclass(slots=True)
class Ec2MetadataProvider:
    """Look up values from the EC2 instance metadata service using IMDSv2 tokens."""

    endpoint: str = "http://169.254.169.254/latest"
    timeout: float = 5.0
    token_ttl: int = 21600
    client: httpx.Client | None = None
    _token: str | None = field(default=None, init=False, repr=False)

    def lookup(self, path: str) -> str:
        """Return the value at ``meta-data/<path>``."""
        token = self._ensure_token()
        url = f"{self.endpoint}/meta-data/{path.lstrip('/')}"
        LOGGER.debug("Looking up instance metadata at %s", url)
        response = self._request("GET", url, headers={TOKEN_HEADER: token})
        value = response.text.strip()
        if not value:
            raise ExternalLookupFailed(f"instance metadata '{path}'", "empty response")
        return value

    # ------------------------------------------------------------------
    def _ensure_token(self) -> str:
        if self._token is None:
            url = f"{self.endpoint}/{TOKEN_PATH}"
            response = self._request(
                "PUT",
                url,
                headers={TOKEN_TTL_HEADER: str(self.token_ttl)},
            )
            token = response.text.strip()
            if not token:
                raise ExternalLookupFailed("instance metadata token", "empty response")
            self._token = token
        return self._token

    def _request(self, method: str, url: str, *, headers: dict[str, str]) -> httpx.Response:
        client = self.client or httpx.Client(timeout=self.timeout)
        try:
            response = client.request(method, url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalLookupFailed(
                f"instance metadata '{url}'",
                f"HTTP {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            raise ExternalLookupFailed(f"instance metadata '{url}'", detail) from exc
        finally:
            if self.client is None:
                client.close()
        return response


__all__ = ["Ec2MetadataProvider", "InstanceMetadataProvider", "PRIVATE_IP_PATH"]
