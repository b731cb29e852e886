"""Identity provider backend API client."""
import logging
from typing import Any, Dict, Iterator, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The identity provider API could not be reached or answered with an error."""


class ProviderClient:
    """List users through the provider's backend REST API."""

    page_size = 100

    def __init__(self, api_url: Optional[str] = None, secret_key: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        conf = settings.IDENTITY_PROVIDER
        self.api_url = (api_url or conf["API_URL"]).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else conf["SECRET_KEY"]
        if not self.secret_key:
            raise ProviderError("IDENTITY_PROVIDER_SECRET_KEY is not configured")
        self._client = httpx.Client(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Accept": "application/json",
            },
            timeout=timeout or conf["HTTP_TIMEOUT_SECONDS"],
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._client.close()

    def list_users(self) -> Iterator[Dict[str, Any]]:
        """Yield every provider user, following offset pagination."""
        offset = 0
        while True:
            try:
                response = self._client.get("/users", params={"limit": self.page_size, "offset": offset})
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Provider user listing failed at offset {offset}: {e}")
                raise ProviderError(str(e)) from e

            payload = response.json()
            users = payload.get("data", []) if isinstance(payload, dict) else payload
            yield from users

            if len(users) < self.page_size:
                return
            offset += len(users)
