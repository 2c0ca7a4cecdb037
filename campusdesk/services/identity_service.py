# campusdesk/services/identity_service.py
"""Client for the external identity provider's admin API."""
from typing import Any, Dict, Optional
from uuid import UUID
import logging

import httpx

from ..core.config import settings
from ..core.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)


class IdentityProviderClient:
    """Creates login identities. Authentication itself stays with the provider."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.identity_provider_url or "").rstrip("/")
        self.service_key = service_key or settings.identity_service_key
        self.timeout = timeout or settings.identity_timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.service_key}",
                "apikey": self.service_key,
                "Content-Type": "application/json",
            },
        )

    async def create_login(self, email: str, password: str, metadata: Dict[str, Any]) -> UUID:
        """Create (or re-link an orphaned) provider user and return its id."""
        if not self.configured:
            raise IdentityProviderError("Identity provider is not configured")

        payload = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": metadata,
        }
        try:
            async with self._client() as client:
                response = await client.post("/admin/users", json=payload)
                if response.status_code in (200, 201):
                    return UUID(response.json()["id"])

                if _already_registered(response):
                    logger.info("Identity for %s already exists, linking existing user", email)
                    user_id = await self._find_user_id(client, email)
                    await self._update_metadata(client, user_id, metadata)
                    return user_id

                raise IdentityProviderError(f"Create user failed ({response.status_code}): {_error_message(response)}")
        except httpx.HTTPError as e:
            logger.error("Identity provider request failed: %s", e)
            raise IdentityProviderError(f"Identity provider unreachable: {e}") from e

    async def _find_user_id(self, client: httpx.AsyncClient, email: str) -> UUID:
        response = await client.get("/admin/users", params={"email": email})
        if response.status_code != 200:
            raise IdentityProviderError(f"User lookup failed ({response.status_code}): {_error_message(response)}")

        body = response.json()
        users = body.get("users", []) if isinstance(body, dict) else body
        for user in users:
            if (user.get("email") or "").lower() == email.lower():
                return UUID(user["id"])
        raise IdentityProviderError("User reported as existing but not found")

    async def _update_metadata(self, client: httpx.AsyncClient, user_id: UUID, metadata: Dict[str, Any]) -> None:
        response = await client.put(f"/admin/users/{user_id}", json={"user_metadata": metadata})
        if response.status_code not in (200, 204):
            raise IdentityProviderError(f"Metadata update failed ({response.status_code}): {_error_message(response)}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get("msg") or body.get("message") or body.get("error_description") or str(body)
    return str(body)


def _already_registered(response: httpx.Response) -> bool:
    return response.status_code in (400, 409, 422) and "already been registered" in _error_message(response)
