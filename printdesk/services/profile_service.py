"""
printdesk/services/profile_service.py

Purpose: Messenger profile lookup

- Resolves a user's display name on first contact
- Falls back to the user id when the Graph API is unavailable
"""

import httpx
from typing import Optional
from printdesk.core.config import settings
from printdesk.core.logging import get_logger

logger = get_logger(__name__)


class ProfileService:
    """Resolves display names via the Graph API user profile endpoint"""

    def __init__(
        self,
        page_access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.page_access_token = page_access_token or settings.MESSENGER_PAGE_ACCESS_TOKEN
        self.base_url = base_url or settings.graph_base_url
        self.timeout = timeout or settings.GRAPH_API_TIMEOUT
        self._client = client

    async def resolve(self, external_id: str) -> str:
        """
        Returns "first_name last_name" for the user, or the id itself when the
        profile cannot be fetched.
        """
        if not self.page_access_token:
            logger.debug("No page access token configured, skipping profile lookup")
            return external_id

        url = f"{self.base_url}/{external_id}"
        params = {
            "fields": "first_name,last_name",
            "access_token": self.page_access_token
        }

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.timeout)

            if response.status_code != 200:
                logger.warning(
                    f"Profile lookup failed for {external_id}: {response.status_code}"
                )
                return external_id

            profile = response.json()

        except httpx.HTTPError as e:
            logger.warning(f"Profile lookup error for {external_id}: {e}")
            return external_id
        except ValueError:
            logger.warning(f"Profile lookup returned invalid JSON for {external_id}")
            return external_id

        name = " ".join(
            part for part in (profile.get("first_name"), profile.get("last_name")) if part
        )
        return name or external_id


# Singleton instance
profile_service = ProfileService()
