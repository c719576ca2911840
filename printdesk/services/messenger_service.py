"""
printdesk/services/messenger_service.py

Purpose: Messenger Send API client

- Sends text and quick-reply messages to a user
- Preserves message order (content before the option prompt)
- Failures are logged and reported, never retried
"""

import httpx
from typing import Any, Dict, List, Optional, Sequence
from printdesk.core.config import settings
from printdesk.core.logging import get_logger
from printdesk.schemas.outbound import OutboundMessage, TextMessage
from printdesk.utils.messenger_utils import create_send_request

logger = get_logger(__name__)


class MessengerService:
    """Service for sending messages via the Messenger Send API"""

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

    async def send_message(self, recipient_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sends one Send API message object.

        Args:
            recipient_id: User PSID
            message: Send API "message" object

        Returns:
            {
                "success": True/False,
                "message_id": "mid.xxx",
                "error": "Optional error message"
            }
        """
        url = f"{self.base_url}/me/messages"
        body = create_send_request(recipient_id, message)

        try:
            if self._client is not None:
                response = await self._client.post(
                    url,
                    params={"access_token": self.page_access_token},
                    json=body,
                    timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        url,
                        params={"access_token": self.page_access_token},
                        json=body,
                        timeout=self.timeout
                    )

            if response.status_code == 200:
                result = response.json()
                message_id = result.get("message_id")
                if message_id:
                    logger.info(
                        f"✅ Sent message {message_id} to recipient {result.get('recipient_id')}"
                    )
                else:
                    logger.info(f"✅ Called Send API for recipient {recipient_id}")

                return {
                    "success": True,
                    "message_id": message_id,
                    "recipient_id": result.get("recipient_id")
                }

            error_text = response.text
            logger.error(f"❌ Send API error: {response.status_code} - {error_text}")
            return {
                "success": False,
                "error": f"Send API error: {response.status_code}"
            }

        except httpx.TimeoutException:
            logger.error("Send API timeout")
            return {
                "success": False,
                "error": "Send API timeout"
            }
        except httpx.HTTPError as e:
            logger.error(f"Error calling Send API: {e}", exc_info=True)
            return {
                "success": False,
                "error": str(e)
            }

    async def send_messages(
        self,
        recipient_id: str,
        messages: Sequence[OutboundMessage]
    ) -> List[Dict[str, Any]]:
        """
        Sends messages one after another, stopping at the first failure so a
        later message is never delivered without the ones before it.
        """
        results = []
        for message in messages:
            result = await self.send_message(recipient_id, message.to_send_api())
            results.append(result)
            if not result["success"]:
                logger.error(
                    f"❌ Stopped delivery to {recipient_id} after "
                    f"{len(results)}/{len(messages)} messages"
                )
                break
        return results

    async def send_text(self, recipient_id: str, text: str) -> Dict[str, Any]:
        return await self.send_message(recipient_id, TextMessage(body=text).to_send_api())

    def is_configured(self) -> bool:
        """Check if the Send API is properly configured"""
        return bool(self.page_access_token)


# Singleton instance
messenger_service = MessengerService()
