# /orderbot/services/discord_service.py

import httpx
import logging
import tenacity
from typing import Optional, Dict, Any, List

from orderbot.config.settings import settings
from orderbot.models.api import EPHEMERAL_FLAG
from orderbot.utils.exceptions import ChatPlatformError, InteractionExpired
from orderbot.utils.metrics import discord_requests_counter

# This service wraps the Discord REST endpoints the bot needs: posting, editing
# and deleting channel messages, and the interaction webhook used to finish a
# deferred interaction or send a private notice to the user who clicked.

logger = logging.getLogger(__name__)


class RateLimited(Exception):
    def __init__(self, retry_after: float):
        super().__init__(f"rate limited, retry after {retry_after}s")
        self.retry_after = retry_after


class DiscordService:
    def __init__(self, bot_token: str, application_id: str, base_url: str = "https://discord.com/api/v10",
                 http_client: Optional[httpx.AsyncClient] = None):
        self.bot_token = bot_token
        self.application_id = application_id
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException, RateLimited)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs) -> httpx.Response:
        response = await func(*args, **kwargs)
        if response.status_code == 429:
            retry_after = float(response.headers.get("retry-after", "1") or 1)
            raise RateLimited(retry_after)
        return response

    async def _request(self, operation: str, method: str, path: str, *, auth: bool = True, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bot {self.bot_token}"} if auth else {}
        url = f"{self.base_url}{path}"
        try:
            response = await self.resilient_api_call(self.http_client.request, method, url, headers=headers, **kwargs)
        except (httpx.RequestError, RateLimited) as e:
            discord_requests_counter.labels(operation=operation, status="unavailable").inc()
            raise ChatPlatformError(operation, reason=str(e) or e.__class__.__name__)
        discord_requests_counter.labels(operation=operation, status=str(response.status_code)).inc()
        return response

    @staticmethod
    def _raise_for_status(operation: str, response: httpx.Response):
        if response.is_success:
            return
        try:
            reason = response.json().get("message", "")
        except ValueError:
            reason = response.text[:200]
        logger.error(f"discord_{operation}_failed: {response.status_code} - {reason}")
        raise ChatPlatformError(operation, response.status_code, reason)

    # --- Channel messages ---

    async def send_message(self, channel_id: str, payload: Dict[str, Any]) -> str:
        """Posts a new message and returns its id."""
        response = await self._request("send_message", "POST", f"/channels/{channel_id}/messages", json=payload)
        self._raise_for_status("send_message", response)
        message_id = str(response.json()["id"])
        logger.info(f"Discord message posted to channel {channel_id}, id: {message_id}")
        return message_id

    async def edit_message(self, channel_id: str, message_id: str, payload: Dict[str, Any]):
        response = await self._request("edit_message", "PATCH", f"/channels/{channel_id}/messages/{message_id}", json=payload)
        self._raise_for_status("edit_message", response)

    async def delete_message(self, channel_id: str, message_id: str) -> bool:
        """Deletes a message. Returns False when it was already gone, which counts as success."""
        response = await self._request("delete_message", "DELETE", f"/channels/{channel_id}/messages/{message_id}")
        if response.status_code == 404:
            logger.info(f"Discord message {message_id} was already deleted")
            return False
        self._raise_for_status("delete_message", response)
        return True

    # --- Interaction webhook ---

    def _webhook_path(self, interaction_token: str) -> str:
        return f"/webhooks/{self.application_id}/{interaction_token}"

    async def edit_original(self, interaction_token: str, payload: Dict[str, Any]):
        """Replaces the message the interaction belongs to (or the deferred reply) in place."""
        response = await self._request(
            "edit_original", "PATCH", f"{self._webhook_path(interaction_token)}/messages/@original",
            auth=False, json=payload,
        )
        if response.status_code == 404:
            raise InteractionExpired("edit_original")
        self._raise_for_status("edit_original", response)

    async def send_followup(self, interaction_token: str, content: str, ephemeral: bool = True):
        """Sends a notice visible only to the user who triggered the interaction."""
        payload: Dict[str, Any] = {"content": content}
        if ephemeral:
            payload["flags"] = EPHEMERAL_FLAG
        response = await self._request("send_followup", "POST", self._webhook_path(interaction_token), auth=False, json=payload)
        if response.status_code == 404:
            raise InteractionExpired("send_followup")
        self._raise_for_status("send_followup", response)

    # --- Commands ---

    async def register_commands(self, commands: List[Dict[str, Any]], guild_id: Optional[str] = None):
        if guild_id:
            path = f"/applications/{self.application_id}/guilds/{guild_id}/commands"
        else:
            path = f"/applications/{self.application_id}/commands"
        response = await self._request("register_commands", "PUT", path, json=commands)
        self._raise_for_status("register_commands", response)
        logger.info(f"Registered {len(commands)} commands ({'guild ' + guild_id if guild_id else 'global'})")

    async def aclose(self):
        await self.http_client.aclose()


# Globally accessible instance
discord_service = DiscordService(settings.discord_bot_token, settings.discord_application_id, settings.discord_api_base_url)
