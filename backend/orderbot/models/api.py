# /orderbot/models/api.py

from enum import IntEnum
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any

# This file contains Pydantic models that define the structure of data for
# incoming Discord interactions, the callback payloads we answer with, and
# the reports produced by the sync jobs.

EPHEMERAL_FLAG = 1 << 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    APPLICATION_COMMAND_AUTOCOMPLETE = 4
    MODAL_SUBMIT = 5


class CallbackType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE_WITH_SOURCE = 4
    DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5
    DEFERRED_UPDATE_MESSAGE = 6
    UPDATE_MESSAGE = 7
    MODAL = 9


class DiscordUser(BaseModel):
    id: str
    username: str = ""
    global_name: Optional[str] = None


class DiscordMember(BaseModel):
    user: Optional[DiscordUser] = None
    nick: Optional[str] = None


class InteractionMessage(BaseModel):
    id: str
    channel_id: Optional[str] = None


class InteractionData(BaseModel):
    # Application commands
    name: Optional[str] = None
    # Components and modal submissions
    custom_id: Optional[str] = None
    component_type: Optional[int] = None
    components: List[Dict[str, Any]] = []


class Interaction(BaseModel):
    """The subset of a Discord interaction payload the bot reads."""
    id: str
    application_id: str
    type: InteractionType
    token: str
    data: Optional[InteractionData] = None
    member: Optional[DiscordMember] = None
    user: Optional[DiscordUser] = None
    message: Optional[InteractionMessage] = None
    channel_id: Optional[str] = None

    @property
    def actor(self) -> str:
        """Name written to the ledger next to each status change."""
        user = (self.member.user if self.member else None) or self.user
        if user is None:
            return "unknown"
        return user.username or user.global_name or user.id

    @property
    def custom_id(self) -> str:
        return (self.data.custom_id if self.data else None) or ""

    @property
    def command_name(self) -> str:
        return (self.data.name if self.data else None) or ""

    def text_input(self, custom_id: str) -> Optional[str]:
        """Returns the value of a modal text input, searching inside its action rows."""
        if not self.data:
            return None
        for row in self.data.components:
            for component in row.get("components", []):
                if component.get("custom_id") == custom_id:
                    return component.get("value")
        return None


class InteractionCallback(BaseModel):
    type: CallbackType
    data: Optional[Dict[str, Any]] = None

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"type": int(self.type)}
        if self.data is not None:
            body["data"] = self.data
        return body


class PullReport(BaseModel):
    fetched: int = 0
    posted: int = 0
    skipped: int = 0
    failed: int = 0
    finished_at: datetime = Field(default_factory=utc_now)


class CleanupReport(BaseModel):
    confirmed: int = 0
    messages_deleted: int = 0
    rows_deleted: int = 0
    skipped: int = 0
    failed: int = 0
    finished_at: datetime = Field(default_factory=utc_now)


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = "v1"
