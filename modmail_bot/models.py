from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from .errors import ModmailError


class Direction(str, Enum):
    STAFF_TO_USER = "staff_to_user"
    STAFF_TO_STAFF = "staff_to_staff"
    USER_TO_STAFF = "user_to_staff"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNING = "success_with_warning"
    REJECTED = "rejected"
    FAILED = "failed"


class AttachmentKind(str, Enum):
    PHOTO = "photo"
    DOCUMENT = "document"
    VIDEO = "video"
    ANIMATION = "animation"
    AUDIO = "audio"
    VOICE = "voice"


@dataclass(slots=True, frozen=True)
class ChannelHandle:
    """A forum topic in the staff chat. Case state lives entirely in its name."""

    chat_id: int
    thread_id: Optional[int]
    name: str


@dataclass(slots=True, frozen=True)
class UserIdentity:
    user_id: int
    display_name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def identifier(self) -> str:
        return str(self.user_id)


@dataclass(slots=True, frozen=True)
class StaffActor:
    user_id: int
    display_name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def tag(self) -> str:
        return f"@{self.username}" if self.username else self.display_name


@dataclass(slots=True, frozen=True)
class RealIdentity:
    name: str
    avatar_url: Optional[str] = None


@dataclass(slots=True, frozen=True)
class CloakedIdentity:
    team_name: str
    avatar_url: Optional[str] = None


Identity = Union[RealIdentity, CloakedIdentity]


def identity_for(
    actor: StaffActor,
    *,
    anonymous: bool,
    team_name: str,
    team_avatar_url: Optional[str] = None,
) -> Identity:
    if anonymous:
        return CloakedIdentity(team_name=team_name, avatar_url=team_avatar_url)
    return RealIdentity(name=actor.tag, avatar_url=actor.avatar_url)


@dataclass(slots=True, frozen=True)
class Attachment:
    """A platform file reference carried alongside the body; never downloaded."""

    kind: AttachmentKind
    file_id: str


@dataclass(slots=True, frozen=True)
class RelayMessage:
    body: str
    sender: Identity
    direction: Direction
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attachment: Optional[Attachment] = None
    edited: bool = False

    @property
    def is_cloaked(self) -> bool:
        return isinstance(self.sender, CloakedIdentity)


@dataclass(slots=True)
class RelayOutcome:
    status: OutcomeStatus
    message: str
    error: Optional[ModmailError] = None

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.SUCCESS_WITH_WARNING)

    @classmethod
    def success(cls, message: str) -> "RelayOutcome":
        return cls(OutcomeStatus.SUCCESS, message)

    @classmethod
    def warning(cls, message: str, error: ModmailError) -> "RelayOutcome":
        return cls(OutcomeStatus.SUCCESS_WITH_WARNING, message, error)

    @classmethod
    def rejected(cls, error: ModmailError) -> "RelayOutcome":
        return cls(OutcomeStatus.REJECTED, error.user_message, error)

    @classmethod
    def failed(cls, error: ModmailError) -> "RelayOutcome":
        return cls(OutcomeStatus.FAILED, error.user_message, error)


@dataclass(slots=True, frozen=True)
class AppealRecord:
    user_id: int
    username: str
    reason: str
    details: Optional[str] = None


@dataclass(slots=True, frozen=True)
class MessageLink:
    """Where a forwarded user message landed in the staff chat."""

    user_id: int
    user_message_id: int
    chat_id: int
    thread_id: Optional[int]
    message_id: int
    has_attachment: bool = False


@dataclass(slots=True)
class Snippet:
    name: str
    content: str
    created_by: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    "AppealRecord",
    "Attachment",
    "AttachmentKind",
    "ChannelHandle",
    "CloakedIdentity",
    "Direction",
    "Identity",
    "MessageLink",
    "OutcomeStatus",
    "RealIdentity",
    "RelayMessage",
    "RelayOutcome",
    "Snippet",
    "StaffActor",
    "UserIdentity",
    "identity_for",
]
