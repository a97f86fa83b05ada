from __future__ import annotations

from typing import Optional

from modmail_bot.models import AppealRecord, ChannelHandle, StaffActor, UserIdentity
from modmail_bot.relay.resolver import channel_name_for

STAFF_CHAT_ID = -1001000


def make_channel(
    name: Optional[str] = None,
    *,
    user_id: int = 123456789012345678,
    chat_id: int = STAFF_CHAT_ID,
    thread_id: Optional[int] = 42,
) -> ChannelHandle:
    return ChannelHandle(
        chat_id=chat_id,
        thread_id=thread_id,
        name=name if name is not None else channel_name_for(user_id),
    )


def make_actor(
    *,
    user_id: int = 7,
    display_name: str = "Alice Moderator",
    username: Optional[str] = "alice_mod",
    avatar_url: Optional[str] = "https://cdn.example/alice.png",
) -> StaffActor:
    return StaffActor(
        user_id=user_id,
        display_name=display_name,
        username=username,
        avatar_url=avatar_url,
    )


def make_user(
    *,
    user_id: int = 123456789012345678,
    display_name: str = "Bob Member",
    username: Optional[str] = "bob",
) -> UserIdentity:
    return UserIdentity(user_id=user_id, display_name=display_name, username=username)


def make_appeal(
    *,
    user_id: int = 555,
    username: str = "banned_bob",
    reason: str = "I was hacked",
    details: Optional[str] = None,
) -> AppealRecord:
    return AppealRecord(user_id=user_id, username=username, reason=reason, details=details)
