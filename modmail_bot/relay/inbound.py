from __future__ import annotations

from enum import Enum
from typing import Optional

import structlog

from ..errors import ChannelPostFailed
from ..models import (
    Attachment,
    ChannelHandle,
    Direction,
    MessageLink,
    RealIdentity,
    RelayMessage,
    UserIdentity,
)
from ..storage.base import BlocklistRepository, MessageLinkRepository, TopicRepository
from .ports import ChannelPoster
from .resolver import channel_name_for

logger = structlog.get_logger(__name__)


class InboundStatus(str, Enum):
    FORWARDED = "forwarded"
    EDITED = "edited"
    BLOCKED = "blocked"
    NO_CASE = "no_case"
    UNTRACKED = "untracked"
    FAILED = "failed"


class InboundRelay:
    """Forwards a user's private message into their open case topic, if one exists."""

    def __init__(
        self,
        topics: TopicRepository,
        blocklist: BlocklistRepository,
        links: MessageLinkRepository,
        poster: ChannelPoster,
        *,
        staff_chat_id: int,
        inbox_thread_id: Optional[int] = None,
    ) -> None:
        self._topics = topics
        self._blocklist = blocklist
        self._links = links
        self._poster = poster
        self._staff_chat_id = staff_chat_id
        self._inbox_thread_id = inbox_thread_id

    async def find_case(self, user: UserIdentity) -> Optional[ChannelHandle]:
        name = channel_name_for(user.identifier)
        thread_id = await self._topics.find_thread_by_name(self._staff_chat_id, name)
        if thread_id is None:
            return None
        return ChannelHandle(chat_id=self._staff_chat_id, thread_id=thread_id, name=name)

    async def forward(
        self,
        user: UserIdentity,
        body: str,
        *,
        message_id: Optional[int] = None,
        attachment: Optional[Attachment] = None,
    ) -> InboundStatus:
        if await self._blocklist.is_blocked(user.user_id):
            logger.info("inbound_blocked_user", user_id=user.user_id)
            return InboundStatus.BLOCKED

        channel = await self.find_case(user)
        if channel is None:
            await self._request_case(user, body, attachment)
            return InboundStatus.NO_CASE

        message = self._user_message(user, body, attachment=attachment)
        try:
            posted_id = await self._poster.post_message(channel, message)
        except ChannelPostFailed as exc:
            logger.error("inbound_post_failed", user_id=user.user_id, error=str(exc))
            return InboundStatus.FAILED

        if message_id is not None:
            await self._links.save_link(
                MessageLink(
                    user_id=user.user_id,
                    user_message_id=message_id,
                    chat_id=channel.chat_id,
                    thread_id=channel.thread_id,
                    message_id=posted_id,
                    has_attachment=attachment is not None,
                )
            )
        logger.info("inbound_forwarded", user_id=user.user_id, thread_id=channel.thread_id)
        return InboundStatus.FORWARDED

    async def sync_edit(self, user: UserIdentity, message_id: int, body: str) -> InboundStatus:
        """Mirror an edit the user made to an already forwarded message."""
        if await self._blocklist.is_blocked(user.user_id):
            return InboundStatus.BLOCKED
        link = await self._links.get_link(user.user_id, message_id)
        if link is None:
            logger.debug("inbound_edit_untracked", user_id=user.user_id, message_id=message_id)
            return InboundStatus.UNTRACKED

        channel = ChannelHandle(
            chat_id=link.chat_id,
            thread_id=link.thread_id,
            name=channel_name_for(user.identifier),
        )
        message = self._user_message(user, body, edited=True)
        try:
            await self._poster.edit_message(
                channel, link.message_id, message, caption=link.has_attachment
            )
        except ChannelPostFailed as exc:
            logger.warning("inbound_edit_failed", user_id=user.user_id, error=str(exc))
            return InboundStatus.FAILED
        logger.info("inbound_edit_synced", user_id=user.user_id, message_id=link.message_id)
        return InboundStatus.EDITED

    @staticmethod
    def _user_message(
        user: UserIdentity,
        body: str,
        *,
        attachment: Optional[Attachment] = None,
        edited: bool = False,
    ) -> RelayMessage:
        return RelayMessage(
            body=body,
            sender=RealIdentity(
                name=f"@{user.username}" if user.username else user.display_name,
                avatar_url=user.avatar_url,
            ),
            direction=Direction.USER_TO_STAFF,
            attachment=attachment,
            edited=edited,
        )

    async def _request_case(
        self, user: UserIdentity, body: str, attachment: Optional[Attachment]
    ) -> None:
        logger.info("inbound_no_open_case", user_id=user.user_id)
        if self._inbox_thread_id is None:
            return
        inbox = ChannelHandle(chat_id=self._staff_chat_id, thread_id=self._inbox_thread_id, name="inbox")
        handle = f"@{user.username}" if user.username else user.display_name
        notice = (
            f"📬 New contact request from {handle} (ID: {user.user_id}).\n"
            f"Open a topic named {channel_name_for(user.identifier)} to start the case.\n\n"
            f"{body}"
        )
        if attachment is not None:
            notice += f"\n[{attachment.kind.value} attached]"
        try:
            await self._poster.post_notice(inbox, notice)
        except ChannelPostFailed as exc:
            logger.error("inbound_inbox_post_failed", user_id=user.user_id, error=str(exc))
