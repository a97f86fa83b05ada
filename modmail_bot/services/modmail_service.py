from __future__ import annotations

import asyncio
import logging
from typing import Optional

import structlog
from aiogram import Bot

from ..adapters.telegram import (
    TelegramAppealPublisher,
    TelegramBanGateway,
    TelegramChannelPoster,
    TelegramMessenger,
    TelegramUserDirectory,
)
from ..appeals.service import AppealBridge, AppealPublisher, BanGateway
from ..config import BotSettings
from ..errors import NotAModmailChannel, SnippetNotFound
from ..logging.events import setup_logging
from ..models import (
    AppealRecord,
    Attachment,
    ChannelHandle,
    RelayOutcome,
    Snippet,
    StaffActor,
    UserIdentity,
)
from ..relay.inbound import InboundRelay, InboundStatus
from ..relay.ports import ChannelPoster, DirectMessenger, UserDirectory
from ..relay.resolver import is_modmail_channel
from ..relay.service import ModmailRelay
from ..storage.base import StorageGateway
from ..storage.sqlite import SQLiteStorage

logger = structlog.get_logger(__name__)


class ModmailCoordinator:
    def __init__(
        self,
        settings: BotSettings,
        bot: Optional[Bot],
        *,
        storage: Optional[StorageGateway] = None,
        directory: Optional[UserDirectory] = None,
        messenger: Optional[DirectMessenger] = None,
        poster: Optional[ChannelPoster] = None,
        appeal_publisher: Optional[AppealPublisher] = None,
        bans: Optional[BanGateway] = None,
    ) -> None:
        log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)
        setup_logging(level=log_level, use_json=settings.logging.use_json)
        self._settings = settings
        self._staff_chat_id = settings.modmail.staff_chat_id
        self._storage = storage or SQLiteStorage(settings.storage.sqlite_path)
        self._messenger = messenger or TelegramMessenger(bot)
        poster = poster or TelegramChannelPoster(bot)
        self.relay = ModmailRelay(
            directory or TelegramUserDirectory(bot),
            self._messenger,
            poster,
            team_name=settings.modmail.team_name,
            team_avatar_url=settings.modmail.team_avatar_url,
            delivery_timeout=settings.modmail.delivery_timeout_seconds,
        )
        self.inbound = InboundRelay(
            self._storage,
            self._storage,
            self._storage,
            poster,
            staff_chat_id=self._staff_chat_id,
            inbox_thread_id=settings.modmail.inbox_thread_id,
        )
        self.appeals = AppealBridge(
            appeal_publisher
            or TelegramAppealPublisher(bot, settings.appeals.chat_id, settings.appeals.thread_id),
            bans or TelegramBanGateway(bot, settings.appeals.community_chat_id),
            self._messenger,
        )
        self._ready = asyncio.Event()

    async def start(self) -> None:
        await self._storage.connect()
        self._ready.set()
        logger.info("modmail_coordinator_started", staff_chat_id=self._staff_chat_id)

    async def shutdown(self) -> None:
        await self._storage.disconnect()
        logger.info("modmail_coordinator_stopped")

    # Case channels

    async def record_topic(self, chat_id: int, thread_id: int, name: str) -> None:
        if chat_id != self._staff_chat_id:
            return
        await self._storage.upsert_topic(chat_id, thread_id, name)

    async def channel_for(
        self,
        chat_id: int,
        thread_id: Optional[int],
        *,
        hint_name: Optional[str] = None,
        chat_title: Optional[str] = None,
    ) -> ChannelHandle:
        """Build the channel handle for an incoming staff action; foreign chats get no name."""
        if chat_id != self._staff_chat_id:
            return ChannelHandle(chat_id=chat_id, thread_id=thread_id, name="")
        if thread_id is None:
            return ChannelHandle(chat_id=chat_id, thread_id=None, name=chat_title or "")
        name = await self._storage.get_topic_name(chat_id, thread_id)
        if name is None and hint_name:
            await self._storage.upsert_topic(chat_id, thread_id, hint_name)
            name = hint_name
        return ChannelHandle(chat_id=chat_id, thread_id=thread_id, name=name or "")

    # Staff actions

    async def reply(
        self,
        channel: ChannelHandle,
        actor: StaffActor,
        body: str,
        *,
        anonymous: bool = False,
        attachment: Optional[Attachment] = None,
    ) -> RelayOutcome:
        await self._ready.wait()
        return await self.relay.relay_reply(
            channel, actor, body, anonymous=anonymous, attachment=attachment
        )

    async def note(self, channel: ChannelHandle, actor: StaffActor, body: str) -> RelayOutcome:
        await self._ready.wait()
        return await self.relay.add_note(channel, actor, body)

    async def tag(self, channel: ChannelHandle, actor: StaffActor, label: str) -> RelayOutcome:
        await self._ready.wait()
        return await self.relay.tag_case(channel, actor, label)

    async def send_snippet(
        self, channel: ChannelHandle, actor: StaffActor, name: str, *, anonymous: bool = False
    ) -> RelayOutcome:
        await self._ready.wait()
        if not is_modmail_channel(channel):
            return RelayOutcome.rejected(NotAModmailChannel(channel.name))
        snippet = await self._storage.get_snippet(name)
        if snippet is None:
            return RelayOutcome.rejected(SnippetNotFound(name))
        logger.info("snippet_relayed", name=name, actor_id=actor.user_id)
        return await self.relay.relay_reply(channel, actor, snippet.content, anonymous=anonymous)

    # Snippets

    async def add_snippet(self, name: str, content: str, actor: StaffActor) -> bool:
        return await self._storage.create_snippet(
            Snippet(name=name, content=content, created_by=actor.user_id)
        )

    async def edit_snippet(self, name: str, content: str) -> bool:
        return await self._storage.update_snippet(name, content)

    async def remove_snippet(self, name: str) -> bool:
        return await self._storage.delete_snippet(name)

    async def list_snippets(self) -> list[Snippet]:
        return await self._storage.list_snippets()

    # Blocklist

    async def block_user(self, user_id: int, actor: StaffActor) -> None:
        logger.info("modmail_block_user", user_id=user_id, actor_id=actor.user_id)
        await self._storage.block(user_id, actor.user_id)

    async def unblock_user(self, user_id: int, actor: StaffActor) -> None:
        logger.info("modmail_unblock_user", user_id=user_id, actor_id=actor.user_id)
        await self._storage.unblock(user_id)

    # Users and appeals

    async def forward_user_message(
        self,
        user: UserIdentity,
        body: str,
        *,
        message_id: Optional[int] = None,
        attachment: Optional[Attachment] = None,
    ) -> InboundStatus:
        await self._ready.wait()
        return await self.inbound.forward(user, body, message_id=message_id, attachment=attachment)

    async def sync_user_edit(self, user: UserIdentity, message_id: int, body: str) -> InboundStatus:
        await self._ready.wait()
        return await self.inbound.sync_edit(user, message_id, body)

    async def submit_appeal(self, appeal: AppealRecord) -> None:
        await self.appeals.submit(appeal)

    async def accept_appeal(self, user_id: int) -> RelayOutcome:
        return await self.appeals.accept(user_id)

    async def deny_appeal(self, user_id: int) -> RelayOutcome:
        return await self.appeals.deny(user_id)
