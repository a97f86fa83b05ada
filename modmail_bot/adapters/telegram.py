from __future__ import annotations

from typing import Any, Optional

import structlog
from aiogram import Bot
from aiogram.enums import ChatType
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, Message, User
from aiogram.utils.formatting import Bold, Italic, Text, as_key_value, as_list

from ..appeals.service import AppealPublisher, BanGateway
from ..errors import ChannelPostFailed, DeliveryFailed, UnbanFailed
from ..models import (
    AppealRecord,
    Attachment,
    AttachmentKind,
    ChannelHandle,
    CloakedIdentity,
    Direction,
    RealIdentity,
    RelayMessage,
    StaffActor,
    UserIdentity,
)
from ..relay.ports import ChannelPoster, DirectMessenger, UserDirectory

logger = structlog.get_logger(__name__)

APPEAL_CALLBACK_PREFIX = "appeal"


def staff_actor_from_user(user: User) -> StaffActor:
    return StaffActor(user_id=user.id, display_name=user.full_name, username=user.username)


def user_identity_from_user(user: User) -> UserIdentity:
    return UserIdentity(user_id=user.id, display_name=user.full_name, username=user.username)


def render_relay_message(message: RelayMessage) -> Text:
    sender = message.sender
    body = Text(message.body) if message.body.strip() else Italic("No text content")
    if message.direction == Direction.STAFF_TO_USER:
        if isinstance(sender, CloakedIdentity):
            signature = sender.team_name
        else:
            signature = f"Staff: {sender.name}"
        return as_list(Bold("📬 Staff Reply"), body, Italic(signature), sep="\n\n")
    if message.direction == Direction.STAFF_TO_STAFF:
        stamp = message.timestamp.strftime("%Y-%m-%d %H:%M UTC")
        return as_list(
            Bold("📝 Internal Note"),
            body,
            Italic(f"By {_identity_name(sender)} · {stamp}"),
            sep="\n\n",
        )
    header = f"💬 {_identity_name(sender)}"
    if message.edited:
        header += " (edited)"
    return as_list(Bold(header), body, sep="\n")


def attachment_from_message(message: Message) -> Optional[Attachment]:
    """Pick the file a message carries, if any; photos use the largest size."""
    if message.photo:
        return Attachment(kind=AttachmentKind.PHOTO, file_id=message.photo[-1].file_id)
    # animations also fill `document`, so they are checked first
    for kind in (
        AttachmentKind.ANIMATION,
        AttachmentKind.VIDEO,
        AttachmentKind.AUDIO,
        AttachmentKind.VOICE,
        AttachmentKind.DOCUMENT,
    ):
        media = getattr(message, kind.value, None)
        if media is not None:
            return Attachment(kind=kind, file_id=media.file_id)
    return None


async def send_rendered(
    bot: Bot,
    chat_id: int,
    content: Text,
    attachment: Optional[Attachment] = None,
    **extra: Any,
) -> Message:
    if attachment is None:
        return await bot.send_message(chat_id, **content.as_kwargs(), **extra)
    send = getattr(bot, f"send_{attachment.kind.value}")
    caption = content.as_kwargs(text_key="caption", entities_key="caption_entities")
    return await send(chat_id, **{attachment.kind.value: attachment.file_id}, **caption, **extra)


def render_appeal(appeal: AppealRecord) -> Text:
    return as_list(
        Bold("⚖️ New Ban Appeal"),
        as_key_value("User", f"{appeal.username} ({appeal.user_id})"),
        as_key_value("Reason", appeal.reason),
        as_key_value("Details", appeal.details or "—"),
        sep="\n",
    )


def appeal_keyboard(user_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="✅ Accept",
                    callback_data=f"{APPEAL_CALLBACK_PREFIX}:accept:{user_id}",
                ),
                InlineKeyboardButton(
                    text="❌ Deny",
                    callback_data=f"{APPEAL_CALLBACK_PREFIX}:deny:{user_id}",
                ),
            ]
        ]
    )


def _identity_name(identity: RealIdentity | CloakedIdentity) -> str:
    if isinstance(identity, CloakedIdentity):
        return identity.team_name
    return identity.name


class TelegramUserDirectory(UserDirectory):
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def lookup_user(self, identifier: str) -> Optional[UserIdentity]:
        # only canonical decimal ids, so the channel name round-trips exactly
        if not (identifier.isascii() and identifier.isdigit()) or identifier != str(int(identifier)):
            return None
        try:
            chat = await self._bot.get_chat(int(identifier))
        except TelegramAPIError as exc:
            logger.warning("telegram_lookup_failed", identifier=identifier, error=str(exc))
            return None
        if chat.type != ChatType.PRIVATE:
            return None
        return UserIdentity(user_id=chat.id, display_name=chat.full_name, username=chat.username)


class TelegramMessenger(DirectMessenger):
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_direct_message(self, user: UserIdentity, message: RelayMessage) -> None:
        try:
            await send_rendered(self._bot, user.user_id, render_relay_message(message), message.attachment)
        except TelegramAPIError as exc:
            logger.warning("telegram_dm_failed", user_id=user.user_id, error=str(exc))
            raise DeliveryFailed(str(exc)) from exc

    async def send_notice(self, user: UserIdentity, text: str) -> None:
        try:
            await self._bot.send_message(user.user_id, text=text)
        except TelegramAPIError as exc:
            logger.warning("telegram_dm_failed", user_id=user.user_id, error=str(exc))
            raise DeliveryFailed(str(exc)) from exc


class TelegramChannelPoster(ChannelPoster):
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def post_message(self, channel: ChannelHandle, message: RelayMessage) -> int:
        try:
            sent = await send_rendered(
                self._bot,
                channel.chat_id,
                render_relay_message(message),
                message.attachment,
                message_thread_id=channel.thread_id,
            )
        except TelegramAPIError as exc:
            raise self._post_failed(channel, exc) from exc
        return sent.message_id

    async def edit_message(
        self,
        channel: ChannelHandle,
        message_id: int,
        message: RelayMessage,
        *,
        caption: bool = False,
    ) -> None:
        content = render_relay_message(message)
        try:
            if caption:
                await self._bot.edit_message_caption(
                    chat_id=channel.chat_id,
                    message_id=message_id,
                    **content.as_kwargs(text_key="caption", entities_key="caption_entities"),
                )
            else:
                await self._bot.edit_message_text(
                    chat_id=channel.chat_id, message_id=message_id, **content.as_kwargs()
                )
        except TelegramAPIError as exc:
            raise self._post_failed(channel, exc) from exc

    async def post_notice(self, channel: ChannelHandle, text: str) -> None:
        try:
            await self._bot.send_message(channel.chat_id, text=text, message_thread_id=channel.thread_id)
        except TelegramAPIError as exc:
            raise self._post_failed(channel, exc) from exc

    @staticmethod
    def _post_failed(channel: ChannelHandle, exc: TelegramAPIError) -> ChannelPostFailed:
        logger.error(
            "telegram_channel_post_failed",
            chat_id=channel.chat_id,
            thread_id=channel.thread_id,
            error=str(exc),
        )
        return ChannelPostFailed(str(exc))


class TelegramAppealPublisher(AppealPublisher):
    def __init__(self, bot: Bot, chat_id: Optional[int], thread_id: Optional[int] = None) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._thread_id = thread_id

    async def publish(self, appeal: AppealRecord) -> None:
        if self._chat_id is None:
            raise ChannelPostFailed("appeals chat is not configured")
        try:
            await self._bot.send_message(
                self._chat_id,
                message_thread_id=self._thread_id,
                reply_markup=appeal_keyboard(appeal.user_id),
                **render_appeal(appeal).as_kwargs(),
            )
        except TelegramAPIError as exc:
            logger.error("telegram_appeal_post_failed", chat_id=self._chat_id, error=str(exc))
            raise ChannelPostFailed(str(exc)) from exc


class TelegramBanGateway(BanGateway):
    def __init__(self, bot: Bot, community_chat_id: Optional[int]) -> None:
        self._bot = bot
        self._chat_id = community_chat_id

    async def unban(self, user_id: int) -> None:
        if self._chat_id is None:
            raise UnbanFailed("community chat is not configured")
        try:
            await self._bot.unban_chat_member(self._chat_id, user_id, only_if_banned=True)
        except TelegramAPIError as exc:
            logger.error("telegram_unban_failed", chat_id=self._chat_id, user_id=user_id, error=str(exc))
            raise UnbanFailed(str(exc)) from exc
