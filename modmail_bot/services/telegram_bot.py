from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from aiogram import Bot, Dispatcher, F
from aiogram.enums import ChatMemberStatus, ChatType
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Message

from ..adapters.telegram import (
    APPEAL_CALLBACK_PREFIX,
    attachment_from_message,
    staff_actor_from_user,
    user_identity_from_user,
)
from ..appeals.server import AppealServer, build_appeal_app
from ..config import BotSettings
from ..logging.events import bind_action
from ..models import ChannelHandle, OutcomeStatus
from ..relay.inbound import InboundStatus
from ..relay.resolver import is_modmail_channel
from .modmail_service import ModmailCoordinator

logger = structlog.get_logger(__name__)

STAFF_HELP = (
    "Modmail commands (inside a modmail-<user_id> topic):\n"
    "/reply <text> – reply to the user\n"
    "/areply <text> – reply anonymously as the staff team\n"
    "/note <text> – add an internal note\n"
    "/tag <label> – tag the thread\n"    "/snippet <name> – send a saved response\n"
    "\n"
    "Anywhere in the staff chat:\n"
    "/snippets – list saved responses\n"
    "/addsnippet <name> <content>\n"
    "/editsnippet <name> <content>\n"
    "/delsnippet <name>\n"
    "/block <user_id>, /unblock <user_id>"
)

NOT_STAFF = "You must be a staff chat admin to use modmail commands."
DELIVERY_TO_STAFF_FAILED = "Your message could not be delivered to staff. Please try again later."
UNSUPPORTED_CONTENT = "Only text, photos, videos, audio and files can be forwarded to staff."


class TelegramModmailApp:
    """
    Aiogram wiring for the modmail relay.

    - Staff commands in the staff forum chat map onto ``ModmailCoordinator`` calls;
      every outcome is acknowledged to the invoking staff member only.
    - Forum topic service messages keep the topic-name directory current.
    - Private messages from users are forwarded into their case topic, and
      later edits of those messages are mirrored there.
    - Appeal artifacts carry Accept/Deny buttons handled here.
    """

    def __init__(
        self,
        settings: BotSettings,
        *,
        bot: Optional[Bot] = None,
        coordinator: Optional[ModmailCoordinator] = None,
    ) -> None:
        self._settings = settings
        self.bot = bot or Bot(token=settings.telegram_token)
        self.dispatcher = Dispatcher()
        self.coordinator = coordinator or ModmailCoordinator(settings, self.bot)
        self._appeal_server: Optional[AppealServer] = None
        if settings.api.enabled:
            self._appeal_server = AppealServer(
                build_appeal_app(self.coordinator.appeals, secret=settings.api.secret),
                host=settings.api.host,
                port=settings.api.port,
            )
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.dispatcher.message(CommandStart(), F.chat.type == ChatType.PRIVATE)(self._handle_start)
        self.dispatcher.message(Command(commands=["help"]))(self._handle_help)
        self.dispatcher.message(Command(commands=["reply", "areply"]))(self._handle_reply)
        self.dispatcher.message(Command(commands=["note"]))(self._handle_note)
        self.dispatcher.message(Command(commands=["tag"]))(self._handle_tag)
        self.dispatcher.message(Command(commands=["snippet"]))(self._handle_snippet)
        self.dispatcher.message(Command(commands=["snippets"]))(self._handle_list_snippets)
        self.dispatcher.message(Command(commands=["addsnippet", "editsnippet"]))(self._handle_save_snippet)
        self.dispatcher.message(Command(commands=["delsnippet"]))(self._handle_delete_snippet)
        self.dispatcher.message(Command(commands=["block", "unblock"]))(self._handle_block)
        self.dispatcher.message(F.forum_topic_created)(self._handle_topic_created)
        self.dispatcher.message(F.forum_topic_edited)(self._handle_topic_edited)
        self.dispatcher.message(F.chat.type == ChatType.PRIVATE)(self._handle_private_message)
        self.dispatcher.edited_message(F.chat.type == ChatType.PRIVATE)(self._handle_private_edit)
        self.dispatcher.message(F.chat.id == self._settings.modmail.staff_chat_id)(
            self._handle_staff_message
        )
        self.dispatcher.callback_query(F.data.startswith(f"{APPEAL_CALLBACK_PREFIX}:"))(
            self._handle_appeal_decision
        )

    async def run(self) -> None:
        await self.coordinator.start()
        if self._appeal_server:
            await self._appeal_server.start()
        try:
            await self.dispatcher.start_polling(self.bot)
        finally:
            if self._appeal_server:
                await self._appeal_server.stop()
            await self.coordinator.shutdown()
            await self.bot.session.close()

    # Staff relay commands

    async def _handle_help(self, message: Message) -> None:
        if message.chat.type == ChatType.PRIVATE:
            await message.reply(self._settings.modmail.welcome_message)
            return
        await message.reply(STAFF_HELP)

    async def _handle_reply(self, message: Message) -> None:
        command, body = self._split_command(message)
        anonymous = command == "areply"
        bind_action("reply", chat_id=message.chat.id, thread_id=message.message_thread_id)
        if not await self._ensure_staff(message):
            return
        channel = await self._channel_for(message)
        outcome = await self.coordinator.reply(
            channel,
            staff_actor_from_user(message.from_user),
            body,
            anonymous=anonymous,
            attachment=attachment_from_message(message),
        )
        await message.reply(outcome.message)

    async def _handle_note(self, message: Message) -> None:
        _, body = self._split_command(message)
        bind_action("note", chat_id=message.chat.id, thread_id=message.message_thread_id)
        if not await self._ensure_staff(message):
            return
        channel = await self._channel_for(message)
        outcome = await self.coordinator.note(channel, staff_actor_from_user(message.from_user), body)
        await message.reply(outcome.message)

    async def _handle_tag(self, message: Message) -> None:
        _, label = self._split_command(message)
        bind_action("tag", chat_id=message.chat.id, thread_id=message.message_thread_id)
        if not label.strip():
            await message.reply("Usage: /tag <label>")
            return
        if not await self._ensure_staff(message):
            return
        channel = await self._channel_for(message)
        outcome = await self.coordinator.tag(channel, staff_actor_from_user(message.from_user), label)
        await message.reply(outcome.message)

    async def _handle_snippet(self, message: Message) -> None:
        _, name = self._split_command(message)
        bind_action("snippet", chat_id=message.chat.id, thread_id=message.message_thread_id)
        if not name:
            await message.reply("Usage: /snippet <name>")
            return
        if not await self._ensure_staff(message):
            return
        channel = await self._channel_for(message)
        outcome = await self.coordinator.send_snippet(
            channel, staff_actor_from_user(message.from_user), name.strip()
        )
        await message.reply(outcome.message)

    async def _handle_staff_message(self, message: Message) -> None:
        text = message.text or message.caption or ""
        attachment = attachment_from_message(message)
        settings = self._settings.modmail
        if not settings.relay_plain_messages or text.startswith("/"):
            return
        if text.startswith(settings.ignore_prefix):
            return
        if not text and attachment is None:
            return
        if not message.from_user or message.from_user.is_bot:
            return
        channel = await self._channel_for(message)
        if not is_modmail_channel(channel):
            return
        bind_action("plain_reply", chat_id=message.chat.id, thread_id=message.message_thread_id)
        if not await self._ensure_staff(message, quiet=True):
            return
        outcome = await self.coordinator.reply(
            channel, staff_actor_from_user(message.from_user), text, attachment=attachment
        )
        # the fallback notice already landed in the topic; only hard failures need an answer
        if outcome.status in (OutcomeStatus.REJECTED, OutcomeStatus.FAILED):
            await message.reply(outcome.message)

    # Snippets and blocklist

    async def _handle_list_snippets(self, message: Message) -> None:
        if not await self._ensure_staff(message):
            return
        snippets = await self.coordinator.list_snippets()
        if not snippets:
            await message.reply("No snippets saved yet.")
            return
        lines = [f"• {snippet.name}: {snippet.content[:60]}" for snippet in snippets]
        await message.reply("📋 Snippets:\n" + "\n".join(lines))

    async def _handle_save_snippet(self, message: Message) -> None:
        command, args = self._split_command(message)
        if not await self._ensure_staff(message):
            return
        parts = args.split(maxsplit=1)
        if len(parts) < 2:
            await message.reply(f"Usage: /{command} <name> <content>")
            return
        name, content = parts[0], parts[1].strip()
        if command == "addsnippet":
            created = await self.coordinator.add_snippet(
                name, content, staff_actor_from_user(message.from_user)
            )
            await message.reply(
                f"Snippet {name} added!" if created else "Failed to add snippet (name already exists)."
            )
            return
        updated = await self.coordinator.edit_snippet(name, content)
        await message.reply(f"Snippet {name} updated." if updated else "Snippet not found.")

    async def _handle_delete_snippet(self, message: Message) -> None:
        _, name = self._split_command(message)
        if not await self._ensure_staff(message):
            return
        if not name:
            await message.reply("Usage: /delsnippet <name>")
            return
        deleted = await self.coordinator.remove_snippet(name.strip())
        await message.reply(f"🗑 Snippet {name.strip()} deleted." if deleted else "Snippet not found.")

    async def _handle_block(self, message: Message) -> None:
        command, args = self._split_command(message)
        if not await self._ensure_staff(message):
            return
        try:
            user_id = int(args.strip())
        except ValueError:
            await message.reply(f"Usage: /{command} <user_id>")
            return
        actor = staff_actor_from_user(message.from_user)
        if command == "block":
            await self.coordinator.block_user(user_id, actor)
            await message.reply(f"User {user_id} has been blocked from modmail.")
        else:
            await self.coordinator.unblock_user(user_id, actor)
            await message.reply(f"User {user_id} has been unblocked from modmail.")

    # Topic directory

    async def _handle_topic_created(self, message: Message) -> None:
        await self.coordinator.record_topic(
            message.chat.id, message.message_thread_id, message.forum_topic_created.name
        )

    async def _handle_topic_edited(self, message: Message) -> None:
        name = message.forum_topic_edited.name
        if name is None:
            return  # icon-only edit
        await self.coordinator.record_topic(message.chat.id, message.message_thread_id, name)

    # Users

    async def _handle_start(self, message: Message) -> None:
        await message.answer(self._settings.modmail.welcome_message)

    async def _handle_private_message(self, message: Message) -> None:
        if not message.from_user or message.from_user.is_bot:
            return
        body = message.text or message.caption or ""
        attachment = attachment_from_message(message)
        if not body and attachment is None:
            await message.answer(UNSUPPORTED_CONTENT)
            return
        bind_action("inbound", user_id=message.from_user.id)
        status = await self.coordinator.forward_user_message(
            user_identity_from_user(message.from_user),
            body,
            message_id=message.message_id,
            attachment=attachment,
        )
        if status == InboundStatus.NO_CASE:
            await message.answer(self._settings.modmail.welcome_message)
        elif status == InboundStatus.FAILED:
            await message.answer(DELIVERY_TO_STAFF_FAILED)

    async def _handle_private_edit(self, message: Message) -> None:
        if not message.from_user or message.from_user.is_bot:
            return
        bind_action("inbound_edit", user_id=message.from_user.id)
        await self.coordinator.sync_user_edit(
            user_identity_from_user(message.from_user),
            message.message_id,
            message.text or message.caption or "",
        )

    # Appeals

    async def _handle_appeal_decision(self, callback: CallbackQuery) -> None:
        try:
            _, decision, raw_user_id = callback.data.split(":", 2)
            user_id = int(raw_user_id)
        except ValueError:
            await callback.answer("Malformed appeal action.", show_alert=True)
            return
        bind_action("appeal_" + decision, user_id=user_id, actor_id=callback.from_user.id)
        chat_id = callback.message.chat.id if callback.message else None
        if chat_id is None or not await self._is_admin(chat_id, callback.from_user.id):
            await callback.answer(NOT_STAFF, show_alert=True)
            return
        if decision == "accept":
            outcome = await self.coordinator.accept_appeal(user_id)
            status_line = "✅ Accepted & Unbanned"
        elif decision == "deny":
            outcome = await self.coordinator.deny_appeal(user_id)
            status_line = "❌ Denied"
        else:
            await callback.answer("Unknown appeal action.", show_alert=True)
            return
        await callback.answer(outcome.message, show_alert=True)
        if outcome.ok and isinstance(callback.message, Message):
            try:
                await callback.message.edit_text(
                    f"{callback.message.text or ''}\n\nStatus: {status_line} by {callback.from_user.full_name}",
                    reply_markup=None,
                )
            except TelegramAPIError as exc:
                logger.error("appeal_artifact_edit_failed", user_id=user_id, error=str(exc))

    # Helpers

    async def _channel_for(self, message: Message) -> ChannelHandle:
        thread_id = message.message_thread_id if message.is_topic_message else None
        hint = None
        reply = message.reply_to_message
        if reply is not None and reply.forum_topic_created is not None:
            hint = reply.forum_topic_created.name
        return await self.coordinator.channel_for(
            message.chat.id, thread_id, hint_name=hint, chat_title=message.chat.title
        )

    def _split_command(self, message: Message) -> tuple[str, str]:
        parts = (message.text or message.caption or "").split(maxsplit=1)
        command = parts[0].lstrip("/").split("@", 1)[0].lower() if parts else ""
        return command, parts[1] if len(parts) > 1 else ""

    async def _ensure_staff(self, message: Message, *, quiet: bool = False) -> bool:
        user = message.from_user
        if user is not None and await self._is_admin(self._settings.modmail.staff_chat_id, user.id):
            return True
        if not quiet:
            await message.reply(NOT_STAFF)
        return False

    async def _is_admin(self, chat_id: int, user_id: int) -> bool:
        try:
            member = await self.bot.get_chat_member(chat_id, user_id)
        except TelegramAPIError as exc:
            logger.warning("admin_check_failed", chat_id=chat_id, user_id=user_id, error=str(exc))
            return False
        return member.status in {ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.CREATOR}


@asynccontextmanager
async def telegram_app(settings: BotSettings):
    app = TelegramModmailApp(settings)
    try:
        yield app
    finally:
        await app.coordinator.shutdown()
        await app.bot.session.close()
