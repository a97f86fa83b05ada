from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from ..config import FALLBACK_NOTICE, STAFF_TEAM_NAME
from ..errors import ChannelPostFailed, DeliveryFailed, EmptyBody, ModmailError
from ..models import (
    Attachment,
    ChannelHandle,
    Direction,
    RealIdentity,
    RelayMessage,
    RelayOutcome,
    StaffActor,
    UserIdentity,
    identity_for,
)
from .ports import ChannelPoster, DirectMessenger, UserDirectory
from .resolver import resolve_subject, subject_identifier

logger = structlog.get_logger(__name__)

REPLY_SENT = "Reply sent."
REPLY_FALLBACK = "Reply could not be delivered; a notice was posted in this thread."
NOTE_ADDED = "Note added."
TAGGED = "Thread tagged as {tag}."


class ModmailRelay:
    """
    Staff-side half of a modmail case.

    - ``relay_reply`` forwards staff text to the case subject, cloaking the
      sender when asked. A failed delivery turns into a notice in the staff
      channel and the reply still counts as sent.
    - ``add_note`` posts a staff-only annotation and never reaches the subject.

    No state is shared between calls, so concurrent actions on different
    channels are independent. Two actions on the same channel are not
    serialized.
    """

    def __init__(
        self,
        directory: UserDirectory,
        messenger: DirectMessenger,
        poster: ChannelPoster,
        *,
        team_name: str = STAFF_TEAM_NAME,
        team_avatar_url: Optional[str] = None,
        delivery_timeout: float = 10.0,
        fallback_notice: str = FALLBACK_NOTICE,
    ) -> None:
        self._directory = directory
        self._messenger = messenger
        self._poster = poster
        self._team_name = team_name
        self._team_avatar_url = team_avatar_url
        self._delivery_timeout = delivery_timeout
        self._fallback_notice = fallback_notice

    async def relay_reply(
        self,
        channel: ChannelHandle,
        actor: StaffActor,
        body: str,
        *,
        anonymous: bool = False,
        attachment: Optional[Attachment] = None,
    ) -> RelayOutcome:
        try:
            text = self._validate_body(body, attachment)
            subject = await resolve_subject(channel, self._directory)
        except ModmailError as exc:
            logger.info(
                "relay_reply_rejected",
                channel=channel.name,
                actor_id=actor.user_id,
                reason=type(exc).__name__,
            )
            return RelayOutcome.rejected(exc)

        message = RelayMessage(
            body=text,
            sender=identity_for(
                actor,
                anonymous=anonymous,
                team_name=self._team_name,
                team_avatar_url=self._team_avatar_url,
            ),
            direction=Direction.STAFF_TO_USER,
            attachment=attachment,
        )
        try:
            await self._deliver(subject, message)
        except DeliveryFailed as exc:
            return await self._fall_back(channel, actor, exc)

        logger.info(
            "relay_reply_delivered",
            channel=channel.name,
            actor_id=actor.user_id,
            user_id=subject.user_id,
            anonymous=anonymous,
        )
        return RelayOutcome.success(REPLY_SENT)

    async def add_note(self, channel: ChannelHandle, actor: StaffActor, body: str) -> RelayOutcome:
        try:
            text = self._validate_body(body)
            subject_identifier(channel)
        except ModmailError as exc:
            logger.info(
                "relay_note_rejected",
                channel=channel.name,
                actor_id=actor.user_id,
                reason=type(exc).__name__,
            )
            return RelayOutcome.rejected(exc)

        note = RelayMessage(
            body=text,
            sender=RealIdentity(name=actor.tag, avatar_url=actor.avatar_url),
            direction=Direction.STAFF_TO_STAFF,
        )
        try:
            await self._poster.post_message(channel, note)
        except ChannelPostFailed as exc:
            logger.error("relay_note_post_failed", channel=channel.name, error=str(exc))
            return RelayOutcome.failed(exc)
        logger.info("relay_note_added", channel=channel.name, actor_id=actor.user_id)
        return RelayOutcome.success(NOTE_ADDED)

    async def tag_case(self, channel: ChannelHandle, actor: StaffActor, tag: str) -> RelayOutcome:
        """Announce a triage label in the case topic; the topic name is left alone."""
        try:
            label = self._validate_body(tag).strip()
            subject_identifier(channel)
        except ModmailError as exc:
            logger.info("relay_tag_rejected", channel=channel.name, reason=type(exc).__name__)
            return RelayOutcome.rejected(exc)

        announcement = TAGGED.format(tag=label)
        try:
            await self._poster.post_notice(channel, f"🏷 {announcement}")
        except ChannelPostFailed as exc:
            logger.error("relay_tag_post_failed", channel=channel.name, error=str(exc))
            return RelayOutcome.failed(exc)
        logger.info("relay_case_tagged", channel=channel.name, actor_id=actor.user_id, tag=label)
        return RelayOutcome.success(announcement)

    async def _deliver(self, subject: UserIdentity, message: RelayMessage) -> None:
        try:
            await asyncio.wait_for(
                self._messenger.send_direct_message(subject, message),
                timeout=self._delivery_timeout,
            )
        except DeliveryFailed:
            raise
        except asyncio.TimeoutError as exc:
            raise DeliveryFailed(f"delivery timed out after {self._delivery_timeout}s") from exc
        except Exception as exc:  # pylint: disable=broad-except
            raise DeliveryFailed(str(exc)) from exc

    async def _fall_back(
        self, channel: ChannelHandle, actor: StaffActor, error: DeliveryFailed
    ) -> RelayOutcome:
        logger.warning(
            "relay_delivery_failed",
            channel=channel.name,
            actor_id=actor.user_id,
            error=str(error),
        )
        try:
            await self._poster.post_notice(channel, self._fallback_notice)
        except ChannelPostFailed as exc:
            logger.error("relay_fallback_post_failed", channel=channel.name, error=str(exc))
            return RelayOutcome.failed(exc)
        return RelayOutcome.warning(REPLY_FALLBACK, error)

    @staticmethod
    def _validate_body(body: str, attachment: Optional[Attachment] = None) -> str:
        # whitespace-only counts as empty, but the body is relayed untouched
        if not (body or "").strip() and attachment is None:
            raise EmptyBody()
        return body or ""
