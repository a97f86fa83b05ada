from __future__ import annotations

import structlog

from ..config import MODMAIL_PREFIX
from ..errors import NotAModmailChannel, UserNotFound
from ..models import ChannelHandle, UserIdentity
from .ports import UserDirectory

logger = structlog.get_logger(__name__)


def is_modmail_channel(channel: ChannelHandle) -> bool:
    return bool(channel.name) and channel.name.startswith(MODMAIL_PREFIX)


def subject_identifier(channel: ChannelHandle) -> str:
    if not is_modmail_channel(channel):
        raise NotAModmailChannel(f"channel {channel.name!r} lacks prefix {MODMAIL_PREFIX!r}")
    # strip the prefix exactly once; the remainder is the raw identifier
    return channel.name[len(MODMAIL_PREFIX):]


def channel_name_for(identifier: str | int) -> str:
    return f"{MODMAIL_PREFIX}{identifier}"


async def resolve_subject(channel: ChannelHandle, directory: UserDirectory) -> UserIdentity:
    identifier = subject_identifier(channel)
    if not identifier:
        raise UserNotFound("empty identifier")
    user = await directory.lookup_user(identifier)
    if user is None:
        logger.info("resolver_user_not_found", channel=channel.name, identifier=identifier)
        raise UserNotFound(identifier)
    logger.debug("resolver_subject_resolved", channel=channel.name, user_id=user.user_id)
    return user
