from __future__ import annotations

import abc
from typing import Optional

from ..models import ChannelHandle, RelayMessage, UserIdentity


class UserDirectory(abc.ABC):
    @abc.abstractmethod
    async def lookup_user(self, identifier: str) -> Optional[UserIdentity]:
        ...


class DirectMessenger(abc.ABC):
    @abc.abstractmethod
    async def send_direct_message(self, user: UserIdentity, message: RelayMessage) -> None:
        """Deliver to the user's private chat; raise ``DeliveryFailed`` on any failure."""

    @abc.abstractmethod
    async def send_notice(self, user: UserIdentity, text: str) -> None:
        ...


class ChannelPoster(abc.ABC):
    @abc.abstractmethod
    async def post_message(self, channel: ChannelHandle, message: RelayMessage) -> int:
        """Post into the staff channel and return the new message id."""

    @abc.abstractmethod
    async def edit_message(
        self,
        channel: ChannelHandle,
        message_id: int,
        message: RelayMessage,
        *,
        caption: bool = False,
    ) -> None:
        """Replace a posted message in place; ``caption`` marks a media post."""

    @abc.abstractmethod
    async def post_notice(self, channel: ChannelHandle, text: str) -> None:
        ...
