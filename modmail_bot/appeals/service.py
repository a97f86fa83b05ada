from __future__ import annotations

import abc

import structlog

from ..errors import ChannelPostFailed, DeliveryFailed, UnbanFailed
from ..models import AppealRecord, RelayOutcome, UserIdentity
from ..relay.ports import DirectMessenger

logger = structlog.get_logger(__name__)

ACCEPTED_DM = (
    "Your ban appeal has been accepted! You have been unbanned from the community. Welcome back!"
)
DENIED_DM = "Your ban appeal has been denied. If you have questions, contact staff."


class AppealPublisher(abc.ABC):
    @abc.abstractmethod
    async def publish(self, appeal: AppealRecord) -> None:
        """Post the appeal for staff review; raise ``ChannelPostFailed`` on failure."""


class BanGateway(abc.ABC):
    @abc.abstractmethod
    async def unban(self, user_id: int) -> None:
        """Lift the ban in the community chat; raise ``UnbanFailed`` on failure."""


class AppealBridge:
    """Turns submitted appeals into staff-visible artifacts and applies staff decisions."""

    def __init__(self, publisher: AppealPublisher, bans: BanGateway, messenger: DirectMessenger) -> None:
        self._publisher = publisher
        self._bans = bans
        self._messenger = messenger

    async def submit(self, appeal: AppealRecord) -> None:
        logger.info("appeal_received", user_id=appeal.user_id, username=appeal.username)
        try:
            await self._publisher.publish(appeal)
        except ChannelPostFailed as exc:
            logger.error("appeal_publish_failed", user_id=appeal.user_id, error=str(exc))
            raise
        logger.info("appeal_published", user_id=appeal.user_id)

    async def accept(self, user_id: int) -> RelayOutcome:
        try:
            await self._bans.unban(user_id)
        except UnbanFailed as exc:
            logger.warning("appeal_unban_failed", user_id=user_id, error=str(exc))
            return RelayOutcome.failed(exc)
        logger.info("appeal_accepted", user_id=user_id)
        try:
            await self._notify(user_id, ACCEPTED_DM)
        except DeliveryFailed as exc:
            return RelayOutcome.warning("User unbanned, but DM failed.", exc)
        return RelayOutcome.success("User unbanned and notified via DM.")

    async def deny(self, user_id: int) -> RelayOutcome:
        logger.info("appeal_denied", user_id=user_id)
        try:
            await self._notify(user_id, DENIED_DM)
        except DeliveryFailed as exc:
            return RelayOutcome.warning("Appeal denied, but DM failed.", exc)
        return RelayOutcome.success("Appeal denied.")

    async def _notify(self, user_id: int, text: str) -> None:
        user = UserIdentity(user_id=user_id, display_name=str(user_id))
        try:
            await self._messenger.send_notice(user, text)
        except DeliveryFailed as exc:
            logger.warning("appeal_dm_failed", user_id=user_id, error=str(exc))
            raise
