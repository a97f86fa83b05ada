from __future__ import annotations

import pytest

from modmail_bot.models import Attachment, AttachmentKind, Direction
from modmail_bot.relay.inbound import InboundRelay, InboundStatus
from tests.factories import STAFF_CHAT_ID, make_user
from tests.fakes import FakePoster, InMemoryStorage


def build_inbound(
    *, inbox_thread_id: int | None = None, poster: FakePoster | None = None
) -> tuple[InboundRelay, InMemoryStorage, FakePoster]:
    storage = InMemoryStorage()
    poster = poster or FakePoster()
    inbound = InboundRelay(
        storage,
        storage,
        storage,
        poster,
        staff_chat_id=STAFF_CHAT_ID,
        inbox_thread_id=inbox_thread_id,
    )
    return inbound, storage, poster


@pytest.mark.asyncio
async def test_message_is_forwarded_into_open_case_topic() -> None:
    inbound, storage, poster = build_inbound()
    user = make_user(user_id=99)
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")

    status = await inbound.forward(user, "I need help")

    assert status == InboundStatus.FORWARDED
    channel, message = poster.messages[0]
    assert channel.thread_id == 314
    assert channel.name == "modmail-99"
    assert message.direction == Direction.USER_TO_STAFF
    assert message.sender.name == "@bob"
    assert message.body == "I need help"


@pytest.mark.asyncio
async def test_blocked_user_is_ignored() -> None:
    inbound, storage, poster = build_inbound(inbox_thread_id=1)
    user = make_user(user_id=99)
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")
    await storage.block(99, blocked_by=7)

    status = await inbound.forward(user, "let me in")

    assert status == InboundStatus.BLOCKED
    assert poster.total_posts == 0


@pytest.mark.asyncio
async def test_user_without_case_gets_contact_request_in_inbox() -> None:
    inbound, _, poster = build_inbound(inbox_thread_id=5)
    user = make_user(user_id=99, username=None, display_name="Bob")

    status = await inbound.forward(user, "hello?")

    assert status == InboundStatus.NO_CASE
    assert poster.messages == []
    channel, notice = poster.notices[0]
    assert channel.thread_id == 5
    assert "Bob" in notice
    assert "modmail-99" in notice
    assert notice.endswith("hello?")


@pytest.mark.asyncio
async def test_user_without_case_and_no_inbox_posts_nothing() -> None:
    inbound, _, poster = build_inbound()

    status = await inbound.forward(make_user(), "hello?")

    assert status == InboundStatus.NO_CASE
    assert poster.total_posts == 0


@pytest.mark.asyncio
async def test_topics_in_other_chats_do_not_count_as_cases() -> None:
    inbound, storage, _ = build_inbound()
    await storage.upsert_topic(-1, 314, "modmail-99")

    assert await inbound.find_case(make_user(user_id=99)) is None


@pytest.mark.asyncio
async def test_post_failure_is_reported() -> None:
    inbound, storage, _ = build_inbound(poster=FakePoster(fail=True))
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")

    status = await inbound.forward(make_user(user_id=99), "anyone?")

    assert status == InboundStatus.FAILED


@pytest.mark.asyncio
async def test_attachment_is_forwarded_with_caption() -> None:
    inbound, storage, poster = build_inbound()
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")
    photo = Attachment(kind=AttachmentKind.PHOTO, file_id="photo-file")

    status = await inbound.forward(make_user(user_id=99), "", message_id=7, attachment=photo)

    assert status == InboundStatus.FORWARDED
    _, message = poster.messages[0]
    assert message.attachment == photo
    assert storage.links[(99, 7)].has_attachment is True


@pytest.mark.asyncio
async def test_user_edit_follows_forwarded_message() -> None:
    inbound, storage, poster = build_inbound()
    user = make_user(user_id=99)
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")
    await inbound.forward(user, "frist draft", message_id=7)
    posted_id = storage.links[(99, 7)].message_id

    status = await inbound.sync_edit(user, 7, "first draft")

    assert status == InboundStatus.EDITED
    edited_id, message, caption = poster.edits[0]
    assert edited_id == posted_id
    assert message.body == "first draft"
    assert message.edited
    assert caption is False


@pytest.mark.asyncio
async def test_edit_of_media_message_updates_caption() -> None:
    inbound, storage, poster = build_inbound()
    user = make_user(user_id=99)
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")
    await inbound.forward(
        user, "look", message_id=8, attachment=Attachment(kind=AttachmentKind.DOCUMENT, file_id="doc")
    )

    await inbound.sync_edit(user, 8, "look at this")

    assert poster.edits[0][2] is True


@pytest.mark.asyncio
async def test_edit_of_unknown_message_is_ignored() -> None:
    inbound, _, poster = build_inbound()

    status = await inbound.sync_edit(make_user(user_id=99), 7, "changed")

    assert status == InboundStatus.UNTRACKED
    assert poster.edits == []


@pytest.mark.asyncio
async def test_edit_failure_is_reported() -> None:
    inbound, storage, poster = build_inbound()
    user = make_user(user_id=99)
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")
    await inbound.forward(user, "hello", message_id=7)
    poster.fail = True

    assert await inbound.sync_edit(user, 7, "hello again") == InboundStatus.FAILED


@pytest.mark.asyncio
async def test_forward_without_message_id_records_no_link() -> None:
    inbound, storage, _ = build_inbound()
    await storage.upsert_topic(STAFF_CHAT_ID, 314, "modmail-99")

    await inbound.forward(make_user(user_id=99), "hello")

    assert storage.links == {}
