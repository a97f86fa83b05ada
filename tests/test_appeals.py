from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import pytest
from aiohttp import test_utils

from modmail_bot.appeals.server import APPEAL_PATH, AppealPayload, build_appeal_app
from modmail_bot.appeals.service import ACCEPTED_DM, DENIED_DM, AppealBridge
from modmail_bot.errors import ChannelPostFailed, DeliveryFailed, UnbanFailed
from modmail_bot.models import OutcomeStatus
from tests.factories import make_appeal
from tests.fakes import FakeAppealPublisher, FakeBans, FakeMessenger

SECRET = "s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


def build_bridge(
    *,
    publisher: FakeAppealPublisher | None = None,
    bans: FakeBans | None = None,
    messenger: FakeMessenger | None = None,
) -> tuple[AppealBridge, FakeAppealPublisher, FakeBans, FakeMessenger]:
    publisher = publisher or FakeAppealPublisher()
    bans = bans or FakeBans()
    messenger = messenger or FakeMessenger()
    return AppealBridge(publisher, bans, messenger), publisher, bans, messenger


@asynccontextmanager
async def appeal_client(bridge: AppealBridge, *, secret: str = SECRET) -> AsyncIterator[test_utils.TestClient]:
    client = test_utils.TestClient(test_utils.TestServer(build_appeal_app(bridge, secret=secret)))
    await client.start_server()
    try:
        yield client
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_submit_publishes_appeal() -> None:
    bridge, publisher, _, _ = build_bridge()
    appeal = make_appeal(details="I changed my password")

    await bridge.submit(appeal)

    assert publisher.published == [appeal]


@pytest.mark.asyncio
async def test_submit_propagates_publish_failure() -> None:
    bridge, _, _, _ = build_bridge(publisher=FakeAppealPublisher(fail=True))

    with pytest.raises(ChannelPostFailed):
        await bridge.submit(make_appeal())


@pytest.mark.asyncio
async def test_accept_unbans_and_notifies() -> None:
    bridge, _, bans, messenger = build_bridge()

    outcome = await bridge.accept(555)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert bans.unbanned == [555]
    assert [(user.user_id, text) for user, text in messenger.notices] == [(555, ACCEPTED_DM)]


@pytest.mark.asyncio
async def test_accept_with_closed_dms_still_unbans() -> None:
    bridge, _, bans, _ = build_bridge(messenger=FakeMessenger(error=DeliveryFailed("forbidden")))

    outcome = await bridge.accept(555)

    assert outcome.status == OutcomeStatus.SUCCESS_WITH_WARNING
    assert outcome.message == "User unbanned, but DM failed."
    assert bans.unbanned == [555]


@pytest.mark.asyncio
async def test_accept_reports_unban_failure_without_dm() -> None:
    bridge, _, _, messenger = build_bridge(bans=FakeBans(fail=True))

    outcome = await bridge.accept(555)

    assert outcome.status == OutcomeStatus.FAILED
    assert isinstance(outcome.error, UnbanFailed)
    assert messenger.notices == []


@pytest.mark.asyncio
async def test_deny_notifies_without_unban() -> None:
    bridge, _, bans, messenger = build_bridge()

    outcome = await bridge.deny(555)

    assert outcome.status == OutcomeStatus.SUCCESS
    assert bans.unbanned == []
    assert messenger.notices[0][1] == DENIED_DM


@pytest.mark.asyncio
async def test_deny_with_closed_dms_is_a_warning() -> None:
    bridge, _, _, _ = build_bridge(messenger=FakeMessenger(error=DeliveryFailed("forbidden")))

    outcome = await bridge.deny(555)

    assert outcome.status == OutcomeStatus.SUCCESS_WITH_WARNING


def test_payload_accepts_website_field_names() -> None:
    payload = AppealPayload.model_validate(
        {"userId": "555", "username": " banned_bob ", "reason": "hacked", "details": ""}
    )

    record = payload.to_record()

    assert record.user_id == 555
    assert record.username == "banned_bob"
    assert record.details is None


@pytest.mark.asyncio
async def test_endpoint_requires_bearer_secret() -> None:
    bridge, publisher, _, _ = build_bridge()
    body = {"userId": 555, "username": "bob", "reason": "hacked"}

    async with appeal_client(bridge) as client:
        missing = await client.post(APPEAL_PATH, json=body)
        wrong = await client.post(APPEAL_PATH, json=body, headers={"Authorization": "Bearer nope"})

    assert missing.status == 401
    assert wrong.status == 401
    assert publisher.published == []


@pytest.mark.asyncio
async def test_endpoint_rejects_everything_without_configured_secret() -> None:
    bridge, publisher, _, _ = build_bridge()

    async with appeal_client(bridge, secret="") as client:
        response = await client.post(
            APPEAL_PATH,
            json={"userId": 555, "username": "bob", "reason": "hacked"},
            headers={"Authorization": "Bearer "},
        )

    assert response.status == 401
    assert publisher.published == []


@pytest.mark.asyncio
async def test_endpoint_reports_invalid_fields() -> None:
    bridge, publisher, _, _ = build_bridge()

    async with appeal_client(bridge) as client:
        response = await client.post(APPEAL_PATH, json={"username": "bob"}, headers=AUTH)
        data = await response.json()

    assert response.status == 400
    assert "userId" in data["fields"]
    assert "reason" in data["fields"]
    assert publisher.published == []


@pytest.mark.asyncio
async def test_endpoint_rejects_malformed_json() -> None:
    bridge, _, _, _ = build_bridge()

    async with appeal_client(bridge) as client:
        not_json = await client.post(
            APPEAL_PATH, data="{oops", headers={**AUTH, "Content-Type": "application/json"}
        )
        not_object = await client.post(APPEAL_PATH, json=[1, 2], headers=AUTH)

    assert not_json.status == 400
    assert not_object.status == 400


@pytest.mark.asyncio
async def test_endpoint_accepts_website_envelope() -> None:
    bridge, publisher, _, _ = build_bridge()
    body = {
        "channelId": "ignored",
        "appeal": {"userId": 555, "username": "bob", "reason": "hacked", "details": "new phone"},
    }

    async with appeal_client(bridge) as client:
        response = await client.post(APPEAL_PATH, json=body, headers=AUTH)
        data = await response.json()

    assert response.status == 200
    assert data == {"ok": True}
    assert publisher.published == [make_appeal(username="bob", reason="hacked", details="new phone")]


@pytest.mark.asyncio
async def test_endpoint_reports_publish_failure() -> None:
    bridge, _, _, _ = build_bridge(publisher=FakeAppealPublisher(fail=True))

    async with appeal_client(bridge) as client:
        response = await client.post(
            APPEAL_PATH, json={"userId": 555, "username": "bob", "reason": "hacked"}, headers=AUTH
        )

    assert response.status == 502


@pytest.mark.asyncio
async def test_health_endpoint() -> None:
    bridge, _, _, _ = build_bridge()

    async with appeal_client(bridge) as client:
        response = await client.get("/healthz")

    assert response.status == 200
