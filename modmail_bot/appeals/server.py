from __future__ import annotations

import hmac
import json
from typing import Optional

import structlog
from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ChannelPostFailed
from ..models import AppealRecord
from .service import AppealBridge

logger = structlog.get_logger(__name__)

APPEAL_PATH = "/api/post-appeal"


class AppealPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    user_id: int = Field(..., alias="userId", gt=0)
    username: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    details: Optional[str] = None

    def to_record(self) -> AppealRecord:
        return AppealRecord(
            user_id=self.user_id,
            username=self.username,
            reason=self.reason,
            details=self.details or None,
        )


def _authorized(request: web.Request, secret: str) -> bool:
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def build_appeal_app(bridge: AppealBridge, *, secret: str) -> web.Application:
    """
    HTTP surface the appeal website posts to.

    Accepts either the bare appeal object or the website's envelope
    ``{"channelId": ..., "appeal": {...}}``; the target channel always comes
    from settings.
    """
    app = web.Application()
    if not secret:
        logger.warning("appeal_api_secret_missing")

    async def health(_: web.Request) -> web.Response:
        return web.json_response({"ok": True, "service": "modmail-appeals"})

    async def post_appeal(request: web.Request) -> web.Response:
        if not _authorized(request, secret):
            logger.warning("appeal_unauthorized", remote=request.remote)
            return web.json_response({"error": "Unauthorized"}, status=401)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        if isinstance(body, dict) and isinstance(body.get("appeal"), dict):
            body = body["appeal"]
        if not isinstance(body, dict):
            return web.json_response({"error": "Expected a JSON object"}, status=400)
        try:
            payload = AppealPayload.model_validate(body)
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
            logger.info("appeal_rejected", fields=fields)
            return web.json_response({"error": "Missing or invalid fields", "fields": fields}, status=400)
        try:
            await bridge.submit(payload.to_record())
        except ChannelPostFailed:
            return web.json_response({"error": "Failed to post appeal"}, status=502)
        return web.json_response({"ok": True})

    app.router.add_get("/healthz", health)
    app.router.add_post(APPEAL_PATH, post_appeal)
    return app


class AppealServer:
    def __init__(self, app: web.Application, *, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("appeal_server_listening", host=self._host, port=self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("appeal_server_stopped")
