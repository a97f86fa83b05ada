from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MODMAIL_PREFIX = "modmail-"
STAFF_TEAM_NAME = "Staff Team"
FALLBACK_NOTICE = "❌ Could not DM the user (DMs may be closed)."
WELCOME_MESSAGE = (
    "👋 Hello! Thank you for contacting the staff. "
    "Please describe your issue and an admin will respond as soon as possible."
)


class ModmailSettings(BaseModel):
    staff_chat_id: int = Field(..., description="Forum supergroup holding one topic per case.")
    inbox_thread_id: Optional[int] = Field(
        default=None, description="Topic receiving contact requests from users without an open case."
    )
    team_name: str = STAFF_TEAM_NAME
    team_avatar_url: Optional[str] = None
    delivery_timeout_seconds: float = Field(default=10.0, gt=0)
    relay_plain_messages: bool = True
    ignore_prefix: str = "!!"
    welcome_message: str = WELCOME_MESSAGE


class AppealSettings(BaseModel):
    chat_id: Optional[int] = Field(default=None, description="Chat receiving new appeals.")
    thread_id: Optional[int] = None
    community_chat_id: Optional[int] = Field(
        default=None, description="Chat the user is unbanned from when an appeal is accepted."
    )


class ApiSettings(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    secret: str = Field(default="", description="Bearer token required by the appeal endpoint.")


class StorageSettings(BaseModel):
    sqlite_path: str = "modmail.db"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    use_json: bool = Field(default=False, description="Use JSON format instead of colored output")


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MODMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    telegram_token: str = Field(..., description="Telegram bot token.")
    modmail: ModmailSettings
    appeals: AppealSettings = AppealSettings()
    api: ApiSettings = ApiSettings()
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()
