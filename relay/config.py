"""the beautiful world start from here."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """App Settings"""

    slack_bot_token: str = os.getenv("SLACK_BOT_TOKEN", "")
    slack_api_url: str = os.getenv("SLACK_API_URL", "https://slack.com/api")
    ws_addr: str = os.getenv("WS_ADDR", "")
    gitopia_api_url: str = os.getenv(
        "GITOPIA_API_URL", "https://api.gitopia.com/gitopia/gitopia/gitopia"
    )
    gitopia_web_url: str = os.getenv("GITOPIA_WEB_URL", "https://gitopia.com")
    reconnect_delay_seconds: float = float(os.getenv("RECONNECT_DELAY_SECONDS", "1"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))
    attributes_base64: bool = _env_bool("ATTRIBUTES_BASE64", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
