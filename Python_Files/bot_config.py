"""
Bot Configuration.

Static settings read once at process start from the environment (optionally
populated from `Data_Files/.env`). Nothing here changes for the lifetime of
the process.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)

# ==========================
# Path & Environment Setup
# ==========================
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(BASE_DIR, "Data_Files")

DEFAULT_CHECK_INTERVAL_MS = 60_000
DEFAULT_MESSAGE = "🔔 **{{channel_name}}** uploaded a new video!\n{{video_url}}"
DEFAULT_EMBED_COLOR = 0xFF0000
DEFAULT_FEED_TIMEOUT = 10.0
DEFAULT_SEND_TIMEOUT = 15.0
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class BotSettings:
    """Process-wide configuration."""

    discord_token: Optional[str]
    database_url: Optional[str]
    check_interval_ms: int = DEFAULT_CHECK_INTERVAL_MS
    default_message: str = DEFAULT_MESSAGE
    embed_color: int = DEFAULT_EMBED_COLOR
    feed_timeout: float = DEFAULT_FEED_TIMEOUT
    send_timeout: float = DEFAULT_SEND_TIMEOUT
    log_level: str = "INFO"

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000


def parse_color(value: str) -> int:
    """
    Parse an embed color written as `#RRGGBB`, `0xRRGGBB` or a plain integer.

    Raises
    ------
    ValueError
        If the value is not a color in the 24-bit range.
    """
    text = value.strip()
    if text.startswith("#"):
        color = int(text[1:], 16)
    elif text.lower().startswith("0x"):
        color = int(text, 16)
    else:
        color = int(text)
    if not 0 <= color <= 0xFFFFFF:
        raise ValueError(f"Embed color out of range: {value}")
    return color


def _positive_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> BotSettings:
    """
    Build the settings object.

    Parameters
    ----------
    env : Mapping[str, str], optional
        Source of variables. When omitted, `Data_Files/.env` is loaded into
        the process environment and `os.environ` is used.
    """
    if env is None:
        load_dotenv(os.path.join(DATA_DIR, ".env"))
        env = os.environ

    message = env.get("DEFAULT_MESSAGE") or DEFAULT_MESSAGE
    # .env files usually hold the template on one line
    message = message.replace("\\n", "\n")

    log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
        )

    color_raw = env.get("EMBED_COLOR")
    color = parse_color(color_raw) if color_raw else DEFAULT_EMBED_COLOR

    settings = BotSettings(
        discord_token=env.get("DISCORD_TOKEN"),
        database_url=env.get("DATABASE_URL"),
        check_interval_ms=_positive_number(
            env, "CHECK_INTERVAL_MS", DEFAULT_CHECK_INTERVAL_MS, int
        ),
        default_message=message,
        embed_color=color,
        feed_timeout=_positive_number(
            env, "FEED_TIMEOUT_SECONDS", DEFAULT_FEED_TIMEOUT, float
        ),
        send_timeout=_positive_number(
            env, "SEND_TIMEOUT_SECONDS", DEFAULT_SEND_TIMEOUT, float
        ),
        log_level=log_level,
    )
    log.debug(
        f"Settings loaded: interval={settings.check_interval_ms}ms, "
        f"color=#{settings.embed_color:06X}"
    )
    return settings
