from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

log = logging.getLogger(__name__)


# ---------------- fixed timings ----------------
TICK_SECONDS = 5                 # scheduler granularity
RECONNECT_DELAY_SECONDS = 5      # after a fatal error / close
CONNECT_RETRY_SECONDS = 30       # after a failed connect
RENAME_WINDOW_SECONDS = 600
RENAME_MAX_PER_WINDOW = 2
RENAME_MIN_SPACING_SECONDS = 61


@dataclass(frozen=True)
class Settings:
    token: str

    # ---------------- TeamSpeak query ----------------
    ts_host: str = "localhost"
    ts_query_port: int = 10011
    ts_username: str = "serveradmin"
    ts_password: str = ""
    ts_voice_port: int = 9987
    query_timeout_seconds: float = 10.0
    keepalive_seconds: float = 60.0

    # ---------------- Status embed ----------------
    embed_title: str = "TS Status"
    embed_color: int = 0xFF69B4
    max_username_length: int = 15
    ignored_channel_patterns: tuple[str, ...] = ("spacer", "Server Query")

    # ---------------- Refresh rules ----------------
    tick_seconds: int = TICK_SECONDS
    update_interval_seconds: int = 10        # regular refresh
    force_refresh_seconds: int = 180         # re-render even if nothing changed
    min_edit_spacing_seconds: int = 5        # between two message edits

    # ---------------- Count label ----------------
    count_channel_id: int | None = None      # None = feature off
    count_interval_seconds: int = 60
    count_name_template: str = "TeamSpeak: %COUNT%📞"

    # ---------------- Default channel ----------------
    # kept separate on purpose: the lobby may be shown but not counted
    status_ignore_default: bool = True
    count_ignore_default: bool = True

    # ---------------- Storage ----------------
    db_dir: str = "data"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _env_int(name: str, default: int | None) -> int | None:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    s = _env_str(name).lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


def load_settings() -> Settings:
    # .env is only a local convenience; real env vars always win
    load_dotenv(override=False)

    # presence only, never values
    for key in ("DISCORD_TOKEN", "TS_SERVER", "TS_USERNAME", "TS_PASSWORD"):
        log.info("[ENV] %s present? %s", key, bool(_env_str(key)))

    required = {
        "DISCORD_TOKEN": _env_str("DISCORD_TOKEN"),
        "TS_SERVER": _env_str("TS_SERVER"),
        "TS_USERNAME": _env_str("TS_USERNAME"),
        "TS_PASSWORD": _env_str("TS_PASSWORD"),
    }
    missing = [k for k, v in required.items() if not v]
    if missing:
        raise RuntimeError(
            "Missing required configuration: " + ", ".join(missing) + "\n"
            "Set them in the environment or in a .env file next to the bot."
        )

    # legacy name kept working
    count_channel_id = _env_int("DISCORD_COUNT_CHANNEL_ID", None)
    if count_channel_id is None:
        count_channel_id = _env_int("DISCORD_VC_STATUS_ID", None)
    if count_channel_id is None:
        log.warning("DISCORD_COUNT_CHANNEL_ID not set - count feature disabled")

    status_ignore_default = _env_bool("IGNORE_DEFAULT_CHANNEL", True)

    return Settings(
        token=required["DISCORD_TOKEN"],
        ts_host=required["TS_SERVER"],
        ts_query_port=_env_int("TS_PORT", 10011),
        ts_username=required["TS_USERNAME"],
        ts_password=required["TS_PASSWORD"],
        ts_voice_port=_env_int("TS_VOICE_PORT", 9987),
        max_username_length=_env_int("MAX_USERNAME_LENGTH", 15),
        update_interval_seconds=_env_int("UPDATE_INTERVAL_SECONDS", 10),
        force_refresh_seconds=_env_int("FORCE_REFRESH_SECONDS", 180),
        min_edit_spacing_seconds=_env_int("MIN_EDIT_SPACING_SECONDS", 5),
        count_channel_id=count_channel_id,
        count_interval_seconds=_env_int("COUNT_UPDATE_SECONDS", 60),
        count_name_template=_env_str("COUNT_CHANNEL_TEMPLATE", "TeamSpeak: %COUNT%📞"),
        status_ignore_default=status_ignore_default,
        count_ignore_default=_env_bool("COUNT_IGNORE_DEFAULT_CHANNEL", status_ignore_default),
        db_dir=_env_str("TSSTATUS_DB_DIR", "data"),
    )
