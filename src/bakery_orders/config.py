import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger
from .paths import expand_abs, find_project_root

log = get_logger("config")

DEFAULT_AI_MODEL = "gpt-4o-mini"
DEFAULT_ACCESS_PIN = "0300"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir."""
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return key/value pairs from the nearest .env; never mutates os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: v.strip() for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _lookup(env: Dict[str, str], key: str) -> Optional[str]:
    v = os.environ.get(key)
    if v is None:
        v = env.get(key)
    if v is None:
        return None
    v = v.strip()
    return v or None


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"SHEETS_TIMEOUT={raw!r} is not a number; using transport default")
        return None
    return value if value > 0 else None


@dataclass
class Settings:
    root_dir: str
    sheets_url: Optional[str] = None
    sheets_timeout: Optional[float] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    ai_model: str = DEFAULT_AI_MODEL
    access_pin: str = DEFAULT_ACCESS_PIN


def load_settings(dotenv_dir: Optional[str] = None) -> Settings:
    """Build Settings from the environment, falling back to the nearest .env.

    Environment variables always win over .env entries.
    """
    base = dotenv_dir or os.getcwd()
    env = _read_dotenv(base)

    root = _lookup(env, "BAKERY_ROOT")
    root_dir = expand_abs(root) if root else find_project_root(base)

    pin = _lookup(env, "BAKERY_ACCESS_PIN") or DEFAULT_ACCESS_PIN
    if not (len(pin) == 4 and pin.isdigit()):
        log.warning("BAKERY_ACCESS_PIN must be 4 digits; falling back to the default code")
        pin = DEFAULT_ACCESS_PIN

    settings = Settings(
        root_dir=root_dir,
        sheets_url=_lookup(env, "SHEETS_WEBHOOK_URL"),
        sheets_timeout=_parse_timeout(_lookup(env, "SHEETS_TIMEOUT")),
        openai_api_key=_lookup(env, "OPENAI_API_KEY") or _lookup(env, "openai_api_key"),
        openai_base_url=_lookup(env, "OPENAI_BASE_URL"),
        ai_model=_lookup(env, "BAKERY_AI_MODEL") or DEFAULT_AI_MODEL,
        access_pin=pin,
    )
    if settings.openai_api_key:
        log.info("OpenAI API key configured; AI parsing enabled")
    else:
        log.info("OPENAI_API_KEY not set; AI parsing and insights disabled")
    return settings
