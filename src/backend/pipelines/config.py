from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class SignalsConfig:
    data_dir: Path
    max_workers: int
    activity_lookback_days: int
    log_level: str


def get_signals_config() -> SignalsConfig:
    """
    Load signal generation settings from environment variables (.env supported).

    Reads:
      SIGNALS_DATA_DIR, SIGNALS_MAX_WORKERS, SIGNALS_ACTIVITY_LOOKBACK_DAYS, SIGNALS_LOG_LEVEL
    """
    data_dir = os.getenv("SIGNALS_DATA_DIR", "").strip()
    return SignalsConfig(
        data_dir=Path(data_dir) if data_dir else _default_data_dir(),
        max_workers=_int_env("SIGNALS_MAX_WORKERS", 4, minimum=1),
        activity_lookback_days=_int_env("SIGNALS_ACTIVITY_LOOKBACK_DAYS", 180, minimum=1),
        log_level=_log_level_env("SIGNALS_LOG_LEVEL", "INFO"),
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _default_data_dir() -> Path:
    return Path(__file__).resolve().parents[3] / "data"


def _int_env(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}.")
    return value


def _log_level_env(name: str, default: str) -> str:
    level = os.getenv(name, default).strip().upper() or default
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"{name} must be a logging level name, got {level!r}.")
    return level
