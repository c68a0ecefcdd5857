from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "FRESHOPS_DATA_DIR"
ENV_LOG_LEVEL = "FRESHOPS_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    currency: str = "EGP"
    autosave_delay_ms: int = 800
    report_window_days: int = 7
    log_level: str = "INFO"


def _default_data_dir() -> Path:
    return Path.home() / ".freshops"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logging.getLogger(__name__).warning("Ignoring unreadable %s", cfg)
            return {}
    return {}


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    cfg = data_dir / CONFIG_FILE_NAME
    payload = {"data_dir": str(data_dir)}
    cfg.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Update session for immediate effect
    st.session_state["freshops_data_dir"] = str(data_dir)


def resolve_data_dir(session_dir: str | None = None) -> Path:
    # Priority order:
    # 1) Session state (set via Data Management page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    if session_dir:
        return Path(session_dir).expanduser().resolve()
    if os.getenv(ENV_DATA_DIR):
        return Path(os.getenv(ENV_DATA_DIR, "")).expanduser().resolve()
    default_dir = _default_data_dir()
    persisted = _load_persisted_settings(default_dir)
    return Path(persisted.get("data_dir", default_dir)).expanduser().resolve()


def build_settings(data_dir: Path) -> Settings:
    data_dir.mkdir(parents=True, exist_ok=True)
    persisted = _load_persisted_settings(data_dir)
    return Settings(
        data_dir=data_dir,
        db_path=data_dir / "app.db",
        currency=str(persisted.get("currency", "EGP")),
        autosave_delay_ms=int(persisted.get("autosave_delay_ms", 800)),
        report_window_days=int(persisted.get("report_window_days", 7)),
        log_level=os.getenv(ENV_LOG_LEVEL, str(persisted.get("log_level", "INFO"))).upper(),
    )


@st.cache_resource
def get_settings() -> Settings:
    settings = build_settings(resolve_data_dir(st.session_state.get("freshops_data_dir")))
    configure_logging(settings.log_level)
    return settings


def configure_logging(level: str = "INFO") -> None:
    # basicConfig is a no-op once the root logger has handlers.
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
