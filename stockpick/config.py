from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../stockpick repo
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float | None = None) -> float | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v.replace(",", "."))


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


def _get_ids(*keys: str) -> Tuple[int, ...]:
    v = _get_env(*keys, default="") or ""
    return tuple(int(p) for p in v.replace(";", ",").split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    bot_token: str
    staff_ids: Tuple[int, ...]
    db_path: str
    local_storage_path: str
    export_dir: str
    cart_ttl_hours: int
    progress_ttl_days: int
    draft_save_delay: float

    def require_bot(self) -> None:
        if not self.bot_token:
            raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
        if not self.staff_ids:
            raise RuntimeError("STAFF_IDS is empty. Set STAFF_IDS (or ADMIN_ID) in .env")


settings = Settings(
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    staff_ids=_get_ids("STAFF_IDS", "ADMIN_ID", "ADMIN_TG_ID"),
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "stockpick.db")),
    local_storage_path=_get_path("LOCAL_STORAGE_PATH", default=str(ROOT_DIR / "data" / "local_storage.json")),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    cart_ttl_hours=_get_int("CART_TTL_HOURS", default=24) or 24,
    progress_ttl_days=_get_int("PROGRESS_TTL_DAYS", default=7) or 7,
    draft_save_delay=_get_float("DRAFT_SAVE_DELAY", default=1.0) or 1.0,
)
