"""
Runtime settings, read from environment variables with defaults.
Config.from_env() snapshots the environment; tests build Config(...) directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})")


@dataclass(frozen=True)
class Config:
    db_path: Path = _project_root() / "data" / "dinkdrop.db"
    log_level: str = "INFO"
    k_factor: int = 32
    provisional_k: bool = False
    proposal_timeout_seconds: float = 30.0
    daily_challenge_count: int = 3
    notification_capacity: int = 20
    rating_band: int | None = None  # None = any two waiting players are compatible
    jwt_secret_key: str = "dinkdrop-dev-secret-change-in-production"

    @classmethod
    def from_env(cls) -> Config:
        db_path = os.environ.get("DINKDROP_DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else cls.db_path,
            log_level=os.environ.get("DINKDROP_LOG_LEVEL", cls.log_level).upper(),
            k_factor=_env_int("DINKDROP_K_FACTOR", cls.k_factor),
            provisional_k=_env_bool("DINKDROP_PROVISIONAL_K", cls.provisional_k),
            proposal_timeout_seconds=float(
                os.environ.get("DINKDROP_PROPOSAL_TIMEOUT_SECONDS", cls.proposal_timeout_seconds)
            ),
            daily_challenge_count=_env_int("DINKDROP_DAILY_CHALLENGES", cls.daily_challenge_count),
            notification_capacity=_env_int("DINKDROP_NOTIFICATION_CAPACITY", cls.notification_capacity),
            rating_band=_env_int("DINKDROP_RATING_BAND", None),
            jwt_secret_key=os.environ.get("JWT_SECRET_KEY", cls.jwt_secret_key),
        )
