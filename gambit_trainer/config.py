"""Runtime settings read from environment variables.

    GAMBIT_TRAINER_DATA_DIR        data directory (default: <project>/data)
    GAMBIT_TRAINER_DB              sqlite file (default: <data_dir>/gambits.db)
    GAMBIT_TRAINER_REPLY_DELAY_MS  delay before the opponent replies (default 300)
    GAMBIT_TRAINER_INLINE_REPLIES  fire replies inside the same tool call (default 1)
    GAMBIT_TRAINER_VALIDATE        validate tool response shapes (default 0)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from gambit_trainer.errors import InvalidInputError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"
_DEFAULT_REPLY_DELAY_MS = 300

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    reply_delay_ms: int = _DEFAULT_REPLY_DELAY_MS
    inline_replies: bool = True
    validate_responses: bool = False


def _env_int(env, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise InvalidInputError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise InvalidInputError(f"{name} must not be negative, got {value}")
    return value


def _env_bool(env, name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InvalidInputError(f"{name} must be a boolean flag, got {raw!r}")


def load_settings(env=None) -> Settings:
    """Build Settings from ``env`` (defaults to os.environ).

    Raises:
        InvalidInputError: If a numeric or boolean variable is malformed.
    """
    if env is None:
        env = os.environ

    data_dir = Path(env.get("GAMBIT_TRAINER_DATA_DIR") or _DEFAULT_DATA_DIR)
    db_path = Path(env.get("GAMBIT_TRAINER_DB") or data_dir / "gambits.db")

    return Settings(
        data_dir=data_dir,
        db_path=db_path,
        reply_delay_ms=_env_int(env, "GAMBIT_TRAINER_REPLY_DELAY_MS", _DEFAULT_REPLY_DELAY_MS),
        inline_replies=_env_bool(env, "GAMBIT_TRAINER_INLINE_REPLIES", True),
        validate_responses=_env_bool(env, "GAMBIT_TRAINER_VALIDATE", False),
    )
