from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from echoes.roles import RoleWeights

ENV_PREFIX = "ECHOES_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _positive_seconds(value: float) -> bool:
    # NaN and inf would leave a window without a defined end.
    return math.isfinite(value) and value > 0


@dataclass(frozen=True, slots=True)
class Settings:
    voting_period_s: float = 60.0
    weights: RoleWeights = field(default_factory=RoleWeights)
    use_mock_chat: bool = False
    mock_chat_interval_s: float = 3.0
    # None => system randomness.
    seed: int | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not _positive_seconds(self.voting_period_s):
            raise ValueError("ECHOES_VOTING_PERIOD_SECONDS must be a finite positive number")
        if not _positive_seconds(self.mock_chat_interval_s):
            raise ValueError("ECHOES_MOCK_CHAT_INTERVAL_SECONDS must be a finite positive number")


def project_root() -> Path:
    # echoes/config.py -> echoes/ -> project root
    return Path(__file__).resolve().parents[1]


def _get(env: Mapping[str, str], name: str) -> str | None:
    return env.get(ENV_PREFIX + name)


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number (got {raw!r})") from e


def _int(env: Mapping[str, str], name: str, default: int | None) -> int | None:
    raw = _get(env, name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer (got {raw!r})") from e


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    value = raw.strip().casefold()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean (got {raw!r})")


def settings_from_env(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from `ECHOES_*` environment variables.

    Invalid values raise ValueError here, before any voting window is started.
    """

    env = os.environ if env is None else env
    defaults = RoleWeights()

    weights = RoleWeights(
        regular=_int(env, "WEIGHT_REGULAR", defaults.regular),  # type: ignore[arg-type]
        subscriber=_int(env, "WEIGHT_SUBSCRIBER", defaults.subscriber),  # type: ignore[arg-type]
        vip=_int(env, "WEIGHT_VIP", defaults.vip),  # type: ignore[arg-type]
        moderator=_int(env, "WEIGHT_MODERATOR", defaults.moderator),  # type: ignore[arg-type]
    )

    return Settings(
        voting_period_s=_float(env, "VOTING_PERIOD_SECONDS", 60.0),
        weights=weights,
        use_mock_chat=_bool(env, "USE_MOCK_CHAT", False),
        mock_chat_interval_s=_float(env, "MOCK_CHAT_INTERVAL_SECONDS", 3.0),
        seed=_int(env, "SEED", None),
        log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
    )


def load_env_file(path: Path | None = None) -> None:
    """Load a repo `.env` into the process environment without overriding real env vars."""

    env_path = path or project_root() / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)
