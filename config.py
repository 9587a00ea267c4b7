import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_THRESHOLD = 0.85
DEFAULT_LABELS: Tuple[str, ...] = (
    "identity_attack",
    "insult",
    "obscene",
    "sexual_explicit",
    "threat",
    "severe_toxicity",
)
DEFAULT_CORS_ALLOW_ORIGIN = "*"
DEFAULT_MODEL_PATH = "moderation_model.pkl"
DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    threshold: float = DEFAULT_THRESHOLD
    labels: Tuple[str, ...] = DEFAULT_LABELS
    cors_allow_origin: str = DEFAULT_CORS_ALLOW_ORIGIN
    custom_words: Tuple[str, ...] = ()
    model_path: str = DEFAULT_MODEL_PATH
    # None disables the bound on classifier calls
    classify_timeout: Optional[float] = DEFAULT_TIMEOUT
    log_level: str = "INFO"


def _to_float(x: Optional[str], default: Optional[float]) -> Optional[float]:
    try:
        value = float(x) if x else default
    except ValueError:
        return default
    if value is not None and not math.isfinite(value):
        return default
    return value


def _split_csv(x: Optional[str]) -> Tuple[str, ...]:
    return tuple(s.strip() for s in (x or "").split(",") if s.strip())


def _log_level(x: Optional[str]) -> str:
    name = (x or "INFO").strip().upper()
    return name if isinstance(logging.getLevelName(name), int) else "INFO"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build the settings snapshot from environment strings, falling back to defaults."""
    env = os.environ if env is None else env

    timeout = _to_float(env.get("TOXICITY_TIMEOUT"), DEFAULT_TIMEOUT)
    if timeout is not None and timeout <= 0:
        timeout = None

    return Settings(
        threshold=_to_float(env.get("TOXICITY_THRESHOLD"), DEFAULT_THRESHOLD),
        labels=_split_csv(env.get("TOXICITY_LABELS")) or DEFAULT_LABELS,
        cors_allow_origin=env.get("CORS_ALLOW_ORIGIN") or DEFAULT_CORS_ALLOW_ORIGIN,
        custom_words=_split_csv(env.get("FOUL_CUSTOM_WORDS")),
        model_path=env.get("TOXICITY_MODEL_PATH") or DEFAULT_MODEL_PATH,
        classify_timeout=timeout,
        log_level=_log_level(env.get("LOG_LEVEL")),
    )


SETTINGS = load_settings()
