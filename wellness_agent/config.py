"""Centralized configuration for the wellness clinic agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/wellness-agent/<VARIABLE_NAME>``.

Graph tunables are also collected into :class:`EngineSettings` so callers and
tests can override them without touching the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))

_REPO_ROOT = Path(__file__).resolve().parent.parent


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/wellness-agent/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /wellness-agent/{name} (AWS)."
    )


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")

# Tiered models: cheap classification, fast drafting/judging, primary for tool use
ROUTER_MODEL_NAME: str = os.getenv("ROUTER_MODEL_NAME", "claude-haiku-4-5")
FAST_MODEL_NAME: str = os.getenv("FAST_MODEL_NAME", "claude-haiku-4-5")
LLM_TIMEOUT_SECONDS: float = _env_float("LLM_TIMEOUT_SECONDS", 60.0)

# ── Retrieval / validation ──────────────────────────────────────────
POLICIES_PATH: Path = Path(os.getenv("POLICIES_PATH", str(_REPO_ROOT / "POLICIES.md")))
RETRIEVAL_TOP_K: int = _env_int("RETRIEVAL_TOP_K", 5)
MIN_RETRIEVAL_SCORE: float = _env_float("MIN_RETRIEVAL_SCORE", 0.0)
VALIDATION_CONFIDENCE_THRESHOLD: float = _env_float("VALIDATION_CONFIDENCE_THRESHOLD", 0.5)

# ── Scheduling ──────────────────────────────────────────────────────
MAX_OFFERED_SLOTS: int = _env_int("MAX_OFFERED_SLOTS", 9)
SCHEDULING_WINDOW_DAYS: int = _env_int("SCHEDULING_WINDOW_DAYS", 14)

# ── Engine ──────────────────────────────────────────────────────────
MAX_NODE_HOPS: int = _env_int("MAX_NODE_HOPS", 25)
THREAD_STORE_DIR: str | None = os.getenv("THREAD_STORE_DIR") or None

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _env_int("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:4200",
).split(",")


@dataclass(frozen=True)
class EngineSettings:
    """Tunables consumed by the graph nodes and the engine."""

    retrieval_top_k: int = RETRIEVAL_TOP_K
    min_retrieval_score: float = MIN_RETRIEVAL_SCORE
    validation_confidence_threshold: float = VALIDATION_CONFIDENCE_THRESHOLD
    max_offered_slots: int = MAX_OFFERED_SLOTS
    scheduling_window_days: int = SCHEDULING_WINDOW_DAYS
    max_node_hops: int = MAX_NODE_HOPS
