"""Shared configuration and utilities for PRLens."""

import asyncio
import functools
import inspect
import json
import logging
import os
import re
import time
from typing import Any

from dotenv import load_dotenv
from google import genai
from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    ServiceUnavailable,
    TooManyRequests,
)
from pydantic import BaseModel, Field

from models import ExecutionMode

# ---------------------------------------------------------------------------
# Environment & logging (initialised once on first import)
# ---------------------------------------------------------------------------
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_MODEL: str = "gemini-2.5-flash-lite"
DEFAULT_DEDUP_THRESHOLD: float = 0.8

# Repo format: "owner/repo"
_REPO_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")

# Gemini errors worth retrying (transient / rate-limit)
_RETRYABLE_GEMINI_ERRORS: tuple[type[Exception], ...] = (
    ServiceUnavailable,
    TooManyRequests,
    DeadlineExceeded,
    InternalServerError,
)

_MODE_ALIASES: dict[str, ExecutionMode] = {
    "sequential": "sequential",
    "parallel": "concurrent",
    "concurrent": "concurrent",
}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() == "true"


def use_mock() -> bool:
    """Whether model calls should be answered from canned responses."""
    return _env_flag("USE_MOCK")


# ---------------------------------------------------------------------------
# Pipeline configuration
# ---------------------------------------------------------------------------
class PipelineConfig(BaseModel):
    """Options for one pipeline run, passed explicitly at call time."""

    mode: ExecutionMode = "sequential"
    stop_on_critical: bool = False
    dedup_threshold: float = Field(default=DEFAULT_DEDUP_THRESHOLD, ge=0.0, le=1.0)
    verbose: bool = False
    task_timeout: float | None = Field(
        default=None, gt=0, description="Per-task deadline in seconds"
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """Build a config from environment variables.

        Recognised: PIPELINE_MODE, DEDUP_THRESHOLD, DEBUG_AI_REVIEW,
        STOP_ON_CRITICAL, TASK_TIMEOUT. Invalid values fall back to the
        defaults with a warning. Keyword *overrides* win over the env.
        """
        values: dict[str, Any] = {
            "mode": parse_mode(os.getenv("PIPELINE_MODE")),
            "dedup_threshold": parse_threshold(os.getenv("DEDUP_THRESHOLD")),
            "verbose": _env_flag("DEBUG_AI_REVIEW"),
            "stop_on_critical": _env_flag("STOP_ON_CRITICAL"),
            "task_timeout": parse_timeout(os.getenv("TASK_TIMEOUT")),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def parse_mode(raw: str | None) -> ExecutionMode:
    """Map a PIPELINE_MODE value to an execution mode."""
    if not raw:
        return "sequential"
    mode = _MODE_ALIASES.get(raw.strip().lower())
    if mode is None:
        logger.warning("Unknown PIPELINE_MODE %r, using sequential", raw)
        return "sequential"
    return mode


def parse_threshold(raw: str | None) -> float:
    """Parse DEDUP_THRESHOLD, falling back to the default when invalid."""
    if raw is None or not raw.strip():
        return DEFAULT_DEDUP_THRESHOLD
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid DEDUP_THRESHOLD %r, using %.2f", raw, DEFAULT_DEDUP_THRESHOLD)
        return DEFAULT_DEDUP_THRESHOLD
    if not 0.0 <= value <= 1.0:
        logger.warning(
            "DEDUP_THRESHOLD %r outside [0, 1], using %.2f", raw, DEFAULT_DEDUP_THRESHOLD
        )
        return DEFAULT_DEDUP_THRESHOLD
    return value


def parse_timeout(raw: str | None) -> float | None:
    """Parse TASK_TIMEOUT seconds; empty or invalid means no deadline."""
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid TASK_TIMEOUT %r, running without a deadline", raw)
        return None
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def validate_repo(repo: str) -> str:
    """Validate repository string matches 'owner/repo' format.

    Returns *repo* unchanged on success; raises ``ValueError`` otherwise.
    """
    if not _REPO_PATTERN.match(repo):
        raise ValueError(
            f"Invalid repo format: {repo!r}. Expected 'owner/repo' "
            f"(e.g. 'kulbir/PRLens')."
        )
    return repo


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------
def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retryable: tuple[type[Exception], ...] = (Exception,),
):
    """Decorator: retry a function with exponential back-off.

    Works for both plain functions and coroutine functions.
    """

    def _log_retry(func, attempt: int, exc: Exception, delay: float) -> None:
        logger.warning(
            "Attempt %d/%d for %s failed: %s. Retrying in %.1fs...",
            attempt + 1,
            max_retries,
            func.__name__,
            exc,
            delay,
        )

    def decorator(func):
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                last_exc: Exception | None = None
                for attempt in range(max_retries):
                    try:
                        return await func(*args, **kwargs)
                    except retryable as exc:
                        last_exc = exc
                        if attempt < max_retries - 1:
                            delay = base_delay * (2**attempt)
                            _log_retry(func, attempt, exc, delay)
                            await asyncio.sleep(delay)
                raise last_exc  # type: ignore[misc]

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exc: Exception | None = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except retryable as exc:
                    last_exc = exc
                    if attempt < max_retries - 1:
                        delay = base_delay * (2**attempt)
                        _log_retry(func, attempt, exc, delay)
                        time.sleep(delay)
            raise last_exc  # type: ignore[misc]

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Cached API clients
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=1)
def get_gemini_client() -> genai.Client:
    """Return a cached Gemini client (created once per process)."""
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not found. Set it in .env file.")
    return genai.Client(api_key=api_key)


# ---------------------------------------------------------------------------
# Gemini API call (with retry)
# ---------------------------------------------------------------------------
@with_retry(max_retries=3, base_delay=2.0, retryable=_RETRYABLE_GEMINI_ERRORS)
async def call_gemini(prompt: str, system: str = "", model: str = DEFAULT_MODEL):
    """Call Gemini asynchronously and return the raw response object.

    Retries automatically on transient API errors.
    """
    client = get_gemini_client()
    gen_config: dict[str, Any] = {"response_mime_type": "application/json"}
    if system:
        gen_config["system_instruction"] = system
    return await client.aio.models.generate_content(
        model=model,
        contents=prompt,
        config=gen_config,
    )


# ---------------------------------------------------------------------------
# LLM response parsing
# ---------------------------------------------------------------------------
def extract_json_object(text: str) -> dict | None:
    """Return the first JSON object embedded in *text*, or ``None``."""
    if not isinstance(text, str):
        return None
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = json.JSONDecoder().raw_decode(text[start:])
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    logger.warning("No JSON object found in LLM response")
    return None
