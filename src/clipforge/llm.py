"""Shared Claude calling utilities.

Two backends:
1. Anthropic API (preferred, uses ANTHROPIC_API_KEY)
2. Subprocess ``claude -p`` (when CLIPFORGE_USE_CLI=1 or no API key is set)
"""

from __future__ import annotations

import logging
import os
import re
import subprocess

import anthropic

from clipforge.errors import ClipforgeError

logger = logging.getLogger(__name__)


class LLMError(ClipforgeError):
    """Base error for LLM calls.

    ``transient`` is True for timeouts, rate limits and server errors.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


_MODEL_MAP: dict[str, str] = {
    "sonnet": "claude-sonnet-4-6",
    "haiku": "claude-haiku-4-5-20251001",
    "opus": "claude-opus-4-6",
}

_DEFAULT_MODEL = "claude-sonnet-4-6"


def resolve_model(model: str | None) -> str:
    """Resolve a short model name to an API model ID."""
    if model is None:
        return _DEFAULT_MODEL
    return _MODEL_MAP.get(model, model)


# ---------------------------------------------------------------------------
# Internal: Anthropic API
# ---------------------------------------------------------------------------


def _call_anthropic_api(
    system_prompt: str,
    user_prompt: str,
    *,
    api_key: str,
    model: str | None = None,
    timeout: int = 120,
    label: str = "analysis",
) -> str:
    client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
    resolved_model = resolve_model(model)

    logger.debug("Calling Anthropic API model=%s (%s)", resolved_model, label)

    kwargs: dict[str, object] = {
        "model": resolved_model,
        "max_tokens": 8192,
        "messages": [{"role": "user", "content": user_prompt}],
    }
    if system_prompt.strip():
        kwargs["system"] = system_prompt

    response = client.messages.create(**kwargs)  # type: ignore[arg-type]

    text_parts: list[str] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)

    result = "".join(text_parts).strip()
    if not result:
        raise LLMError(f"Anthropic API returned empty response (label={label})")
    return result


# ---------------------------------------------------------------------------
# Internal: subprocess fallback
# ---------------------------------------------------------------------------


def _call_subprocess(
    system_prompt: str,
    user_prompt: str,
    *,
    model: str | None = None,
    timeout: int = 120,
    label: str = "analysis",
) -> str:
    """Call Claude via subprocess (``claude -p``)."""
    cmd = ["claude", "-p"]
    if model:
        cmd.extend(["--model", model])

    full_prompt = f"{system_prompt}\n\n{user_prompt}"

    # Prevent recursive Claude invocations
    env = {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}

    logger.debug("Calling Claude CLI subprocess (%s)", label)

    try:
        result = subprocess.run(
            cmd,
            input=full_prompt,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except FileNotFoundError as exc:
        raise LLMError(
            f"Claude CLI not found, is 'claude' on the PATH? (label={label})", transient=True
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise LLMError(
            f"Claude CLI timed out after {timeout}s (label={label})", transient=True
        ) from exc

    if result.returncode != 0:
        raise LLMError(
            f"Claude CLI failed (exit {result.returncode}, label={label}): {result.stderr[:500]}"
        )

    return result.stdout.strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def call_claude(
    system_prompt: str,
    user_prompt: str,
    *,
    model: str | None = None,
    timeout: int = 120,
    label: str = "analysis",
) -> str:
    """Call Claude and return the response text.

    Args:
        system_prompt: System prompt for the LLM.
        user_prompt: User/content prompt.
        model: Optional model override (e.g. "sonnet", "haiku", "opus").
        timeout: Timeout in seconds.
        label: Label for logging.

    Raises:
        LLMError: On any failure; ``transient`` marks retryable ones.
    """
    use_cli = os.environ.get("CLIPFORGE_USE_CLI", "").strip() == "1"
    api_key = os.environ.get("ANTHROPIC_API_KEY", "").strip()

    if api_key and not use_cli:
        try:
            return _call_anthropic_api(
                system_prompt,
                user_prompt,
                api_key=api_key,
                model=model,
                timeout=timeout,
                label=label,
            )
        except LLMError:
            raise
        except (
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
            anthropic.RateLimitError,
            anthropic.InternalServerError,
        ) as exc:
            raise LLMError(
                f"Anthropic API unavailable (label={label}): {exc}", transient=True
            ) from exc
        except anthropic.APIError as exc:
            raise LLMError(f"Anthropic API failed (label={label}): {exc}") from exc

    return _call_subprocess(
        system_prompt,
        user_prompt,
        model=model,
        timeout=timeout,
        label=label,
    )


# ---------------------------------------------------------------------------
# JSON output helpers
# ---------------------------------------------------------------------------

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from LLM JSON output.

    Falls back to the outermost ``{...}`` or ``[...]`` span, whichever
    starts first.
    """
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    candidates: list[tuple[int, str, str]] = []
    brace_start = text.find("{")
    bracket_start = text.find("[")
    if brace_start != -1:
        candidates.append((brace_start, "{", "}"))
    if bracket_start != -1:
        candidates.append((bracket_start, "[", "]"))
    candidates.sort()

    for start, _open, close in candidates:
        end = text.rfind(close)
        if end > start:
            return text[start : end + 1]

    return text
