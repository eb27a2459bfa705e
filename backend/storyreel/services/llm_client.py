"""LLM client for the scene writer: OpenAI-compatible chat completions with
retry + exponential backoff, timeout handling, and structured errors.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from storyreel.config import get_settings
from storyreel.errors import UpstreamServiceError

logger = logging.getLogger(__name__)
settings = get_settings()

# ---------------------------------------------------------------------------
# Shared HTTP client (lazy init)
# ---------------------------------------------------------------------------

_http_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=float(settings.LLM_TIMEOUT))
    return _http_client


def _mask_key(key: str) -> str:
    """Mask an API key for safe logging: show first 8 and last 4 chars."""
    if len(key) <= 16:
        return "***"
    return f"{key[:8]}...{key[-4:]}"


_RETRIABLE_STATUS = {408, 429, 500, 502, 503, 504}


class LLMError(UpstreamServiceError):
    """Structured LLM error with status code and retriable flag."""

    def __init__(self, message: str, status_code: int = 0, retriable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


def is_configured() -> bool:
    return bool(settings.LLM_API_KEY)


async def llm_call(
    system_prompt: str,
    user_prompt: str,
    *,
    json_mode: bool = False,
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.7,
    caller: str = "unknown",
) -> str:
    """Chat completion call with retry + exponential backoff.

    Args:
        system_prompt: System message.
        user_prompt: User message.
        json_mode: If True, request JSON-format output.
        model: Override the default LLM_MODEL.
        max_tokens: Max tokens in response.
        temperature: Sampling temperature.
        caller: Identifier for logging.

    Returns:
        The content string from the LLM response.

    Raises:
        LLMError: On auth failure, non-retriable HTTP errors, or when all
            retries are exhausted.
    """
    if not settings.LLM_API_KEY:
        raise LLMError("AI service is not configured. Please set LLM_API_KEY.")

    model = model or settings.LLM_MODEL
    max_retries = settings.LLM_MAX_RETRIES
    last_error: LLMError | None = None
    url = f"{settings.LLM_BASE_URL}/chat/completions"
    headers = {
        "Authorization": f"Bearer {settings.LLM_API_KEY}",
        "Content-Type": "application/json",
    }
    body: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }
    if json_mode:
        body["response_format"] = {"type": "json_object"}

    for attempt in range(1, max_retries + 1):
        logger.info(
            "[%s] LLM call attempt %d/%d model=%s key=%s json=%s",
            caller, attempt, max_retries, model, _mask_key(settings.LLM_API_KEY), json_mode,
        )

        try:
            response = await _get_client().post(url, headers=headers, json=body)

            if response.status_code in (401, 403):
                raise LLMError(
                    f"LLM API rejected credentials (HTTP {response.status_code})",
                    status_code=response.status_code,
                )

            if response.status_code in _RETRIABLE_STATUS:
                backoff = min(2 ** attempt, 30)
                logger.warning(
                    "[%s] HTTP %d (retriable), backing off %ds...",
                    caller, response.status_code, backoff,
                )
                last_error = LLMError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    retriable=True,
                )
                await asyncio.sleep(backoff)
                continue

            response.raise_for_status()

            data = response.json()
            content = data["choices"][0]["message"]["content"]
            logger.info("[%s] LLM response OK, length=%d", caller, len(content))
            return content

        except httpx.TimeoutException:
            backoff = min(2 ** attempt, 30)
            logger.warning(
                "[%s] Timeout after %ds on attempt %d, backing off %ds...",
                caller, settings.LLM_TIMEOUT, attempt, backoff,
            )
            last_error = LLMError(
                f"LLM call timed out after {settings.LLM_TIMEOUT}s",
                status_code=408,
                retriable=True,
            )
            await asyncio.sleep(backoff)
            continue

        except httpx.TransportError as e:
            logger.warning("[%s] Transport error on attempt %d: %s", caller, attempt, e)
            last_error = LLMError("LLM service unreachable", retriable=True)
            await asyncio.sleep(min(2 ** attempt, 30))
            continue

        except httpx.HTTPStatusError as e:
            logger.error("[%s] HTTP error %d: %s", caller, e.response.status_code, e)
            raise LLMError(
                f"LLM HTTP error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e

        except (KeyError, IndexError, ValueError) as e:
            raise LLMError(f"Malformed LLM response: {e}") from e

    raise last_error or LLMError("All LLM retry attempts exhausted")
