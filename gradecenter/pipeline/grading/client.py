"""grading.client module.

This module defines the `AIAPIClient` class, the asynchronous networking
boundary for every outbound request to the text-generation service. Its strict
focus is on sending ``generateContent`` payloads, handling transport failures,
and returning the generated text together with the raw (or error-describing)
response.

The client **never** performs file I/O or business logic, and does not raise
exceptions: it always returns structured tuples describing results, error
types, and raw responses, so that the grading service can translate them into
the project's error taxonomy.

Examples
--------
>>> import aiohttp
>>> from gradecenter.pipeline.grading.client import AIAPIClient
>>> class DummyConfig:
...     endpoint_base = "https://generativelanguage.googleapis.com"
...     api_version = "v1beta"
...     api_key = "secret"
...     max_retries = 0
...     request_timeout = 30
>>> payload = {"contents": [{"role": "user", "parts": [{"text": "Hi"}]}]}
>>> client = AIAPIClient(DummyConfig())
>>> async def main():
...     async with aiohttp.ClientSession() as session:
...         ok, text, raw = await client.generate(session, "gemini-2.5-flash", payload)
...         print(ok, text is not None)
>>> # To actually run:
>>> # import asyncio; asyncio.run(main())

Notes
-----
- Configuration values (timeouts, endpoint, max_retries) are injected via the
  config argument, never hardcoded.
- The error return pattern is relied upon by ``service.py`` and must not be
  bypassed for exceptions.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)


def extract_text(data: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate in a response.

    Parameters
    ----------
    data : dict[str, Any]
        Parsed ``generateContent`` response.

    Returns
    -------
    str
        The generated text, or an empty string if none is present.
    """
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(
        part.get("text", "")
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


def extract_sources(data: dict[str, Any] | None) -> list[str]:
    """Return the unique grounding source URIs of a response, in first-seen order.

    Parameters
    ----------
    data : dict[str, Any] | None
        Parsed ``generateContent`` response.

    Returns
    -------
    list[str]
        Deduplicated web URIs from ``groundingMetadata.groundingChunks``.

    Examples
    --------
    >>> raw = {"candidates": [{"groundingMetadata": {"groundingChunks": [
    ...     {"web": {"uri": "https://a"}}, {"web": {"uri": "https://a"}}]}}]}
    >>> extract_sources(raw)
    ['https://a']
    """
    if not data:
        return []
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    metadata = first.get("groundingMetadata") or {}
    chunks = metadata.get("groundingChunks") or []
    seen: list[str] = []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        uri = (chunk.get("web") or {}).get("uri")
        if uri and uri not in seen:
            seen.append(uri)
    return seen


class AIAPIClient:
    r"""Asynchronous client for sending requests to the text-generation service.

    The client is stateless between calls: the session, model and payload
    are supplied per request, and the config object is only read.

    Attributes
    ----------
    config : Any
        The configuration object (e.g., `GeminiConfig`) providing the API key,
        endpoint, retry limits, and timeouts. Optional attributes are read
        via getattr.

    See Also
    --------
    gradecenter.pipeline.grading.service.GradingServiceClient : Translates
        this client's error returns into ``ServiceError``.
    """

    def __init__(self, config: Any) -> None:
        self.config = config

    def endpoint_for(self, model: str) -> str:
        """Return the ``generateContent`` URL for ``model`` or ``""`` if unconfigured."""
        base = str(getattr(self.config, "endpoint_base", "") or "").rstrip("/")
        if not base:
            return ""
        version = getattr(self.config, "api_version", "v1beta")
        return f"{base}/{version}/models/{model}:generateContent"

    async def generate(
        self, session: aiohttp.ClientSession, model: str, payload: dict[str, Any]
    ) -> tuple[bool, str | None, dict[str, Any] | None]:
        r"""Send a payload to the service and return a normalized result or error.

        This is the sole method for performing an outbound model call.
        It handles:
          * Configuration errors (no endpoint or API key)
          * Network issues (aiohttp.ClientError and TimeoutError)
          * Unusable responses (invalid JSON, no candidates, empty text)
          * HTTP 429 with sleep before the next attempt
          * Other HTTP error codes (surfaced as status code and body)
        Transport retries happen only when ``config.max_retries`` is positive.

        Parameters
        ----------
        session : aiohttp.ClientSession
            The aiohttp session for HTTP requests. Used and not closed.
        model : str
            Model identifier placed in the endpoint path.
        payload : dict[str, Any]
            The JSON-serializable ``generateContent`` body.

        Returns
        -------
        tuple[bool, str or None, dict[str, Any] or None]
            ``(ok, text, raw)`` where ``text`` is the generated text on
            success and ``raw`` is the parsed response or a dict describing
            the failure (``error_type``, ``message``, ``status_code``,
            ``error_body``).

        Notes
        -----
        No exceptions propagate to the caller; inspect ``ok``.
        """
        endpoint = self.endpoint_for(model)
        if not endpoint or not getattr(self.config, "api_key", None):
            return (
                False,
                None,
                {
                    "error_type": "ConfigurationError",
                    "message": "Service endpoint or API key not set.",
                },
            )

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": str(self.config.api_key),
        }
        max_retries = max(0, int(getattr(self.config, "max_retries", 0)))
        backoff = getattr(self.config, "backoff_factor", 2.0)

        for attempt in range(max_retries + 1):
            try:
                async with session.post(
                    endpoint,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(
                        total=getattr(self.config, "request_timeout", 300)
                    ),
                ) as response:
                    status = response.status
                    text = await response.text()

                    if status == 200:
                        try:
                            data = json.loads(text)
                        except json.JSONDecodeError:
                            return (
                                False,
                                None,
                                {
                                    "error_type": "InvalidJSON",
                                    "message": "Service returned a non-JSON body.",
                                    "raw_response_text": text,
                                },
                            )
                        if not isinstance(data, dict):
                            data = {"raw_response": data}

                        generated = extract_text(data)
                        if not generated.strip():
                            if attempt < max_retries:
                                await asyncio.sleep(backoff**attempt)
                                continue
                            return False, None, data
                        return True, generated, data

                    if status == 429:
                        logger.warning(
                            "Rate limited by service (attempt %d/%d)",
                            attempt + 1,
                            max_retries + 1,
                        )
                        if attempt < max_retries:
                            await asyncio.sleep(
                                getattr(self.config, "retry_sleep_on_429", 30)
                                * (attempt + 1)
                            )
                            continue
                        return (
                            False,
                            None,
                            {
                                "error_type": "RateLimited",
                                "status_code": status,
                                "error_body": text,
                            },
                        )

                    if attempt < max_retries:
                        await asyncio.sleep(backoff**attempt)
                        continue
                    return False, None, {"status_code": status, "error_body": text}

            except aiohttp.ClientError as e:
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                return False, None, {"error_type": "ClientError", "message": str(e)}
            except asyncio.TimeoutError:
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                return (
                    False,
                    None,
                    {"error_type": "TimeoutError", "message": "Request timed out."},
                )
            except Exception as err:
                # Unexpected exceptions surface as a generic 'Exception'
                # error_type so callers have a stable discriminator.
                logger.exception("Unexpected error calling the service")
                if attempt < max_retries:
                    await asyncio.sleep(backoff**attempt)
                    continue
                return False, None, {"error_type": "Exception", "message": str(err)}

        return False, None, None


def describe_failure(raw: dict[str, Any] | None) -> str:
    """Build a human-readable message from a failed ``generate`` result.

    Parameters
    ----------
    raw : dict[str, Any] | None
        The third element returned by :meth:`AIAPIClient.generate` on failure.

    Returns
    -------
    str
        A message suitable for ``ServiceError`` and for display.

    Examples
    --------
    >>> describe_failure({"status_code": 500, "error_body": "boom"})
    'Service returned HTTP 500: boom'
    >>> describe_failure({"error_type": "ClientError", "message": "down"})
    'ClientError: down'
    """
    if not raw:
        return "Service request failed without a response."
    if "status_code" in raw:
        body = str(raw.get("error_body", "")).strip()
        if len(body) > 200:
            body = body[:200] + "..."
        return f"Service returned HTTP {raw['status_code']}: {body}".rstrip(": ")
    if "error_type" in raw:
        message = raw.get("message")
        return f"{raw['error_type']}: {message}" if message else str(raw["error_type"])
    block = (raw.get("promptFeedback") or {}).get("blockReason")
    if block:
        return f"Service blocked the request: {block}"
    return "Service returned an empty response."
