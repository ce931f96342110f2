"""Configuration and environment loader for the grading service client.

This module provides GeminiConfig, which loads, validates, and exposes
all configuration required to reach the text-generation service.

Role in Architecture
--------------------
- Forms the boundary between process runtime/CI/developer environments and
  the pipeline's strongly-typed runtime config.
- Provides a single source of truth for the endpoint, timeouts, transport
  retries and rate limiting.
- No business or client logic: only configuration loading, structuring, and validation.

Examples
--------
>>> import os
>>> from gradecenter.pipeline.grading.config import GeminiConfig
>>> os.environ["GEMINI_API_KEY"] = "unit-test"
>>> cfg = GeminiConfig()
>>> assert cfg.api_key == "unit-test"
>>> assert cfg.target_rpm > 0
"""

import os
from pathlib import Path

from dotenv import load_dotenv

import gradecenter.config as _project_config
from gradecenter.config import DEFAULT_API_VERSION, DEFAULT_ENDPOINT_BASE
from gradecenter.exceptions import ConfigurationError


class GeminiConfig:
    r"""Configuration loader and validator for the text-generation service.

    Loads and validates configuration from environment variables and an optional
    `.env` file at the project root.

    Attributes
    ----------
    api_key : str | None
        The API key used to authenticate with the service.
    endpoint_base : str
        Base URI of the service (scheme and host).
    api_version : str
        API version path segment, e.g. ``v1beta``.
    target_rpm : int
        Target requests per minute used by the client-side rate limiter.
    max_retries : int
        Transport-level retries for transient request errors. Defaults to
        zero: a failed request fails the stage.
    backoff_factor : float
        Exponential backoff base between transport retries.
    retry_sleep_on_429 : int
        Seconds to sleep on HTTP 429 before the next attempt.
    temperature : float
        Sampling temperature for generation requests.
    request_timeout : int
        Timeout (seconds) for individual requests.

    Notes
    -----
    Instantiate once at process start. No runtime mutation is intended.

    Examples
    --------
    >>> import os
    >>> os.environ["GEMINI_API_KEY"] = "unit-test"
    >>> c = GeminiConfig()
    >>> assert c.api_key == "unit-test"
    """

    def __init__(self) -> None:
        r"""Initialize a GeminiConfig from the environment.

        Raises
        ------
        ConfigurationError
            If no API key is configured, or a numeric setting cannot be parsed.
        """
        env_path = Path(_project_config.PROJECT_ROOT) / ".env"
        if env_path.exists():
            # The project .env is authoritative for the process lifetime.
            load_dotenv(env_path, override=True)
        self.api_key: str | None = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
        self.endpoint_base: str = os.getenv(
            "GEMINI_ENDPOINT_BASE", DEFAULT_ENDPOINT_BASE
        ).rstrip("/")
        self.api_version: str = os.getenv("GEMINI_API_VERSION", DEFAULT_API_VERSION)
        try:
            self.target_rpm = int(os.getenv("TARGET_RPM", 60))
            self.max_retries = int(os.getenv("MAX_RETRIES", 0))
            self.backoff_factor = float(os.getenv("BACKOFF_FACTOR", 2.0))
            self.retry_sleep_on_429 = int(os.getenv("RETRY_SLEEP_ON_429", 30))
            self.temperature = float(os.getenv("TEMPERATURE", 0.2))
            self.request_timeout = int(os.getenv("REQUEST_TIMEOUT", 300))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
        if not self.api_key:
            raise ConfigurationError(
                "Missing API key: set GEMINI_API_KEY (or API_KEY) in the environment or .env"
            )
        if self.target_rpm <= 0:
            raise ConfigurationError("TARGET_RPM must be a positive integer")
