"""Centralized LM completion client — OpenAI-compatible chat completions.

All components MUST use ``LLMClient.complete()`` from this module.
This ensures:
  - Model, base URL and timeout come from ``Settings``.
  - HTTP 429 is retried with exponential backoff (SDK retries disabled,
    the injected ``RetryPolicy`` owns retry decisions).
  - Failures surface as ``UpstreamError`` only; callers decide the default.
  - The reply is returned as raw text. It is never assumed to be JSON —
    route it through ``json_extractor``.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..exceptions import RateLimitedError, UpstreamError
from ..timing import clamp_timeout, deadline_exceeded
from .http_client import Timeouts
from .retry import RetryPolicy, is_rate_limited

logger = logging.getLogger(__name__)


class LLMClient:
    """Rate-limited client for the LM completion API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        retry: Optional[RetryPolicy] = None,
        timeout: float = Timeouts.LM,
        name: str = "LM",
    ):
        self._client = client
        self._model = model
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._name = name

    @classmethod
    def from_credentials(
        cls,
        *,
        api_key: str,
        base_url: str,
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
        retry: Optional[RetryPolicy] = None,
        timeout: float = Timeouts.LM,
    ) -> "LLMClient":
        sdk = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            timeout=timeout,
            http_client=http_client,
        )
        return cls(sdk, model=model, retry=retry, timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    async def _call(self, prompt: str) -> str:
        t0 = time.perf_counter()
        response = await self._client.with_options(
            timeout=clamp_timeout(self._timeout),
        ).chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
        )
        duration = time.perf_counter() - t0

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                "[%s] Tokens used: prompt=%s, completion=%s, total=%s",
                self._name,
                getattr(usage, "prompt_tokens", "?"),
                getattr(usage, "completion_tokens", "?"),
                getattr(usage, "total_tokens", "?"),
            )

        if not response.choices:
            raise UpstreamError("LM returned no choices")
        content = (response.choices[0].message.content or "").strip()
        logger.info("[%s] %s replied in %.1fs (%d chars)", self._name, self._model, duration, len(content))
        if not content:
            raise UpstreamError("LM returned an empty reply")
        return content

    async def complete(self, prompt: str) -> str:
        """Send one prompt and return the reply text.

        Raises UpstreamError (RateLimitedError for exhausted 429s) when no
        usable reply could be obtained.
        """
        if deadline_exceeded():
            raise UpstreamError("deadline exceeded before LM call")

        logger.debug("[%s] Sending prompt: %.200s", self._name, prompt)
        try:
            return await self._retry.run(lambda: self._call(prompt), label=f"[{self._name}]")
        except UpstreamError:
            raise
        except (OpenAIError, httpx.HTTPError) as exc:
            logger.warning("[%s] Call failed: %s", self._name, exc)
            if is_rate_limited(exc):
                raise RateLimitedError(str(exc)) from exc
            raise UpstreamError(str(exc)) from exc
