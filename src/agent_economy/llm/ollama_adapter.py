from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import aiohttp
import requests

from agent_economy.config.settings import OllamaSettings


class OracleError(RuntimeError):
    """The decision oracle did not produce a usable response."""


class OllamaAdapter:
    """Decision oracle backed by an Ollama-compatible ``/api/generate`` endpoint."""

    _request_semaphore = threading.Semaphore(3)
    # Shared thread pool for the session-less path so the event loop stays free
    _thread_pool = ThreadPoolExecutor(max_workers=10, thread_name_prefix="oracle")

    def __init__(self, settings: OllamaSettings) -> None:
        self._settings = settings
        self._logger = logging.getLogger("agent_economy.oracle")

    @property
    def model(self) -> str:
        return self._settings.llm_model

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._settings.llm_model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self._settings.llm_temperature,
                "num_predict": self._settings.max_output_tokens,
            },
        }

    def _get_with_retry(self, endpoint: str) -> dict[str, Any]:
        url = f"{self._settings.host}{endpoint}"
        attempts = self._settings.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                with self._request_semaphore:
                    response = requests.get(url, timeout=self._settings.timeout_seconds)
                    response.raise_for_status()
                    return response.json()
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                last_error = exc
                if attempt >= attempts:
                    break
                self._logger.warning(
                    "Oracle request retrying endpoint=%s attempt=%d/%d error=%s",
                    endpoint,
                    attempt,
                    attempts,
                    exc.__class__.__name__,
                )
                time.sleep(self._settings.retry_backoff_seconds * attempt)
        raise OracleError(f"Oracle request failed for {endpoint}") from last_error

    def _sync_generate_timed(self, prompt: str, timeout_s: float) -> tuple[str, float]:
        """Blocking call used when no aiohttp session is supplied.

        Returns (response_text, latency_ms).
        """
        url = f"{self._settings.host}/api/generate"
        t0 = time.perf_counter()
        try:
            resp = requests.post(url, json=self._payload(prompt), timeout=timeout_s)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.Timeout as exc:
            raise OracleError("oracle timeout") from exc
        except requests.exceptions.RequestException as exc:
            raise OracleError(f"oracle request error: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise OracleError("oracle returned a non-JSON body") from exc
        latency_ms = (time.perf_counter() - t0) * 1000.0
        return str(data.get("response", "")).strip(), latency_ms

    async def _session_generate_timed(
        self, prompt: str, timeout_s: float, session: aiohttp.ClientSession
    ) -> tuple[str, float]:
        url = f"{self._settings.host}/api/generate"
        t0 = time.perf_counter()
        try:
            async with session.post(
                url,
                json=self._payload(prompt),
                timeout=aiohttp.ClientTimeout(total=timeout_s),
            ) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except aiohttp.ClientResponseError as exc:
            raise OracleError(f"oracle status {exc.status}") from exc
        except aiohttp.ClientError as exc:
            raise OracleError(f"oracle request error: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise OracleError("oracle returned a non-JSON body") from exc
        latency_ms = (time.perf_counter() - t0) * 1000.0
        if not isinstance(data, dict):
            raise OracleError("oracle returned an unexpected payload")
        return str(data.get("response", "")).strip(), latency_ms

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def health_check(self) -> bool:
        """Probe the oracle before a long run. Never raises."""
        try:
            payload = self._get_with_retry("/api/tags")
        except (OracleError, requests.exceptions.RequestException, ValueError) as exc:
            cause = exc.__cause__ or exc
            self._logger.warning(
                "Oracle health check failed host=%s error=%s; agents will WAIT on failures",
                self._settings.host,
                cause.__class__.__name__,
            )
            return False
        raw_models = payload.get("models", []) if isinstance(payload, dict) else []
        models = [m.get("name") for m in raw_models if isinstance(m, dict)]
        if self._settings.llm_model not in models:
            self._logger.warning(
                "Oracle model %s not listed by host=%s (available=%s)",
                self._settings.llm_model,
                self._settings.host,
                models,
            )
        return True

    async def async_generate(
        self,
        prompt: str,
        timeout_s: float | None = None,
        semaphore: asyncio.Semaphore | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> tuple[str, float]:
        """Async oracle call.

        With a session the request runs on aiohttp and is cancelled with the
        task; without one it runs ``requests`` in the shared thread pool.

        Returns:
            (response_text, latency_ms)
        """
        effective_timeout = (
            timeout_s if timeout_s is not None else float(self._settings.timeout_seconds)
        )

        async def _run() -> tuple[str, float]:
            if session is not None:
                return await self._session_generate_timed(prompt, effective_timeout, session)
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                self._thread_pool,
                self._sync_generate_timed,
                prompt,
                effective_timeout,
            )

        if semaphore is not None:
            async with semaphore:
                return await _run()
        return await _run()
