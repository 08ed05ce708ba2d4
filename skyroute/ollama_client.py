"""Thin client for calling the local Ollama chat API."""

import time
from typing import Any, Dict, List, Optional

import requests

from skyroute.errors import ParserTransportError
from utils.logging_utils import get_tagged_logger, mask_url_credentials

logger = get_tagged_logger(__name__, tag="ollama_client")


class OllamaClient:
    """Minimal client for the Ollama chat API."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "phi4-mini",
        *,
        options: Optional[Dict[str, Any]] = None,
        max_retries: int = 0,
        retry_backoff_sec: float = 0.25,
        timeout: float = 30.0,
    ) -> None:
        self.url = f"{str(base_url).rstrip('/')}/api/chat"
        self.model = model
        self.options = dict(options or {})
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff_sec = retry_backoff_sec
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "OllamaClient":
        return cls(
            settings.ollama_base_url,
            settings.ollama_model,
            options=settings.ollama_options,
            max_retries=settings.ollama_retries,
            retry_backoff_sec=settings.ollama_retry_backoff_seconds,
            timeout=settings.parser_timeout_seconds,
        )

    def chat(
        self,
        messages: List[Dict[str, str]],
        *,
        response_format: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Send a chat request and return the assistant content."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": self.options,
        }
        if response_format:
            payload["format"] = response_format

        r = None
        for attempt in range(self.max_retries + 1):
            try:
                logger.debug("Ollama POST", extra={"url": mask_url_credentials(self.url), "attempt": attempt + 1})
                r = requests.post(self.url, json=payload, timeout=timeout or self.timeout)
            except requests.exceptions.RequestException as exc:
                logger.warning("Ollama POST failed on attempt %d: %s", attempt + 1, exc)
                if attempt < self.max_retries:
                    time.sleep(self.retry_backoff_sec)
                    continue
                raise ParserTransportError(f"Ollama request failed: {exc}") from exc

            if r.status_code == 200:
                break

            error_text = (r.text or "")[:200]
            if "EOF" in error_text and attempt < self.max_retries:
                logger.warning("Ollama returned EOF; retrying (attempt %d/%d).", attempt + 1, self.max_retries + 1)
                time.sleep(self.retry_backoff_sec)
                continue
            raise ParserTransportError(
                f"Ollama POST failed with status {r.status_code}: {error_text} "
                f"(model={self.model})"
            )

        try:
            data = r.json()
        except ValueError as exc:
            raise ParserTransportError(f"Ollama returned non-JSON response: {(r.text or '')[:200]}") from exc
        content = (data.get("message") or {}).get("content", "")
        if isinstance(content, (dict, list)):
            content = str(content)
        return content
