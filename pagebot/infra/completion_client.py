# pagebot/infra/completion_client.py
"""
LLM completion client (OpenAI-compatible chat completions over httpx).

One request per call, no retries. Every failure surfaces as
CompletionError; the resolver turns that into "no reply".
"""
from __future__ import annotations

from typing import Optional

import httpx

from pagebot.config import settings
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)


class CompletionError(Exception):
    """The provider returned no usable completion."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OpenAICompletionClient:
    """Chat-completions client; the API key is passed per call (read from api:settings)."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.openai_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.openai_timeout_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1/chat/completions"

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        model: str,
        temperature: float,
        *,
        api_key: str,
    ) -> str:
        body = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.url,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise CompletionError(f"Completion request failed: HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise CompletionError("Completion response is not JSON") from exc

        return self._extract_content(data)

    @staticmethod
    def _extract_content(data: object) -> str:
        """choices[0].message.content, or CompletionError."""
        try:
            content = data["choices"][0]["message"]["content"]  # type: ignore[index]
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError("Completion response has no choices[0].message.content") from exc

        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Completion response content is empty")
        return content
