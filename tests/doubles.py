# tests/doubles.py
"""Test doubles for the outbound sender and the completion client."""
from __future__ import annotations

from typing import Optional

from pagebot.core.domain import CampaignButton
from pagebot.infra.completion_client import CompletionError


class RecordingSender:
    """Outbound sender double that records every call."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.texts: list[tuple[str, str, Optional[str]]] = []
        self.quick_replies: list[tuple[str, str, list[CampaignButton]]] = []

    async def send_text(self, recipient_id, text, image_url=None):
        self.texts.append((recipient_id, text, image_url))
        return self.ok

    async def send_quick_replies(self, recipient_id, text, buttons):
        self.quick_replies.append((recipient_id, text, list(buttons)))
        return self.ok


class StubCompletionClient:
    """Completion client double: fixed answer, or CompletionError when fail=True."""

    def __init__(self, answer: str = "AI answer", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls: list[dict] = []

    async def complete(self, system_prompt, user_message, model, temperature, *, api_key):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "model": model,
            "temperature": temperature,
            "api_key": api_key,
        })
        if self.fail:
            raise CompletionError("provider down", status_code=503)
        return self.answer


