# pagebot/core/ports.py
from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from pagebot.core.domain import CampaignButton


# Update callback: receives the current value (None when absent) and returns
# the new value, or None to leave the key untouched.
UpdateFn = Callable[[Optional[Any]], Union[Optional[Any], Awaitable[Optional[Any]]]]


# ============================================================================
# ASYNC PROTOCOLS
# ============================================================================

class AsyncKVStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any) -> None: ...
    async def delete(self, key: str) -> None: ...

    async def get_by_prefix(self, prefix: str) -> list[Any]:
        """Values whose key starts with prefix, in insertion order."""
        ...

    async def update(self, key: str, fn: UpdateFn) -> Optional[Any]:
        """
        Atomic read-modify-write of a single key.

        Returns the value written, or None when fn skipped the write.
        """
        ...

    async def ping(self) -> bool: ...


class AsyncOutboundSender(Protocol):
    async def send_text(self, recipient_id: str, text: str, image_url: Optional[str] = None) -> bool: ...
    async def send_quick_replies(self, recipient_id: str, text: str, buttons: list[CampaignButton]) -> bool: ...


class AsyncCompletionClient(Protocol):
    async def complete(
            self,
            system_prompt: str,
            user_message: str,
            model: str,
            temperature: float,
            *,
            api_key: str,
    ) -> str:
        """Raises CompletionError when no usable completion is returned."""
        ...
