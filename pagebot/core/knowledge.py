# pagebot/core/knowledge.py
from __future__ import annotations
from typing import Optional

from pagebot.core import texts
from pagebot.core.domain import KnowledgeItem, UserCampaignSession


def select_knowledge(
        session: Optional[UserCampaignSession],
        items: list[KnowledgeItem],
) -> list[KnowledgeItem]:
    """
    Knowledge items relevant to the sender's campaign product.

    No session or no linked product: every item. Otherwise the items tagged
    with that product, or every item when none is tagged.
    """
    if session is None or not session.linked_product:
        return list(items)

    product_items = [i for i in items if i.product_name == session.linked_product]
    return product_items or list(items)


def build_system_prompt(linked_product: Optional[str], items: list[KnowledgeItem]) -> str:
    prompt = texts.SYSTEM_PROMPT_HEAD
    if linked_product:
        prompt += texts.SYSTEM_PROMPT_PRODUCT.format(product=linked_product)
    prompt += texts.SYSTEM_PROMPT_TAIL
    prompt += "\n\n".join(item.content for item in items)
    return prompt
