# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pagebot.core.repository import BotRepository  # noqa: E402
from pagebot.infra.kv_store import InMemoryKVStore  # noqa: E402
from pagebot.infra.metrics import get_metrics_collector  # noqa: E402
from tests.doubles import RecordingSender, StubCompletionClient  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield


@pytest.fixture
def store():
    return InMemoryKVStore()


@pytest.fixture
def repository(store):
    return BotRepository(store)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def completion_client():
    return StubCompletionClient()


@pytest.fixture
def summer_campaign():
    """Campaign record as the dashboard stores it."""
    return {
        "id": "c1",
        "name": "العرض الصيفي",
        "description": "عروض خاصة على جميع المنتجات الصيفية",
        "status": "active",
        "conversions": 0,
        "impressions": 0,
        "createdAt": "2025-12-01",
        "refKey": "summer",
        "linkedProduct": "P1",
        "buttons": [
            {"id": "btn_1", "label": "السعر", "response": "أسعارنا تبدأ من 199 ريال"},
            {"id": "btn_2", "label": "الشحن", "response": "الشحن مجاني", "imageUrl": "https://cdn.example.com/ship.png"},
        ],
    }
