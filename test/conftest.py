"""
테스트 공통 fixture

외부 서비스(OpenAI, MongoDB Atlas, 리스팅 API)는 모두 가짜 객체로 대체합니다.
"""

import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models import CardRecord  # noqa: E402
from pipeline.errors import EmbeddingUnavailable, RetrievalUnavailable  # noqa: E402

DIMENSION = 8


class FakeEmbeddingProvider:
    def __init__(self, dimension: int = DIMENSION, error: Optional[Exception] = None):
        self.dimension = dimension
        self.error = error
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return [0.1] * self.dimension


class FakeRetriever:
    def __init__(self, cards: Optional[List[CardRecord]] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.cards = cards or []
        self.error = error
        self.delay = delay
        self.calls: List[Dict] = []

    def retrieve(self, query_vector, limit):
        self.calls.append({"vector": list(query_vector), "limit": limit})
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.cards[:limit])


class FakeCollection:
    """$vectorSearch 결과를 흉내내는 컬렉션 (프로젝션의 제외 필드 반영)"""

    def __init__(self, documents=None, error: Optional[Exception] = None, honor_projection: bool = True):
        self.documents = documents or []
        self.error = error
        self.honor_projection = honor_projection
        self.pipelines: List[List[Dict]] = []

    def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        if self.error is not None:
            raise self.error
        limit = pipeline[0]["$vectorSearch"]["limit"]
        excluded = {k for k, v in pipeline[-1]["$project"].items() if v == 0}
        results = []
        for i, doc in enumerate(self.documents[:limit]):
            if self.honor_projection:
                doc = {k: v for k, v in doc.items() if k not in excluded}
            results.append({**doc, "score": round(0.99 - i * 0.01, 2)})
        return iter(results)


def make_card_doc(index: int, complete: bool = True, **overrides) -> Dict:
    doc = {
        "card_id": f"card-{index}",
        "cardName": f"Card {index}",
        "issuer": "HDFC",
        "cardType": "Travel",
        "annualFee": "500",
        "rewardsRate": {"travel": "5x points"},
        "primaryBenefits": ["lounge access"],
        "vector": [0.01 * index] * DIMENSION,
    }
    if complete:
        doc["min_credit_score"] = 650
        doc["min_annual_income"] = 300000
    doc.update(overrides)
    return doc


def make_card(index: int, complete: bool = True, **overrides) -> CardRecord:
    return CardRecord.from_document(make_card_doc(index, complete=complete, **overrides))


@pytest.fixture
def profile_data() -> Dict:
    return {
        "annualIncome": 1200000,
        "creditScore": 750,
        "primarySpendingCategories": ["Travel", "dining", "groceries"],
        "travelFrequency": "frequently",
        "diningFrequency": "occasionally",
        "preferredBenefits": ["lounge access", "cashback"],
    }


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def failing_embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider(error=EmbeddingUnavailable("quota exceeded"))


@pytest.fixture
def cards() -> List[CardRecord]:
    return [make_card(i) for i in range(1, 21)]


@pytest.fixture
def retriever(cards) -> FakeRetriever:
    return FakeRetriever(cards)


@pytest.fixture
def failing_retriever() -> FakeRetriever:
    return FakeRetriever(error=RetrievalUnavailable("connection refused"))
