"""
추천 파이프라인

프로필 → 질의 텍스트 → 임베딩(실패 시 랜덤 벡터) → 벡터 검색 순으로 실행합니다.
파이프라인은 요청 간 가변 상태를 갖지 않으므로 여러 요청에서 동시에 사용할 수 있습니다.
자격 조건 평가(신용점수/소득 비교)는 하지 않으며 호출자가 agents.eligibility로 처리합니다.
"""

import asyncio
import os
from typing import Any, Callable, Optional

import numpy as np
from dotenv import load_dotenv

from database.mongodb_client import MongoDBClient
from models import FinancialProfile, RecommendationResult
from pipeline.errors import InvalidProfile, RecommendationUnavailable
from pipeline.graph import build_recommendation_graph
from utils.index import RequestTimer, measure_time
from vector_store.embeddings import EmbeddingProvider, OpenAIEmbeddingProvider
from vector_store.profile_encoder import ProfileTextEncoder
from vector_store.vector_store import MAX_NUM_CANDIDATES, MongoCardVectorStore, VectorRetriever

load_dotenv()

DEFAULT_LIMIT = 15
DEFAULT_OVERFETCH = 10


class RecommendationPipeline:
    """프로필 기반 카드 추천 파이프라인"""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        retriever: VectorRetriever,
        encoder: Optional[ProfileTextEncoder] = None,
        default_limit: Optional[int] = None,
        rng_factory: Optional[Callable[[], np.random.Generator]] = None,
        overfetch: Optional[int] = None,
    ):
        """
        Args:
            embedding_provider: 임베딩 제공자
            retriever: 벡터 검색기
            encoder: 프로필 인코더 (기본값: ProfileTextEncoder)
            default_limit: 기본 결과 수 (기본값: RECOMMENDATION_LIMIT 또는 15)
            rng_factory: degraded 검색용 랜덤 Generator 생성 함수
            overfetch: 중복/자격 데이터 누락 제외분을 보충할 추가 후보 수
                       (기본값: RECOMMENDATION_OVERFETCH 또는 10)
        """
        self.embedding_provider = embedding_provider
        self.retriever = retriever
        self.encoder = encoder or ProfileTextEncoder()
        self.default_limit = int(default_limit or os.getenv("RECOMMENDATION_LIMIT", DEFAULT_LIMIT))
        self.overfetch = int(
            overfetch if overfetch is not None else os.getenv("RECOMMENDATION_OVERFETCH", DEFAULT_OVERFETCH)
        )
        if self.overfetch < 0:
            raise ValueError(f"overfetch는 0 이상이어야 합니다: {self.overfetch}")
        self.graph = build_recommendation_graph(
            self.encoder, self.embedding_provider, self.retriever, rng_factory, self.overfetch
        )

    @classmethod
    def from_env(cls, mongo_client: Optional[MongoDBClient] = None) -> "RecommendationPipeline":
        """
        OpenAI + MongoDB Atlas 구성으로 생성 (네트워크 연결은 첫 요청 시)

        Args:
            mongo_client: 연결 상태를 보관할 MongoDBClient (기본값: 환경변수 기반 새 인스턴스)
        """
        return cls(
            embedding_provider=OpenAIEmbeddingProvider(),
            retriever=MongoCardVectorStore(mongo_client=mongo_client or MongoDBClient()),
        )

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidProfile(f"limit은 1 이상의 정수여야 합니다: {limit!r}")
        if limit > MAX_NUM_CANDIDATES:
            raise InvalidProfile(f"limit은 {MAX_NUM_CANDIDATES} 이하여야 합니다: {limit}")
        return limit

    def recommend(self, profile: Any, limit: Optional[int] = None) -> RecommendationResult:
        """
        프로필에 맞는 카드 후보 검색

        Args:
            profile: FinancialProfile 또는 프로필 dict
            limit: 최대 결과 수 (기본값: default_limit)

        Returns:
            RecommendationResult (임베딩 장애 시 degraded=True)

        Raises:
            InvalidProfile: 외부 호출 전 프로필/limit 검증 실패
            RecommendationUnavailable: 벡터 스토어 장애
        """
        profile = FinancialProfile.parse(profile)
        limit = self._resolve_limit(limit)

        final_state = self.graph.invoke({
            "profile": profile,
            "limit": limit,
            "timer": RequestTimer().start(),
            "intermediate_steps": [],
        })

        if final_state.get("search_error"):
            print(f"[ERROR] 추천 불가: {final_state['search_error']}")
            raise RecommendationUnavailable(
                "카드 추천을 일시적으로 사용할 수 없습니다"
            ) from final_state.get("search_exception")

        result: RecommendationResult = final_state["result"]
        status = "degraded" if result.degraded else "ok"
        print(f"✅ 추천 완료: {len(result.cards)}개 카드 (status={status})")
        return result

    @measure_time("arecommend")
    async def arecommend(
        self,
        profile: Any,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> RecommendationResult:
        """
        recommend를 워커 스레드에서 실행 (호출자 타임아웃 적용)

        Raises:
            RecommendationUnavailable: 타임아웃 또는 벡터 스토어 장애
        """
        profile = FinancialProfile.parse(profile)
        limit = self._resolve_limit(limit)
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.recommend, profile, limit), timeout)
        except asyncio.TimeoutError as e:
            print(f"[ERROR] 추천 타임아웃 ({timeout}초)")
            raise RecommendationUnavailable(f"추천 요청 시간 초과 ({timeout}초)") from e
