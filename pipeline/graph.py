"""
LangGraph 파이프라인 - 프로필 기반 카드 검색 워크플로우

4단계 파이프라인을 LangGraph로 오케스트레이션합니다:
1. Encode Profile - 프로필을 질의 텍스트로 변환
2. Embed Profile - 질의 임베딩 (실패 시 랜덤 벡터로 degraded 검색)
3. Vector Search - 유사 카드 검색 (실패 시 END)
4. Finalize - 중복/자격 데이터 누락 카드 제거 후 limit개까지 결과 구성
   (Vector Search는 제외분을 보충하도록 limit + overfetch개를 조회)
"""

from typing import Any, Callable, Dict, Optional

import numpy as np
from langgraph.graph import END, StateGraph

from models import RecommendationResult
from pipeline.errors import EmbeddingUnavailable, RetrievalUnavailable
from pipeline.state import RecommendationState
from vector_store.embeddings import EmbeddingProvider, random_query_vector
from vector_store.profile_encoder import ProfileTextEncoder
from vector_store.vector_store import MAX_NUM_CANDIDATES, VectorRetriever


def _step(state: RecommendationState, stage: str, success: bool, **details) -> list:
    return state.get("intermediate_steps", []) + [{"stage": stage, "success": success, **details}]


def _mark(state: RecommendationState, step_name: str):
    timer = state.get("timer")
    if timer is not None:
        timer.mark_step(step_name)


def build_recommendation_graph(
    encoder: ProfileTextEncoder,
    embedding_provider: EmbeddingProvider,
    retriever: VectorRetriever,
    rng_factory: Optional[Callable[[], np.random.Generator]] = None,
    overfetch: int = 0,
):
    """
    추천 LangGraph 워크플로우 구성

    Args:
        encoder: 프로필 텍스트 인코더
        embedding_provider: 임베딩 제공자
        retriever: 벡터 검색기
        rng_factory: 랜덤 대체 벡터용 Generator 생성 함수 (기본값: 요청마다 새 Generator)
        overfetch: limit 외에 추가로 가져올 후보 수 (중복/자격 데이터 누락 제외분 보충)

    Returns:
        컴파일된 LangGraph 워크플로우 (체크포인터 없음, 요청 간 상태 공유 없음)
    """
    make_rng = rng_factory or np.random.default_rng

    # ===== Node 1: Encode Profile =====
    def encode_profile_node(state: RecommendationState) -> Dict[str, Any]:
        query_text = encoder.encode(state["profile"])
        _mark(state, "encode_profile_ms")
        return {
            "query_text": query_text,
            "intermediate_steps": _step(state, "encode_profile", True, chars=len(query_text)),
        }

    # ===== Node 2: Embed Profile =====
    def embed_profile_node(state: RecommendationState) -> Dict[str, Any]:
        try:
            vector = embedding_provider.embed(state["query_text"])
            _mark(state, "embed_profile_ms")
            return {
                "query_vector": vector,
                "degraded": False,
                "embedding_error": None,
                "intermediate_steps": _step(state, "embed_profile", True, dimension=len(vector)),
            }
        except EmbeddingUnavailable as e:
            print(f"[WARNING] 임베딩 실패, 랜덤 벡터로 대체 검색합니다 (degraded): {e}")
            vector = random_query_vector(embedding_provider.dimension, make_rng())
            _mark(state, "embed_profile_ms")
            return {
                "query_vector": vector,
                "degraded": True,
                "embedding_error": str(e),
                "intermediate_steps": _step(state, "embed_profile", False, error=str(e), fallback="random_vector"),
            }

    # ===== Node 3: Vector Search =====
    def vector_search_node(state: RecommendationState) -> Dict[str, Any]:
        try:
            fetch_limit = min(state["limit"] + overfetch, MAX_NUM_CANDIDATES)
            candidates = retriever.retrieve(state["query_vector"], fetch_limit)
            _mark(state, "vector_search_ms")
            return {
                "candidates": candidates,
                "search_error": None,
                "search_exception": None,
                "intermediate_steps": _step(
                    state, "vector_search", True, fetch_limit=fetch_limit, num_candidates=len(candidates)
                ),
            }
        except RetrievalUnavailable as e:
            _mark(state, "vector_search_ms")
            return {
                "candidates": [],
                "search_error": f"벡터 검색 실패: {e}",
                "search_exception": e,
                "intermediate_steps": _step(state, "vector_search", False, error=str(e)),
            }

    # ===== Node 4: Finalize =====
    def finalize_node(state: RecommendationState) -> Dict[str, Any]:
        limit = state["limit"]
        seen = set()
        cards = []
        dropped_duplicates = 0
        dropped_incomplete = 0

        for card in state.get("candidates", []):
            if len(cards) == limit:
                break
            if card.card_id in seen:
                dropped_duplicates += 1
                continue
            seen.add(card.card_id)
            # 자격 기준 데이터가 없는 카드는 평가 불가 → 제외
            if not card.has_eligibility_data:
                dropped_incomplete += 1
                continue
            cards.append(card)

        if dropped_incomplete or dropped_duplicates:
            print(
                f"[INFO] 후보 정리: 중복 {dropped_duplicates}개, "
                f"자격 데이터 누락 {dropped_incomplete}개 제외"
            )

        timer = state.get("timer")
        degraded = state.get("degraded", False)
        result = RecommendationResult(
            cards=cards,
            limit=limit,
            degraded=degraded,
            metadata={
                "degraded": degraded,
                "embedding_error": state.get("embedding_error"),
                "dropped_duplicates": dropped_duplicates,
                "dropped_incomplete": dropped_incomplete,
                "vector_dimension": len(state.get("query_vector", [])),
                "performance": timer.get_performance_dict() if timer is not None else {},
            },
        )
        return {
            "result": result,
            "intermediate_steps": _step(state, "finalize", True, num_results=len(cards)),
        }

    # ===== Conditional Edge =====
    def check_search_error(state: RecommendationState) -> str:
        return "error" if state.get("search_error") else "continue"

    workflow = StateGraph(RecommendationState)

    workflow.add_node("encode_profile", encode_profile_node)
    workflow.add_node("embed_profile", embed_profile_node)
    workflow.add_node("vector_search", vector_search_node)
    workflow.add_node("finalize", finalize_node)

    workflow.set_entry_point("encode_profile")
    workflow.add_edge("encode_profile", "embed_profile")
    workflow.add_edge("embed_profile", "vector_search")
    workflow.add_conditional_edges(
        "vector_search",
        check_search_error,
        {
            "error": END,
            "continue": "finalize",
        },
    )
    workflow.add_edge("finalize", END)

    return workflow.compile()
