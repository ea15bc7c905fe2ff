"""
LangGraph State 정의

프로필 → 벡터 추천 파이프라인의 각 단계에서 사용되는 상태를 정의합니다.
"""

from typing import Dict, List, Optional, TypedDict

from models import CardRecord, FinancialProfile, RecommendationResult
from utils.index import RequestTimer


class RecommendationState(TypedDict, total=False):
    """추천 파이프라인 상태 (요청 단위, 저장하지 않음)"""

    # ===== Input =====
    profile: FinancialProfile
    limit: int
    timer: RequestTimer

    # ===== Stage 1: Profile Encoding =====
    query_text: str

    # ===== Stage 2: Embedding (실패 시 랜덤 벡터) =====
    query_vector: List[float]
    degraded: bool
    embedding_error: Optional[str]

    # ===== Stage 3: Vector Search =====
    candidates: List[CardRecord]
    search_error: Optional[str]
    search_exception: Optional[Exception]

    # ===== Stage 4: Finalize =====
    result: Optional[RecommendationResult]

    # ===== Metadata =====
    intermediate_steps: List[Dict]  # 디버깅 및 추적용
