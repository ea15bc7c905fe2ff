"""
추천/라우팅 코어 예외 정의

- EmbeddingUnavailable: 파이프라인 내부에서 랜덤 벡터로 복구
- RetrievalUnavailable: RecommendationUnavailable로 변환되어 호출자에게 전달
- InvalidProfile: 외부 호출 전에 거부
"""


class ConciergeError(Exception):
    """코어 모듈 공통 예외"""


class InvalidProfile(ConciergeError, ValueError):
    """필수 프로필 필드 누락 또는 범위 초과"""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class EmbeddingUnavailable(ConciergeError):
    """임베딩 서비스 호출 실패 (네트워크/인증/쿼터/차원 불일치)"""


class RetrievalUnavailable(ConciergeError):
    """벡터 스토어에 접근할 수 없음"""


class RecommendationUnavailable(ConciergeError):
    """추천을 생성할 수 없음 (벡터 스토어 장애 또는 타임아웃)"""


class PrefetchFailed(ConciergeError):
    """패널 데이터 사전 로딩 실패"""

    def __init__(self, domain: str, message: str):
        super().__init__(f"[{domain}] {message}")
        self.domain = domain
