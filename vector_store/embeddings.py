"""
임베딩 제공자 모듈

질의 텍스트를 고정 차원 벡터로 변환합니다. 외부 서비스 실패는 모두
EmbeddingUnavailable로 변환되며, 이 모듈은 재시도하지 않습니다.
임베딩 장애 시 사용할 랜덤 질의 벡터 생성도 담당합니다.
"""

import os
from typing import List, Optional, Protocol

import numpy as np
from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from pipeline.errors import EmbeddingUnavailable
from utils.index import measure_time

load_dotenv()

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIMENSION = 1536


class EmbeddingProvider(Protocol):
    """text → 고정 길이 벡터"""

    dimension: int

    def embed(self, text: str) -> List[float]:
        ...


class OpenAIEmbeddingProvider:
    """OpenAI Embeddings API 기반 제공자"""

    def __init__(
        self,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[OpenAI] = None,
    ):
        """
        Args:
            model: 임베딩 모델 (기본값: OPENAI_EMBEDDING_MODEL 또는 text-embedding-3-small)
            dimension: 벡터 차원 (기본값: EMBEDDING_DIMENSION 또는 1536)
            api_key: OpenAI API 키 (기본값: OPENAI_API_KEY)
            timeout: 요청 타임아웃 (초)
            client: 주입할 OpenAI 클라이언트 (테스트용)
        """
        self.model = model or os.getenv("OPENAI_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        self.dimension = int(dimension or os.getenv("EMBEDDING_DIMENSION", DEFAULT_EMBEDDING_DIMENSION))
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> OpenAI:
        # 첫 호출 시 생성, 재시도는 호출자 계층의 책임
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    @measure_time("openai_embedding")
    def embed(self, text: str) -> List[float]:
        """
        텍스트를 임베딩 벡터로 변환

        Args:
            text: 질의 텍스트

        Returns:
            길이 dimension의 float 리스트

        Raises:
            EmbeddingUnavailable: 네트워크/인증/쿼터 오류, 빈 응답, 차원 불일치
        """
        try:
            response = self._get_client().embeddings.create(model=self.model, input=[text])
        except OpenAIError as e:
            raise EmbeddingUnavailable(f"임베딩 생성 실패: {e}") from e

        if not response.data:
            raise EmbeddingUnavailable("임베딩 응답이 비어 있습니다")

        embedding = list(response.data[0].embedding)
        if len(embedding) != self.dimension:
            raise EmbeddingUnavailable(
                f"임베딩 차원 불일치: expected={self.dimension}, got={len(embedding)}"
            )
        return embedding


def random_query_vector(dimension: int, rng: Optional[np.random.Generator] = None) -> List[float]:
    """
    [-0.5, 0.5) 균등분포 랜덤 벡터 (임베딩 장애 시 대체 질의)

    Args:
        dimension: 벡터 차원
        rng: numpy Generator (재현이 필요한 테스트에서 주입)
    """
    if dimension <= 0:
        raise ValueError(f"dimension은 양수여야 합니다: {dimension}")
    rng = rng or np.random.default_rng()
    return (rng.random(dimension) - 0.5).tolist()
