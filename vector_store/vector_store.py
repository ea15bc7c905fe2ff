"""
벡터 스토어 검색 모듈

MongoDB Atlas Vector Search로 질의 벡터와 가장 가까운 카드 문서를 조회합니다.
순서는 스토어가 보고한 유사도 순서를 그대로 유지하며(재정렬 없음),
벡터 필드는 프로젝션 단계에서 제외합니다.
"""

import os
from typing import Dict, List, Optional, Protocol, Sequence

from dotenv import load_dotenv
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from database.mongodb_client import MongoDBClient
from models import CardRecord
from pipeline.errors import RetrievalUnavailable
from utils.index import measure_time

load_dotenv()

# Atlas $vectorSearch numCandidates 상한
MAX_NUM_CANDIDATES = 10000


class VectorRetriever(Protocol):
    """질의 벡터 → 유사도 순 CardRecord 목록 (벡터 필드 없음)"""

    def retrieve(self, query_vector: Sequence[float], limit: int) -> List[CardRecord]:
        ...


class MongoCardVectorStore:
    """MongoDB Atlas 카드 벡터 검색"""

    def __init__(
        self,
        mongo_client: Optional[MongoDBClient] = None,
        index_name: Optional[str] = None,
        vector_path: Optional[str] = None,
        num_candidates_factor: Optional[int] = None,
        collection: Optional[Collection] = None,
    ):
        """
        Args:
            mongo_client: 연결을 소유한 MongoDBClient (지연 연결)
            index_name: Atlas Vector Search 인덱스 (기본값: MONGODB_VECTOR_INDEX 또는 card_vector_search)
            vector_path: 벡터 필드 경로 (기본값: MONGODB_VECTOR_PATH 또는 vector)
            num_candidates_factor: limit 대비 ANN 후보 배수 (기본값: VECTOR_NUM_CANDIDATES_FACTOR 또는 10)
            collection: 직접 주입할 컬렉션 (테스트용, 지정 시 mongo_client 무시)
        """
        self.mongo_client = mongo_client or MongoDBClient()
        self.index_name = index_name or os.getenv("MONGODB_VECTOR_INDEX", "card_vector_search")
        self.vector_path = vector_path or os.getenv("MONGODB_VECTOR_PATH", "vector")
        self.num_candidates_factor = int(
            num_candidates_factor or os.getenv("VECTOR_NUM_CANDIDATES_FACTOR", "10")
        )
        self._collection = collection

    def _get_collection(self) -> Collection:
        if self._collection is not None:
            return self._collection
        return self.mongo_client.get_collection()

    def build_pipeline(self, query_vector: Sequence[float], limit: int) -> List[Dict]:
        """
        $vectorSearch 집계 파이프라인 생성

        Args:
            query_vector: 질의 벡터
            limit: 반환할 최대 문서 수

        Returns:
            [$vectorSearch, $addFields(score), $project(벡터 제외)]
        """
        num_candidates = min(max(limit * self.num_candidates_factor, limit), MAX_NUM_CANDIDATES)
        return [
            {
                "$vectorSearch": {
                    "index": self.index_name,
                    "path": self.vector_path,
                    "queryVector": [float(v) for v in query_vector],
                    "numCandidates": num_candidates,
                    "limit": limit,
                }
            },
            {"$addFields": {"score": {"$meta": "vectorSearchScore"}}},
            {"$project": {self.vector_path: 0}},
        ]

    @measure_time("vector_search")
    def retrieve(self, query_vector: Sequence[float], limit: int) -> List[CardRecord]:
        """
        유사도 순 카드 검색

        Raises:
            ValueError: limit < 1 또는 MAX_NUM_CANDIDATES 초과 (Atlas는 numCandidates >= limit 요구)
            RetrievalUnavailable: 스토어 연결/질의 실패
        """
        if limit < 1 or limit > MAX_NUM_CANDIDATES:
            raise ValueError(f"limit은 1 이상 {MAX_NUM_CANDIDATES} 이하여야 합니다: {limit}")

        pipeline = self.build_pipeline(query_vector, limit)
        try:
            documents = list(self._get_collection().aggregate(pipeline))
        except (ConnectionError, PyMongoError) as e:
            raise RetrievalUnavailable(f"벡터 검색 실패: {e}") from e

        cards = []
        for doc in documents:
            try:
                cards.append(CardRecord.from_document(doc, vector_path=self.vector_path))
            except ValueError as e:
                print(f"[WARNING] 카드 문서 변환 실패, 건너뜀: {e}")
        return cards
