"""
MongoDB Atlas 클라이언트 모듈

카드 벡터 컬렉션 연결을 관리합니다.
연결은 첫 사용 시점에 지연 생성되며, 실패하면 연결되지 않은 상태로 남아
다음 요청에서 다시 시도합니다. (전역 싱글톤 없이 소유자가 인스턴스를 보관)
"""

import os
import threading
import time
from typing import Optional

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

load_dotenv()


class MongoDBClient:
    """
    MongoDB Atlas 클라이언트

    환경변수에서 연결 정보를 읽고, 연결을 지연 생성합니다.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        collection_name: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout_ms: int = 10000,
    ):
        """
        Args:
            uri: 연결 문자열 (기본값: MONGODB_URI)
            db_name: 데이터베이스 (기본값: MONGODB_DATABASE 또는 card_concierge)
            collection_name: 카드 컬렉션 (기본값: MONGODB_COLLECTION_CARDS 또는 cards)
            max_retries: 연결 시도 횟수
            retry_delay: 재시도 기본 대기 시간 (초, 지수 백오프)
            timeout_ms: 서버 선택/연결/소켓 타임아웃 (ms)
        """
        self.uri = uri or os.getenv("MONGODB_URI")
        self.db_name = db_name or os.getenv("MONGODB_DATABASE", "card_concierge")
        self.collection_name = collection_name or os.getenv("MONGODB_COLLECTION_CARDS", "cards")
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout_ms = timeout_ms

        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self.db is not None

    def connect(self) -> Database:
        """
        연결되어 있지 않으면 재시도 로직과 함께 연결

        Returns:
            Database 객체

        Raises:
            ConnectionError: 설정 누락 또는 max_retries회 연결 실패
        """
        with self._lock:
            if self.db is not None:
                return self.db

            if not self.uri or "<username>" in self.uri or "<password>" in self.uri:
                raise ConnectionError(
                    "MONGODB_URI 환경변수가 설정되지 않았거나 유효하지 않습니다. "
                    ".env 파일에 실제 MongoDB Atlas connection string을 설정해주세요."
                )

            last_error: Optional[Exception] = None
            for attempt in range(self.max_retries):
                client = None
                try:
                    print(f"[INFO] MongoDB 연결 시도 {attempt + 1}/{self.max_retries}...")
                    client = MongoClient(
                        self.uri,
                        serverSelectionTimeoutMS=self.timeout_ms,
                        connectTimeoutMS=self.timeout_ms,
                        socketTimeoutMS=self.timeout_ms,
                    )
                    client.admin.command("ping")

                    self.client = client
                    self.db = client[self.db_name]
                    print(f"✅ MongoDB Atlas 연결 성공: {self.db_name}")
                    return self.db

                except PyMongoError as e:
                    last_error = e
                    if client is not None:
                        client.close()
                    if attempt < self.max_retries - 1:
                        wait_time = self.retry_delay * (2 ** attempt)
                        print(f"[WARNING] 연결 실패, {wait_time}초 후 재시도... (에러: {e})")
                        time.sleep(wait_time)

            raise ConnectionError(
                f"MongoDB 연결 실패 (시도 {self.max_retries}회): {last_error}"
            ) from last_error

    def get_collection(self, name: Optional[str] = None) -> Collection:
        """
        컬렉션 접근 (필요 시 연결)

        Args:
            name: 컬렉션 이름 (기본값: 카드 컬렉션)
        """
        db = self.connect()
        return db[name or self.collection_name]

    def health_check(self) -> bool:
        try:
            self.connect()
            self.client.admin.command("ping")
            return True
        except (ConnectionError, PyMongoError) as e:
            print(f"[WARNING] MongoDB health check 실패: {e}")
            return False

    def get_stats(self, vector_path: str = "vector", index_name: str = "card_vector_search") -> dict:
        """
        카드 컬렉션 통계 (문서 수, 벡터 보유 문서 수, 검색 인덱스 준비 여부)

        Raises:
            ConnectionError: 연결 실패
        """
        collection = self.get_collection()
        total_docs = collection.count_documents({})
        with_vectors = collection.count_documents({f"{vector_path}.0": {"$exists": True}})

        search_indexes = []
        try:
            search_indexes = [idx["name"] for idx in collection.aggregate([{"$listSearchIndexes": {}}])]
            vector_search_ready = index_name in search_indexes
        except PyMongoError as e:
            # Atlas가 아닌 배포나 권한 부족 시 실패할 수 있음
            print(f"[INFO] Search index 조회 실패: {e}")
            vector_search_ready = with_vectors > 0

        return {
            "database": self.db_name,
            "collection": self.collection_name,
            "total_documents": total_docs,
            "documents_with_vectors": with_vectors,
            "search_indexes": search_indexes,
            "vector_search_ready": vector_search_ready,
        }

    def close(self):
        with self._lock:
            if self.client is not None:
                self.client.close()
                print("[INFO] MongoDB 연결 종료")
            self.client = None
            self.db = None
