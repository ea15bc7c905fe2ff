"""
패널 리스팅 API 클라이언트

flight/hotel/shopping 패널 데이터를 조회하고 도메인별로 캐시합니다.
같은 도메인을 여러 번 prefetch해도 캐시가 있으면 다시 호출하지 않습니다(멱등).
"""

import os
import threading
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv

from pipeline.errors import PrefetchFailed

load_dotenv()

LISTING_ENDPOINTS = {
    "flight": "/api/flights",
    "hotel": "/api/hotels",
    "shopping": "/api/shopping-offers",
}


class ListingClient:
    """패널 리스팅 API 클라이언트 (세션 컨텍스트는 쿠키/헤더로 전달)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            base_url: API 기본 URL (기본값: LISTING_API_BASE_URL 또는 http://localhost:5000)
            timeout: 요청 타임아웃 (초)
            headers: 세션 컨텍스트 헤더 (예: Cookie)
            transport: httpx transport (테스트용 MockTransport 주입)
        """
        self.base_url = (base_url or os.getenv("LISTING_API_BASE_URL", "http://localhost:5000")).rstrip("/")
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self.headers = headers or {}
        self.transport = transport
        self._cache: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def fetch(self, domain: str) -> List[Dict[str, Any]]:
        """
        도메인 리스팅 조회 (캐시 무시)

        Raises:
            PrefetchFailed: 알 수 없는 도메인, HTTP 오류, 네트워크 오류, JSON 형식 오류
        """
        endpoint = LISTING_ENDPOINTS.get(domain)
        if endpoint is None:
            raise PrefetchFailed(domain, "알 수 없는 도메인입니다")

        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self.transport,
            ) as client:
                response = client.get(endpoint)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise PrefetchFailed(domain, f"HTTP 오류: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PrefetchFailed(domain, f"요청 실패: {e}") from e
        except ValueError as e:
            raise PrefetchFailed(domain, f"응답 JSON 파싱 실패: {e}") from e

        if not isinstance(data, list):
            raise PrefetchFailed(domain, f"리스트 응답이 아닙니다: {type(data).__name__}")
        return data

    def prefetch(self, domain: str) -> List[Dict[str, Any]]:
        """
        캐시가 없을 때만 조회하여 캐시에 저장

        Returns:
            도메인 리스팅 (캐시 또는 새로 조회한 값)
        """
        with self._lock:
            cached = self._cache.get(domain)
        if cached is not None:
            return cached

        data = self.fetch(domain)
        with self._lock:
            self._cache[domain] = data
        print(f"✅ {domain} 리스팅 {len(data)}개 로드")
        return data

    def get_cached(self, domain: str) -> Optional[List[Dict[str, Any]]]:
        with self._lock:
            return self._cache.get(domain)

    def clear_cache(self, domain: Optional[str] = None):
        with self._lock:
            if domain is None:
                self._cache.clear()
            else:
                self._cache.pop(domain, None)
