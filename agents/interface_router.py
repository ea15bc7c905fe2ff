"""
인터페이스 라우터

채팅 세션의 활성 패널(welcome/flight/hotel/shopping)을 결정하는 상태 머신입니다.
- 의도(intent) 또는 사용자 명시적 이동(navigation)으로 전이
- 같은 사이클에서는 navigation이 intent보다 우선
- 전이 1회당 해당 도메인 prefetch 1회 (이미 같은 패널이면 prefetch 없음)
- prefetch는 fire-and-forget이며 실패해도 전이를 막지 않음
"""

import os
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, List, Literal, Optional, Union

from pydantic import BaseModel

from models import Intent, InterfaceState


class RouteDecision(BaseModel):
    previous: InterfaceState
    current: InterfaceState
    changed: bool
    source: Literal["intent", "navigation", "none"]
    prefetched: Optional[str] = None


class PrefetchDispatcher:
    """도메인 데이터 사전 로딩 디스패처"""

    def __init__(
        self,
        prefetcher: Callable[[str], Any],
        background: bool = True,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            prefetcher: domain 이름을 받아 패널 데이터를 로드하는 함수
            background: True면 스레드 풀에서 실행, False면 호출 스레드에서 즉시 실행
            max_workers: 스레드 풀 크기 (기본값: PREFETCH_WORKERS 또는 4)
        """
        self.prefetcher = prefetcher
        self._executor: Optional[ThreadPoolExecutor] = None
        if background:
            workers = int(max_workers or os.getenv("PREFETCH_WORKERS", "4"))
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="prefetch")

    def dispatch(self, domain: str) -> Optional[Future]:
        if self._executor is None:
            self._run(domain)
            return None
        return self._executor.submit(self._run, domain)

    def _run(self, domain: str):
        try:
            self.prefetcher(domain)
        except Exception as e:  # pylint: disable=broad-except
            # 실패는 대상 패널 데이터에만 영향
            print(f"[WARNING] 패널 데이터 사전 로딩 실패 ({domain}): {e}")

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


class InterfaceRouter:
    """세션 단위 패널 상태 머신 (종료 상태 없음, 새 세션 시 welcome으로 리셋)"""

    def __init__(self, dispatcher: Optional[PrefetchDispatcher] = None, history_size: Optional[int] = None):
        """
        Args:
            dispatcher: prefetch 디스패처 (None이면 prefetch 요청은 기록만 함)
            history_size: 보관할 최근 prefetch 기록 수 (기본값: PREFETCH_HISTORY_SIZE 또는 50)
        """
        self.dispatcher = dispatcher
        self._state = InterfaceState.WELCOME
        self._lock = threading.Lock()
        size = int(history_size if history_size is not None else os.getenv("PREFETCH_HISTORY_SIZE", "50"))
        if size < 1:
            raise ValueError(f"history_size는 1 이상이어야 합니다: {size}")
        self._prefetch_history: Deque[str] = deque(maxlen=size)

    @property
    def state(self) -> InterfaceState:
        return self._state

    @property
    def prefetch_history(self) -> List[str]:
        with self._lock:
            return list(self._prefetch_history)

    def handle(
        self,
        intent: Union[Intent, str] = Intent.NONE,
        navigation: Optional[Union[InterfaceState, str]] = None,
    ) -> RouteDecision:
        """
        한 평가 사이클 처리

        Args:
            intent: IntentClassifier 출력
            navigation: 사용자가 직접 선택한 패널 (intent보다 우선)

        Returns:
            RouteDecision (전이 여부, prefetch된 도메인)
        """
        intent = Intent(intent)
        with self._lock:
            previous = self._state
            if navigation is not None:
                target, source = InterfaceState(navigation), "navigation"
            elif intent != Intent.NONE:
                target, source = InterfaceState.from_intent(intent), "intent"
            else:
                target, source = None, "none"

            if target is None or target == previous:
                return RouteDecision(previous=previous, current=previous, changed=False, source=source)

            self._state = target
            prefetched = None
            if target != InterfaceState.WELCOME:
                prefetched = target.value
                self._prefetch_history.append(prefetched)

        print(f"[INFO] 패널 전이: {previous.value} → {target.value} ({source})")
        if prefetched and self.dispatcher is not None:
            self.dispatcher.dispatch(prefetched)

        return RouteDecision(
            previous=previous, current=target, changed=True, source=source, prefetched=prefetched
        )

    def navigate(self, panel: Union[InterfaceState, str]) -> RouteDecision:
        return self.handle(navigation=panel)

    def reset(self):
        with self._lock:
            self._state = InterfaceState.WELCOME
            self._prefetch_history.clear()
