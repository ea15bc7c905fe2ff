"""
공통 유틸리티

외부 호출 실행 시간 측정 데코레이터와 단계별 타이머를 제공합니다.
"""

import functools
import inspect
import time
from typing import Any, Callable, Dict, Optional


def _report(name: str, started: float, failed: bool = False):
    elapsed = time.perf_counter() - started
    suffix = " (실패)" if failed else ""
    print(f"[PERF] {name}{suffix}: {elapsed * 1000:.2f}ms ({elapsed:.3f}초)")


def measure_time(func_name: Optional[str] = None, verbose: bool = True):
    """
    함수 실행 시간 측정 데코레이터 (동기/비동기 모두 지원)

    Args:
        func_name: 로그에 표시할 이름 (기본값: 함수명)
        verbose: False면 측정만 하고 출력하지 않음

    사용 예시:
        @measure_time("openai_embedding")
        def embed(self, text):
            ...
    """
    def decorator(func: Callable) -> Callable:
        display_name = func_name or func.__name__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    if verbose:
                        _report(display_name, started, failed=True)
                    raise
                if verbose:
                    _report(display_name, started)
                return result

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                if verbose:
                    _report(display_name, started, failed=True)
                raise
            if verbose:
                _report(display_name, started)
            return result

        return sync_wrapper

    return decorator


class RequestTimer:
    """요청 단위 단계별 처리 시간 측정"""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.step_times: Dict[str, float] = {}

    def start(self) -> "RequestTimer":
        self.start_time = time.perf_counter()
        return self

    def mark_step(self, step_name: str):
        """
        단계 완료 시각 기록 (시작 시점 기준 누적 ms)

        Args:
            step_name: 단계 이름 (예: "embed_profile_ms")
        """
        if self.start_time is not None:
            self.step_times[step_name] = round((time.perf_counter() - self.start_time) * 1000, 2)

    def get_total_time(self) -> float:
        if self.start_time is None:
            return 0.0
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def get_performance_dict(self) -> Dict[str, float]:
        return {**self.step_times, "total_ms": self.get_total_time()}
