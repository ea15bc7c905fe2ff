"""
인터페이스 라우터 / 채팅 세션 테스트
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from agents.chat_session import ChatSession, SessionRegistry
from agents.interface_router import InterfaceRouter, PrefetchDispatcher
from models import Intent, InterfaceState
from pipeline.errors import PrefetchFailed


class RecordingPrefetcher:
    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or [])
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, domain):
        with self._lock:
            self.calls.append(domain)
        if domain in self.fail_on:
            raise PrefetchFailed(domain, "HTTP 오류: 503")
        return [{"id": 1}]


@pytest.fixture
def prefetcher():
    return RecordingPrefetcher()


@pytest.fixture
def router(prefetcher):
    return InterfaceRouter(dispatcher=PrefetchDispatcher(prefetcher, background=False))


class TestInterfaceRouter:
    def test_starts_at_welcome(self, router):
        assert router.state == InterfaceState.WELCOME

    def test_transitions_prefetch_once(self, router, prefetcher):
        decision = router.handle(Intent.HOTEL)
        assert decision.changed is True
        assert decision.previous == InterfaceState.WELCOME
        assert decision.current == InterfaceState.HOTEL
        assert decision.prefetched == "hotel"
        assert decision.source == "intent"
        assert prefetcher.calls == ["hotel"]

        again = router.handle(Intent.HOTEL)
        assert again.changed is False
        assert again.prefetched is None
        assert prefetcher.calls == ["hotel"]

        nav = router.handle(Intent.NONE, navigation="shopping")
        assert nav.current == InterfaceState.SHOPPING
        assert nav.source == "navigation"
        assert prefetcher.calls == ["hotel", "shopping"]
        assert router.prefetch_history == ["hotel", "shopping"]

    def test_navigation_overrides_intent(self, router, prefetcher):
        decision = router.handle(Intent.FLIGHT, navigation=InterfaceState.HOTEL)
        assert decision.current == InterfaceState.HOTEL
        assert prefetcher.calls == ["hotel"]

    def test_none_intent_keeps_state(self, router, prefetcher):
        router.handle(Intent.FLIGHT)
        decision = router.handle(Intent.NONE)
        assert decision.changed is False
        assert decision.source == "none"
        assert router.state == InterfaceState.FLIGHT
        assert prefetcher.calls == ["flight"]

    def test_intent_accepts_string(self, router):
        assert router.handle("shopping").current == InterfaceState.SHOPPING

    def test_navigate_to_welcome_without_prefetch(self, router, prefetcher):
        router.handle(Intent.FLIGHT)
        decision = router.navigate("welcome")
        assert decision.changed is True
        assert decision.prefetched is None
        assert router.state == InterfaceState.WELCOME
        assert prefetcher.calls == ["flight"]

    def test_unknown_panel_rejected(self, router):
        with pytest.raises(ValueError):
            router.navigate("trains")

    def test_prefetch_failure_does_not_block_transition(self):
        prefetcher = RecordingPrefetcher(fail_on={"flight"})
        router = InterfaceRouter(dispatcher=PrefetchDispatcher(prefetcher, background=False))

        decision = router.handle(Intent.FLIGHT)
        assert decision.current == InterfaceState.FLIGHT

        router.handle(Intent.HOTEL)
        assert router.state == InterfaceState.HOTEL
        assert prefetcher.calls == ["flight", "hotel"]

    def test_without_dispatcher_records_history(self):
        router = InterfaceRouter()
        router.handle(Intent.SHOPPING)
        assert router.prefetch_history == ["shopping"]

    def test_prefetch_history_is_bounded(self, prefetcher):
        router = InterfaceRouter(dispatcher=PrefetchDispatcher(prefetcher, background=False), history_size=3)
        for intent in [Intent.FLIGHT, Intent.HOTEL, Intent.SHOPPING, Intent.FLIGHT, Intent.HOTEL]:
            router.handle(intent)

        assert router.prefetch_history == ["shopping", "flight", "hotel"]
        assert len(prefetcher.calls) == 5

    def test_prefetch_history_size_from_env(self, monkeypatch):
        monkeypatch.setenv("PREFETCH_HISTORY_SIZE", "1")
        router = InterfaceRouter()
        router.handle(Intent.FLIGHT)
        router.handle(Intent.HOTEL)
        assert router.prefetch_history == ["hotel"]

    def test_invalid_history_size(self):
        with pytest.raises(ValueError):
            InterfaceRouter(history_size=0)

    def test_reset(self, router):
        router.handle(Intent.FLIGHT)
        router.reset()
        assert router.state == InterfaceState.WELCOME
        assert router.prefetch_history == []


class TestPrefetchDispatcher:
    def test_background_dispatch_returns_future(self, prefetcher):
        dispatcher = PrefetchDispatcher(prefetcher, max_workers=2)
        try:
            future = dispatcher.dispatch("hotel")
            future.result(timeout=5)
        finally:
            dispatcher.shutdown()
        assert prefetcher.calls == ["hotel"]

    def test_slow_prefetch_does_not_delay_transition(self):
        release = threading.Event()

        def slow(domain):
            release.wait(timeout=5)

        dispatcher = PrefetchDispatcher(slow, max_workers=1)
        router = InterfaceRouter(dispatcher=dispatcher)
        try:
            started = time.perf_counter()
            decision = router.handle(Intent.FLIGHT)
            assert time.perf_counter() - started < 1.0
            assert decision.current == InterfaceState.FLIGHT
        finally:
            release.set()
            dispatcher.shutdown()

    def test_background_failure_is_swallowed(self):
        dispatcher = PrefetchDispatcher(RecordingPrefetcher(fail_on={"shopping"}), max_workers=1)
        try:
            future = dispatcher.dispatch("shopping")
            assert future.result(timeout=5) is None
        finally:
            dispatcher.shutdown()


class TestChatSession:
    def test_conversation_flow(self, prefetcher):
        session = ChatSession("s1", dispatcher=PrefetchDispatcher(prefetcher, background=False))
        assert session.state == InterfaceState.WELCOME

        decision = session.add_turn("user", "hi there")
        assert decision.changed is False
        assert session.last_intent == Intent.NONE

        decision = session.add_turn("user", "Can you book a hotel room in Paris?")
        assert decision.current == InterfaceState.HOTEL
        assert session.last_intent == Intent.HOTEL

        session.add_turn("assistant", "Here are some hotels")
        assert prefetcher.calls == ["hotel"]

        decision = session.add_turn("user", "show me offers", navigation="shopping")
        assert decision.source == "navigation"
        assert session.state == InterfaceState.SHOPPING
        assert prefetcher.calls == ["hotel", "shopping"]

    def test_turn_positions(self):
        session = ChatSession("s1")
        session.add_turn("user", "hello")
        session.add_turn("assistant", "hi")
        assert [t.position for t in session.turns] == [0, 1]
        assert [t.role for t in session.turns] == ["user", "assistant"]

    def test_history_is_bounded(self):
        session = ChatSession("s1", history_size=3)
        for i in range(10):
            session.add_turn("user", f"message {i}")
        # window(5)보다 작게 잘리지 않음
        assert len(session.turns) == 5
        assert session.turns[-1].content == "message 9"

    def test_invalid_role(self):
        session = ChatSession("s1")
        with pytest.raises(ValueError):
            session.add_turn("system", "hello")

    def test_concurrent_turns_prefetch_once(self, prefetcher):
        session = ChatSession("s1", dispatcher=PrefetchDispatcher(prefetcher, background=False))

        with ThreadPoolExecutor(max_workers=8) as executor:
            decisions = list(executor.map(
                lambda _: session.add_turn("user", "find me a flight to Dubai"), range(16)
            ))

        assert sum(d.changed for d in decisions) == 1
        assert prefetcher.calls == ["flight"]
        assert session.state == InterfaceState.FLIGHT


class TestSessionRegistry:
    def test_sessions_are_independent(self):
        registry = SessionRegistry()
        registry.get("a").add_turn("user", "find me a flight to Dubai")
        assert registry.get("a").state == InterfaceState.FLIGHT
        assert registry.get("b").state == InterfaceState.WELCOME

    def test_get_returns_same_session(self):
        registry = SessionRegistry()
        assert registry.get("a") is registry.get("a")
        assert "a" in registry

    def test_new_session_starts_at_welcome(self):
        registry = SessionRegistry()
        registry.get("a").add_turn("user", "find me a flight to Dubai")

        session = registry.start_session("a")
        assert session.state == InterfaceState.WELCOME
        assert session.turns == []
        assert registry.get("a") is session

    def test_end_session(self):
        registry = SessionRegistry()
        registry.get("a")
        registry.end_session("a")
        assert "a" not in registry

    def test_shared_dispatcher(self, prefetcher):
        registry = SessionRegistry(dispatcher=PrefetchDispatcher(prefetcher, background=False))
        registry.get("a").add_turn("user", "find me a flight to Dubai")
        registry.get("b").add_turn("user", "find me a flight to Dubai")
        assert prefetcher.calls == ["flight", "flight"]
