"""
채팅 세션

세션별 대화 턴, 의도 분류기, 인터페이스 라우터를 묶어 관리합니다.
같은 세션의 분류/전이는 세션 락으로 직렬화되며, 세션 간에는 상태를 공유하지 않습니다.
"""

import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Union

from agents.intent_classifier import IntentClassifier
from agents.interface_router import InterfaceRouter, PrefetchDispatcher, RouteDecision
from models import ChatTurn, Intent, InterfaceState

DEFAULT_HISTORY_SIZE = 50


class ChatSession:
    """단일 채팅 세션"""

    def __init__(
        self,
        session_id: str,
        classifier: Optional[IntentClassifier] = None,
        dispatcher: Optional[PrefetchDispatcher] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        self.session_id = session_id
        self.classifier = classifier or IntentClassifier()
        self.router = InterfaceRouter(dispatcher=dispatcher)
        # 분류기는 최근 window 턴만 보므로 오래된 턴은 보관하지 않음
        self._turns: Deque[ChatTurn] = deque(maxlen=max(history_size, self.classifier.window))
        self._next_position = 0
        self.last_intent = Intent.NONE
        self._lock = threading.Lock()

    @property
    def state(self) -> InterfaceState:
        return self.router.state

    @property
    def turns(self) -> List[ChatTurn]:
        return list(self._turns)

    def add_turn(
        self,
        role: str,
        content: str,
        navigation: Optional[Union[InterfaceState, str]] = None,
    ) -> RouteDecision:
        """
        턴 추가 → 의도 분류 → 패널 라우팅

        Args:
            role: "user" | "assistant"
            content: 메시지 본문
            navigation: 같은 사이클에 사용자가 선택한 패널 (의도보다 우선)
        """
        with self._lock:
            turn = ChatTurn(role=role, content=content, position=self._next_position)
            self._next_position += 1
            self._turns.append(turn)

            self.last_intent = self.classifier.classify(self._turns)
            return self.router.handle(intent=self.last_intent, navigation=navigation)

    def navigate(self, panel: Union[InterfaceState, str]) -> RouteDecision:
        with self._lock:
            return self.router.navigate(panel)


class SessionRegistry:
    """세션 ID → ChatSession"""

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        dispatcher: Optional[PrefetchDispatcher] = None,
    ):
        # 분류기는 무상태이므로 세션 간 공유
        self.classifier = classifier or IntentClassifier()
        self.dispatcher = dispatcher
        self._sessions: Dict[str, ChatSession] = {}
        self._lock = threading.Lock()

    def start_session(self, session_id: str) -> ChatSession:
        """새 채팅 세션 시작 (기존 세션은 welcome 상태의 새 세션으로 교체)"""
        session = ChatSession(session_id, classifier=self.classifier, dispatcher=self.dispatcher)
        with self._lock:
            self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ChatSession(session_id, classifier=self.classifier, dispatcher=self.dispatcher)
                self._sessions[session_id] = session
            return session

    def end_session(self, session_id: str):
        with self._lock:
            self._sessions.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions
