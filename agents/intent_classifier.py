"""
대화 의도 분류기

최근 채팅 턴에서 도메인(flight/hotel/shopping) 키워드를 찾아 최대 1개의 의도를 반환합니다.
도메인은 (주제 키워드, 행동 키워드, 우선순위) 테이블로 정의되므로
새 도메인은 로직 복제 없이 데이터로 추가합니다.
"""

import os
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from models import ChatTurn, Intent

load_dotenv()

DEFAULT_WINDOW = 5
MATCH_SCOPES = ("window", "turn")


class DomainRule(BaseModel):
    """도메인 감지 규칙 (priority가 낮을수록 먼저 평가)"""

    model_config = ConfigDict(frozen=True)

    domain: Intent
    subject_keywords: Tuple[str, ...]
    action_keywords: Tuple[str, ...]
    priority: int

    @field_validator("subject_keywords", "action_keywords", mode="before")
    @classmethod
    def _lower(cls, value):
        keywords = tuple(str(k).strip().lower() for k in value if str(k).strip())
        if not keywords:
            raise ValueError("키워드는 1개 이상이어야 합니다")
        return keywords

    @field_validator("domain")
    @classmethod
    def _not_none(cls, value: Intent) -> Intent:
        if value == Intent.NONE:
            raise ValueError("none은 도메인 규칙이 될 수 없습니다")
        return value


# 채팅 패널 추천 카드의 키워드 (flight → hotel → shopping 순)
DEFAULT_DOMAIN_RULES: Tuple[DomainRule, ...] = (
    DomainRule(
        domain=Intent.FLIGHT,
        subject_keywords=("flight", "travel", "airport"),
        action_keywords=("book", "find", "search", "looking for"),
        priority=0,
    ),
    DomainRule(
        domain=Intent.HOTEL,
        subject_keywords=("hotel", "accommodation", "stay", "room"),
        action_keywords=("book", "find", "search", "looking for"),
        priority=1,
    ),
    DomainRule(
        domain=Intent.SHOPPING,
        subject_keywords=(
            "shop", "buy", "purchase", "phone", "smartphone", "gadget", "electronics", "price",
        ),
        action_keywords=("find", "search", "looking for", "best deal", "discount"),
        priority=2,
    ),
)


def _turn_text(turn) -> str:
    if isinstance(turn, ChatTurn):
        return turn.content
    if isinstance(turn, Mapping):
        return str(turn.get("content") or "")
    return str(turn or "")


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _priority_from_env() -> Optional[List[str]]:
    raw = os.getenv("INTENT_PRIORITY")
    if not raw:
        return None
    return [p.strip().lower() for p in raw.split(",") if p.strip()]


class IntentClassifier:
    """
    테이블 기반 의도 분류기 (순수 함수, 부수효과 없음)

    여러 도메인이 동시에 감지되면 우선순위가 가장 높은(숫자가 낮은) 도메인을 반환합니다.
    기본 우선순위(flight → hotel → shopping)는 정책 선택이며 priority_order로 변경할 수 있습니다.
    """

    def __init__(
        self,
        rules: Optional[Sequence[DomainRule]] = None,
        window: Optional[int] = None,
        match_scope: Optional[str] = None,
        priority_order: Optional[Sequence] = None,
    ):
        """
        Args:
            rules: 도메인 규칙 테이블 (기본값: DEFAULT_DOMAIN_RULES)
            window: 검사할 최근 턴 수 (기본값: INTENT_WINDOW 또는 5)
            match_scope: "window" - 주제/행동 키워드가 윈도우 내 서로 다른 턴에 있어도 감지
                         "turn" - 한 턴 안에 둘 다 있어야 감지
                         (기본값: INTENT_MATCH_SCOPE 또는 "window")
            priority_order: 도메인 평가 순서 재정의 (예: ["shopping", "hotel", "flight"],
                            기본값: INTENT_PRIORITY 환경변수)
        """
        self.window = int(window if window is not None else os.getenv("INTENT_WINDOW", DEFAULT_WINDOW))
        if self.window < 1:
            raise ValueError(f"window는 1 이상이어야 합니다: {self.window}")

        self.match_scope = (match_scope or os.getenv("INTENT_MATCH_SCOPE", "window")).lower()
        if self.match_scope not in MATCH_SCOPES:
            raise ValueError(f"지원하지 않는 match_scope: {self.match_scope} (허용: {MATCH_SCOPES})")

        rules = list(rules if rules is not None else DEFAULT_DOMAIN_RULES)
        domains = [r.domain for r in rules]
        if len(domains) != len(set(domains)):
            raise ValueError("도메인 규칙이 중복되었습니다")

        order = priority_order if priority_order is not None else _priority_from_env()
        if order:
            rules = self._reprioritize(rules, order)

        # 동일 priority는 테이블 순서 유지
        self.rules: Tuple[DomainRule, ...] = tuple(sorted(rules, key=lambda r: r.priority))

    @staticmethod
    def _reprioritize(rules: List[DomainRule], order: Sequence) -> List[DomainRule]:
        ranked = [Intent(o) if not isinstance(o, Intent) else o for o in order]
        by_domain = {r.domain: r for r in rules}
        unknown = [d.value for d in ranked if d not in by_domain]
        if unknown:
            raise ValueError(f"규칙에 없는 도메인: {unknown}")
        # 순서에 없는 도메인은 뒤에 기존 priority 순으로 배치
        rest = sorted((r for r in rules if r.domain not in ranked), key=lambda r: r.priority)
        reordered = [by_domain[d] for d in ranked] + rest
        return [r.model_copy(update={"priority": i}) for i, r in enumerate(reordered)]

    def _recent_texts(self, turns: Sequence) -> List[str]:
        recent = list(turns)[-self.window:]
        return [_turn_text(t).lower() for t in recent]

    def _matches(self, rule: DomainRule, texts: List[str]) -> bool:
        if self.match_scope == "turn":
            return any(
                _contains_any(text, rule.subject_keywords) and _contains_any(text, rule.action_keywords)
                for text in texts
            )
        return (
            any(_contains_any(text, rule.subject_keywords) for text in texts)
            and any(_contains_any(text, rule.action_keywords) for text in texts)
        )

    def detected_domains(self, turns: Sequence) -> List[Intent]:
        """
        윈도우에서 감지된 모든 도메인 (우선순위 순)

        Args:
            turns: ChatTurn, {"content": ...} dict, 또는 문자열 시퀀스 (오래된 순)
        """
        texts = self._recent_texts(turns)
        if not texts:
            return []
        return [rule.domain for rule in self.rules if self._matches(rule, texts)]

    def classify(self, turns: Sequence) -> Intent:
        """
        최근 턴의 의도 분류

        Returns:
            Intent.FLIGHT / HOTEL / SHOPPING 중 우선순위 첫 매칭, 없으면 Intent.NONE
        """
        detected = self.detected_domains(turns)
        return detected[0] if detected else Intent.NONE
