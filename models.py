"""
공통 도메인 모델

재무 프로필, 카드 레코드, 추천 결과, 채팅 턴, 인터페이스 상태를 정의합니다.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pipeline.errors import InvalidProfile

CREDIT_SCORE_MIN = 300
CREDIT_SCORE_MAX = 900


class Frequency(str, Enum):
    NEVER = "never"
    OCCASIONALLY = "occasionally"
    FREQUENTLY = "frequently"


class Intent(str, Enum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    SHOPPING = "shopping"
    NONE = "none"


class InterfaceState(str, Enum):
    WELCOME = "welcome"
    FLIGHT = "flight"
    HOTEL = "hotel"
    SHOPPING = "shopping"

    @classmethod
    def from_intent(cls, intent: "Intent") -> Optional["InterfaceState"]:
        """도메인 intent를 패널 상태로 변환 (none이면 None)"""
        if intent == Intent.NONE:
            return None
        return cls(intent.value)


def _as_list(values, field: str) -> list:
    """문자열은 단일 항목으로, 그 외 list/tuple/set만 허용 (TypeError 대신 ValueError)"""
    if values is None:
        return []
    if isinstance(values, str):
        return [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValueError(f"{field}은(는) 목록이어야 합니다: {type(values).__name__}")
    return list(values)


def _normalize_tags(values) -> List[str]:
    values = _as_list(values, "태그")
    tags = {str(v).strip().lower() for v in values if str(v).strip()}
    return sorted(tags)


class ShoppingHabits(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    online: int = Field(0, ge=0, le=100)
    in_store: int = Field(0, ge=0, le=100)


class FinancialProfile(BaseModel):
    """
    사용자 재무 프로필 (버전 단위, updated_at으로 최신 버전 구분)

    camelCase(annualIncome 등)와 snake_case 키를 모두 받습니다.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)

    annual_income: float = Field(..., gt=0)
    credit_score: int = Field(..., ge=CREDIT_SCORE_MIN, le=CREDIT_SCORE_MAX)
    primary_spending_categories: List[str] = Field(..., min_length=1)
    travel_frequency: Frequency
    dining_frequency: Frequency
    preferred_benefits: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None

    # 원본 온보딩 폼의 선택 항목
    monthly_spending: Dict[str, float] = Field(default_factory=dict)
    preferred_airlines: List[str] = Field(default_factory=list)
    existing_cards: List[str] = Field(default_factory=list)
    shopping_habits: Optional[ShoppingHabits] = None

    @field_validator("primary_spending_categories", "preferred_benefits", mode="before")
    @classmethod
    def _tags(cls, value):
        return _normalize_tags(value)

    @field_validator("preferred_airlines", "existing_cards", mode="before")
    @classmethod
    def _names(cls, value):
        return sorted({str(v).strip() for v in _as_list(value, "이름 목록") if str(v).strip()})

    @field_validator("travel_frequency", "dining_frequency", mode="before")
    @classmethod
    def _frequency(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            # 기존 사용자 문서는 'rarely'로 저장되어 있음
            if value == "rarely":
                return Frequency.NEVER
        return value

    @field_validator("monthly_spending", mode="before")
    @classmethod
    def _spending(cls, value):
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError(f"월 지출은 카테고리별 금액이어야 합니다: {type(value).__name__}")
        return {str(k).strip().lower(): v for k, v in value.items() if str(k).strip()}

    @field_validator("monthly_spending")
    @classmethod
    def _spending_non_negative(cls, value: Dict[str, float]) -> Dict[str, float]:
        for category, amount in value.items():
            if amount < 0:
                raise ValueError(f"월 지출은 음수일 수 없습니다: {category}={amount}")
        return value

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id(cls, value):
        return None if value is None else str(value)

    @classmethod
    def parse(cls, data: Any) -> "FinancialProfile":
        """
        dict/모델을 검증하여 FinancialProfile로 변환

        Raises:
            InvalidProfile: 필수 필드 누락 또는 범위 초과
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise InvalidProfile(f"프로필 형식이 올바르지 않습니다: {type(data).__name__}")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise InvalidProfile(
                f"프로필 검증 실패: {', '.join(fields)}",
                errors=e.errors(),
            ) from e


# 카드 문서 키 매핑 (원본 코퍼스의 camelCase 포함)
_CARD_KEYS = {
    "name": ("name", "cardName", "card_name"),
    "issuer": ("issuer", "bank"),
    "card_type": ("card_type", "cardType", "type"),
    "annual_fee": ("annual_fee", "annualFee"),
    "min_credit_score": ("min_credit_score", "minCreditScore", "credit_score_required", "creditScoreRequired"),
    "min_annual_income": ("min_annual_income", "minAnnualIncome", "income_required", "incomeRequired"),
    "reward_rates": ("reward_rates", "rewardRates", "rewardsRate"),
    "benefits": ("benefits", "primaryBenefits", "benefitsSummary"),
    "signup_bonus": ("signup_bonus", "signupBonus"),
}

VECTOR_FIELDS = ("vector", "$vector", "embedding", "embeddings")


def _first(doc: Mapping, keys) -> Any:
    for key in keys:
        if doc.get(key) is not None:
            return doc[key]
    return None


def _to_number(value: Any) -> Optional[float]:
    """'$95', '1,20,000' 같은 문자열에서 숫자 추출"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = re.search(r"\d[\d,]*(?:\.\d+)?", str(value))
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


class CardRecord(BaseModel):
    """카드 코퍼스 레코드 (코어에서는 읽기 전용)"""

    model_config = ConfigDict(frozen=True)

    card_id: str
    name: str = ""
    issuer: str = ""
    card_type: Optional[str] = None
    annual_fee: Optional[float] = None
    min_credit_score: Optional[int] = None
    min_annual_income: Optional[float] = None
    reward_rates: Dict[str, Any] = Field(default_factory=dict)
    benefits: List[str] = Field(default_factory=list)
    signup_bonus: Optional[str] = None
    # 벡터 스토어가 보고한 유사도 점수
    score: Optional[float] = None
    # 검색 내부 전용, 직렬화 대상 아님
    vector: Optional[List[float]] = Field(default=None, exclude=True, repr=False)

    @property
    def has_eligibility_data(self) -> bool:
        return self.min_credit_score is not None and self.min_annual_income is not None

    @classmethod
    def from_document(cls, doc: Mapping, vector_path: str = "vector") -> "CardRecord":
        """
        벡터 스토어 문서를 CardRecord로 변환 (벡터 필드는 항상 제거)

        Raises:
            ValueError: 카드 ID가 없거나 필드 타입이 잘못된 문서
        """
        clean = {k: v for k, v in doc.items() if k != vector_path and k not in VECTOR_FIELDS}

        card_id = _first(clean, ("card_id", "cardId", "id", "_id"))
        if card_id is None:
            raise ValueError("카드 ID가 없는 문서입니다")

        eligibility = clean.get("eligibility")
        if isinstance(eligibility, Mapping):
            clean = {**eligibility, **clean}

        benefits = _as_list(_first(clean, _CARD_KEYS["benefits"]), "benefits")
        reward_rates = _first(clean, _CARD_KEYS["reward_rates"]) or {}
        if not isinstance(reward_rates, Mapping):
            raise ValueError(f"reward_rates는 매핑이어야 합니다: {type(reward_rates).__name__}")

        credit = _to_number(_first(clean, _CARD_KEYS["min_credit_score"]))
        score = clean.get("score")

        return cls(
            card_id=str(card_id),
            name=str(_first(clean, _CARD_KEYS["name"]) or ""),
            issuer=str(_first(clean, _CARD_KEYS["issuer"]) or ""),
            card_type=_first(clean, _CARD_KEYS["card_type"]),
            annual_fee=_to_number(_first(clean, _CARD_KEYS["annual_fee"])),
            min_credit_score=int(credit) if credit is not None else None,
            min_annual_income=_to_number(_first(clean, _CARD_KEYS["min_annual_income"])),
            reward_rates=dict(reward_rates),
            benefits=[str(b) for b in benefits],
            signup_bonus=_first(clean, _CARD_KEYS["signup_bonus"]),
            score=float(score) if isinstance(score, (int, float)) else None,
        )


class RecommendationResult(BaseModel):
    """
    추천 결과 (순서 = 순위, 요청 단위로 생성되며 저장하지 않음)

    degraded=True는 임베딩 장애로 랜덤 벡터 검색 결과임을 의미합니다.
    """

    cards: List[CardRecord] = Field(default_factory=list)
    limit: int = Field(15, ge=1)
    degraded: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_cards(self) -> "RecommendationResult":
        if len(self.cards) > self.limit:
            raise ValueError(f"결과 수({len(self.cards)})가 limit({self.limit})를 초과합니다")
        ids = [c.card_id for c in self.cards]
        if len(ids) != len(set(ids)):
            raise ValueError("중복된 card_id가 포함되어 있습니다")
        return self

    @property
    def card_ids(self) -> List[str]:
        return [c.card_id for c in self.cards]


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    position: int = 0
