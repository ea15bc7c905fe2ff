"""
프로필 텍스트 인코더

재무 프로필을 임베딩용 자연어 질의 문서로 변환합니다.
같은 프로필 버전은 항상 바이트 단위로 동일한 텍스트를 생성해야 검색 결과가 재현됩니다.
(updated_at은 텍스트에 포함하지 않음)
"""

from typing import Dict, List

from models import FinancialProfile, Frequency

TRAVEL_PHRASES = {
    Frequency.NEVER: "rarely travels",
    Frequency.OCCASIONALLY: "travels occasionally",
    Frequency.FREQUENTLY: "travels frequently",
}

DINING_PHRASES = {
    Frequency.NEVER: "rarely dines out",
    Frequency.OCCASIONALLY: "dines out occasionally",
    Frequency.FREQUENTLY: "dines out frequently",
}


def format_amount(value: float) -> str:
    """금액 포맷 (정수면 천 단위 구분, 아니면 소수 2자리)"""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _join(values: List[str], empty: str = "none") -> str:
    return ", ".join(values) if values else empty


class ProfileTextEncoder:
    """FinancialProfile → 임베딩 질의 텍스트 (순수 함수)"""

    def encode(self, profile: FinancialProfile) -> str:
        """
        프로필을 고정된 순서의 텍스트로 변환

        Args:
            profile: 검증된 재무 프로필

        Returns:
            소득, 신용점수, 소비 카테고리, 여행/외식 빈도, 선호 혜택,
            (선택 항목), 자격 조건, 매칭 목표 순서의 텍스트
        """
        income = format_amount(profile.annual_income)
        categories = _join(profile.primary_spending_categories)
        benefits = _join(profile.preferred_benefits, empty="no specific preference")

        lines = [
            "Financial Profile:",
            f"Annual Income: {income}",
            f"Credit Score: {profile.credit_score}",
            f"Primary Spending Categories: {categories}",
            f"Travel Frequency: {profile.travel_frequency.value}",
            f"Dining Frequency: {profile.dining_frequency.value}",
            f"Preferred Benefits: {benefits}",
        ]
        lines.extend(self._optional_lines(profile))

        lines.extend([
            "",
            "Eligibility Constraints:",
            f"- Only cards requiring a credit score at or below {profile.credit_score}",
            f"- Only cards requiring annual income at or below {income}",
            "",
            "I need credit cards that match this financial profile, focusing on:",
            f"1. Cards with rewards for these spending categories: {categories}",
            f"2. Cards with these benefits: {benefits}",
            "3. Cards suitable for someone who "
            f"{TRAVEL_PHRASES[profile.travel_frequency]} and {DINING_PHRASES[profile.dining_frequency]}",
        ])
        return "\n".join(lines)

    def _optional_lines(self, profile: FinancialProfile) -> List[str]:
        lines = []
        if profile.monthly_spending:
            lines.append(f"Monthly Spending: {self._spending(profile.monthly_spending)}")
        if profile.preferred_airlines:
            lines.append(f"Preferred Airlines: {_join(profile.preferred_airlines)}")
        if profile.shopping_habits is not None:
            habits = profile.shopping_habits
            lines.append(f"Shopping Habits: {habits.online}% online, {habits.in_store}% in-store")
        if profile.existing_cards:
            lines.append(f"Existing Cards: {_join(profile.existing_cards)}")
        return lines

    @staticmethod
    def _spending(spending: Dict[str, float]) -> str:
        return ", ".join(
            f"{category}: {format_amount(amount)}" for category, amount in sorted(spending.items())
        )


_default_encoder = ProfileTextEncoder()


def encode_profile(profile: FinancialProfile) -> str:
    """기본 인코더로 프로필 인코딩"""
    return _default_encoder.encode(profile)
