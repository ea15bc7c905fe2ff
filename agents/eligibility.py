"""
자격 조건 필터 (호출자 측)

추천 파이프라인은 순수 검색 단계이므로 자격 평가를 하지 않습니다.
프로필을 가진 호출자가 이 모듈로 후보를 걸러냅니다.
자격 기준 데이터가 없는 카드는 통과가 아니라 부적격으로 처리합니다.
"""

from typing import Iterable, List

from models import CardRecord, FinancialProfile


def is_eligible(profile: FinancialProfile, card: CardRecord) -> bool:
    if not card.has_eligibility_data:
        return False
    return (
        card.min_credit_score <= profile.credit_score
        and card.min_annual_income <= profile.annual_income
    )


def filter_eligible(profile: FinancialProfile, cards: Iterable[CardRecord]) -> List[CardRecord]:
    """순서를 유지하며 적격 카드만 반환"""
    return [card for card in cards if is_eligible(profile, card)]
