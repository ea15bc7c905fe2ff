#!/usr/bin/env python3
"""
카드 컨시어지 CLI

- recommend: 프로필 JSON 파일로 카드 추천 (OpenAI + MongoDB Atlas)
- classify:  메시지 목록의 대화 의도 분류
- route:     대화형으로 메시지를 입력하며 패널 전이/prefetch 확인
- stats:     카드 컬렉션 문서 수와 벡터 검색 인덱스 준비 상태 확인

사용 예시:
    python script/concierge_cli.py recommend --profile profile.json --limit 10 --eligible-only
    python script/concierge_cli.py classify "find me a flight to Dubai" "need to book one"
    python script/concierge_cli.py route --no-prefetch
    python script/concierge_cli.py stats --index card_vector_search
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List

from pymongo.errors import PyMongoError

# script/ 경로에서 실행 시 루트 경로를 import 경로에 추가
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from agents.chat_session import ChatSession  # noqa: E402
from agents.eligibility import filter_eligible  # noqa: E402
from agents.intent_classifier import IntentClassifier  # noqa: E402
from agents.interface_router import PrefetchDispatcher  # noqa: E402
from data_collection.listing_client import ListingClient  # noqa: E402
from database.mongodb_client import MongoDBClient  # noqa: E402
from models import FinancialProfile, InterfaceState  # noqa: E402
from pipeline.errors import InvalidProfile, RecommendationUnavailable  # noqa: E402
from pipeline.recommendation import RecommendationPipeline  # noqa: E402


def pretty_print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def cmd_recommend(args: argparse.Namespace) -> int:
    with open(args.profile, "r", encoding="utf-8") as f:
        raw_profile = json.load(f)

    try:
        profile = FinancialProfile.parse(raw_profile)
    except InvalidProfile as e:
        print(f"❌ {e}")
        return 2

    pipeline = RecommendationPipeline.from_env()
    try:
        result = pipeline.recommend(profile, limit=args.limit)
    except RecommendationUnavailable as e:
        print(f"❌ 추천을 일시적으로 사용할 수 없습니다: {e}")
        return 1
    finally:
        pipeline.retriever.mongo_client.close()

    cards = filter_eligible(profile, result.cards) if args.eligible_only else result.cards

    if result.degraded:
        print("⚠️  임베딩 서비스 장애로 정렬되지 않은(degraded) 결과입니다.")

    print(f"\n----- 추천 카드 ({len(cards)}개) -----")
    for rank, card in enumerate(cards, 1):
        score = f"{card.score:.3f}" if card.score is not None else "-"
        print(f"{rank:>2}. {card.issuer} {card.name} (card_id={card.card_id}, score={score})")

    if args.verbose:
        print("\n----- metadata -----")
        pretty_print_json(result.metadata)
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    classifier = IntentClassifier(
        window=args.window,
        match_scope=args.match_scope,
        priority_order=args.priority.split(",") if args.priority else None,
    )
    print(f"intent: {classifier.classify(args.messages).value}")
    detected = classifier.detected_domains(args.messages)
    if len(detected) > 1:
        print(f"detected (priority order): {[d.value for d in detected]}")
    return 0


def cmd_route(args: argparse.Namespace) -> int:
    dispatcher = None
    if not args.no_prefetch:
        dispatcher = PrefetchDispatcher(ListingClient(base_url=args.base_url).prefetch)

    session = ChatSession("cli", dispatcher=dispatcher)
    panels: List[str] = [s.value for s in InterfaceState]
    print("메시지를 입력하세요. ':go <panel>'로 패널 이동, ':reset'으로 새 세션, 빈 줄로 종료")
    print(f"패널: {panels}")

    try:
        while True:
            line = input(f"[{session.state.value}] > ").strip()
            if not line:
                break
            if line == ":reset":
                session = ChatSession("cli", dispatcher=dispatcher)
                print("새 세션 시작 (welcome)")
                continue
            if line.startswith(":go "):
                panel = line[4:].strip()
                if panel not in panels:
                    print(f"알 수 없는 패널: {panel}")
                    continue
                decision = session.navigate(panel)
            else:
                decision = session.add_turn("user", line)
            print(f"  intent={session.last_intent.value} → {decision.current.value} "
                  f"(changed={decision.changed}, prefetch={decision.prefetched})")
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        if dispatcher is not None:
            dispatcher.shutdown(wait=False)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    client = MongoDBClient()
    try:
        stats = client.get_stats(vector_path=args.vector_path, index_name=args.index)
    except (ConnectionError, PyMongoError) as e:
        print(f"❌ MongoDB 통계 조회 실패: {e}")
        return 1
    finally:
        client.close()

    pretty_print_json(stats)
    if not stats["vector_search_ready"]:
        print(f"⚠️  벡터 검색 인덱스 '{args.index}'가 준비되지 않았습니다.")
        return 1
    print("✅ 벡터 검색 준비 완료")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="카드 추천 / 대화 의도 라우팅 CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("recommend", help="프로필 기반 카드 추천")
    rec.add_argument("--profile", required=True, help="재무 프로필 JSON 파일 경로")
    rec.add_argument("--limit", type=int, default=None, help="최대 결과 수 (기본 15)")
    rec.add_argument("--eligible-only", action="store_true", help="신용점수/소득 자격 충족 카드만 출력")
    rec.add_argument("--verbose", action="store_true", help="metadata(성능, degraded 사유) 출력")
    rec.set_defaults(func=cmd_recommend)

    cls = sub.add_parser("classify", help="메시지 목록의 의도 분류")
    cls.add_argument("messages", nargs="+", help="오래된 순 메시지")
    cls.add_argument("--window", type=int, default=None, help="검사할 최근 턴 수 (기본 5)")
    cls.add_argument("--match-scope", choices=["window", "turn"], default=None)
    cls.add_argument("--priority", default=None, help="도메인 우선순위 (예: hotel,flight,shopping)")
    cls.set_defaults(func=cmd_classify)

    route = sub.add_parser("route", help="대화형 패널 라우팅")
    route.add_argument("--base-url", default=None, help="리스팅 API 기본 URL")
    route.add_argument("--no-prefetch", action="store_true", help="리스팅 prefetch 비활성화")
    route.set_defaults(func=cmd_route)

    stats = sub.add_parser("stats", help="카드 컬렉션 / 벡터 인덱스 상태")
    stats.add_argument("--index", default="card_vector_search", help="Atlas Vector Search 인덱스 이름")
    stats.add_argument("--vector-path", default="vector", help="벡터 필드 경로")
    stats.set_defaults(func=cmd_stats)

    return parser


def main() -> int:
    args = build_parser().parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
