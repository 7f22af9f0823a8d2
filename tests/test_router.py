"""
라우터 테스트
- 디스패치 표 (명확화 > request type > 카테고리 > 기본)
- 생략형 후속 질문의 request type 상속
- 고정 언어, 기억 질문 단축 판정
- 규칙 테이블 검증
"""

import sys
import shutil
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import yaml

from navigator.constants import RULES_DIR
from navigator.models import ResponderName
from navigator.router import Router
from navigator.rulebook import RuleBook


def testDispatchTable(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    testCases = [
        # (category, requestType, 기대 응답기)
        ("cafe-clarification", "price", ResponderName.CLARIFICATION),
        ("meeting-room-clarification", None, ResponderName.CLARIFICATION),
        ("general", "price", ResponderName.BUSINESS),
        ("facilities", "hours", ResponderName.BUSINESS),
        ("events", "location", ResponderName.BUSINESS),
        ("facility-info", "wifi", ResponderName.FACILITY),
        ("pricing", "basement", ResponderName.FACILITY),
        ("general", "facility", ResponderName.FACILITY),
        ("general", "event", ResponderName.EVENT),
        ("facility-info", "meeting-room", ResponderName.BUSINESS),
        ("general", "meeting-room", ResponderName.GENERAL),
        ("facilities", None, ResponderName.FACILITY),
        ("saino-cafe", None, ResponderName.BUSINESS),
        ("events", None, ResponderName.EVENT),
        ("memory", None, ResponderName.MEMORY),
        ("general", None, ResponderName.GENERAL),
    ]
    for category, requestType, expected in testCases:
        assert router.resolveResponder(category, requestType) == expected, (category, requestType)


def testEveryCategoryIsRouted(sessionStore, ruleBook):
    """분류기가 낼 수 있는 모든 카테고리는 라우팅 항목이 있음"""
    router = Router(sessionStore, ruleBook)
    for category in ruleBook.categoryNames():
        assert category in router.categoryRoutes, category
        assert router.resolveResponder(category, None) in ResponderName.ALL


def testRouteFreshRequestType(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    decision = router.route("エンジニアカフェの営業時間は?", "s1")
    assert decision.request_type == "hours"
    assert decision.responder_name == ResponderName.BUSINESS
    assert decision.language == "ja"
    assert decision.inherited is False


def testEllipticalInheritsLastRequestType(sessionStore, ruleBook):
    """생략형 질문 + request type 없음 → 이전 턴 것을 상속"""
    router = Router(sessionStore, ruleBook)
    testCases = [
        ("hours", "土曜日も?", ResponderName.BUSINESS),
        ("price", "平日は?", ResponderName.BUSINESS),
        ("wifi", "sainoは?", ResponderName.FACILITY),
        ("event", "What about next week?", ResponderName.EVENT),
    ]
    for lastRequestType, text, expected in testCases:
        sessionStore.setLastRequestType("s1", lastRequestType)
        decision = router.route(text, "s1")
        assert decision.request_type == lastRequestType, text
        assert decision.inherited is True, text
        assert decision.responder_name == expected, text


def testNoInheritanceWhenRequestTypePresent(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    sessionStore.setLastRequestType("s1", "hours")

    decision = router.route("土曜日はWi-Fiある?", "s1")
    assert decision.request_type == "wifi"
    assert decision.inherited is False


def testNoInheritanceForNonElliptical(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    sessionStore.setLastRequestType("s1", "hours")

    decision = router.route("こんにちは", "s1")
    assert decision.request_type is None
    assert decision.inherited is False
    assert decision.responder_name == ResponderName.GENERAL


def testNoInheritanceIntoClarification(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    sessionStore.setLastRequestType("s1", "hours")

    decision = router.route("そっちのカフェは?", "s1")
    assert decision.is_ambiguous
    assert decision.request_type is None
    assert decision.responder_name == ResponderName.CLARIFICATION


def testPinnedLanguage(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    sessionStore.pinLanguage("s1", "en")

    decision = router.route("営業時間は?", "s1")
    assert decision.detected_language == "ja"
    assert decision.language == "en"

    # 호출 인자로 지정한 언어가 세션 고정 언어보다 우선
    decision = router.route("営業時間は?", "s1", language="ja")
    assert decision.language == "ja"


def testMemoryShortCircuit(sessionStore, ruleBook):
    router = Router(sessionStore, ruleBook)
    decision = router.route("さっき何を聞いた?", "s1")
    assert decision.category == "memory"
    assert decision.responder_name == ResponderName.MEMORY

    decision = router.route("さっき聞いた料金は?", "s1")
    assert decision.responder_name == ResponderName.BUSINESS


def testClosedStoreRoutesWithoutContext(ruleBook):
    from navigator.session import SessionStore

    store = SessionStore(autoCleanup=False)
    store.setLastRequestType("s1", "hours")
    store.close()

    decision = Router(store, ruleBook).route("土曜日も?", "s1")
    assert decision.request_type is None
    assert decision.inherited is False


def _copyRules(tmp_path: Path) -> Path:
    rulesDir = tmp_path / "rules"
    shutil.copytree(RULES_DIR, rulesDir)
    return rulesDir


def _rewrite(path: Path, update):
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    update(data)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, allow_unicode=True)


def testRuleBookRejectsUnknownResponder(tmp_path):
    rulesDir = _copyRules(tmp_path)
    _rewrite(rulesDir / "routing.yaml", lambda d: d["category_routes"].update({"general": "WeatherResponder"}))
    with pytest.raises(ValueError):
        RuleBook(str(rulesDir))


def testRuleBookRejectsUnroutedCategory(tmp_path):
    rulesDir = _copyRules(tmp_path)
    _rewrite(rulesDir / "routing.yaml", lambda d: d["category_routes"].pop("events"))
    with pytest.raises(ValueError):
        RuleBook(str(rulesDir))


def testRuleBookOverrideDirectory(tmp_path):
    """다른 디렉토리의 테이블로 교체 가능"""
    rulesDir = _copyRules(tmp_path)
    _rewrite(rulesDir / "routing.yaml", lambda d: d["request_type_routes"].update({"wifi": "GeneralResponder"}))

    ruleBook = RuleBook(str(rulesDir))
    assert ruleBook.rulesDir == rulesDir
    assert ruleBook.routing["request_type_routes"]["wifi"] == ResponderName.GENERAL
