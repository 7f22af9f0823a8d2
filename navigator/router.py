"""
라우터
- 언어 감지 → 기억 질문 단축 판정 → 분류 → 생략형 후속 질문의 request type 상속 → 응답기 매핑
- 매핑 순서: 명확화 카테고리 > request type > 카테고리 > 기본 응답기
- 상속된 request type은 RouteDecision.inherited로 표시
"""

from typing import Optional

from navigator.classifier import QueryClassifier
from navigator.errors import SessionStoreUnavailable
from navigator.language import LanguageDetector
from navigator.models import Classification, RouteDecision, ResponderName
from navigator.rulebook import RuleBook, getRuleBook
from navigator.session import SessionStore


class Router:
    """쿼리 → RouteDecision (순수 계산, 세션은 읽기만)"""

    def __init__(
        self,
        sessionStore: SessionStore,
        ruleBook: RuleBook = None,
        classifier: QueryClassifier = None,
        languageDetector: LanguageDetector = None,
    ):
        self.ruleBook = ruleBook or getRuleBook()
        self.sessionStore = sessionStore
        self.classifier = classifier or QueryClassifier(self.ruleBook)
        self.languageDetector = languageDetector or LanguageDetector()

        routing = self.ruleBook.routing
        self.requestTypeRoutes = dict(routing.get("request_type_routes", {}))
        self.categoryRoutes = dict(routing.get("category_routes", {}))
        self.defaultResponder = routing.get("default_responder", ResponderName.GENERAL)

    def resolveResponder(self, category: str, requestType: Optional[str]) -> str:
        """(카테고리, request type) → 응답기 이름"""
        if category.endswith("-clarification"):
            return ResponderName.CLARIFICATION
        if requestType and requestType in self.requestTypeRoutes:
            return self.requestTypeRoutes[requestType]
        return self.categoryRoutes.get(category, self.defaultResponder)

    def _lastRequestType(self, sessionId: str) -> Optional[str]:
        try:
            return self.sessionStore.getLastRequestType(sessionId)
        except SessionStoreUnavailable:
            print("[라우팅] 세션 저장소 사용 불가 → 상속 없이 진행")
            return None

    def _pinnedLanguage(self, sessionId: str) -> Optional[str]:
        try:
            return self.sessionStore.getPinnedLanguage(sessionId)
        except SessionStoreUnavailable:
            return None

    def route(self, correctedText: str, sessionId: str, language: Optional[str] = None) -> RouteDecision:
        pinned = language or self._pinnedLanguage(sessionId)
        languageDecision = self.languageDetector.detect(correctedText, pinned)

        # 기억 질문 단축 판정 (업무 키워드 제외 목록이 먼저 검사됨)
        if self.classifier.isMemoryQuery(correctedText):
            classification = Classification(
                category="memory", confidence=0.9, debug_info={"stage": "memory"}
            )
        else:
            classification = self.classifier.classify(
                correctedText, languageDecision.detected_language
            )

        requestType = classification.request_type
        inherited = False

        # 생략형 후속 질문: 분류된 request type이 없으면 이전 턴 것을 상속
        if (
            not classification.needs_clarification
            and classification.category != "memory"
            and requestType is None
            and self.classifier.isElliptical(correctedText)
        ):
            lastRequestType = self._lastRequestType(sessionId)
            if lastRequestType:
                requestType = lastRequestType
                inherited = True

        responderName = self.resolveResponder(classification.category, requestType)

        decision = RouteDecision(
            responder_name=responderName,
            category=classification.category,
            request_type=requestType,
            language=languageDecision.response_language,
            confidence=classification.confidence,
            inherited=inherited,
            detected_language=languageDecision.detected_language,
            debug_info={
                **classification.debug_info,
                "languageConfidence": languageDecision.confidence,
                "mixedLanguage": languageDecision.is_mixed,
            },
        )

        inheritedMark = " (상속)" if inherited else ""
        print(
            f"[라우팅] '{correctedText[:30]}' → {responderName} "
            f"(category={decision.category}, requestType={requestType}{inheritedMark}, "
            f"lang={decision.language}, conf={decision.confidence:.2f})"
        )
        return decision
