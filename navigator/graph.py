"""
LangGraph 기반 턴 처리 플로우
- correct → route → (clarify | respond) → commit → log → END
- route 노드에서 RouteDecision을 생성 전에 확정/기록
- handle(): 세션 잠금 안에서 그래프 실행, 어떤 예외도 UnifiedResponse로 변환
"""

import json
import time
import uuid
import traceback
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

from langgraph.graph import StateGraph, END

from navigator.clarification import ClarificationResponder, AWAITING_CHOICE, RESOLVED, EXHAUSTED
from navigator.constants import LOG_DIR, LOG_ENABLED
from navigator.context_filter import ContextFilter
from navigator.corrector import PhoneticCorrector
from navigator.emotion import addEmotionTag
from navigator.errors import AmbiguityLoop, SessionStoreUnavailable
from navigator.models import RouteDecision, ResponderName, Turn, UnifiedResponse, createUnifiedResponse
from navigator.responders import Retriever, Generator, createResponders
from navigator.router import Router
from navigator.rulebook import RuleBook, getRuleBook
from navigator.session import SessionStore
from navigator.state import NavigatorState


class NavigatorGraph:
    """쿼리 이해 + 디스패치 코어"""

    def __init__(
        self,
        retriever: Retriever,
        generator: Generator,
        sessionStore: SessionStore = None,
        ruleBook: RuleBook = None,
        logDir: str = None,
        logEnabled: bool = LOG_ENABLED,
        indexer=None,
    ):
        self.ruleBook = ruleBook or getRuleBook()
        if sessionStore is None:
            from navigator.session import sessionStore as defaultStore
            sessionStore = defaultStore
        self.sessionStore = sessionStore

        self.corrector = PhoneticCorrector(self.ruleBook)
        self.router = Router(self.sessionStore, self.ruleBook)
        self.contextFilter = ContextFilter(self.ruleBook)
        self.clarification = ClarificationResponder(self.ruleBook)
        self.responders = createResponders(
            retriever, generator,
            sessionStore=self.sessionStore,
            ruleBook=self.ruleBook,
            contextFilter=self.contextFilter,
        )

        self.logEnabled = logEnabled
        self.logPath = Path(logDir) if logDir else LOG_DIR
        if self.logEnabled:
            self.logPath.mkdir(parents=True, exist_ok=True)

        # 헬스 체크용 (getStats 제공 객체, 선택)
        self.indexer = indexer

        self.graph = self._buildGraph()

    def _buildGraph(self) -> StateGraph:
        """LangGraph 그래프 구성"""
        workflow = StateGraph(NavigatorState)

        workflow.add_node("correct", self.correctNode)
        workflow.add_node("route", self.routeNode)
        workflow.add_node("clarify", self.clarifyNode)
        workflow.add_node("respond", self.respondNode)
        workflow.add_node("commit", self.commitNode)
        workflow.add_node("log", self.logNode)

        workflow.set_entry_point("correct")
        workflow.add_edge("correct", "route")

        # 명확화 필요 여부에 따른 분기
        workflow.add_conditional_edges(
            "route",
            self._dispatchRouter,
            {
                "clarify": "clarify",
                "respond": "respond",
            }
        )

        workflow.add_edge("clarify", "commit")
        workflow.add_edge("respond", "commit")
        workflow.add_edge("commit", "log")
        workflow.add_edge("log", END)

        return workflow.compile()

    def _dispatchRouter(self, state: NavigatorState) -> Literal["clarify", "respond"]:
        decision = state["route_decision"]
        return "clarify" if decision.responder_name == ResponderName.CLARIFICATION else "respond"

    # ----- 노드 -----

    def correctNode(self, state: NavigatorState) -> NavigatorState:
        """교정 노드: 음성인식 오인식 교정"""
        correctedText = self.corrector.correct(state["raw_text"])
        return {
            **state,
            "corrected_text": correctedText,
            "routed_text": correctedText,
        }

    def _readPending(self, sessionId: str) -> tuple[Optional[dict], bool]:
        try:
            return self.sessionStore.getPendingClarification(sessionId), True
        except SessionStoreUnavailable:
            print("[세션] 저장소 사용 불가 → 이전 맥락 없이 처리")
            return None, False

    def _responseLanguage(self, state: NavigatorState, pending: dict = None) -> str:
        """명확화 대기 중 응답 언어 (지정 언어 > 대기 시작 시 언어 > 감지)"""
        if state.get("language"):
            return state["language"]
        if pending and pending.get("language"):
            return pending["language"]
        return self.router.languageDetector.detect(state["corrected_text"]).response_language

    def routeNode(self, state: NavigatorState) -> NavigatorState:
        """라우팅 노드: 명확화 상태 머신 → 라우터"""
        sessionId = state["session_id"]
        correctedText = state["corrected_text"]
        pending, sessionAvailable = self._readPending(sessionId)
        if not state["session_available"]:
            sessionAvailable = False

        updates = {
            "session_available": sessionAvailable,
            "clarification_state": None,
            "clarification_retry": False,
            "next_pending": None,
            "error": None if sessionAvailable else SessionStoreUnavailable.kind,
        }

        if pending:
            language = self._responseLanguage(state, pending)
            try:
                outcome = self.clarification.advance(pending, correctedText, language)
            except AmbiguityLoop as e:
                # 재질문 한도 초과 → 원래 질문을 일반 응답기로
                decision = RouteDecision(
                    responder_name=ResponderName.GENERAL,
                    category=self.router.classifier.defaultCategory,
                    request_type=None,
                    language=language,
                    confidence=self.router.classifier.defaultConfidence,
                    debug_info={"stage": "clarification-exhausted", "attempts": e.attempts},
                )
                return {
                    **state,
                    **updates,
                    "routed_text": pending["originalText"],
                    "route_decision": decision,
                    "clarification_state": EXHAUSTED,
                    "error": AmbiguityLoop.kind,
                }

            if outcome.status == RESOLVED:
                decision = self.router.route(outcome.resolvedText, sessionId, state.get("language"))
                nextPending = None
                if decision.is_ambiguous:
                    nextPending = self._newPending(decision, outcome.resolvedText)
                return {
                    **state,
                    **updates,
                    "routed_text": outcome.resolvedText,
                    "route_decision": decision,
                    "clarification_state": RESOLVED,
                    "next_pending": nextPending,
                }

            # 일치 실패 → 같은 후보로 재질문
            decision = RouteDecision(
                responder_name=ResponderName.CLARIFICATION,
                category=outcome.category,
                request_type=None,
                language=language,
                confidence=1.0,
                debug_info={"stage": "clarification-retry", "retries": outcome.retries},
            )
            return {
                **state,
                **updates,
                "routed_text": pending["originalText"],
                "route_decision": decision,
                "clarification_state": AWAITING_CHOICE,
                "clarification_retry": True,
                "next_pending": {**pending, "retries": outcome.retries},
            }

        decision = self.router.route(correctedText, sessionId, state.get("language"))
        nextPending = None
        clarificationState = None
        if decision.is_ambiguous:
            nextPending = self._newPending(decision, correctedText)
            clarificationState = AWAITING_CHOICE

        return {
            **state,
            **updates,
            "route_decision": decision,
            "clarification_state": clarificationState,
            "next_pending": nextPending,
        }

    def _newPending(self, decision: RouteDecision, originalText: str) -> dict:
        return {
            "category": decision.category,
            "originalText": originalText,
            "retries": 0,
            "language": decision.language,
        }

    def clarifyNode(self, state: NavigatorState) -> NavigatorState:
        """명확화 노드: 후보를 나열한 질문"""
        response = self.clarification.ask(state["route_decision"], retry=state["clarification_retry"])
        return {**state, "response": response}

    def respondNode(self, state: NavigatorState) -> NavigatorState:
        """응답 노드: RouteDecision이 지정한 전문 응답기 호출"""
        decision = state["route_decision"]
        responder = self.responders[decision.responder_name]
        sessionId = state["session_id"] if state["session_available"] else None

        response = responder.answer(
            state["routed_text"],
            decision.request_type,
            decision.language,
            sessionId=sessionId,
            category=decision.category,
        )
        response.metadata.inherited = decision.inherited
        response.metadata.clarification_state = state.get("clarification_state")
        if state.get("error") and not response.metadata.error:
            response.metadata.error = state["error"]
        return {**state, "response": response}

    def commitNode(self, state: NavigatorState) -> NavigatorState:
        """세션 기록 노드: 턴 추가, lastRequestType/명확화 대기 상태 갱신"""
        if not state["session_available"]:
            return state

        sessionId = state["session_id"]
        decision = state["route_decision"]
        response = state["response"]
        try:
            self.sessionStore.recordTurn(sessionId, Turn(role="user", content=state["raw_text"]))
            self.sessionStore.recordTurn(sessionId, Turn(role="assistant", content=response.text))
            # 명확화 결정이 아닌 경우에만 request type 갱신
            if not decision.is_ambiguous and decision.responder_name != ResponderName.CLARIFICATION:
                self.sessionStore.setLastRequestType(sessionId, decision.request_type)
            self.sessionStore.setPendingClarification(sessionId, state.get("next_pending"))
        except SessionStoreUnavailable:
            print("[세션] 저장소 사용 불가 → 턴 기록 생략")
            return {**state, "session_available": False}

        return state

    def logNode(self, state: NavigatorState) -> NavigatorState:
        """로그 노드: 라우팅 로그 저장 (JSONL, 일자별)"""
        decision = state["route_decision"]
        response = state["response"]
        meta = response.metadata

        logEntry = {
            "timestamp": datetime.now().isoformat(),
            "sessionId": state["session_id"],
            "rawText": state["raw_text"],
            "correctedText": state["corrected_text"],
            "routedText": state["routed_text"],
            "detectedLanguage": decision.detected_language,
            "responseLanguage": decision.language,
            "category": decision.category,
            "requestType": decision.request_type,
            "inherited": decision.inherited,
            "responderName": response.responder_name,
            "confidence": decision.confidence,
            "clarificationState": state.get("clarification_state"),
            "error": meta.error,
            "sources": meta.sources,
            "chunkCounts": meta.chunk_counts,
            "elapsed": round(time.time() - state["started_at"], 3),
        }

        if self.logEnabled:
            logFile = self.logPath / f"route_{datetime.now().strftime('%Y%m%d')}.jsonl"
            with open(logFile, "a", encoding="utf-8") as f:
                f.write(json.dumps(logEntry, ensure_ascii=False) + "\n")

        return {**state, "log": logEntry}

    # ----- 진입점 -----

    def _systemErrorResponse(self, rawText: str, language: Optional[str]) -> UnifiedResponse:
        language = language or self.router.languageDetector.detect(rawText).response_language
        fallbacks = self.ruleBook.responders["fallbacks"]
        text = (fallbacks.get(language) or fallbacks["ja"])["system_error"]
        return createUnifiedResponse(
            text=addEmotionTag(text, "sad"),
            emotion="sad",
            responderName=ResponderName.GENERAL,
            language=language,
            confidence=self.ruleBook.responders.get("confidence", {}).get("system_error", 0.0),
            error="InternalError",
        )

    def handle(self, rawText: str, sessionId: str = None, language: str = None) -> UnifiedResponse:
        """턴 처리 (예외를 던지지 않음)

        Args:
            rawText: 음성인식/입력 원문
            sessionId: 세션 ID (없으면 새로 생성)
            language: 응답 언어 고정 (ja/en, 선택)
        """
        sessionId = sessionId or str(uuid.uuid4())
        try:
            sessionAvailable = True
            try:
                turnLock = self.sessionStore.sessionLock(sessionId)
            except SessionStoreUnavailable:
                print("[세션] 저장소 사용 불가 → 이전 맥락 없이 처리")
                turnLock = nullcontext()
                sessionAvailable = False

            initialState: NavigatorState = {
                "raw_text": rawText or "",
                "session_id": sessionId,
                "language": language,
                "corrected_text": "",
                "routed_text": "",
                "route_decision": None,
                "clarification_state": None,
                "clarification_retry": False,
                "next_pending": None,
                "session_available": sessionAvailable,
                "response": None,
                "error": None,
                "started_at": time.time(),
                "log": {},
            }

            # 같은 세션의 턴은 도착 순서대로 직렬 처리
            with turnLock:
                result = self.graph.invoke(initialState)
            return result["response"]
        except Exception as e:
            print(f"[에러] 턴 처리 실패: {e}")
            traceback.print_exc()
            return self._systemErrorResponse(rawText or "", language)


def createNavigatorGraph(sessionStore: SessionStore = None) -> NavigatorGraph:
    """네비게이터 그래프 생성 헬퍼 (운영용 검색기 + LLM 연결)"""
    from pipeline.indexer import getKnowledgeIndexer
    from navigator.llm_provider import generate

    indexer = getKnowledgeIndexer()
    return NavigatorGraph(indexer.retrieve, generate, sessionStore=sessionStore, indexer=indexer)
