"""
전문 응답기 (Facility / Business / Event / Memory / General)
- 공통 흐름: 검색 쿼리 확장 → 검색 → (request type 있으면) 컨텍스트 필터 → 언어별 프롬프트 → 생성
- 검색 결과가 없으면 생성 없이 저신뢰 고정 응답
- 생성 실패(타임아웃 포함)는 사과 템플릿으로 복구
- 모든 응답은 선두 감정 태그 1개로 시작
"""

from typing import Callable, Optional

from navigator.constants import RETRIEVAL_MAX_RESULTS
from navigator.context_filter import ContextFilter
from navigator.emotion import applyEmotion, addEmotionTag
from navigator.errors import RetrievalUnavailable, GenerationFailed
from navigator.models import KnowledgeChunk, ResponderName, UnifiedResponse, createUnifiedResponse
from navigator.rulebook import RuleBook, getRuleBook, compileKeywords, matchKeywords
from navigator.session import SessionStore

# retrieve(query, categoryHint, language, maxResults) -> list[KnowledgeChunk]
Retriever = Callable[[str, Optional[str], str, int], list]
# generate(prompt) -> text
Generator = Callable[[str], str]


class BaseResponder:
    """응답기 공통 로직"""

    name = ResponderName.GENERAL
    categoryHint: Optional[str] = None

    def __init__(
        self,
        retriever: Retriever,
        generator: Generator,
        ruleBook: RuleBook = None,
        contextFilter: ContextFilter = None,
        sessionStore: SessionStore = None,
        maxResults: int = RETRIEVAL_MAX_RESULTS,
    ):
        self.ruleBook = ruleBook or getRuleBook()
        self.config = self.ruleBook.responders
        self.retriever = retriever
        self.generator = generator
        self.contextFilter = contextFilter or ContextFilter(self.ruleBook)
        self.sessionStore = sessionStore
        self.maxResults = maxResults

        self.defaultEmotion = self.config.get("default_emotions", {}).get(self.name, "neutral")
        self.confidence = self.config.get("confidence", {})

    # ----- 설정 조회 -----

    def _template(self, language: str, key: str) -> str:
        templates = self.config["templates"].get(language) or self.config["templates"]["ja"]
        return templates[key]

    def _fallbackText(self, language: str, key: str, **values) -> str:
        fallbacks = self.config["fallbacks"].get(language) or self.config["fallbacks"]["ja"]
        return fallbacks[key].format(**values)

    def _focus(self, requestType: Optional[str], language: str) -> Optional[str]:
        if not requestType:
            return None
        return self.config.get("focus", {}).get(language, {}).get(requestType)

    def _synonyms(self, requestType: Optional[str], language: str) -> list[str]:
        if not requestType:
            return []
        return self.config.get("synonyms", {}).get(requestType, {}).get(language, [])

    # ----- 단계별 훅 (하위 클래스에서 재정의) -----

    def buildSearchQuery(self, query: str, requestType: Optional[str], language: str,
                         sessionId: Optional[str] = None) -> str:
        """request type 동의어를 붙여 검색 재현율 확대"""
        synonyms = [s for s in self._synonyms(requestType, language) if s.lower() not in query.lower()]
        return " ".join([query] + synonyms)

    def getCategoryHint(self, requestType: Optional[str]) -> Optional[str]:
        return self.categoryHint

    def buildPrompt(self, query: str, context: str, requestType: Optional[str], language: str) -> str:
        values = {
            "query": query,
            "context": context,
            "emotionRule": self._template(language, "emotion_rule"),
        }
        focus = self._focus(requestType, language)
        if focus:
            return self._template(language, "focused").format(focus=focus, **values)
        return self._template(language, "general").format(**values)

    def fallbackKey(self) -> str:
        return "no_context"

    def fallbackValues(self, query: str, language: str) -> dict:
        return {}

    # ----- 공통 흐름 -----

    def retrieve(self, searchQuery: str, requestType: Optional[str], language: str) -> list[KnowledgeChunk]:
        """검색 (실패/0건 → RetrievalUnavailable)"""
        try:
            chunks = self.retriever(searchQuery, self.getCategoryHint(requestType), language, self.maxResults)
        except Exception as e:
            raise RetrievalUnavailable(f"검색 실패: {e}") from e
        if not chunks:
            raise RetrievalUnavailable("검색 결과 없음")
        return list(chunks)

    def formatContext(self, chunks: list[KnowledgeChunk]) -> str:
        return "\n".join(f"- {chunk.content}" for chunk in chunks)

    def fallbackResponse(self, query: str, requestType: Optional[str], language: str,
                         category: Optional[str], error: Optional[str], **extra) -> UnifiedResponse:
        """검색 결과 없음 → 저신뢰 고정 응답 (생성 호출 없음)"""
        text = self._fallbackText(language, self.fallbackKey(), **self.fallbackValues(query, language))
        return createUnifiedResponse(
            text=addEmotionTag(text, "sad"),
            emotion="sad",
            responderName=self.name,
            language=language,
            confidence=self.confidence.get("fallback", 0.3),
            category=category,
            requestType=requestType,
            sources=[],
            error=error,
            **extra,
        )

    def apologyResponse(self, requestType: Optional[str], language: str, category: Optional[str],
                        sources: list, **extra) -> UnifiedResponse:
        """생성 실패 → 사과 템플릿"""
        text = self._fallbackText(language, "generation_failed")
        return createUnifiedResponse(
            text=addEmotionTag(text, "sad"),
            emotion="sad",
            responderName=self.name,
            language=language,
            confidence=self.confidence.get("generation_failed", 0.2),
            category=category,
            requestType=requestType,
            sources=sources,
            error=GenerationFailed.kind,
            **extra,
        )

    def generateText(self, prompt: str) -> str:
        try:
            text = self.generator(prompt)
        except Exception as e:
            raise GenerationFailed(f"생성 실패: {e}") from e
        if not text or not text.strip():
            raise GenerationFailed("빈 응답")
        return text

    def answer(
        self,
        query: str,
        requestType: Optional[str],
        language: str,
        sessionId: Optional[str] = None,
        category: Optional[str] = None,
    ) -> UnifiedResponse:
        searchQuery = self.buildSearchQuery(query, requestType, language, sessionId)

        try:
            chunks = self.retrieve(searchQuery, requestType, language)
        except RetrievalUnavailable as e:
            print(f"[{self.name}] {e} → 고정 응답")
            return self.fallbackResponse(
                query, requestType, language, category, RetrievalUnavailable.kind,
                chunk_counts={"retrieved": 0, "filtered": 0},
            )

        filtered = chunks
        if requestType:
            filtered = self.contextFilter.filter(chunks, requestType, query, language)
        counts = {"retrieved": len(chunks), "filtered": len(filtered)}

        if not filtered:
            print(f"[{self.name}] 필터 후 컨텍스트 없음 → 고정 응답")
            return self.fallbackResponse(
                query, requestType, language, category, RetrievalUnavailable.kind,
                filtered=True, chunk_counts=counts,
            )

        sources = [chunk.chunk_id or chunk.source_category for chunk in filtered]
        prompt = self.buildPrompt(query, self.formatContext(filtered), requestType, language)

        try:
            text = self.generateText(prompt)
        except GenerationFailed as e:
            print(f"[{self.name}] {e} → 사과 응답")
            return self.apologyResponse(
                requestType, language, category, sources,
                filtered=len(filtered) != len(chunks), chunk_counts=counts,
            )

        emotion, taggedText = applyEmotion(text, self.defaultEmotion)
        return createUnifiedResponse(
            text=taggedText,
            emotion=emotion,
            responderName=self.name,
            language=language,
            confidence=self.confidence.get("answered", 0.8),
            category=category,
            requestType=requestType,
            sources=sources,
            filtered=len(filtered) != len(chunks),
            chunk_counts=counts,
        )


class FacilityResponder(BaseResponder):
    """시설/설비/지하 공간 응답기 (세부 시설 동의어 확장)"""

    name = ResponderName.FACILITY
    categoryHint = "facilities"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        subConfig = self.ruleBook.filters.get("sub_facilities", {})
        self.subFacilities = [
            (entry["tag"], compileKeywords(entry.get("keywords")))
            for entry in subConfig.get("entries", [])
        ]

    def namedSubFacility(self, query: str) -> Optional[str]:
        lowered = query.lower()
        named = [tag for tag, keywords in self.subFacilities if matchKeywords(lowered, keywords)]
        return named[0] if len(named) == 1 else None

    def getCategoryHint(self, requestType: Optional[str]) -> Optional[str]:
        if requestType == "basement":
            return "basement"
        return self.categoryHint

    def buildSearchQuery(self, query, requestType, language, sessionId=None):
        searchQuery = super().buildSearchQuery(query, requestType, language, sessionId)
        subFacility = self.namedSubFacility(query)
        if subFacility:
            extra = self.config.get("sub_facility_synonyms", {}).get(subFacility, {}).get(language, [])
            searchQuery = " ".join([searchQuery] + [s for s in extra if s.lower() not in searchQuery.lower()])
        return searchQuery

    def buildPrompt(self, query, context, requestType, language):
        subFacility = self.namedSubFacility(query)
        if subFacility:
            synonyms = self.config.get("sub_facility_synonyms", {}).get(subFacility, {}).get(language, [])
            focus = synonyms[0] if synonyms else subFacility
            return self._template(language, "sub_facility").format(
                focus=focus,
                query=query,
                context=context,
                emotionRule=self._template(language, "emotion_rule"),
            )
        return super().buildPrompt(query, context, requestType, language)


class BusinessResponder(BaseResponder):
    """영업시간/요금/위치 응답기 (짧은 질문은 이전 턴의 시설 엔티티 상속)"""

    name = ResponderName.BUSINESS
    CATEGORY_BY_REQUEST_TYPE = {"hours": "hours", "price": "pricing", "location": "access"}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        inheritance = self.config.get("entity_inheritance", {})
        self.entityMaxQueryLength = int(inheritance.get("max_query_length", 20))
        self.entityLookback = int(inheritance.get("lookback_turns", 4))
        self.entities = [
            {**entry, "compiled": compileKeywords(entry.get("keywords"))}
            for entry in inheritance.get("entities", [])
        ]

    def getCategoryHint(self, requestType: Optional[str]) -> Optional[str]:
        return self.CATEGORY_BY_REQUEST_TYPE.get(requestType)

    def _findEntity(self, text: str) -> Optional[dict]:
        lowered = text.lower()
        for entity in self.entities:
            if matchKeywords(lowered, entity["compiled"]):
                return entity
        return None

    def inheritEntity(self, query: str, sessionId: Optional[str]) -> Optional[dict]:
        """짧은 질문에 시설명이 없으면 최근 사용자 턴에서 시설명 상속"""
        if not self.sessionStore or not sessionId:
            return None
        if len(query) > self.entityMaxQueryLength or self._findEntity(query):
            return None
        try:
            turns = self.sessionStore.getTurns(sessionId, limit=self.entityLookback)
        except Exception as e:
            print(f"[{self.name}] 세션 조회 실패 → 엔티티 상속 생략: {e}")
            return None
        for turn in reversed(turns):
            if turn.role != "user":
                continue
            entity = self._findEntity(turn.content)
            if entity:
                return entity
        return None

    def buildSearchQuery(self, query, requestType, language, sessionId=None):
        parts = [query]
        entity = self.inheritEntity(query, sessionId)
        if entity:
            label = entity["label"].get(language) or entity["label"]["ja"]
            parts.insert(0, label)
            print(f"[{self.name}] 엔티티 상속: {label}")

        suffix = self.config.get("business_query_suffix", {}).get(language, {}).get(requestType)
        if suffix:
            parts.append(suffix)
        return " ".join(parts)


class EventResponder(BaseResponder):
    """이벤트 응답기 (기간 추출: 오늘/이번 주/다음 주/이번 달)"""

    name = ResponderName.EVENT
    categoryHint = "events"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.ranges = [
            {**entry, "compiled": compileKeywords(entry.get("keywords"))}
            for entry in self.config.get("event_ranges", [])
        ]
        self.defaultRange = self.config.get("default_event_range", {"name": "upcoming", "label": {}})

    def extractTimeRange(self, query: str) -> dict:
        lowered = query.lower()
        for entry in self.ranges:
            if matchKeywords(lowered, entry["compiled"]):
                return entry
        return self.defaultRange

    def _rangeLabel(self, query: str, language: str) -> str:
        timeRange = self.extractTimeRange(query)
        return timeRange["label"].get(language) or timeRange["name"]

    def buildSearchQuery(self, query, requestType, language, sessionId=None):
        searchQuery = super().buildSearchQuery(query, requestType or "event", language, sessionId)
        return f"{searchQuery} {self._rangeLabel(query, language)}"

    def buildPrompt(self, query, context, requestType, language):
        return self._template(language, "event").format(
            query=query,
            context=context,
            timeRange=self._rangeLabel(query, language),
            emotionRule=self._template(language, "emotion_rule"),
        )

    def fallbackKey(self) -> str:
        return "no_events"

    def fallbackValues(self, query: str, language: str) -> dict:
        return {"timeRange": self._rangeLabel(query, language)}


class MemoryResponder(BaseResponder):
    """이전 대화 회상 응답기 (검색 없이 세션 턴 사용)"""

    name = ResponderName.MEMORY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.questionKeywords = compileKeywords(self.config.get("memory_question_keywords", []))
        self.answerKeywords = compileKeywords(self.config.get("memory_answer_keywords", []))

    def memoryIntent(self, query: str) -> str:
        """질문 회상 / 답변 회상 / 일반 구분"""
        lowered = query.lower()
        if matchKeywords(lowered, self.answerKeywords):
            return "memory_answers"
        if matchKeywords(lowered, self.questionKeywords):
            return "memory_questions"
        return "memory_general"

    def fallbackKey(self) -> str:
        return "no_history"

    def answer(self, query, requestType, language, sessionId=None, category=None):
        turns = []
        if self.sessionStore and sessionId:
            try:
                turns = self.sessionStore.getTurns(sessionId)
            except Exception as e:
                print(f"[{self.name}] 세션 조회 실패: {e}")

        if not turns:
            return self.fallbackResponse(query, requestType, language, category, None)

        history = "\n".join(f"{turn.role}: {turn.content}" for turn in turns)
        prompt = self._template(language, self.memoryIntent(query)).format(
            query=query,
            history=history,
            emotionRule=self._template(language, "emotion_rule"),
        )

        try:
            text = self.generateText(prompt)
        except GenerationFailed as e:
            print(f"[{self.name}] {e} → 사과 응답")
            return self.apologyResponse(requestType, language, category, ["session_memory"])

        emotion, taggedText = applyEmotion(text, self.defaultEmotion)
        return createUnifiedResponse(
            text=taggedText,
            emotion=emotion,
            responderName=self.name,
            language=language,
            confidence=self.confidence.get("answered", 0.8),
            category=category,
            requestType=requestType,
            sources=["session_memory"],
        )


class GeneralResponder(BaseResponder):
    """일반 응답기 (카테고리 힌트 없이 검색)"""

    name = ResponderName.GENERAL
    categoryHint = None


RESPONDER_CLASSES = (FacilityResponder, BusinessResponder, EventResponder, MemoryResponder, GeneralResponder)


def createResponders(
    retriever: Retriever,
    generator: Generator,
    sessionStore: SessionStore = None,
    ruleBook: RuleBook = None,
    contextFilter: ContextFilter = None,
) -> dict[str, BaseResponder]:
    """응답기 이름 → 인스턴스"""
    ruleBook = ruleBook or getRuleBook()
    contextFilter = contextFilter or ContextFilter(ruleBook)
    return {
        cls.name: cls(
            retriever,
            generator,
            ruleBook=ruleBook,
            contextFilter=contextFilter,
            sessionStore=sessionStore,
        )
        for cls in RESPONDER_CLASSES
    }
