"""
코어 값 타입 정의
- Query / CorrectedQuery: 요청 단위 불변 값
- Classification / RouteDecision: 분류·라우팅 결과
- KnowledgeChunk: 검색된 지식 청크 (엔티티 태그 포함)
- UnifiedResponse: 모든 응답기가 반환하는 공통 응답 형식
"""

import time
from typing import Optional
from dataclasses import dataclass, field, asdict


class ResponderName:
    """응답기 이름 (닫힌 집합)"""
    FACILITY = "FacilityResponder"
    BUSINESS = "BusinessResponder"
    EVENT = "EventResponder"
    MEMORY = "MemoryResponder"
    GENERAL = "GeneralResponder"
    CLARIFICATION = "ClarificationResponder"

    ALL = frozenset({FACILITY, BUSINESS, EVENT, MEMORY, GENERAL, CLARIFICATION})

    @classmethod
    def validate(cls, name: str) -> str:
        if name not in cls.ALL:
            raise ValueError(f"알 수 없는 응답기: {name}")
        return name


@dataclass(frozen=True)
class Query:
    """인바운드 요청 (요청당 1개, 변경 불가)"""
    raw_text: str
    session_id: str
    language: Optional[str] = None  # 세션에서 고정한 언어 (없으면 감지)
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CorrectedQuery:
    """오인식 교정 결과 (이후 단계는 corrected_text만 사용)"""
    query: Query
    corrected_text: str

    @property
    def was_corrected(self) -> bool:
        return self.corrected_text != self.query.raw_text


@dataclass(frozen=True)
class LanguageDecision:
    """언어 감지 결과"""
    detected_language: str
    response_language: str
    confidence: float = 0.5
    is_mixed: bool = False


@dataclass
class Classification:
    """분류 결과"""
    category: str
    confidence: float
    request_type: Optional[str] = None
    debug_info: dict = field(default_factory=dict)

    @property
    def needs_clarification(self) -> bool:
        return self.category.endswith("-clarification")


@dataclass(frozen=True)
class RouteDecision:
    """라우팅 결정 (디스패치를 완전히 결정, 가변 상태 없음)"""
    responder_name: str
    category: str
    request_type: Optional[str]
    language: str
    confidence: float
    inherited: bool = False  # 이전 턴의 request type을 상속했는지
    detected_language: Optional[str] = None
    debug_info: dict = field(default_factory=dict, compare=False)

    @property
    def is_ambiguous(self) -> bool:
        return self.category.endswith("-clarification")


@dataclass(frozen=True)
class KnowledgeChunk:
    """검색된 지식 청크 (필터는 entity_tags만 참조)"""
    content: str
    entity_tags: frozenset = frozenset()
    source_category: str = ""
    chunk_id: str = ""
    score: float = 0.0

    def hasTag(self, tag: str) -> bool:
        return tag in self.entity_tags


@dataclass(frozen=True)
class Turn:
    """대화 턴"""
    role: str  # "user" | "assistant"
    content: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ResponseMetadata:
    """응답 메타데이터 (실패는 예외 대신 error 필드로 전달)"""
    confidence: float
    category: Optional[str] = None
    request_type: Optional[str] = None
    sources: list = field(default_factory=list)
    inherited: bool = False
    filtered: bool = False
    error: Optional[str] = None
    clarification_state: Optional[str] = None
    chunk_counts: Optional[dict] = None  # {"retrieved": n, "filtered": m}


@dataclass
class UnifiedResponse:
    """모든 응답기의 공통 반환 형식"""
    text: str
    emotion: str
    responder_name: str
    language: str
    metadata: ResponseMetadata

    def toDict(self) -> dict:
        """API/로그용 dict (camelCase 키)"""
        meta = asdict(self.metadata)
        return {
            "text": self.text,
            "emotion": self.emotion,
            "responderName": self.responder_name,
            "language": self.language,
            "metadata": {
                "confidence": meta["confidence"],
                "category": meta["category"],
                "requestType": meta["request_type"],
                "sources": meta["sources"],
                "inherited": meta["inherited"],
                "filtered": meta["filtered"],
                "error": meta["error"],
                "clarificationState": meta["clarification_state"],
                "chunkCounts": meta["chunk_counts"],
            },
        }


def createUnifiedResponse(
    text: str,
    emotion: str,
    responderName: str,
    language: str,
    confidence: float = 0.8,
    category: str = None,
    requestType: str = None,
    sources: list = None,
    **extra,
) -> UnifiedResponse:
    """UnifiedResponse 생성 헬퍼"""
    return UnifiedResponse(
        text=text,
        emotion=emotion,
        responder_name=ResponderName.validate(responderName),
        language=language,
        metadata=ResponseMetadata(
            confidence=confidence,
            category=category,
            request_type=requestType,
            sources=list(sources or []),
            **extra,
        ),
    )
