"""
컨텍스트 필터 (엔티티 분리)
- 규칙은 (requestType, query, chunk) → keep/drop 순수 술어, filters.yaml에서 생성
- 고정 순서로 평가: 유료/무료 분리 → 구분어 없는 요금 질문 → 주제 관련성 → 세부 시설 좁히기
- 입력 순서 유지, 결과는 항상 입력의 부분집합 (부작용/상태 없음)
- fallbackOnEmpty 규칙은 결과가 비면 직전 결과를 그대로 사용
"""

from dataclasses import dataclass
from typing import Callable, Optional

from navigator.models import KnowledgeChunk
from navigator.rulebook import RuleBook, getRuleBook, compileKeywords, matchKeywords


# (requestType, 소문자 query, chunk) → 유지 여부
Predicate = Callable[[Optional[str], str, KnowledgeChunk], bool]


@dataclass(frozen=True)
class FilterRule:
    """필터 규칙 1개"""
    name: str
    predicate: Predicate
    fallbackOnEmpty: bool = False

    def keep(self, requestType: Optional[str], query: str, chunk: KnowledgeChunk) -> bool:
        return self.predicate(requestType, query.lower(), chunk)


def _mergeLanguages(table: dict) -> list:
    """언어별 키워드 목록 합치기 (혼합 언어 질문 대응)"""
    merged = []
    for keywords in (table or {}).values():
        merged.extend(keywords)
    return merged


def buildPaidFreeIsolation(config: dict) -> FilterRule:
    """유료 회의실(2階) ↔ 무료 지하 공간 분리

    - price + 유료 구분어 + 회의실 키워드: 무료 공간 전용 청크 제거 (유료 요금 청크 유지)
    - 무료 공간 언급: 유료 회의실 청크 제거
    - 결과가 비어도 원본으로 되돌리지 않음 (다른 엔티티 정보 노출 방지)
    """
    paidTag = config["paid_tag"]
    freeTag = config["free_tag"]
    paidQualifiers = compileKeywords(_mergeLanguages(config.get("paid_qualifiers")))
    roomKeywords = compileKeywords(_mergeLanguages(config.get("room_keywords")))
    freeAreaKeywords = compileKeywords(_mergeLanguages(config.get("free_area_keywords")))

    def predicate(requestType: Optional[str], query: str, chunk: KnowledgeChunk) -> bool:
        isPaid = chunk.hasTag(paidTag)
        isFreeOnly = chunk.hasTag(freeTag) and not isPaid

        if requestType == "price" and matchKeywords(query, paidQualifiers) and matchKeywords(query, roomKeywords):
            return not isFreeOnly
        if matchKeywords(query, freeAreaKeywords):
            return not isPaid
        return True

    return FilterRule(name="paid_free_isolation", predicate=predicate)


def buildUnqualifiedPrice(config: dict) -> FilterRule:
    """유료 구분어 없는 price 질문: 유료 회의실 청크 후순위 제거 (비면 직전 결과 유지)"""
    paidTag = config["paid_tag"]
    paidQualifiers = compileKeywords(_mergeLanguages(config.get("paid_qualifiers")))

    def predicate(requestType: Optional[str], query: str, chunk: KnowledgeChunk) -> bool:
        if requestType != "price" or matchKeywords(query, paidQualifiers):
            return True
        return not chunk.hasTag(paidTag)

    return FilterRule(name="unqualified_price", predicate=predicate, fallbackOnEmpty=True)


def buildTopicRelevance(config: dict) -> FilterRule:
    """request type과 무관한 키워드만 가진 청크 제거"""
    tables = {
        requestType: (compileKeywords(entry.get("include")), compileKeywords(entry.get("exclude")))
        for requestType, entry in (config or {}).items()
    }

    def predicate(requestType: Optional[str], query: str, chunk: KnowledgeChunk) -> bool:
        if requestType not in tables:
            return True
        include, exclude = tables[requestType]
        content = chunk.content.lower()
        if matchKeywords(content, include):
            return True
        return not matchKeywords(content, exclude)

    return FilterRule(name="topic_relevance", predicate=predicate, fallbackOnEmpty=True)


def buildSubFacilityNarrowing(config: dict) -> FilterRule:
    """세부 시설이 정확히 하나 언급되면 해당 시설 태그 청크만 유지"""
    entries = [
        (entry["tag"], compileKeywords(entry.get("keywords")))
        for entry in (config or {}).get("entries", [])
    ]

    def namedSubFacility(query: str) -> Optional[str]:
        named = [tag for tag, keywords in entries if matchKeywords(query, keywords)]
        return named[0] if len(named) == 1 else None

    def predicate(requestType: Optional[str], query: str, chunk: KnowledgeChunk) -> bool:
        tag = namedSubFacility(query)
        if tag is None:
            return True
        return chunk.hasTag(tag)

    return FilterRule(name="sub_facility_narrowing", predicate=predicate, fallbackOnEmpty=True)


class ContextFilter:
    """규칙 목록을 순서대로 적용하는 필터"""

    def __init__(self, ruleBook: RuleBook = None, rules: list[FilterRule] = None):
        if rules is not None:
            self.rules = list(rules)
            return
        config = (ruleBook or getRuleBook()).filters
        self.rules = [
            buildPaidFreeIsolation(config["paid_free_isolation"]),
            buildUnqualifiedPrice(config["paid_free_isolation"]),
            buildTopicRelevance(config.get("topic_relevance")),
            buildSubFacilityNarrowing(config.get("sub_facilities")),
        ]

    def filterWithTrace(
        self,
        chunks: list[KnowledgeChunk],
        requestType: Optional[str],
        query: str,
        language: str = "ja",
    ) -> tuple[list[KnowledgeChunk], list[dict]]:
        """필터 적용 + 규칙별 (이름, 전, 후) 기록"""
        current = list(chunks)
        trace = []
        for rule in self.rules:
            kept = [chunk for chunk in current if rule.keep(requestType, query, chunk)]
            fellBack = False
            if not kept and current and rule.fallbackOnEmpty:
                kept = current
                fellBack = True
            trace.append({
                "rule": rule.name,
                "before": len(current),
                "after": len(kept),
                "fallback": fellBack,
            })
            current = kept

        if len(current) != len(chunks):
            print(f"[필터] {len(chunks)} → {len(current)}개 (requestType={requestType}, lang={language})")
        return current, trace

    def filter(
        self,
        chunks: list[KnowledgeChunk],
        requestType: Optional[str],
        query: str,
        language: str = "ja",
    ) -> list[KnowledgeChunk]:
        return self.filterWithTrace(chunks, requestType, query, language)[0]
