"""
쿼리 분류 + 요청 타입 추출
- 1단계: 엔티티 모호성 검사 (일반명사만 있고 구분어 없음 → 명확화 카테고리, confidence 1.0)
- 기억 질문 판정: 업무 키워드 제외 목록을 먼저 검사 (업무 키워드가 있으면 기억 질문 아님)
- 2단계: 언어별 카테고리 테이블 점수 (일치 키워드 수, 동점은 테이블 순서)
- 요청 타입은 카테고리와 독립적으로 추출 (위에서부터 첫 일치)
"""

import re
from typing import Optional

from navigator.models import Classification
from navigator.rulebook import RuleBook, getRuleBook, compileKeywords, matchKeywords


class RequestTypeExtractor:
    """세부 요청 타입 추출기 (wifi/hours/price/location/facility/basement/meeting-room/event)"""

    def __init__(self, ruleBook: RuleBook = None):
        table = (ruleBook or getRuleBook()).classifier
        self.entries = []
        for entry in table.get("request_types", []):
            self.entries.append({
                "type": entry["type"],
                "keywords": compileKeywords(entry.get("keywords", [])),
                "patterns": [re.compile(p, re.IGNORECASE) for p in entry.get("patterns", [])],
            })

    def extract(self, text: str) -> Optional[str]:
        lowered = (text or "").lower()
        for entry in self.entries:
            if matchKeywords(lowered, entry["keywords"]):
                return entry["type"]
            if any(p.search(lowered) for p in entry["patterns"]):
                return entry["type"]
        return None


class QueryClassifier:
    """카테고리 분류기"""

    def __init__(self, ruleBook: RuleBook = None):
        self.ruleBook = ruleBook or getRuleBook()
        table = self.ruleBook.classifier

        self.fillers = [re.compile(p, re.IGNORECASE) for p in table.get("fillers", [])]

        self.ambiguity = [
            {
                "category": entry["category"],
                "generic": compileKeywords(entry.get("generic", [])),
                "discriminators": compileKeywords(entry.get("discriminators", [])),
            }
            for entry in table.get("ambiguity", [])
        ]

        memory = table.get("memory", {})
        self.businessKeywords = compileKeywords(memory.get("business_keywords", []))
        self.memoryKeywords = compileKeywords(memory.get("keywords", []))

        self.categoryTables = {}
        for language, entries in table.get("categories", {}).items():
            self.categoryTables[language] = [
                {
                    "category": entry["category"],
                    "confidence": float(entry.get("confidence", 0.8)),
                    "keywords": compileKeywords(entry.get("keywords", [])),
                }
                for entry in entries
            ]

        self.defaultCategory = table.get("default_category", "general")
        self.defaultConfidence = float(table.get("default_confidence", 0.5))

        elliptical = table.get("elliptical", {})
        self.ellipticalMaxLength = int(elliptical.get("max_length", 30))
        self.ellipticalPatterns = [re.compile(p, re.IGNORECASE) for p in elliptical.get("patterns", [])]

        self.requestTypeExtractor = RequestTypeExtractor(self.ruleBook)

    def normalize(self, text: str) -> str:
        """소문자화 + 문두 군더더기 제거"""
        normalized = (text or "").strip().lower()
        for filler in self.fillers:
            normalized = filler.sub("", normalized, count=1)
        return normalized.strip()

    def checkAmbiguity(self, normalized: str) -> Optional[dict]:
        """일반명사는 있는데 구분어가 없는 모호성 항목"""
        for entry in self.ambiguity:
            generic = matchKeywords(normalized, entry["generic"])
            if not generic:
                continue
            if matchKeywords(normalized, entry["discriminators"]):
                continue
            return {"category": entry["category"], "generic": generic}
        return None

    def isMemoryQuery(self, text: str) -> bool:
        """기억(이전 대화) 질문 여부

        업무 키워드 검사가 먼저 실행됨. 업무 키워드가 하나라도 있으면
        기억 키워드가 함께 있어도 기억 질문으로 보지 않음.
        """
        normalized = self.normalize(text)
        if matchKeywords(normalized, self.businessKeywords):
            return False
        return bool(matchKeywords(normalized, self.memoryKeywords))

    def isElliptical(self, text: str) -> bool:
        """생략형 후속 질문 ("土曜日も?", "what about the other one?")"""
        normalized = self.normalize(text)
        if not normalized or len(normalized) > self.ellipticalMaxLength:
            return False
        return any(p.search(normalized) for p in self.ellipticalPatterns)

    def extractRequestType(self, text: str) -> Optional[str]:
        return self.requestTypeExtractor.extract(self.normalize(text))

    def _scoreCategories(self, normalized: str, language: str) -> tuple[Optional[dict], dict]:
        """언어 테이블 점수 계산 → (최고 항목, 점수표)"""
        best = None
        bestScore = 0
        scores = {}
        for entry in self.categoryTables.get(language, []):
            matched = matchKeywords(normalized, entry["keywords"])
            if not matched:
                continue
            score = len(set(matched))
            scores[entry["category"]] = score
            # 동점이면 먼저 나온(더 구체적인) 항목 유지
            if score > bestScore:
                best = {**entry, "matched": matched}
                bestScore = score
        return best, scores

    def classify(self, text: str, language: str = "ja") -> Classification:
        normalized = self.normalize(text)

        # 1단계: 엔티티 모호성
        ambiguity = self.checkAmbiguity(normalized)
        if ambiguity:
            return Classification(
                category=ambiguity["category"],
                confidence=1.0,
                request_type=None,
                debug_info={"stage": "ambiguity", "generic": ambiguity["generic"]},
            )

        requestType = self.requestTypeExtractor.extract(normalized)

        # 기억 질문 (업무 키워드 우선)
        if self.isMemoryQuery(normalized):
            return Classification(
                category="memory",
                confidence=0.9,
                request_type=None,
                debug_info={"stage": "memory"},
            )

        # 2단계: 카테고리 테이블 (감지 언어 우선, 없으면 다른 언어 테이블)
        languages = [language] + [lang for lang in self.categoryTables if lang != language]
        for lang in languages:
            best, scores = self._scoreCategories(normalized, lang)
            if best:
                return Classification(
                    category=best["category"],
                    confidence=best["confidence"],
                    request_type=requestType,
                    debug_info={
                        "stage": "category",
                        "table": lang,
                        "matched": best["matched"],
                        "scores": scores,
                    },
                )

        return Classification(
            category=self.defaultCategory,
            confidence=self.defaultConfidence,
            request_type=requestType,
            debug_info={"stage": "default"},
        )
