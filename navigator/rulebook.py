"""
규칙 테이블 로더
- navigator/rules/*.yaml 로드 (yaml.safe_load)
- 로드 시 검증: 라우팅 대상은 ResponderName 집합, 모든 분류 카테고리는 라우팅 항목 보유
- 시작 시 1회 로드 후 공유 (getRuleBook)
"""

import re
from pathlib import Path
from typing import Optional

import yaml

from navigator.constants import RULES_DIR
from navigator.models import ResponderName


RULE_FILES = ("corrections", "classifier", "routing", "filters", "responders", "clarification")

_ASCII_KEYWORD = re.compile(r"^[\x20-\x7e]+$")


def compileKeyword(keyword: str) -> re.Pattern:
    """키워드 매처 생성

    - 영문(ASCII) 키워드: 앞뒤가 영문자가 아닐 때만 일치 (복수형 s/es 허용)
    - 그 외(일본어 등): 단순 부분 문자열 일치
    """
    keyword = keyword.lower()
    if _ASCII_KEYWORD.match(keyword):
        return re.compile(rf"(?<![a-z]){re.escape(keyword)}(?:s|es)?(?![a-z])")
    return re.compile(re.escape(keyword))


def compileKeywords(keywords: list) -> list[tuple[str, re.Pattern]]:
    return [(str(kw), compileKeyword(str(kw))) for kw in keywords or []]


def matchKeywords(text: str, compiled: list[tuple[str, re.Pattern]]) -> list[str]:
    """일치한 키워드 목록 (text는 소문자화된 상태로 전달)"""
    return [kw for kw, pattern in compiled if pattern.search(text)]


class RuleBook:
    """규칙 테이블 묶음"""

    def __init__(self, rulesDir: str = None):
        self.rulesDir = Path(rulesDir) if rulesDir else RULES_DIR
        self.tables = {name: self._loadTable(name) for name in RULE_FILES}
        self.validate()

    def _loadTable(self, name: str) -> dict:
        """YAML 테이블 1개 로드"""
        path = self.rulesDir / f"{name}.yaml"
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"규칙 테이블 형식 오류: {path}")
        return data

    @property
    def corrections(self) -> dict:
        return self.tables["corrections"]

    @property
    def classifier(self) -> dict:
        return self.tables["classifier"]

    @property
    def routing(self) -> dict:
        return self.tables["routing"]

    @property
    def filters(self) -> dict:
        return self.tables["filters"]

    @property
    def responders(self) -> dict:
        return self.tables["responders"]

    @property
    def clarification(self) -> dict:
        return self.tables["clarification"]

    def categoryNames(self) -> set[str]:
        """분류기가 낼 수 있는 모든 카테고리"""
        names = {self.classifier.get("default_category", "general"), "memory"}
        for entry in self.classifier.get("ambiguity", []):
            names.add(entry["category"])
        for table in self.classifier.get("categories", {}).values():
            for entry in table:
                names.add(entry["category"])
        return names

    def requestTypeNames(self) -> list[str]:
        return [entry["type"] for entry in self.classifier.get("request_types", [])]

    def validate(self):
        """라우팅 테이블 완전성 검증 (실패 시 ValueError)"""
        routing = self.routing
        requestRoutes = routing.get("request_type_routes", {})
        categoryRoutes = routing.get("category_routes", {})

        targets = list(requestRoutes.values()) + list(categoryRoutes.values())
        targets.append(routing.get("default_responder"))
        for target in targets:
            ResponderName.validate(target)

        missing = sorted(self.categoryNames() - set(categoryRoutes))
        if missing:
            raise ValueError(f"라우팅 항목 없는 카테고리: {missing}")

        unknownTypes = sorted(set(requestRoutes) - set(self.requestTypeNames()))
        if unknownTypes:
            raise ValueError(f"정의되지 않은 request type 라우팅: {unknownTypes}")

        for entry in self.classifier.get("ambiguity", []):
            if categoryRoutes.get(entry["category"]) != ResponderName.CLARIFICATION:
                raise ValueError(f"명확화 카테고리는 ClarificationResponder로 가야 함: {entry['category']}")
            if entry["category"] not in self.clarification.get("categories", {}):
                raise ValueError(f"명확화 후보 없음: {entry['category']}")

        # 정규식 사전 검증
        for entry in self.corrections.get("corrections", []):
            for pattern in entry.get("patterns", []):
                re.compile(pattern)
        for pattern in self.classifier.get("elliptical", {}).get("patterns", []):
            re.compile(pattern)


# 싱글톤 인스턴스 (최초 접근 시 로드)
_ruleBook: Optional[RuleBook] = None


def getRuleBook() -> RuleBook:
    global _ruleBook
    if _ruleBook is None:
        _ruleBook = RuleBook()
        print(f"[규칙] 테이블 로드 완료 ({_ruleBook.rulesDir})")
    return _ruleBook
