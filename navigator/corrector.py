"""
음성인식 오인식 교정
- corrections.yaml의 (패턴 → 표준 표기) 테이블을 순서대로 적용
- context 조건이 있는 항목은 해당 정규식이 텍스트에 있을 때만 적용
- 테이블 + 정규화를 변화가 없을 때까지 반복 (멱등성 보장)
"""

import re
from dataclasses import dataclass
from typing import Optional

from navigator.rulebook import RuleBook, getRuleBook

# 고정점 반복 상한
MAX_PASSES = 5


@dataclass
class CorrectionRule:
    """교정 항목 1개"""
    name: str
    patterns: list[re.Pattern]
    replacement: str
    context: Optional[re.Pattern] = None

    def apply(self, text: str) -> str:
        if self.context and not self.context.search(text):
            return text
        for pattern in self.patterns:
            text = pattern.sub(self.replacement, text)
        return text


class PhoneticCorrector:
    """오인식 교정기 (상태 없음, 순수 함수)"""

    def __init__(self, ruleBook: RuleBook = None):
        table = (ruleBook or getRuleBook()).corrections
        self.rules: list[CorrectionRule] = [
            self._compileRule(entry) for entry in table.get("corrections", [])
        ]
        self.normalizers = [
            (re.compile(entry["pattern"]), entry["replacement"])
            for entry in table.get("normalize", [])
        ]

    def _compileRule(self, entry: dict) -> CorrectionRule:
        context = entry.get("context")
        return CorrectionRule(
            name=entry["name"],
            patterns=[re.compile(p, re.IGNORECASE) for p in entry.get("patterns", [])],
            replacement=entry["replacement"],
            context=re.compile(context, re.IGNORECASE) if context else None,
        )

    def addCorrection(self, name: str, patterns: list[str], replacement: str, context: str = None):
        """교정 항목 추가 (테이블 끝에 붙음)"""
        self.rules.append(self._compileRule({
            "name": name,
            "patterns": patterns,
            "replacement": replacement,
            "context": context,
        }))

    def _applyOnce(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        for pattern, replacement in self.normalizers:
            text = pattern.sub(replacement, text)
        return text.strip()

    def correct(self, text: str) -> str:
        """교정 + 정규화 (고정점까지)"""
        if not text:
            return ""

        current = text
        for _ in range(MAX_PASSES):
            corrected = self._applyOnce(current)
            if corrected == current:
                break
            current = corrected

        if current != text.strip():
            print(f"[교정] '{text}' → '{current}'")
        return current

    def appliedRules(self, text: str) -> list[str]:
        """텍스트에 적용되는 교정 항목 이름 (디버그용)"""
        names = []
        for rule in self.rules:
            if rule.apply(text) != text:
                names.append(rule.name)
        return names


# 싱글톤 인스턴스 (최초 접근 시 생성)
_corrector: Optional[PhoneticCorrector] = None


def getCorrector() -> PhoneticCorrector:
    global _corrector
    if _corrector is None:
        _corrector = PhoneticCorrector()
    return _corrector


def correct(text: str) -> str:
    return getCorrector().correct(text)
