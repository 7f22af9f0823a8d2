"""
명확화 응답기 + 상태 머신
- ambiguous: 분류기가 명확화 카테고리를 냄 → 후보를 모두 나열한 질문 생성
- awaiting-choice: 세션에 대기 상태 기록 {category, originalText, retries}
- resolved: 답변이 후보와 일치 → 후보 구분어를 원래 질문에 붙여 재라우팅
- 일치 실패 시 재질문 (CLARIFICATION_MAX_RETRIES회), 초과 시 AmbiguityLoop
"""

import re
from dataclasses import dataclass
from typing import Optional

from navigator.constants import CLARIFICATION_MAX_RETRIES
from navigator.emotion import addEmotionTag
from navigator.errors import AmbiguityLoop
from navigator.models import RouteDecision, ResponderName, UnifiedResponse, createUnifiedResponse
from navigator.rulebook import RuleBook, getRuleBook, compileKeywords, matchKeywords

AWAITING_CHOICE = "awaiting-choice"
RESOLVED = "resolved"
EXHAUSTED = "exhausted"

# 번호 답변 정리용 (문장부호, 공백)
_REPLY_NOISE = re.compile(r"[\s。、．.,!！?？]+")


@dataclass
class ClarificationOutcome:
    """대기 중인 명확화에 대한 답변 처리 결과"""
    status: str                       # "resolved" | "awaiting-choice"
    category: str
    resolvedText: Optional[str] = None
    candidate: Optional[str] = None
    retries: int = 0


def _compileOrdinal(token: str) -> re.Pattern:
    token = str(token).lower()
    if re.match(r"^[0-9a-z ]+$", token):
        return re.compile(rf"(?<![0-9a-z]){re.escape(token)}(?![0-9a-z])")
    return re.compile(re.escape(token))


class ClarificationResponder:
    """모호한 엔티티 질문 → 후보 제시 / 답변 매칭"""

    name = ResponderName.CLARIFICATION

    def __init__(self, ruleBook: RuleBook = None, maxRetries: int = CLARIFICATION_MAX_RETRIES):
        table = (ruleBook or getRuleBook()).clarification
        self.maxRetries = maxRetries
        self.messages = table.get("messages", {})
        self.ordinals = [
            [_compileOrdinal(token) for token in group]
            for group in table.get("ordinals", [])
        ]
        self.categories = {}
        for category, entry in table.get("categories", {}).items():
            candidates = []
            for candidate in entry.get("candidates", []):
                candidates.append({**candidate, "compiledAliases": compileKeywords(candidate.get("aliases", []))})
            self.categories[category] = candidates

    def candidateLabels(self, category: str, language: str) -> list[str]:
        return [c["label"][language] for c in self.categories.get(category, [])]

    def buildQuestion(self, category: str, language: str, retry: bool = False) -> str:
        """후보 번호 목록이 들어간 질문"""
        messages = self.messages.get(language) or self.messages["ja"]
        lines = [
            messages["option"].format(
                number=i,
                label=candidate["label"][language],
                description=candidate["description"][language],
            )
            for i, candidate in enumerate(self.categories.get(category, []), 1)
        ]
        template = messages["retry"] if retry else messages["question"]
        return template.format(options="\n".join(lines))

    def ask(self, decision: RouteDecision, retry: bool = False) -> UnifiedResponse:
        """명확화 질문 응답"""
        text = self.buildQuestion(decision.category, decision.language, retry=retry)
        return createUnifiedResponse(
            text=addEmotionTag(text, "surprised"),
            emotion="surprised",
            responderName=ResponderName.CLARIFICATION,
            language=decision.language,
            confidence=0.9,
            category=decision.category,
            requestType=None,
            sources=["clarification_system"],
            clarification_state=AWAITING_CHOICE,
        )

    def matchReply(self, category: str, reply: str) -> Optional[dict]:
        """답변 → 후보 (별칭 우선, 다음 번호). 둘 이상 또는 0개면 None"""
        candidates = self.categories.get(category, [])
        lowered = (reply or "").lower()

        matched = [c for c in candidates if matchKeywords(lowered, c["compiledAliases"])]
        if len(matched) == 1:
            return matched[0]
        if matched:
            return None

        compact = _REPLY_NOISE.sub(" ", lowered).strip()
        indices = {
            index for index, group in enumerate(self.ordinals)
            if any(pattern.search(compact) for pattern in group)
        }
        if len(indices) == 1:
            index = indices.pop()
            if index < len(candidates):
                return candidates[index]
        return None

    def advance(self, pending: dict, reply: str, language: str) -> ClarificationOutcome:
        """대기 상태에서 다음 답변 처리

        Raises:
            AmbiguityLoop: 재질문 한도를 넘겨도 후보를 고르지 못함
        """
        category = pending["category"]
        retries = int(pending.get("retries", 0))
        candidate = self.matchReply(category, reply)

        if candidate:
            qualifier = candidate["qualifier"].get(language) or candidate["qualifier"]["ja"]
            resolvedText = f"{qualifier} {pending['originalText']}"
            print(f"[명확화] 해결: {candidate['name']} → '{resolvedText}'")
            return ClarificationOutcome(
                status=RESOLVED,
                category=category,
                resolvedText=resolvedText,
                candidate=candidate["name"],
                retries=retries,
            )

        if retries < self.maxRetries:
            print(f"[명확화] 일치 실패 → 재질문 ({retries + 1}/{self.maxRetries})")
            return ClarificationOutcome(status=AWAITING_CHOICE, category=category, retries=retries + 1)

        print("[명확화] 재질문 한도 초과 → 일반 응답기")
        raise AmbiguityLoop(category, retries + 1)
