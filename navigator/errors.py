"""
에러 분류
- 모든 에러는 코어 내부에서 복구되고, 호출자에게는 UnifiedResponse.metadata.error로만 전달
"""


class NavigatorError(Exception):
    """코어 에러 기본 클래스"""
    kind = "NavigatorError"


class RetrievalUnavailable(NavigatorError):
    """검색 호출 실패 또는 결과 0건 → 저신뢰 고정 응답으로 복구"""
    kind = "RetrievalUnavailable"


class GenerationFailed(NavigatorError):
    """LLM 생성 실패 (타임아웃 포함) → 사과 템플릿으로 복구"""
    kind = "GenerationFailed"


class SessionStoreUnavailable(NavigatorError):
    """세션 저장소 접근 불가 → 이전 맥락 없이 처리"""
    kind = "SessionStoreUnavailable"


class AmbiguityLoop(NavigatorError):
    """명확화 재질문 한도 초과 → 일반 응답기로 폴백"""
    kind = "AmbiguityLoop"

    def __init__(self, category: str, attempts: int):
        super().__init__(f"명확화 실패 ({category}, {attempts}회)")
        self.category = category
        self.attempts = attempts
