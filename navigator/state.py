"""네비게이터 그래프 상태 정의 (TypedDict)"""

from typing import TypedDict, Optional

from navigator.models import RouteDecision, UnifiedResponse


class NavigatorState(TypedDict):
    """턴 1회 처리 상태"""
    # 입력
    raw_text: str
    session_id: str
    language: Optional[str]  # 호출자가 지정한 응답 언어

    # 교정 결과
    corrected_text: str

    # 라우팅 (생성 전에 기록)
    routed_text: str  # 응답기에 전달할 텍스트 (명확화 해결 시 구분어 포함)
    route_decision: Optional[RouteDecision]

    # 명확화 상태 머신
    clarification_state: Optional[str]  # awaiting-choice / resolved / exhausted
    clarification_retry: bool  # 재질문 여부
    next_pending: Optional[dict]  # 턴 종료 시 세션에 기록할 대기 상태

    # 세션 저장소 사용 가능 여부
    session_available: bool

    # 응답
    response: Optional[UnifiedResponse]
    error: Optional[str]

    # 처리 시작 시각
    started_at: float

    # 로그
    log: dict
