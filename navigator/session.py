"""
세션 기반 대화 메모리
- 서버 메모리에 세션별 대화 턴 + 마지막 request type 저장
- 세션 단위 잠금 (같은 세션 요청은 직렬화, 다른 세션은 병렬)
- TTL 기반 자동 정리, 최대 세션 수 초과 시 오래된 세션부터 제거
- 명확화 대기 상태, 고정 언어 보관
"""

import time
import uuid
import threading
from typing import Optional
from dataclasses import dataclass, field

from navigator.constants import (
    SESSION_TTL_SECONDS, SESSION_CLEANUP_INTERVAL,
    SESSION_MAX_SESSIONS, SESSION_MAX_TURNS,
)
from navigator.errors import SessionStoreUnavailable
from navigator.models import Turn


@dataclass
class SessionState:
    """세션 상태 (세션당 1개)"""
    session_id: str
    turns: list = field(default_factory=list)          # Turn 목록 (추가만, 수정 없음)
    last_request_type: Optional[str] = None            # 마지막으로 확정된 request type
    pinned_language: Optional[str] = None              # UI에서 고정한 응답 언어
    pending_clarification: Optional[dict] = None       # {category, originalText, retries}
    last_active: float = 0.0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def appendTurn(self, turn: Turn, maxTurns: int):
        """턴 추가 (오래된 턴부터 버림)"""
        self.turns.append(turn)
        if len(self.turns) > maxTurns:
            del self.turns[:len(self.turns) - maxTurns]
        self.last_active = time.time()

    def reset(self):
        """세션 초기화 (새 대화)"""
        self.turns = []
        self.last_request_type = None
        self.pending_clarification = None


class SessionStore:
    """세션 저장소 (인메모리, TTL 자동 정리)"""

    def __init__(
        self,
        ttlSeconds: int = SESSION_TTL_SECONDS,
        cleanupInterval: int = SESSION_CLEANUP_INTERVAL,
        maxSessions: int = SESSION_MAX_SESSIONS,
        maxTurns: int = SESSION_MAX_TURNS,
        autoCleanup: bool = True,
    ):
        self.ttlSeconds = ttlSeconds
        self.cleanupInterval = cleanupInterval
        self.maxSessions = maxSessions
        self.maxTurns = maxTurns
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()
        self._available = True
        self._timer = None
        if autoCleanup:
            self._startCleanupTimer()

    def _checkAvailable(self):
        if not self._available:
            raise SessionStoreUnavailable("세션 저장소를 사용할 수 없습니다")

    def getOrCreate(self, sessionId: Optional[str] = None) -> SessionState:
        """세션 조회 또는 생성"""
        self._checkAvailable()
        with self._lock:
            if sessionId and sessionId in self._sessions:
                state = self._sessions[sessionId]
                state.last_active = time.time()
                return state

            # 최대 세션 수 초과 시 오래된 세션 정리
            if len(self._sessions) >= self.maxSessions:
                self._evictOldest()

            newId = sessionId or str(uuid.uuid4())
            state = SessionState(session_id=newId)
            state.last_active = time.time()
            self._sessions[newId] = state
            return state

    def get(self, sessionId: str) -> Optional[SessionState]:
        self._checkAvailable()
        with self._lock:
            return self._sessions.get(sessionId)

    def sessionLock(self, sessionId: str) -> threading.RLock:
        """세션 단위 잠금 (턴 전체를 감싸서 도착 순서대로 처리)"""
        return self.getOrCreate(sessionId).lock

    def getLastRequestType(self, sessionId: str) -> Optional[str]:
        state = self.get(sessionId)
        return state.last_request_type if state else None

    def setLastRequestType(self, sessionId: str, requestType: Optional[str]):
        """마지막 request type 덮어쓰기 (None은 무시)"""
        if not requestType:
            return
        state = self.getOrCreate(sessionId)
        with state.lock:
            state.last_request_type = requestType
            state.last_active = time.time()

    def recordTurn(self, sessionId: str, turn: Turn):
        state = self.getOrCreate(sessionId)
        with state.lock:
            state.appendTurn(turn, self.maxTurns)

    def getTurns(self, sessionId: str, limit: int = None) -> list[Turn]:
        state = self.get(sessionId)
        if not state:
            return []
        with state.lock:
            turns = list(state.turns)
        return turns[-limit:] if limit else turns

    def pinLanguage(self, sessionId: str, language: Optional[str]):
        state = self.getOrCreate(sessionId)
        with state.lock:
            state.pinned_language = language

    def getPinnedLanguage(self, sessionId: str) -> Optional[str]:
        state = self.get(sessionId)
        return state.pinned_language if state else None

    def getPendingClarification(self, sessionId: str) -> Optional[dict]:
        state = self.get(sessionId)
        if not state or not state.pending_clarification:
            return None
        return dict(state.pending_clarification)

    def setPendingClarification(self, sessionId: str, pending: Optional[dict]):
        state = self.getOrCreate(sessionId)
        with state.lock:
            state.pending_clarification = dict(pending) if pending else None

    def clear(self, sessionId: str) -> bool:
        """세션 종료 (명시적 삭제)"""
        self._checkAvailable()
        with self._lock:
            return self._sessions.pop(sessionId, None) is not None

    def reset(self, sessionId: str):
        """대화 내용만 초기화 (고정 언어는 유지)"""
        state = self.getOrCreate(sessionId)
        with state.lock:
            state.reset()

    def activeCount(self) -> int:
        with self._lock:
            return len(self._sessions)

    def cleanup(self):
        """만료 세션 정리"""
        now = time.time()
        with self._lock:
            expired = [
                sid for sid, state in self._sessions.items()
                if now - state.last_active > self.ttlSeconds
            ]
            for sid in expired:
                del self._sessions[sid]
            if expired:
                print(f"[세션 정리] {len(expired)}개 만료 세션 삭제, 현재 {len(self._sessions)}개")

    def close(self):
        """저장소 종료 (이후 접근은 SessionStoreUnavailable)"""
        self._available = False
        if self._timer:
            self._timer.cancel()
        with self._lock:
            self._sessions.clear()

    def _evictOldest(self):
        """가장 오래된 세션 제거 (lock 내부에서 호출)"""
        if not self._sessions:
            return
        oldest = min(self._sessions.items(), key=lambda x: x[1].last_active)
        del self._sessions[oldest[0]]

    def _startCleanupTimer(self):
        """정리 타이머 시작"""
        def _run():
            self.cleanup()
            if not self._available:
                return
            self._timer = threading.Timer(self.cleanupInterval, _run)
            self._timer.daemon = True
            self._timer.start()

        self._timer = threading.Timer(self.cleanupInterval, _run)
        self._timer.daemon = True
        self._timer.start()


# 싱글톤 인스턴스
sessionStore = SessionStore()
