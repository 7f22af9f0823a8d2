"""
세션 메모리 테스트
- 턴/세션 수 상한, TTL 정리
- lastRequestType 덮어쓰기 규칙
- 세션 단위 직렬화 (스레드)
- 저장소 종료 후 SessionStoreUnavailable
"""

import sys
import time
import threading
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from navigator.errors import SessionStoreUnavailable
from navigator.models import Turn
from navigator.session import SessionStore


def testTurnsAreBounded():
    store = SessionStore(maxTurns=3, autoCleanup=False)
    for i in range(5):
        store.recordTurn("s1", Turn(role="user", content=f"질문{i}"))

    turns = store.getTurns("s1")
    assert [t.content for t in turns] == ["질문2", "질문3", "질문4"]
    assert [t.content for t in store.getTurns("s1", limit=2)] == ["질문3", "질문4"]


def testOldestSessionEvicted():
    store = SessionStore(maxSessions=2, autoCleanup=False)
    store.getOrCreate("a").last_active = 100.0
    store.getOrCreate("b").last_active = 200.0
    store.getOrCreate("c")

    assert store.get("a") is None
    assert store.get("b") is not None
    assert store.activeCount() == 2


def testTtlCleanup():
    store = SessionStore(ttlSeconds=10, autoCleanup=False)
    store.getOrCreate("old").last_active = time.time() - 60
    store.getOrCreate("fresh")

    store.cleanup()

    assert store.get("old") is None
    assert store.get("fresh") is not None


def testLastRequestTypeOverwrite():
    """null이 아닌 request type만 덮어씀"""
    store = SessionStore(autoCleanup=False)
    assert store.getLastRequestType("s1") is None

    store.setLastRequestType("s1", "hours")
    store.setLastRequestType("s1", None)
    assert store.getLastRequestType("s1") == "hours"

    store.setLastRequestType("s1", "price")
    assert store.getLastRequestType("s1") == "price"


def testClearAndReset():
    store = SessionStore(autoCleanup=False)
    store.recordTurn("s1", Turn(role="user", content="営業時間は?"))
    store.setLastRequestType("s1", "hours")
    store.pinLanguage("s1", "en")
    store.setPendingClarification("s1", {"category": "cafe-clarification", "originalText": "カフェ", "retries": 0})

    store.reset("s1")
    assert store.getTurns("s1") == []
    assert store.getLastRequestType("s1") is None
    assert store.getPendingClarification("s1") is None
    assert store.getPinnedLanguage("s1") == "en"

    assert store.clear("s1") is True
    assert store.clear("s1") is False
    assert store.getPinnedLanguage("s1") is None


def testPendingClarificationIsCopied():
    store = SessionStore(autoCleanup=False)
    pending = {"category": "cafe-clarification", "originalText": "カフェ", "retries": 0}
    store.setPendingClarification("s1", pending)
    pending["retries"] = 5

    stored = store.getPendingClarification("s1")
    assert stored["retries"] == 0
    stored["retries"] = 9
    assert store.getPendingClarification("s1")["retries"] == 0


def testClosedStoreRaises():
    store = SessionStore(autoCleanup=False)
    store.getOrCreate("s1")
    store.close()

    with pytest.raises(SessionStoreUnavailable):
        store.getLastRequestType("s1")
    with pytest.raises(SessionStoreUnavailable):
        store.recordTurn("s1", Turn(role="user", content="x"))
    with pytest.raises(SessionStoreUnavailable):
        store.sessionLock("s1")


def testSessionLockSerializesSameSession():
    """같은 세션의 작업은 동시에 실행되지 않음"""
    store = SessionStore(autoCleanup=False)
    counter = {"active": 0, "max": 0}
    guard = threading.Lock()

    def worker():
        with store.sessionLock("s1"):
            with guard:
                counter["active"] += 1
                counter["max"] = max(counter["max"], counter["active"])
            time.sleep(0.01)
            with guard:
                counter["active"] -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter["max"] == 1


def testDifferentSessionsHaveDifferentLocks():
    store = SessionStore(autoCleanup=False)
    assert store.sessionLock("a") is not store.sessionLock("b")
    assert store.sessionLock("a") is store.sessionLock("a")


def testConcurrentTurnsNotLost():
    """동시 기록에서도 턴 유실 없음"""
    store = SessionStore(maxTurns=1000, autoCleanup=False)

    def worker(n):
        for i in range(50):
            store.recordTurn("s1", Turn(role="user", content=f"{n}-{i}"))
            store.setLastRequestType("s1", "hours")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.getTurns("s1")) == 200
    assert store.getLastRequestType("s1") == "hours"
