"""
HTTP 전송 계층 테스트 (FastAPI TestClient)
- POST /chat: 검증(400), 명확화, sessionId 재사용 시 상속
- DELETE /session/{id}
- GET /health
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import pytest
from fastapi.testclient import TestClient

import navigator.server as server
from navigator.graph import NavigatorGraph

from fakes import FakeRetriever, FakeGenerator


class FakeIndexer:
    def __init__(self, total: int):
        self.total = total

    def getStats(self) -> dict:
        return {"total_chunks": self.total}


@pytest.fixture
def client(monkeypatch, sessionStore, ruleBook, logDir):
    graph = NavigatorGraph(
        FakeRetriever(), FakeGenerator(),
        sessionStore=sessionStore, ruleBook=ruleBook, logDir=str(logDir),
        indexer=FakeIndexer(10),
    )
    monkeypatch.setattr(server, "navigatorGraph", graph)
    return TestClient(server.app)


def testChatValidation(client):
    testCases = [
        {"message": ""},
        {"message": "   "},
        {"message": "営業時間は?", "language": "fr"},
    ]
    for body in testCases:
        res = client.post("/chat", json=body)
        assert res.status_code == 400, body


def testChatResponseShape(client):
    res = client.post("/chat", json={"message": "エンジニアカフェの営業時間は?"})
    assert res.status_code == 200

    data = res.json()
    assert data["responderName"] == "BusinessResponder"
    assert data["emotion"] == "relaxed"
    assert data["text"].startswith("[relaxed]")
    assert data["language"] == "ja"
    assert data["metadata"]["requestType"] == "hours"
    assert data["metadata"]["error"] is None
    assert data["sessionId"]


def testChatClarification(client):
    res = client.post("/chat", json={"message": "カフェについて教えて", "sessionId": "web-1"})
    data = res.json()
    assert data["responderName"] == "ClarificationResponder"
    assert data["metadata"]["clarificationState"] == "awaiting-choice"
    assert data["sessionId"] == "web-1"


def testSessionReuseInheritsRequestType(client):
    first = client.post("/chat", json={"message": "サイノカフェの営業時間は?"}).json()
    sessionId = first["sessionId"]

    second = client.post("/chat", json={"message": "土曜日も?", "sessionId": sessionId}).json()
    assert second["metadata"]["inherited"] is True
    assert second["metadata"]["requestType"] == "hours"


def testPinnedLanguageRequest(client):
    data = client.post("/chat", json={"message": "営業時間は?", "language": "en"}).json()
    assert data["language"] == "en"


def testEndSession(client, sessionStore):
    client.post("/chat", json={"message": "サイノカフェの営業時間は?", "sessionId": "web-1"})
    assert sessionStore.getLastRequestType("web-1") == "hours"

    res = client.delete("/session/web-1")
    assert res.json() == {"sessionId": "web-1", "cleared": True}
    assert sessionStore.getLastRequestType("web-1") is None

    res = client.delete("/session/web-1")
    assert res.json()["cleared"] is False


def testHealth(client, monkeypatch):
    cacheStats = {"enabled": True, "hits": 3, "misses": 1, "hit_rate": 75.0, "current_size": 1, "max_size": 100}
    monkeypatch.setattr("navigator.llm_provider.checkLLMAvailable", lambda: (True, "Fake"))
    monkeypatch.setattr("navigator.llm_provider.getCacheStats", lambda: cacheStats)
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["llm"] == {"available": True, "provider": "Fake", "cache": cacheStats}
    assert data["index"] == {"available": True, "chunks": 10}
    assert "active" in data["sessions"]


def testHealthReportsCacheStats(client, monkeypatch):
    """LLM 응답 캐시 통계가 /health에 포함됨"""
    monkeypatch.setattr("navigator.llm_provider.checkLLMAvailable", lambda: (True, "Fake"))
    cache = client.get("/health").json()["llm"]["cache"]
    assert "enabled" in cache
    if cache["enabled"]:
        assert {"hits", "misses", "hit_rate", "current_size", "max_size"} <= set(cache)


def testHealthDegraded(client, monkeypatch):
    monkeypatch.setattr("navigator.llm_provider.checkLLMAvailable", lambda: (False, "None"))
    data = client.get("/health").json()
    assert data["status"] == "degraded"
