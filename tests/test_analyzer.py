"""
라우팅 로그 분석 테스트
- handle()이 남긴 JSONL 로그로 통계/교정 집계/보고서 확인
"""

import sys
import json
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from monitor.analyzer import RouteLogAnalyzer


def testStatsFromHandledTurns(navigator, logDir):
    navigator.handle("エンジンカフェの営業時間は?", sessionId="s1")
    navigator.handle("土曜日も?", sessionId="s1")
    navigator.handle("カフェについて教えて", sessionId="s2")
    navigator.handle("地下の会議室について教えて", sessionId="s3")

    analyzer = RouteLogAnalyzer(str(logDir))
    logs = analyzer.loadLogs(days=1)
    assert len(logs) == 4

    stats = analyzer.calculateStats(logs)
    assert stats["total"] == 4
    assert stats["by_responder"]["BusinessResponder"] == 2
    assert stats["by_responder"]["ClarificationResponder"] == 1
    assert stats["by_responder"]["FacilityResponder"] == 1
    assert stats["clarification_rate"] == 0.25
    assert stats["inheritance_rate"] == 0.25
    assert stats["error_rate"] == 0.0

    corrections = analyzer.getTopCorrections(logs)
    assert corrections == [
        {"raw": "エンジンカフェの営業時間は?", "corrected": "エンジニアカフェの営業時間は?", "count": 1}
    ]

    routing = analyzer.getRequestTypeRouting(logs)
    assert routing["hours"] == {"BusinessResponder": 2}


def testEmptyLogs(tmp_path):
    analyzer = RouteLogAnalyzer(str(tmp_path))
    logs = analyzer.loadLogs()
    assert logs == []
    stats = analyzer.calculateStats(logs)
    assert stats["total"] == 0
    assert stats["fallback_rate"] == 0.0


def testBrokenLinesSkipped(tmp_path):
    logFile = tmp_path / "route_20260101.jsonl"
    entry = {"responderName": "GeneralResponder", "error": "RetrievalUnavailable", "timestamp": "2026-01-01T10:00:00"}
    logFile.write_text(json.dumps(entry) + "\n{broken\n\n", encoding="utf-8")

    analyzer = RouteLogAnalyzer(str(tmp_path))
    logs = analyzer.loadLogs(date="20260101")
    assert len(logs) == 1

    stats = analyzer.calculateStats(logs)
    assert stats["fallback_rate"] == 1.0
    assert stats["errors"] == {"RetrievalUnavailable": 1}
    assert analyzer.getFallbackCases(logs)[0]["responder"] == "GeneralResponder"


def testExportReport(tmp_path):
    analyzer = RouteLogAnalyzer(str(tmp_path / "logs"))
    logs = [
        {"timestamp": "2026-01-01T10:00:00", "responderName": "BusinessResponder", "requestType": "hours"},
        {"timestamp": "2026-01-01T11:00:00", "responderName": "EventResponder", "requestType": "event"},
    ]
    outputPath = analyzer.exportReport(logs, str(tmp_path / "report.json"))

    with open(outputPath, "r", encoding="utf-8") as f:
        report = json.load(f)
    assert report["summary"]["total"] == 2
    assert report["period"] == {"start": "2026-01-01T10:00:00", "end": "2026-01-01T11:00:00"}
    assert report["request_type_routing"]["event"] == {"EventResponder": 1}
