"""
라우팅 로그 분석 모듈
- JSONL 라우팅 로그 파싱 (route_YYYYMMDD.jsonl)
- 응답기/카테고리별 통계, 폴백·명확화·상속·에러 비율
- 자주 발생하는 음성인식 교정 집계
"""

import json
from pathlib import Path
from datetime import datetime, timedelta
from collections import Counter, defaultdict

from navigator.constants import LOG_DIR


class RouteLogAnalyzer:
    """라우팅 로그 분석기"""

    def __init__(self, logPath: str = None):
        self.logPath = Path(logPath) if logPath else LOG_DIR

    def loadLogs(self, days: int = 7, date: str = None) -> list[dict]:
        """로그 로드

        Args:
            days: 최근 N일간 로그 (기본 7일)
            date: 특정 날짜 (YYYYMMDD 형식)

        Returns:
            로그 엔트리 리스트
        """
        logs = []

        if date:
            logFile = self.logPath / f"route_{date}.jsonl"
            if logFile.exists():
                logs.extend(self._parseLogFile(logFile))
        else:
            today = datetime.now()
            for i in range(days):
                targetDate = today - timedelta(days=i)
                logFile = self.logPath / f"route_{targetDate.strftime('%Y%m%d')}.jsonl"
                if logFile.exists():
                    logs.extend(self._parseLogFile(logFile))

        return logs

    def _parseLogFile(self, logFile: Path) -> list[dict]:
        """JSONL 파일 파싱 (깨진 줄은 건너뜀)"""
        entries = []
        with open(logFile, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
        return entries

    def calculateStats(self, logs: list[dict]) -> dict:
        """통계 계산

        Returns:
            {
                "total": int,
                "by_responder": dict,
                "by_category": dict,
                "by_language": dict,
                "fallback_rate": float,
                "clarification_rate": float,
                "inheritance_rate": float,
                "error_rate": float,
                "errors": dict,
                "avg_elapsed": float
            }
        """
        if not logs:
            return {
                "total": 0,
                "by_responder": {},
                "by_category": {},
                "by_language": {},
                "fallback_rate": 0.0,
                "clarification_rate": 0.0,
                "inheritance_rate": 0.0,
                "error_rate": 0.0,
                "errors": {},
                "avg_elapsed": 0.0
            }

        total = len(logs)
        byResponder = Counter(log.get("responderName") or "unknown" for log in logs)
        byCategory = Counter(log.get("category") or "unknown" for log in logs)
        byLanguage = Counter(log.get("responseLanguage") or "unknown" for log in logs)
        errors = Counter(log["error"] for log in logs if log.get("error"))

        # 폴백: 검색 결과가 없어 고정 응답을 반환한 턴
        fallbackCount = errors.get("RetrievalUnavailable", 0)
        clarificationCount = sum(1 for log in logs if log.get("clarificationState") == "awaiting-choice")
        inheritedCount = sum(1 for log in logs if log.get("inherited"))
        elapsed = [log["elapsed"] for log in logs if log.get("elapsed") is not None]

        return {
            "total": total,
            "by_responder": dict(byResponder),
            "by_category": dict(byCategory),
            "by_language": dict(byLanguage),
            "fallback_rate": fallbackCount / total,
            "clarification_rate": clarificationCount / total,
            "inheritance_rate": inheritedCount / total,
            "error_rate": sum(errors.values()) / total,
            "errors": dict(errors),
            "avg_elapsed": sum(elapsed) / len(elapsed) if elapsed else 0.0
        }

    def getTopCorrections(self, logs: list[dict], limit: int = 10) -> list[dict]:
        """자주 발생하는 교정 (원문 → 교정문)

        Returns:
            [{"raw": str, "corrected": str, "count": int}]
        """
        corrections = Counter()
        for log in logs:
            raw = (log.get("rawText") or "").strip()
            corrected = (log.get("correctedText") or "").strip()
            if raw and corrected and raw != corrected:
                corrections[(raw, corrected)] += 1

        return [
            {"raw": raw, "corrected": corrected, "count": count}
            for (raw, corrected), count in corrections.most_common(limit)
        ]

    def getFallbackCases(self, logs: list[dict], limit: int = 20) -> list[dict]:
        """에러/폴백 케이스 수집 (최근 순)"""
        cases = [
            {
                "timestamp": log.get("timestamp"),
                "query": log.get("correctedText"),
                "responder": log.get("responderName"),
                "requestType": log.get("requestType"),
                "error": log.get("error"),
                "chunkCounts": log.get("chunkCounts"),
            }
            for log in logs if log.get("error")
        ]
        cases.sort(key=lambda x: x.get("timestamp") or "", reverse=True)
        return cases[:limit]

    def getRequestTypeRouting(self, logs: list[dict]) -> dict:
        """request type → 응답기 분포 (라우팅 표 점검용)"""
        routing = defaultdict(Counter)
        for log in logs:
            requestType = log.get("requestType") or "none"
            routing[requestType][log.get("responderName") or "unknown"] += 1
        return {requestType: dict(counts) for requestType, counts in routing.items()}

    def exportReport(self, logs: list[dict], outputPath: str = None) -> str:
        """분석 보고서 내보내기

        Args:
            logs: 로그 리스트
            outputPath: 출력 파일 경로 (없으면 자동 생성)

        Returns:
            저장된 파일 경로
        """
        report = {
            "generated_at": datetime.now().isoformat(),
            "period": {
                "start": min(log.get("timestamp", "") for log in logs) if logs else "",
                "end": max(log.get("timestamp", "") for log in logs) if logs else ""
            },
            "summary": self.calculateStats(logs),
            "request_type_routing": self.getRequestTypeRouting(logs),
            "top_corrections": self.getTopCorrections(logs),
            "fallback_cases": self.getFallbackCases(logs, limit=50)
        }

        if not outputPath:
            reportDir = self.logPath.parent / "reports"
            reportDir.mkdir(parents=True, exist_ok=True)
            outputPath = reportDir / f"route_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"

        with open(outputPath, "w", encoding="utf-8") as f:
            json.dump(report, f, ensure_ascii=False, indent=2)

        return str(outputPath)


def main():
    """메인 실행"""
    import argparse

    parser = argparse.ArgumentParser(description="라우팅 로그 분석")
    parser.add_argument("--days", type=int, default=7, help="최근 N일")
    parser.add_argument("--date", type=str, help="특정 날짜 (YYYYMMDD)")
    parser.add_argument("--export", action="store_true", help="JSON 보고서 저장")

    args = parser.parse_args()

    analyzer = RouteLogAnalyzer()
    logs = analyzer.loadLogs(days=args.days, date=args.date)
    stats = analyzer.calculateStats(logs)

    print(f"\n[라우팅 통계] 총 {stats['total']}턴")
    print(f"  폴백 비율: {stats['fallback_rate']:.1%}")
    print(f"  명확화 비율: {stats['clarification_rate']:.1%}")
    print(f"  상속 비율: {stats['inheritance_rate']:.1%}")
    print(f"  에러 비율: {stats['error_rate']:.1%}")
    print("\n  응답기별:")
    for name, count in sorted(stats["by_responder"].items(), key=lambda x: -x[1]):
        print(f"    - {name}: {count}")

    corrections = analyzer.getTopCorrections(logs, limit=5)
    if corrections:
        print("\n  자주 발생한 교정:")
        for c in corrections:
            print(f"    - '{c['raw']}' → '{c['corrected']}' ({c['count']}회)")

    if args.export:
        print(f"\n[보고서] {analyzer.exportReport(logs)}")


if __name__ == "__main__":
    main()
