"""
테스트용 가짜 검색기/생성기 + 태그가 붙은 지식 코퍼스
"""

import threading
import time

from navigator.models import KnowledgeChunk


def chunk(chunkId: str, content: str, *tags: str, category: str = "") -> KnowledgeChunk:
    return KnowledgeChunk(
        content=content,
        entity_tags=frozenset(tags),
        source_category=category,
        chunk_id=chunkId,
    )


# 기본 코퍼스 (10개, RETRIEVAL_MAX_RESULTS 이내)
CORPUS = [
    chunk("ec-hours", "エンジニアカフェの営業時間は9:00から22:00です。休館日は毎月最終月曜日です。",
          "engineer-cafe", category="hours"),
    chunk("saino-hours", "サイノカフェの営業時間は11:00から23:00です。",
          "saino", category="hours"),
    chunk("paid-room-price", "2階の有料会議室の料金は1時間1,000円からです。事前予約が必要です。",
          "paid-meeting-room", "pricing", category="pricing"),
    chunk("paid-room-info", "2階には予約制の有料会議室が4部屋あります。",
          "paid-meeting-room", category="facilities"),
    chunk("ec-price", "エンジニアカフェのコワーキングスペースは無料で利用できます。",
          "engineer-cafe", "pricing", category="pricing"),
    chunk("basement-mtg", "地下のMTGスペースは無料の打ち合わせスペースです。",
          "basement", "mtg-space", category="basement"),
    chunk("basement-focus", "地下の集中スペースは静かに作業できる無料スペースです。",
          "basement", "focus-space", category="basement"),
    chunk("basement-makers", "地下のMakersスペースには3Dプリンターがあります。",
          "basement", "makers-space", category="basement"),
    chunk("wifi", "館内では無料Wi-Fiが利用できます。",
          "engineer-cafe", "wifi", category="facilities"),
    chunk("event", "今週土曜日にLT勉強会を開催します。",
          "engineer-cafe", "events", category="events"),
]

PAID_IDS = {"paid-room-price", "paid-room-info"}
BASEMENT_IDS = {"basement-mtg", "basement-focus", "basement-makers"}


class FakeRetriever:
    """인메모리 검색기 (호출 기록, 실패/0건 재현)"""

    def __init__(self, chunks=None, fail: bool = False):
        self.chunks = list(CORPUS if chunks is None else chunks)
        self.fail = fail
        self.calls = []

    def __call__(self, query, categoryHint, language, maxResults):
        self.calls.append({
            "query": query,
            "categoryHint": categoryHint,
            "language": language,
            "maxResults": maxResults,
        })
        if self.fail:
            raise ConnectionError("검색 서버 연결 실패")
        return self.chunks[:maxResults]

    @property
    def lastCall(self) -> dict:
        return self.calls[-1]


class FakeGenerator:
    """프롬프트를 기록하고 고정 응답을 돌려주는 생성기"""

    def __init__(self, reply: str = "[relaxed]ご案内します。", error: Exception = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts = []
        self._lock = threading.Lock()
        self.active = 0
        self.maxActive = 0

    def __call__(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
            self.active += 1
            self.maxActive = max(self.maxActive, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error:
                raise self.error
            return self.reply
        finally:
            with self._lock:
                self.active -= 1

    @property
    def lastPrompt(self) -> str:
        return self.prompts[-1]
