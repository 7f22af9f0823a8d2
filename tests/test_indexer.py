"""
지식 인덱서 테스트 (임베딩 모델 로드 없이)
- 일/영 혼합 토크나이저
- 카테고리 삭제 시 Vector/BM25 동시 갱신
- --delete-category CLI
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pipeline.indexer as indexerModule
from pipeline.indexer import KnowledgeIndexer, tokenizeMixed


class FakeCollection:
    def __init__(self):
        self.deleted = []

    def delete(self, where=None):
        self.deleted.append(where)


def bm25Doc(chunkId: str, text: str, category: str) -> dict:
    return {
        "chunk_id": chunkId,
        "text": text,
        "metadata": {"source_category": category, "language": "ja", "entity_tags": ""},
    }


def makeIndexer(tmp_path) -> KnowledgeIndexer:
    indexer = KnowledgeIndexer.__new__(KnowledgeIndexer)
    indexer.collection = FakeCollection()
    indexer.bm25Path = tmp_path / "bm25_index.pkl"
    indexer.bm25Index = None
    indexer.bm25Docs = [
        bm25Doc("ec-hours", "エンジニアカフェの営業時間は9:00から22:00です。", "hours"),
        bm25Doc("saino-hours", "サイノカフェの営業時間は11:00から23:00です。", "hours"),
        bm25Doc("event", "今週土曜日にLT勉強会を開催します。", "events"),
    ]
    return indexer


def testTokenizeMixed():
    tokens = tokenizeMixed("Wi-Fi 営業時間")
    assert "wi" in tokens
    assert "fi" in tokens
    assert "営業" in tokens
    assert "時間" in tokens


def testDeleteCategory(tmp_path):
    """카테고리 삭제 → Chroma 삭제 + BM25 재구축"""
    indexer = makeIndexer(tmp_path)

    indexer.deleteCategory("hours")
    assert indexer.collection.deleted == [{"source_category": "hours"}]
    assert [doc["chunk_id"] for doc in indexer.bm25Docs] == ["event"]
    assert indexer.bm25Index is not None
    assert indexer.bm25Path.exists()

    # 마지막 문서까지 삭제 → BM25 인덱스 제거
    indexer.deleteCategory("events")
    assert indexer.bm25Docs == []
    assert indexer.bm25Index is None
    assert not indexer.bm25Path.exists()


class FakeKnowledgeIndexer:
    instances = []

    def __init__(self, autoIndex=True):
        self.deleted = []
        self.indexed = []
        FakeKnowledgeIndexer.instances.append(self)

    def deleteCategory(self, category):
        self.deleted.append(category)

    def loadChunks(self, fileName="knowledge.json"):
        return [{"chunk_id": "ec-hours", "content": "営業時間"}]

    def indexChunks(self, chunks):
        self.indexed.extend(chunks)

    def getStats(self):
        return {"total_chunks": len(self.indexed)}


def testDeleteCategoryCli(monkeypatch):
    testCases = [
        # (인자, 재인덱싱 여부)
        (["--delete-category", "events"], False),
        (["--delete-category", "events", "--reindex"], True),
    ]
    monkeypatch.setattr(indexerModule, "KnowledgeIndexer", FakeKnowledgeIndexer)
    for args, reindexed in testCases:
        monkeypatch.setattr(sys, "argv", ["navigator-index"] + args)
        indexerModule.main()

        indexer = FakeKnowledgeIndexer.instances[-1]
        assert indexer.deleted == ["events"], args
        assert bool(indexer.indexed) is reindexed, args
