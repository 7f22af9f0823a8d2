"""
지식 청크 인덱싱 모듈 (검색 capability)
- Chroma DB에 지식 청크 임베딩 및 저장
- BM25 + Vector 하이브리드 검색 지원
- 다국어 임베딩 모델 사용 (일/영 지원)
- retrieve(query, categoryHint, language, maxResults) -> list[KnowledgeChunk]
"""

import json
import re
import pickle
from pathlib import Path
from typing import Optional

import chromadb
from chromadb.config import Settings
from sentence_transformers import SentenceTransformer
from rank_bm25 import BM25Okapi

from navigator.models import KnowledgeChunk

# 일본어 문자 (히라가나/가타카나/한자)
_JAPANESE_RUN = re.compile(r"[\u3040-\u30ff\u4e00-\u9faf]+")
_LATIN_WORD = re.compile(r"[a-z0-9]+")


def tokenizeMixed(text: str) -> list[str]:
    """일/영 혼합 토크나이저 (일본어는 문자 bigram, 영어는 단어)"""
    text = text.lower()
    tokens = [t for t in _LATIN_WORD.findall(text) if len(t) >= 2]
    for run in _JAPANESE_RUN.findall(text):
        if len(run) == 1:
            tokens.append(run)
            continue
        tokens.extend(run[i:i + 2] for i in range(len(run) - 1))
    return tokens


def _splitTags(value: str) -> frozenset:
    return frozenset(tag.strip() for tag in (value or "").split(",") if tag.strip())


class KnowledgeIndexer:
    """지식 청크 인덱서 (Chroma + BM25)"""

    # 임베딩 모델 (다국어 지원, 로컬 실행 가능)
    # multilingual-e5-small: 384차원, 약 470MB
    DEFAULT_MODEL = "intfloat/multilingual-e5-small"
    COLLECTION_NAME = "engineer_cafe_knowledge"

    def __init__(self, modelName: str = None, basePath: Path = None, autoIndex: bool = True):
        self.basePath = Path(basePath) if basePath else Path(__file__).parent.parent
        self.knowledgePath = self.basePath / "data" / "knowledge"
        self.indexPath = self.basePath / "data" / "index"
        self.indexPath.mkdir(parents=True, exist_ok=True)

        # 임베딩 모델 로드
        self.modelName = modelName or self.DEFAULT_MODEL
        print(f"[모델 로딩] {self.modelName}...")
        self.model = SentenceTransformer(self.modelName)
        print(f"  -> 로딩 완료 (차원: {self.model.get_sentence_embedding_dimension()})")

        # Chroma DB 초기화 (영구 저장)
        self.client = chromadb.PersistentClient(
            path=str(self.indexPath / "chroma"),
            settings=Settings(anonymized_telemetry=False)
        )
        self.collection = self.client.get_or_create_collection(
            name=self.COLLECTION_NAME,
            metadata={"description": "Engineer Cafe 시설/이벤트 지식 청크"}
        )

        # BM25 인덱스 초기화
        self.bm25Index = None
        self.bm25Docs = []
        self.bm25Path = self.indexPath / "bm25_index.pkl"
        self._loadBM25Index()

        # 빈 인덱스면 기본 지식 파일로 인덱싱
        if autoIndex and self.collection.count() == 0:
            chunks = self.loadChunks()
            if chunks:
                self.indexChunks(chunks)

    def _loadBM25Index(self):
        """BM25 인덱스 로드"""
        if self.bm25Path.exists():
            try:
                with open(self.bm25Path, "rb") as f:
                    data = pickle.load(f)
                    self.bm25Index = data.get("index")
                    self.bm25Docs = data.get("docs", [])
                print(f"[BM25] 인덱스 로드 완료 ({len(self.bm25Docs)}개 문서)")
            except Exception as e:
                print(f"[BM25] 인덱스 로드 실패: {e}")
                self.bm25Index = None
                self.bm25Docs = []

    def _saveBM25Index(self):
        """BM25 인덱스 저장"""
        if self.bm25Index and self.bm25Docs:
            with open(self.bm25Path, "wb") as f:
                pickle.dump({
                    "index": self.bm25Index,
                    "docs": self.bm25Docs
                }, f)
            print("[BM25] 인덱스 저장 완료")

    def _buildBM25Index(self, chunks: list[dict]):
        """BM25 인덱스 구축"""
        print("[BM25] 인덱스 구축 중...")

        self.bm25Docs = []
        tokenizedCorpus = []

        for chunk in chunks:
            tokens = tokenizeMixed(chunk["content"])
            self.bm25Docs.append({
                "chunk_id": chunk["chunk_id"],
                "text": chunk["content"],
                "metadata": self._prepareMetadata(chunk),
            })
            tokenizedCorpus.append(tokens)

        self.bm25Index = BM25Okapi(tokenizedCorpus)
        self._saveBM25Index()
        print(f"[BM25] 인덱스 구축 완료 ({len(self.bm25Docs)}개 문서)")

    def _prepareText(self, chunk: dict) -> str:
        """임베딩용 텍스트 준비 (E5 모델용 prefix 추가)"""
        text = chunk["content"]
        if "e5" in self.modelName.lower():
            return f"passage: {text}"
        return text

    def _prepareMetadata(self, chunk: dict) -> dict:
        """Chroma 메타데이터 준비 (스칼라만 허용 → 태그는 콤마 결합)"""
        return {
            "source_category": chunk.get("source_category", ""),
            "language": chunk.get("language", "ja"),
            "entity_tags": ",".join(chunk.get("entity_tags", [])),
        }

    def loadChunks(self, fileName: str = "knowledge.json") -> list[dict]:
        """지식 청크 로드"""
        chunkFile = self.knowledgePath / fileName
        if not chunkFile.exists():
            print(f"[오류] 지식 파일 없음: {chunkFile}")
            return []

        with open(chunkFile, "r", encoding="utf-8") as f:
            chunks = json.load(f)

        print(f"[청크 로드] {len(chunks)}개")
        return chunks

    def indexChunks(self, chunks: list[dict], batchSize: int = 50):
        """청크 인덱싱 (Vector + BM25)"""
        if not chunks:
            print("[오류] 인덱싱할 청크 없음")
            return

        print(f"\n[인덱싱 시작] {len(chunks)}개 청크")

        for i in range(0, len(chunks), batchSize):
            batch = chunks[i:i + batchSize]

            ids = [c["chunk_id"] for c in batch]
            texts = [self._prepareText(c) for c in batch]
            metadatas = [self._prepareMetadata(c) for c in batch]
            documents = [c["content"] for c in batch]

            embeddings = self.model.encode(texts, show_progress_bar=False).tolist()

            # upsert로 중복 방지
            self.collection.upsert(
                ids=ids,
                embeddings=embeddings,
                metadatas=metadatas,
                documents=documents
            )

            print(f"  -> {i + len(batch)}/{len(chunks)} 완료")

        self._buildBM25Index(chunks)

        print(f"\n[인덱싱 완료] 총 {self.collection.count()}개 문서")

    def deleteCategory(self, category: str):
        """특정 카테고리 데이터 삭제 (Vector + BM25)"""
        self.collection.delete(where={"source_category": category})

        self.bm25Docs = [
            doc for doc in self.bm25Docs
            if doc["metadata"].get("source_category") != category
        ]
        if self.bm25Docs:
            self.bm25Index = BM25Okapi([tokenizeMixed(doc["text"]) for doc in self.bm25Docs])
            self._saveBM25Index()
        else:
            self.bm25Index = None
            self.bm25Path.unlink(missing_ok=True)
        print(f"[삭제 완료] {category} (BM25 남은 문서: {len(self.bm25Docs)}개)")

    @staticmethod
    def _buildWhere(category: Optional[str], language: Optional[str]) -> Optional[dict]:
        conditions = []
        if category:
            conditions.append({"source_category": category})
        if language:
            conditions.append({"language": language})
        if len(conditions) == 2:
            return {"$and": conditions}
        return conditions[0] if conditions else None

    def searchVector(
        self,
        query: str,
        category: str = None,
        language: str = None,
        topK: int = 5
    ) -> list[dict]:
        """벡터 검색 (Semantic)"""
        if "e5" in self.modelName.lower():
            queryText = f"query: {query}"
        else:
            queryText = query

        queryEmbedding = self.model.encode(queryText).tolist()

        results = self.collection.query(
            query_embeddings=[queryEmbedding],
            n_results=topK,
            where=self._buildWhere(category, language),
            include=["documents", "metadatas", "distances"]
        )

        searchResults = []
        if results["ids"] and results["ids"][0]:
            for i, chunkId in enumerate(results["ids"][0]):
                searchResults.append({
                    "chunk_id": chunkId,
                    "text": results["documents"][0][i],
                    "metadata": results["metadatas"][0][i],
                    "score": 1 - results["distances"][0][i],  # 유사도 점수 (0~1)
                    "source": "vector"
                })

        return searchResults

    def searchBM25(
        self,
        query: str,
        category: str = None,
        language: str = None,
        topK: int = 5
    ) -> list[dict]:
        """BM25 키워드 검색"""
        if not self.bm25Index or not self.bm25Docs:
            return []

        queryTokens = tokenizeMixed(query)
        if not queryTokens:
            return []

        scores = self.bm25Index.get_scores(queryTokens)

        scoredDocs = []
        for i, score in enumerate(scores):
            meta = self.bm25Docs[i]["metadata"]
            if category and meta.get("source_category") != category:
                continue
            if language and meta.get("language") != language:
                continue
            if score > 0:
                scoredDocs.append((i, score))

        scoredDocs.sort(key=lambda x: x[1], reverse=True)

        results = []
        maxScore = scoredDocs[0][1] if scoredDocs else 1.0
        for docIdx, score in scoredDocs[:topK]:
            doc = self.bm25Docs[docIdx]
            results.append({
                "chunk_id": doc["chunk_id"],
                "text": doc["text"],
                "metadata": doc["metadata"],
                "score": score / maxScore if maxScore > 0 else 0,
                "source": "bm25"
            })

        return results

    def search(
        self,
        query: str,
        category: str = None,
        language: str = None,
        topK: int = 5,
        hybrid: bool = True,
    ) -> list[dict]:
        """하이브리드 검색 (Vector + BM25)

        Vector 검색을 기본으로 하고, BM25 상위 결과에 순위 부스트.
        """
        if self.collection.count() == 0:
            return []

        vectorResults = self.searchVector(query, category, language, topK=topK * 2)

        if not hybrid or not self.bm25Index:
            return vectorResults[:topK]

        bm25Results = self.searchBM25(query, category, language, topK=topK * 2)

        allResults = {}
        for r in vectorResults:
            allResults[r["chunk_id"]] = {"result": r, "vector_score": r["score"], "bm25_score": 0, "bm25_rank": 999}

        for rank, r in enumerate(bm25Results):
            chunkId = r["chunk_id"]
            if chunkId in allResults:
                allResults[chunkId]["bm25_score"] = r["score"]
                allResults[chunkId]["bm25_rank"] = rank
            else:
                allResults[chunkId] = {"result": r, "vector_score": 0, "bm25_score": r["score"], "bm25_rank": rank}

        # 최종 점수: 벡터 점수 + BM25 순위 부스트 (최대 +0.05)
        for data in allResults.values():
            bm25Boost = 0
            if data["bm25_rank"] < 5:
                bm25Boost = 0.05 * (5 - data["bm25_rank"]) / 5
            finalScore = min(data["vector_score"] + bm25Boost, 1.0)

            # 벡터 결과가 없는 경우 BM25 점수 사용 (패널티 적용)
            if data["vector_score"] == 0:
                finalScore = data["bm25_score"] * 0.7
            data["final_score"] = finalScore

        sortedItems = sorted(allResults.values(), key=lambda x: x["final_score"], reverse=True)

        finalResults = []
        for data in sortedItems[:topK]:
            result = data["result"].copy()
            result["score"] = data["final_score"]
            finalResults.append(result)

        return finalResults

    def retrieve(
        self,
        query: str,
        categoryHint: Optional[str],
        language: str,
        maxResults: int,
    ) -> list[KnowledgeChunk]:
        """응답기용 검색 (카테고리 힌트가 비면 힌트 없이 재검색)"""
        results = self.search(query, category=categoryHint, language=language, topK=maxResults)
        if not results and categoryHint:
            print(f"[검색] 카테고리 '{categoryHint}' 결과 없음 → 전체 검색")
            results = self.search(query, language=language, topK=maxResults)
        if not results:
            results = self.search(query, topK=maxResults)

        return [
            KnowledgeChunk(
                content=r["text"],
                entity_tags=_splitTags(r["metadata"].get("entity_tags")),
                source_category=r["metadata"].get("source_category", ""),
                chunk_id=r["chunk_id"],
                score=r["score"],
            )
            for r in results
        ]

    def getStats(self) -> dict:
        """인덱스 통계"""
        count = self.collection.count()

        categoryStats = {}
        if count:
            result = self.collection.get(include=["metadatas"])
            for meta in result["metadatas"]:
                category = meta.get("source_category", "")
                categoryStats[category] = categoryStats.get(category, 0) + 1

        return {
            "total_chunks": count,
            "by_category": categoryStats,
            "model": self.modelName,
            "dimension": self.model.get_sentence_embedding_dimension()
        }


# 싱글톤 인스턴스
_indexer = None


def getKnowledgeIndexer() -> KnowledgeIndexer:
    global _indexer
    if _indexer is None:
        _indexer = KnowledgeIndexer()
    return _indexer


def main():
    """메인 실행"""
    import argparse

    parser = argparse.ArgumentParser(description="지식 청크 인덱싱")
    parser.add_argument("--file", type=str, default="knowledge.json", help="data/knowledge 아래 지식 파일")
    parser.add_argument("--stats", action="store_true", help="인덱스 통계 출력")
    parser.add_argument("--search", type=str, help="테스트 검색 쿼리")
    parser.add_argument("--category", type=str, help="검색 카테고리 힌트")
    parser.add_argument("--lang", type=str, default="ja", help="검색 언어")
    parser.add_argument("--delete-category", type=str, help="특정 카테고리 데이터 삭제")
    parser.add_argument("--reindex", action="store_true", help="--delete-category 후 지식 파일 재인덱싱")

    args = parser.parse_args()

    indexer = KnowledgeIndexer(autoIndex=False)

    if args.delete_category:
        indexer.deleteCategory(args.delete_category)
        if not args.reindex:
            return

    if args.stats:
        stats = indexer.getStats()
        print("\n[인덱스 통계]")
        print(f"  총 문서: {stats['total_chunks']}개")
        print(f"  모델: {stats['model']}")
        print(f"  차원: {stats['dimension']}")
        print("\n  카테고리별:")
        for category, count in stats["by_category"].items():
            print(f"    - {category}: {count}개")
        return

    if args.search:
        print(f"\n[검색] '{args.search}'")
        chunks = indexer.retrieve(args.search, args.category, args.lang, 3)
        for i, chunk in enumerate(chunks, 1):
            print(f"\n--- 결과 {i} (점수: {chunk.score:.3f}) ---")
            print(f"카테고리: {chunk.source_category}")
            print(f"태그: {', '.join(sorted(chunk.entity_tags))}")
            print(f"텍스트: {chunk.content[:200]}...")
        return

    chunks = indexer.loadChunks(args.file)
    if chunks:
        indexer.indexChunks(chunks)
        stats = indexer.getStats()
        print(f"\n[최종 통계] 총 {stats['total_chunks']}개 문서 인덱싱됨")


if __name__ == "__main__":
    main()
