"""지식 청크 인덱싱 (Chroma 벡터 + BM25 하이브리드 검색)"""
