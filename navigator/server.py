"""
FastAPI 기반 네비게이터 서버
- CORS 도메인 제한 (환경변수 ALLOWED_ORIGINS)
- POST /chat 엔드포인트 (UnifiedResponse + sessionId)
- DELETE /session/{sessionId} 세션 종료
- 헬스 체크 (LLM/지식 인덱스/세션 상태)
"""

import os
import sys
import asyncio
import traceback
import uuid
from pathlib import Path

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Optional
import uvicorn

from navigator.constants import SUPPORTED_LANGUAGES
from navigator.graph import createNavigatorGraph

# 환경변수에서 포트 가져오기
PORT = int(os.getenv("PORT", 8000))

# CORS 허용 도메인 (환경변수 ALLOWED_ORIGINS 설정 시 제한, 미설정 시 전체 허용)
_envOrigins = os.getenv("ALLOWED_ORIGINS", "")
ALLOWED_ORIGINS = _envOrigins.split(",") if _envOrigins else ["*"]

app = FastAPI(title="Engineer Cafe 네비게이터 API")


@app.on_event("startup")
async def warmup():
    """서버 시작 시 인덱스/임베딩 모델 사전 로딩"""
    import time
    print("[Warm-up] 사전 로딩 시작...")
    t0 = time.time()

    getNavigatorGraph()

    try:
        from navigator.llm_provider import callLLM
        await asyncio.to_thread(callLLM, prompt="こんにちは", system="", temperature=0.0, maxTokens=5)
        print("[Warm-up] LLM 모델 로딩 완료")
    except Exception as e:
        print(f"[Warm-up] LLM warm-up 실패 (서버는 정상 작동): {e}")

    print(f"[Warm-up] 전체 완료 ({time.time() - t0:.1f}s)")


# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True if ALLOWED_ORIGINS != ["*"] else False,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# 네비게이터 그래프 인스턴스 (싱글톤)
navigatorGraph = None


def getNavigatorGraph():
    global navigatorGraph
    if navigatorGraph is None:
        print("[서버] 네비게이터 그래프 초기화 중...")
        navigatorGraph = createNavigatorGraph()
        print("[서버] 네비게이터 그래프 초기화 완료")
    return navigatorGraph


class ChatRequest(BaseModel):
    message: str = ""
    sessionId: Optional[str] = None  # 세션 ID (없으면 자동 생성)
    language: Optional[str] = None   # 응답 언어 고정 (ja/en)

    def hasValidMessage(self) -> bool:
        return bool(self.message and self.message.strip())


class ChatResponse(BaseModel):
    text: str
    emotion: str
    responderName: str
    language: str
    metadata: dict
    sessionId: str


@app.get("/health")
async def health():
    """헬스 체크 (LLM/지식 인덱스/세션 상태 포함)"""
    status = {"status": "ok"}

    # LLM 상태 확인
    try:
        from navigator.llm_provider import checkLLMAvailable, getCacheStats
        llmOk, llmProvider = checkLLMAvailable()
        status["llm"] = {"available": llmOk, "provider": llmProvider, "cache": getCacheStats()}
    except Exception:
        status["llm"] = {"available": False, "provider": "error"}

    # 지식 인덱스 상태 확인
    try:
        indexer = getNavigatorGraph().indexer
        stats = indexer.getStats() if indexer else {"total_chunks": 0}
        status["index"] = {"available": stats["total_chunks"] > 0, "chunks": stats["total_chunks"]}
    except Exception:
        status["index"] = {"available": False, "chunks": 0}

    # 세션 상태 확인
    try:
        store = getNavigatorGraph().sessionStore
        status["sessions"] = {"active": store.activeCount(), "max": store.maxSessions}
    except Exception:
        status["sessions"] = {"active": 0, "max": 0}

    # 전체 상태 판정
    if not status["llm"]["available"] or not status["index"]["available"]:
        status["status"] = "degraded"

    return status


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    """채팅 엔드포인트"""
    if not request.hasValidMessage():
        raise HTTPException(status_code=400, detail="메시지가 비어 있습니다.")
    if request.language and request.language not in SUPPORTED_LANGUAGES:
        raise HTTPException(status_code=400, detail=f"지원하지 않는 언어입니다: {request.language}")

    sessionId = request.sessionId or str(uuid.uuid4())
    navigator = getNavigatorGraph()

    # handle()은 예외를 던지지 않음 (에러는 metadata.error)
    response = await asyncio.to_thread(
        navigator.handle,
        request.message,
        sessionId=sessionId,
        language=request.language,
    )

    try:
        return ChatResponse(**response.toDict(), sessionId=sessionId)
    except Exception as e:
        # 내부 에러 상세는 서버 로그에만 기록, 클라이언트에는 일반 메시지
        print(f"[에러] 응답 직렬화 실패: {e}")
        traceback.print_exc()
        raise HTTPException(
            status_code=500,
            detail="요청을 처리하는 중 오류가 발생했습니다. 잠시 후 다시 시도해 주세요."
        )


@app.delete("/session/{sessionId}")
async def endSession(sessionId: str):
    """세션 종료 (대화 기록 삭제)"""
    store = getNavigatorGraph().sessionStore
    try:
        removed = store.clear(sessionId)
    except Exception as e:
        print(f"[세션] 종료 실패: {e}")
        removed = False
    return {"sessionId": sessionId, "cleared": removed}


if __name__ == "__main__":
    print("=" * 50)
    print("Engineer Cafe 네비게이터 서버 시작")
    print(f"포트: {PORT}")
    print(f"CORS 허용: {ALLOWED_ORIGINS}")
    print("=" * 50)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
