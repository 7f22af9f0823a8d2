"""
환경변수 기반 설정 상수
- 규칙 테이블(YAML) 경로, 로그 경로
- 세션 TTL/용량, 명확화 재질문 한도
- 검색 결과 수, 기본 언어
"""

import os
from pathlib import Path

PACKAGE_PATH = Path(__file__).parent
PROJECT_ROOT = PACKAGE_PATH.parent

# 규칙 테이블 디렉토리 (다른 디렉토리로 교체 가능)
RULES_DIR = Path(os.getenv("NAVIGATOR_RULES_DIR", str(PACKAGE_PATH / "rules")))

# 라우팅 로그 (JSONL, 일자별)
LOG_DIR = Path(os.getenv("NAVIGATOR_LOG_DIR", str(PROJECT_ROOT / "data" / "logs")))
LOG_ENABLED = os.getenv("NAVIGATOR_LOG_ENABLED", "true").lower() == "true"

# 세션 메모리
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "1800"))  # 30분 비활동 시 만료
SESSION_CLEANUP_INTERVAL = int(os.getenv("SESSION_CLEANUP_INTERVAL", "300"))  # 5분마다 정리
SESSION_MAX_SESSIONS = int(os.getenv("SESSION_MAX_SESSIONS", "1000"))
SESSION_MAX_TURNS = int(os.getenv("SESSION_MAX_TURNS", "20"))  # 세션당 보관 턴 수

# 명확화 재질문 허용 횟수 (초과 시 일반 응답기로 폴백)
CLARIFICATION_MAX_RETRIES = int(os.getenv("CLARIFICATION_MAX_RETRIES", "1"))

# 검색
RETRIEVAL_MAX_RESULTS = int(os.getenv("RETRIEVAL_MAX_RESULTS", "10"))

# 지원 언어
SUPPORTED_LANGUAGES = ("ja", "en")
DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "ja")

# 감정 태그 어휘 (표현 계층에서 아바타 표정으로 사용)
EMOTION_TAGS = ("neutral", "happy", "sad", "angry", "relaxed", "surprised")
