#!/usr/bin/env python3
"""
Engineer Cafe 네비게이터 CLI
터미널에서 대화형으로 테스트

## 터미널 실행 커멘드
 -  python3 chat.py

"""

import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from navigator.constants import SUPPORTED_LANGUAGES
from navigator.graph import createNavigatorGraph


def printResponse(response):
    """응답 + 라우팅 요약 출력"""
    meta = response.metadata
    print(f"\n답변: {response.text}")
    summary = f"(응답기: {response.responder_name}, 감정: {response.emotion}, 신뢰도: {meta.confidence:.2f}"
    if meta.request_type:
        summary += f", 요청유형: {meta.request_type}"
    if meta.inherited:
        summary += ", 상속"
    if meta.error:
        summary += f", 에러: {meta.error}"
    print(summary + ")")


def main():
    print("\n" + "=" * 50)
    print("Engineer Cafe 네비게이터")
    print("=" * 50)
    print("종료: quit 또는 q 입력")
    print("언어 고정: /lang ja | /lang en | /lang auto")
    print("대화 초기화: /reset")
    print("=" * 50)

    print("\n[초기화 중...]")
    navigator = createNavigatorGraph()
    sessionId = str(uuid.uuid4())
    print("[준비 완료!]")

    while True:
        try:
            query = input("\n질문> ").strip()

            if not query:
                continue

            if query.lower() in ("quit", "q", "exit", "종료"):
                print("\n네비게이터를 종료합니다. 감사합니다!")
                navigator.sessionStore.clear(sessionId)
                break

            # 언어 고정 명령
            if query.lower().startswith("/lang"):
                parts = query.split()
                language = parts[1].lower() if len(parts) > 1 else ""
                if language == "auto":
                    navigator.sessionStore.pinLanguage(sessionId, None)
                    print("[언어] 자동 감지")
                elif language in SUPPORTED_LANGUAGES:
                    navigator.sessionStore.pinLanguage(sessionId, language)
                    print(f"[언어] {language} 고정")
                else:
                    print(f"사용법: /lang {' | '.join(SUPPORTED_LANGUAGES)} | auto")
                continue

            # 대화 초기화 명령
            if query.lower() == "/reset":
                navigator.sessionStore.reset(sessionId)
                print("[세션] 대화 초기화")
                continue

            printResponse(navigator.handle(query, sessionId=sessionId))

        except KeyboardInterrupt:
            print("\n\n네비게이터를 종료합니다.")
            break
        except Exception as e:
            print(f"\n[오류] {e}")


if __name__ == "__main__":
    main()
