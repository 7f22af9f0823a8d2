"""
시설 안내 챗봇 코어 (쿼리 이해 + 라우팅)
- 음성인식 오인식 교정 → 언어 감지 → 분류/요청 타입 추출 → 라우팅
- 전문 응답기(시설/영업/이벤트/기억/일반) + 명확화 응답기
"""

__version__ = "0.3.0"
