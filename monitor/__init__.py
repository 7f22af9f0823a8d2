"""
네비게이터 모니터링 모듈
- 라우팅 로그 분석
"""

from .analyzer import RouteLogAnalyzer

__all__ = ["RouteLogAnalyzer"]
