"""
언어 감지 (ja / en)
- 문자 종류 휴리스틱: 일본어 문자(히라가나/가타카나/한자) 유무로 판정
- 혼합 텍스트는 조사 유무 → 문자량 비교로 주 언어 결정
- 세션에서 고정한 언어가 있으면 응답 언어는 항상 고정 언어
"""

import re
from typing import Optional

from navigator.constants import SUPPORTED_LANGUAGES, DEFAULT_LANGUAGE
from navigator.models import LanguageDecision

JAPANESE_PATTERN = re.compile(r"[\u3040-\u30ff\u4e00-\u9faf]")
LATIN_WORD_PATTERN = re.compile(r"[A-Za-z]+")

# 일본어 문장 골격을 이루는 조사/어미 (혼합 텍스트 판정용)
JAPANESE_PARTICLES = re.compile(r"(は|が|を|に|の|で|も|へ|と|か|ですか|ますか|ください|教えて)")


class LanguageDetector:
    """문자 종류 기반 2언어 감지기"""

    def detect(self, text: str, pinnedLanguage: Optional[str] = None) -> LanguageDecision:
        detected, confidence, isMixed = self._detectScript(text or "")

        responseLanguage = detected
        if pinnedLanguage in SUPPORTED_LANGUAGES:
            responseLanguage = pinnedLanguage

        return LanguageDecision(
            detected_language=detected,
            response_language=responseLanguage,
            confidence=confidence,
            is_mixed=isMixed,
        )

    def _detectScript(self, text: str) -> tuple[str, float, bool]:
        """(감지 언어, 신뢰도, 혼합 여부)"""
        japaneseCount = len(JAPANESE_PATTERN.findall(text))
        latinWords = LATIN_WORD_PATTERN.findall(text)

        if japaneseCount == 0 and not latinWords:
            return DEFAULT_LANGUAGE, 0.5, False
        if japaneseCount == 0:
            return "en", 0.9, False
        if not latinWords:
            return "ja", 0.95, False

        # 혼합: 일본어 조사가 있으면 일본어 문장에 영어 고유명사가 섞인 것
        if JAPANESE_PARTICLES.search(text):
            return "ja", 0.8, True
        if japaneseCount >= len(latinWords):
            return "ja", 0.6, True
        return "en", 0.6, True


languageDetector = LanguageDetector()


def detectLanguage(text: str, pinnedLanguage: Optional[str] = None) -> LanguageDecision:
    return languageDetector.detect(text, pinnedLanguage)
