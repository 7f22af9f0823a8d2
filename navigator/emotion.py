"""
감정 태그 처리
- 고정 어휘: neutral / happy / sad / angry / relaxed / surprised
- 동의어 매핑 (apologetic → sad, excited → happy ...)
- 응답 텍스트는 항상 선두 태그 1개로 시작, 본문 중간 태그는 제거
"""

import re
from typing import Optional

from navigator.constants import EMOTION_TAGS

EMOTION_SYNONYMS = {
    "apologetic": "sad",
    "sorry": "sad",
    "disappointed": "sad",
    "excited": "happy",
    "joyful": "happy",
    "joy": "happy",
    "cheerful": "happy",
    "helpful": "relaxed",
    "informative": "relaxed",
    "guiding": "relaxed",
    "calm": "relaxed",
    "friendly": "relaxed",
    "surprise": "surprised",
    "shocked": "surprised",
    "curious": "surprised",
    "upset": "angry",
    "annoyed": "angry",
    "thinking": "neutral",
    "normal": "neutral",
}

TAG_PATTERN = re.compile(r"\[([A-Za-z_]+)\]")
LEADING_TAG_PATTERN = re.compile(r"^\s*\[([A-Za-z_]+)\]\s*")


def normalizeEmotion(name: Optional[str]) -> Optional[str]:
    """감정 이름 → 고정 어휘 (모르는 이름은 None)"""
    if not name:
        return None
    key = name.strip().lower()
    if key in EMOTION_TAGS:
        return key
    return EMOTION_SYNONYMS.get(key)


def _isEmotionWord(word: str) -> bool:
    return normalizeEmotion(word) is not None


def stripEmotionTags(text: str) -> str:
    """본문에서 감정 태그 제거 (감정 어휘가 아닌 [..]는 유지)"""
    stripped = TAG_PATTERN.sub(
        lambda m: "" if _isEmotionWord(m.group(1)) else m.group(0), text
    )
    return re.sub(r"[ \t]{2,}", " ", stripped).strip()


def parseEmotion(text: str, defaultEmotion: str = "neutral") -> tuple[str, str]:
    """(감정, 태그 없는 본문)

    - 선두 태그가 감정 어휘(또는 동의어)면 그 감정 사용
    - 선두 태그가 없거나 알 수 없으면 기본 감정
    """
    text = text or ""
    emotion = normalizeEmotion(defaultEmotion) or "neutral"
    match = LEADING_TAG_PATTERN.match(text)
    if match and _isEmotionWord(match.group(1)):
        emotion = normalizeEmotion(match.group(1))
        text = text[match.end():]
    return emotion, stripEmotionTags(text)


def addEmotionTag(text: str, emotion: str) -> str:
    """선두 태그 1개를 붙인 텍스트"""
    emotion = normalizeEmotion(emotion) or "neutral"
    return f"[{emotion}]{stripEmotionTags(text)}"


def applyEmotion(text: str, defaultEmotion: str = "neutral") -> tuple[str, str]:
    """생성 텍스트 정리 → (감정, 선두 태그 1개가 붙은 텍스트)"""
    emotion, body = parseEmotion(text, defaultEmotion)
    return emotion, f"[{emotion}]{body}"
