"""
음성인식 오인식 교정 테스트
- 교정 테이블 케이스
- 문맥 조건부 교정
- 멱등성
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from navigator.corrector import PhoneticCorrector, correct


TABLE_CASES = [
    ("エンジンカフェの営業時間", "エンジニアカフェの営業時間"),
    ("エンジニア カフェ", "エンジニアカフェ"),
    ("才能カフェのメニュー", "サイノカフェのメニュー"),
    ("ワイファイのパスワード", "Wi-Fiのパスワード"),
    ("会議質を予約したい", "会議室を予約したい"),
    ("メーカーズスペースはどこ", "Makersスペースはどこ"),
    ("engineer cafe hours", "Engineer Cafe hours"),
    ("saino cafe menu", "Saino Cafe menu"),
    ("why fi password", "Wi-Fi password"),
    ("  サイノ  カフェ  ", "サイノカフェ"),
    ("営業時間  は 。。", "営業時間 は。"),
    ("", ""),
]


def testCorrectionTable(ruleBook):
    """교정 테이블 케이스"""
    corrector = PhoneticCorrector(ruleBook)
    for raw, expected in TABLE_CASES:
        assert corrector.correct(raw) == expected, raw


def testContextGatedCorrection(ruleBook):
    """문맥 조건이 있는 항목은 문맥이 있을 때만 적용"""
    corrector = PhoneticCorrector(ruleBook)
    assert corrector.correct("階下のスペース") == "地下のスペース"
    assert corrector.correct("階下に降りる") == "階下に降りる"

    # 'wife i'는 접속 관련 문맥에서만 Wi-Fi로 교정
    assert corrector.correct("wife i password") == "Wi-Fi password"
    assert corrector.correct("how do I connect to wife i") == "how do I connect to Wi-Fi"
    assert corrector.correct("my wife i think is here") == "my wife i think is here"


def testLaterRewriteEnablesContext(ruleBook):
    """뒤 항목의 교정 결과가 앞 항목의 문맥을 만들어도 고정점까지 반복"""
    corrector = PhoneticCorrector(ruleBook)
    assert corrector.correct("ちかのかいぎしつ") == "地下の会議室"


def testIdempotence(ruleBook):
    """correct(correct(x)) == correct(x)"""
    corrector = PhoneticCorrector(ruleBook)
    inputs = [raw for raw, _ in TABLE_CASES] + [
        "ちかのかいぎしつ",
        "才能 カペの営業時間",
        "エンジニアかふぇ と 才能カフェ",
        "wife i is free?",
        "階下のmtg スペース、、",
        "コーヒー say no の 料金",
        "Engineer Cafe",
        "土曜日も?",
    ]
    for raw in inputs:
        once = corrector.correct(raw)
        assert corrector.correct(once) == once, raw


def testAddCorrection(ruleBook):
    """실행 중 교정 항목 추가"""
    corrector = PhoneticCorrector(ruleBook)
    corrector.addCorrection("test_venue", ["テスト館"], "エンジニアカフェ", context="営業")
    assert corrector.correct("テスト館の営業時間") == "エンジニアカフェの営業時間"
    assert corrector.correct("テスト館の場所") == "テスト館の場所"


def testAppliedRules(ruleBook):
    corrector = PhoneticCorrector(ruleBook)
    assert corrector.appliedRules("ワイファイ") == ["wifi"]
    assert corrector.appliedRules("こんにちは") == []


def testModuleLevelCorrect():
    assert correct("ワイファイ") == "Wi-Fi"
