"""
공용 fixture
- 가짜 검색기/생성기, 정리 타이머 없는 세션 저장소, 임시 로그 디렉토리
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from navigator.graph import NavigatorGraph
from navigator.rulebook import getRuleBook
from navigator.session import SessionStore

from fakes import FakeRetriever, FakeGenerator


@pytest.fixture
def ruleBook():
    return getRuleBook()


@pytest.fixture
def sessionStore():
    store = SessionStore(autoCleanup=False)
    yield store
    store.close()


@pytest.fixture
def retriever():
    return FakeRetriever()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def logDir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def navigator(retriever, generator, sessionStore, ruleBook, logDir):
    return NavigatorGraph(retriever, generator, sessionStore=sessionStore, ruleBook=ruleBook, logDir=str(logDir))
