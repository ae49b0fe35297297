"""测试公共夹具"""
import os

# 测试时不写日志文件（必须在导入 chat_gateway.config 之前设置）
os.environ.setdefault("LOG_TO_FILE", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from chat_gateway.errors import ConfigurationError
from chat_gateway.history import SessionStore
from chat_gateway.llm import MISSING_KEY_MESSAGE
from chat_gateway.main import create_app

DEFAULT_REPLY = {"candidates": [{"content": {"parts": [{"text": "bot reply"}]}}]}


class FakeClock:
    """每次调用前进一秒的时钟"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeLLM:
    """替代 GeminiClient：记录请求 part，返回预设响应或抛出预设异常"""

    def __init__(self, response=None, configured: bool = True, error: Exception = None):
        self.response = DEFAULT_REPLY if response is None else response
        self.configured = configured
        self.error = error
        self.calls = []

    def ensure_configured(self):
        if not self.configured:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

    async def generate(self, parts):
        self.calls.append(parts)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def app(store, fake_llm):
    return create_app(store=store, llm=fake_llm)


@pytest.fixture
def client(app):
    return TestClient(app)
