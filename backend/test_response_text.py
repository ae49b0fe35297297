"""模型响应文本提取测试"""
import json
from types import SimpleNamespace

from google.genai import types

from chat_gateway.utils.response_text import dump_response, extract_text


class SdkLikeResponse:
    """模拟 SDK：没有文本时访问 .text 会抛异常"""

    def __init__(self, candidates):
        self.candidates = candidates

    @property
    def text(self):
        raise ValueError("response has no text parts")


def test_candidate_parts_are_joined():
    resp = {"candidates": [{"content": {"parts": [{"text": "foo"}, {"text": "bar"}]}}]}
    assert extract_text(resp) == "foobar"


def test_output_text_wins():
    resp = {"output_text": "first", "text": "second"}
    assert extract_text(resp) == "first"


def test_text_field():
    assert extract_text({"text": "plain"}) == "plain"


def test_wrapped_response():
    resp = {"response": {"candidates": [{"content": {"parts": [{"text": "inner"}]}}]}}
    assert extract_text(resp) == "inner"


def test_legacy_content_text():
    resp = {"candidates": [{"content": {"text": "legacy"}}]}
    assert extract_text(resp) == "legacy"


def test_object_attributes():
    resp = SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="from attrs")]))]
    )
    assert extract_text(resp) == "from attrs"


def test_raising_text_property_falls_through():
    resp = SdkLikeResponse([{"content": {"parts": [{"text": "ok"}]}}])
    assert extract_text(resp) == "ok"


def test_empty_strings_are_skipped():
    resp = {"text": "", "candidates": [{"content": {"parts": [{"text": "real"}]}}]}
    assert extract_text(resp) == "real"


def test_unknown_shape_dumps_json():
    resp = {"weird": {"shape": [1, 2]}}
    assert extract_text(resp) == json.dumps(resp, indent=2)


def test_unknown_object_is_never_empty():
    text = extract_text(SimpleNamespace(foo=1))
    assert "foo" in text


def test_none_response():
    assert extract_text(None) == "null"


def test_dump_response_uses_to_dict():
    class Proto:
        def to_dict(self):
            return {"a": 1}

    assert json.loads(dump_response(Proto())) == {"a": 1}


def test_sdk_response_model():
    resp = types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=[types.Part(text="from sdk")]))]
    )
    assert extract_text(resp) == "from sdk"


def test_sdk_response_without_text_is_dumped():
    resp = types.GenerateContentResponse(candidates=[types.Candidate(finish_reason="SAFETY")])
    assert json.loads(extract_text(resp))["candidates"][0]["finish_reason"] == "SAFETY"
