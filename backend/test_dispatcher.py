"""请求分发测试"""
import asyncio
import base64

import pytest

from chat_gateway.attachment import Attachment
from chat_gateway.dispatcher import ChatDispatcher, find_last_user_prompt
from chat_gateway.errors import ConfigurationError, UpstreamError, ValidationError
from conftest import FakeLLM

PNG = Attachment(filename="cat.png", mime_type="image/png", data=b"\x89PNG fake")
WAV = Attachment(filename="memo.wav", mime_type="audio/wav", data=b"RIFF fake")
PDF = Attachment(filename="report.pdf", mime_type="application/pdf", data=b"%PDF fake")


@pytest.fixture
def dispatcher(store, fake_llm):
    return ChatDispatcher(store, fake_llm)


def run(coro):
    return asyncio.run(coro)


def test_find_last_user_prompt_skips_bot_messages():
    messages = [
        {"role": "user", "content": "first"},
        {"role": "bot", "content": "reply"},
        {"role": "user", "content": "second"},
        {"role": "bot", "content": "pending"},
    ]
    assert find_last_user_prompt(messages) == "second"


@pytest.mark.parametrize(
    "messages, error",
    [
        (None, "Invalid payload: messages array is required"),
        ([], "Invalid payload: messages array is required"),
        ("hello", "Invalid payload: messages array is required"),
        ([{"role": "bot", "content": "only bot"}], "Invalid payload: missing user message"),
        ([{"role": "user", "content": "   "}], "Invalid payload: missing user message"),
    ],
)
def test_find_last_user_prompt_rejects_bad_payloads(messages, error):
    with pytest.raises(ValidationError) as exc:
        find_last_user_prompt(messages)
    assert exc.value.message == error


def test_chat_sends_only_last_user_message(dispatcher, fake_llm, store):
    messages = [{"role": "user", "content": "earlier"}, {"role": "user", "content": "hello"}]
    result = run(dispatcher.chat(messages, "s1"))

    assert fake_llm.calls == [[{"text": "hello"}]]
    assert result.result == "bot reply"
    assert result.session_title == "hello"
    session = store.get_session("s1")
    assert [(m.role, m.content) for m in session.messages] == [("user", "hello"), ("bot", "bot reply")]


def test_chat_trims_model_output(store):
    llm = FakeLLM(response={"text": "  padded \n"})
    result = run(ChatDispatcher(store, llm).chat([{"role": "user", "content": "hi"}]))
    assert result.result == "padded"


def test_chat_without_session_does_not_persist(dispatcher, store):
    result = run(dispatcher.chat([{"role": "user", "content": "hi"}]))
    assert result.session_id is None
    assert result.session_title is None
    assert len(store) == 0


def test_missing_credential_checked_before_validation(store):
    llm = FakeLLM(configured=False)
    with pytest.raises(ConfigurationError):
        run(ChatDispatcher(store, llm).chat(None, "s1"))
    assert llm.calls == []


def test_upstream_error_leaves_history_untouched(store):
    llm = FakeLLM(error=UpstreamError("quota exceeded"))
    with pytest.raises(UpstreamError):
        run(ChatDispatcher(store, llm).chat([{"role": "user", "content": "hi"}], "s1"))
    assert store.get_session("s1") is None


def test_image_uses_default_prompt_and_placeholder(dispatcher, fake_llm, store):
    run(dispatcher.from_image(PNG, None, "s1"))

    parts = fake_llm.calls[0]
    assert parts[0] == {"text": "Describe this image in detail"}
    assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": base64.b64encode(PNG.data).decode()}}
    user_message = store.get_session("s1").messages[0]
    assert user_message.content == "Image uploaded"
    assert user_message.has_image is True
    assert user_message.has_audio is None


def test_image_with_prompt_persists_prompt(dispatcher, store):
    result = run(dispatcher.from_image(PNG, "What is this?", "s1"))
    assert store.get_session("s1").messages[0].content == "What is this?"
    assert result.session_title == "What is this?"


def test_image_validation(dispatcher, fake_llm):
    with pytest.raises(ValidationError, match="Image file is required"):
        run(dispatcher.from_image(None))
    with pytest.raises(ValidationError, match="Please upload an image"):
        run(dispatcher.from_image(PDF))
    assert fake_llm.calls == []


def test_images_sends_every_file(dispatcher, fake_llm, store):
    run(dispatcher.from_images([PNG, PNG, PNG], None, "s1"))
    parts = fake_llm.calls[0]
    assert parts[0] == {"text": "Describe these images"}
    assert len(parts) == 4
    assert store.get_session("s1").messages[0].content == "Images uploaded"


def test_too_many_images_rejected_without_side_effects(dispatcher, fake_llm, store):
    with pytest.raises(ValidationError, match="Too many images. Maximum is 6."):
        run(dispatcher.from_images([PNG] * 7, "describe", "s1"))
    assert fake_llm.calls == []
    assert len(store) == 0


def test_images_validation(dispatcher):
    with pytest.raises(ValidationError, match="At least one image file is required"):
        run(dispatcher.from_images([]))
    with pytest.raises(ValidationError, match="Please upload only images"):
        run(dispatcher.from_images([PNG, WAV]))


def test_audio_sets_audio_flag(dispatcher, fake_llm, store):
    run(dispatcher.from_audio(WAV, None, "s1"))
    assert fake_llm.calls[0][0] == {"text": "Transcribe this audio"}
    user_message = store.get_session("s1").messages[0]
    assert user_message.content == "Audio uploaded"
    assert user_message.has_audio is True
    assert user_message.has_image is None


def test_audio_validation(dispatcher):
    with pytest.raises(ValidationError, match="Audio file is required"):
        run(dispatcher.from_audio(None))
    with pytest.raises(ValidationError, match="Please upload an audio file"):
        run(dispatcher.from_audio(PNG))


def test_document_accepts_any_type(dispatcher, fake_llm, store):
    run(dispatcher.from_document(PDF, None, "s1"))
    assert fake_llm.calls[0][0] == {"text": "Summarize this document"}
    user_message = store.get_session("s1").messages[0]
    assert user_message.content == "Document uploaded"
    assert user_message.has_image is None
    assert user_message.has_audio is None


def test_document_required(dispatcher):
    with pytest.raises(ValidationError, match="Document file is required"):
        run(dispatcher.from_document(None))


def test_generate_text(store):
    llm = FakeLLM(response={"text": " generated "})
    assert run(ChatDispatcher(store, llm).generate_text("write")) == "generated"
    assert len(store) == 0


@pytest.mark.parametrize("prompt", [None, "", "   ", 42])
def test_generate_text_requires_prompt(dispatcher, prompt):
    with pytest.raises(ValidationError, match="Prompt is required"):
        run(dispatcher.generate_text(prompt))
