import json

import pytest
import requests

from dialogtree.chat_ai import (
    BASE_URL,
    STREAM_DONE,
    SUMMARY_MARKER,
    ChatAnywhereClient,
    ChatServiceError,
    ModelType,
    RateLimitedError,
    RequestType,
    StreamSplitter,
    build_history_message,
    build_request,
    extract_json,
    iter_stream,
    parse_stream_line,
    preprocess_from_cache,
)
from dialogtree.redis_cache import ChitChatCache


def _data(content):
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": content}}]})


def _stream(*chunks, done=True):
    lines = [_data(c) for c in chunks]
    if done:
        lines.append("data: [DONE]")
    return lines


class FakeResponse:
    def __init__(self, status_code=200, lines=(), content=b""):
        self.status_code = status_code
        self._lines = [line.encode("utf-8") for line in lines]
        self.content = content
        self.closed = False

    def iter_lines(self):
        return iter(self._lines)

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, stream=False):
        self.calls.append({"url": url, "json": json, "headers": headers, "stream": stream})
        if self.error is not None:
            raise self.error
        return self.response


class FakeRedis:
    def __init__(self, strings=None, hashes=None):
        self.strings = strings or {}
        self.hashes = hashes or {}

    def get(self, key):
        return self.strings.get(key)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))


def _client(session, **kwargs):
    return ChatAnywhereClient(
        secret_key="placeholder",
        model=ModelType.GPT_35_TURBO.value,
        chat_prompt="chat rules",
        summarize_prompt="summary rules",
        session=session,
        **kwargs,
    )


def test_enums_match_service_values():
    assert RequestType(1) is RequestType.CHAT
    assert RequestType(2) is RequestType.SUMMARIZE
    assert ModelType("gpt-3.5-turbo") is ModelType.GPT_35_TURBO
    assert ModelType("claude-sonnet-4-20250514") is ModelType.CLAUDE_SONNET_4
    body = build_request("x", ModelType.GPT_35_TURBO.value, "p")
    assert body["model"] == "gpt-3.5-turbo"


def test_build_request_shape():
    body = build_request("hello", "gpt-4o", "be brief")
    assert body == {
        "model": "gpt-4o",
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
        ],
        "stream": True,
    }


def test_parse_stream_line_variants():
    assert parse_stream_line(_data("abc")) == "abc"
    assert parse_stream_line(_data("abc").encode("utf-8")) == "abc"
    assert parse_stream_line("data: [DONE]") is STREAM_DONE
    assert parse_stream_line("") is None
    assert parse_stream_line(": keep-alive") is None
    assert parse_stream_line("data: {not json") is None
    assert parse_stream_line('data: {"choices": []}') is None
    assert parse_stream_line(_data("")) is None


def test_iter_stream_stops_at_done():
    lines = _stream("Hel", "lo") + [_data("after")]
    assert list(iter_stream(lines)) == ["Hel", "lo"]


def test_iter_stream_skips_noise():
    lines = ["", "event: x", _data("a"), "data: oops", _data("b"), "data: [DONE]"]
    assert list(iter_stream(lines)) == ["a", "b"]


def test_splitter_marker_in_pieces():
    splitter = StreamSplitter(_stream("Hi", "^", "¥", "&", "short", " note"))
    assert list(splitter) == ["Hi"]
    assert splitter.summary() == "short note"


def test_splitter_marker_in_one_chunk():
    splitter = StreamSplitter(_stream("Hi", SUMMARY_MARKER + "sum"))
    assert list(splitter) == ["Hi"]
    assert splitter.summary() == "sum"


def test_splitter_without_marker_has_empty_summary():
    splitter = StreamSplitter(_stream("a", "b"))
    assert list(splitter) == ["a", "b"]
    assert splitter.summary() == ""


def test_splitter_caret_without_marker_resumes():
    splitter = StreamSplitter(_stream("x", "^", "y"))
    assert list(splitter) == ["x", "y"]
    assert splitter.summary() == ""


def test_splitter_summary_drains_stream():
    splitter = StreamSplitter(_stream("one", SUMMARY_MARKER, "tail"))
    assert splitter.summary() == "tail"
    assert list(splitter) == []


def test_splitter_summary_only_after_done():
    splitter = StreamSplitter(_stream("a", SUMMARY_MARKER, "b", done=False))
    assert list(splitter) == ["a"]
    assert splitter.summary() == ""


def test_chat_stream_success_and_request():
    response = FakeResponse(lines=_stream("Hel", "lo"))
    session = FakeSession(response)
    client = _client(session)
    assert list(client.chat_stream("hi")) == ["Hel", "lo"]
    call = session.calls[0]
    assert call["url"] == BASE_URL
    assert call["headers"]["Authorization"] == "Bearer placeholder"
    assert call["json"] == build_request("hi", "gpt-3.5-turbo", "chat rules")
    assert call["stream"] is True
    assert response.closed


def test_chat_stream_rate_limited():
    client = _client(FakeSession(FakeResponse(status_code=429)))
    with pytest.raises(RateLimitedError, match="请求过于频繁"):
        client.chat_stream("hi")


def test_chat_stream_server_error():
    response = FakeResponse(status_code=500)
    client = _client(FakeSession(response))
    with pytest.raises(ChatServiceError, match="500"):
        client.chat_stream("hi")
    assert response.closed


def test_rate_limit_is_service_error():
    client = _client(FakeSession(FakeResponse(status_code=429)))
    with pytest.raises(ChatServiceError) as info:
        client.chat_stream("hi")
    assert isinstance(info.value, RateLimitedError)


def test_connection_failure_raises_service_error():
    client = _client(FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(ChatServiceError):
        client.chat_stream("hi")


def test_chat_stream_sum_uses_summarize_prompt():
    response = FakeResponse(lines=_stream("answer", SUMMARY_MARKER, "gist"))
    session = FakeSession(response)
    splitter = _client(session).chat_stream_sum("q")
    assert list(splitter) == ["answer"]
    assert splitter.summary() == "gist"
    assert session.calls[0]["json"]["messages"][0]["content"] == "summary rules"


def test_summarize_returns_content_with_backend_model():
    body = json.dumps({"choices": [{"message": {"role": "assistant", "content": "done"}}]})
    response = FakeResponse(content=body.encode("utf-8"))
    session = FakeSession(response)
    client = _client(session, backend_model="deepseek-v3")
    assert client.summarize("text") == "done"
    assert session.calls[0]["json"]["model"] == "deepseek-v3"
    assert response.closed


def test_summarize_bad_body_raises():
    client = _client(FakeSession(FakeResponse(content=b"not json")))
    with pytest.raises(ChatServiceError):
        client.summarize("text")


def test_summarize_without_choices_raises():
    client = _client(FakeSession(FakeResponse(content=b'{"choices": []}')))
    with pytest.raises(ChatServiceError):
        client.summarize("text")


def test_build_history_message_orders_by_field():
    result = build_history_message("q", {"2": "p2", "1": "p1"}, {"1": "a1", "2": "a2"}, "s")
    assert result == "¥H:s;¥2Q:p1;¥2A:a1;¥1Q:p2;¥1A:a2;¥Q:q;"


def test_build_history_message_empty():
    assert build_history_message("q", {}, {}, "") == "¥H:;¥Q:q;"


def test_preprocess_from_cache_reads_history():
    client = FakeRedis(
        strings={"cc_sum_k": "sofar"},
        hashes={"cc_his_pmt_k": {"10": "first"}, "cc_his_ans_k": {"10": "reply"}},
    )
    result = preprocess_from_cache(ChitChatCache(client), "next", "k")
    assert result == build_history_message("next", {"10": "first"}, {"10": "reply"}, "sofar")
    assert result.startswith("¥H:sofar;")
    assert result.endswith("¥Q:next;")


@pytest.mark.parametrize(
    "raw",
    [
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        '  {"a": 1}  ',
    ],
)
def test_extract_json_strips_fences(raw):
    assert json.loads(extract_json(raw)) == {"a": 1}
    assert extract_json(raw) == '{"a": 1}'