"""Streaming chat completions with a running summary split off the answer."""

from __future__ import annotations

import json
import logging
from enum import Enum, IntEnum
from typing import Any, Iterable, Iterator, Mapping

import requests

from dialogtree.redis_cache import ChitChatCache

logger = logging.getLogger(__name__)

BASE_URL = "https://api.chatanywhere.tech/v1/chat/completions"
DATA_PREFIX = "data: "
DONE_PAYLOAD = "[DONE]"
SUMMARY_MARKER = "^¥&"


class RequestType(IntEnum):
    CHAT = 1
    SUMMARIZE = 2


class ModelType(str, Enum):
    GPT_35_TURBO = "gpt-3.5-turbo"
    GPT_O1_MINI = "o1-mini"
    GPT_4O = "gpt-4o"
    DEEPSEEK_R1 = "deepseek-r1"
    DEEPSEEK_V3 = "deepseek-v3"
    CLAUDE_OPUS_4 = "claude-opus-4-20250514"
    CLAUDE_SONNET_4 = "claude-sonnet-4-20250514"


class ChatServiceError(RuntimeError):
    """Raised when the chat service cannot be reached or answers badly."""


class RateLimitedError(ChatServiceError):
    """Raised when the chat service rejects a request as too frequent."""


class _StreamDone:
    def __repr__(self) -> str:
        return "STREAM_DONE"


STREAM_DONE = _StreamDone()
"""Returned by parse_stream_line for the end-of-stream line."""


def build_request(msg: str, model: str, prompt: str) -> dict[str, Any]:
    """Request body: a system prompt and the user's message, streamed."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": prompt},
            {"role": "user", "content": msg},
        ],
        "stream": True,
    }


def parse_stream_line(line: str | bytes) -> str | _StreamDone | None:
    """Content of one event-stream line, STREAM_DONE at the end, None if nothing."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):]
    if data == DONE_PAYLOAD:
        return STREAM_DONE
    try:
        payload = json.loads(data)
    except ValueError as exc:
        logger.error("JSON 解析失败: %s\n原始数据: %s", exc, data)
        return None
    if not isinstance(payload, dict):
        logger.error("JSON 解析失败: not an object\n原始数据: %s", data)
        return None
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content or None


def _close(iterator: Iterator[Any]) -> None:
    close = getattr(iterator, "close", None)
    if close is not None:
        close()


def iter_stream(lines: Iterable[str | bytes]) -> Iterator[str]:
    """Yield content chunks until the end-of-stream line."""
    source = iter(lines)
    try:
        for line in source:
            item = parse_stream_line(line)
            if item is STREAM_DONE:
                return
            if item:
                yield item
    finally:
        _close(source)


class StreamSplitter:
    """Splits a streamed answer into the visible reply and the trailing summary.

    Iterating yields the reply's chunks; everything after the marker is held
    back and becomes the summary once the stream has ended.
    """

    def __init__(self, lines: Iterable[str | bytes]) -> None:
        self._lines = lines
        self._summary = ""
        self._chunks = self._split()

    def __iter__(self) -> Iterator[str]:
        return self._chunks

    def summary(self) -> str:
        """The summary, reading the rest of the stream first if needed."""
        for _ in self._chunks:
            pass
        return self._summary

    def _finish(self, whole: str) -> None:
        parts = whole.split(SUMMARY_MARKER, 1)
        if len(parts) == 2:
            self._summary = parts[1]
        else:
            logger.warning("未能正确提取摘要")
        logger.debug("完整消息：%s", whole)

    def _split(self) -> Iterator[str]:
        source = iter(self._lines)
        buffer = ""
        state = 0
        try:
            for line in source:
                item = parse_stream_line(line)
                if item is STREAM_DONE:
                    self._finish(buffer)
                    return
                if not item:
                    continue
                buffer += item
                if state == 0:
                    if item == "^" or buffer.endswith("^"):
                        state = 1
                    elif item == "^¥" or buffer.endswith("^¥"):
                        state = 2
                    elif item == SUMMARY_MARKER or SUMMARY_MARKER in buffer:
                        state = 3
                    else:
                        yield item
                elif state == 1:
                    if item == "¥" or buffer.endswith("^¥"):
                        state = 2
                    else:
                        yield item
                elif state == 2:
                    if item == "&" or SUMMARY_MARKER in buffer:
                        state = 3
                    else:
                        yield item
        finally:
            _close(source)


def _response_lines(response: Any) -> Iterator[bytes]:
    try:
        yield from response.iter_lines()
    finally:
        response.close()


class ChatAnywhereClient:
    """Client for the streaming chat-completions service."""

    def __init__(
        self,
        secret_key: str,
        model: str,
        chat_prompt: str = "",
        summarize_prompt: str = "",
        backend_model: str | None = None,
        session: Any = None,
    ) -> None:
        self.secret_key = secret_key
        self.model = model
        self.chat_prompt = chat_prompt
        self.summarize_prompt = summarize_prompt
        self.backend_model = backend_model if backend_model is not None else model
        self.session = session if session is not None else requests.Session()

    def _post(self, msg: str, model: str, prompt: str) -> Any:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            return self.session.post(
                BASE_URL,
                json=build_request(msg, model, prompt),
                headers=headers,
                stream=True,
            )
        except requests.RequestException as exc:
            logger.error("请求失败 %s", exc)
            raise ChatServiceError(f"request failed: {exc}") from exc

    def chat_stream(self, msg: str) -> Iterator[str]:
        """Send a chat message and return an iterator over the answer's chunks."""
        response = self._post(msg, self.model, self.chat_prompt)
        status = response.status_code
        if status != 200:
            response.close()
            if status == 429:
                raise RateLimitedError("请求过于频繁，请稍后重试")
            raise ChatServiceError(f"服务器响应错误 {status}")
        return iter_stream(_response_lines(response))

    def chat_stream_sum(self, msg: str) -> StreamSplitter:
        """Send a message asking for an answer followed by a summary."""
        response = self._post(msg, self.model, self.summarize_prompt)
        return StreamSplitter(_response_lines(response))

    def summarize(self, msg: str) -> str:
        """Ask the backend model for a summary and return its whole reply."""
        response = self._post(msg, self.backend_model, self.summarize_prompt)
        try:
            body = response.content
        except requests.RequestException as exc:
            logger.error("响应读取失败 %s", exc)
            raise ChatServiceError(f"response read failed: {exc}") from exc
        finally:
            response.close()
        try:
            data = json.loads(body)
        except ValueError as exc:
            text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
            logger.error("响应解析失败 %s\n原始数据 %s", exc, text)
            raise ChatServiceError(f"response parse failed: {exc}") from exc
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ChatServiceError("response has no message content") from exc


def build_history_message(
    msg: str,
    prompts: Mapping[str, str],
    answers: Mapping[str, str],
    summary: str,
) -> str:
    """Prefix a message with the summary and recent exchanges, oldest first."""
    ordered_prompts = [prompts[k] for k in sorted(prompts)]
    ordered_answers = [answers[k] for k in sorted(answers)]
    parts = [f"¥H:{summary};"]
    total = len(ordered_prompts)
    for position, prompt in enumerate(ordered_prompts):
        answer = ordered_answers[position] if position < len(ordered_answers) else ""
        age = total - position
        parts.append(f"¥{age}Q:{prompt};¥{age}A:{answer};")
    parts.append(f"¥Q:{msg};")
    return "".join(parts)


def preprocess_from_cache(cache: ChitChatCache, msg: str, key: str) -> str:
    """Build the message to send from a chat's cached history."""
    history = cache.get(key)
    processed = build_history_message(msg, history.prompts, history.answers, history.summary)
    logger.debug("\n%s\n", processed)
    return processed


def extract_json(content: str) -> str:
    """Strip surrounding whitespace and Markdown code fences from a reply."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[len("```json"):]
    if content.startswith("```"):
        content = content[len("```"):]
    if content.endswith("```"):
        content = content[: -len("```")]
    return content.strip()