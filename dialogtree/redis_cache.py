"""Short-lived chit-chat history kept in Redis."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import redis

from dialogtree.config import RedisConfig

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6379
HISTORY_LIMIT = 3
SUMMARY_LIMIT = 500
HISTORY_TTL = timedelta(hours=12)


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr or DEFAULT_HOST, DEFAULT_PORT
    return host or DEFAULT_HOST, int(port) if port else DEFAULT_PORT


def init_redis(redis_config: RedisConfig, quiet: bool = False) -> redis.Redis:
    """Connect to Redis and check the connection with a ping."""
    host, port = _split_addr(redis_config.addr)
    client = redis.Redis(
        host=host,
        port=port,
        password=redis_config.password or None,
        db=redis_config.db,
        decode_responses=True,
    )
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.error("redis connection error: %s", exc)
        raise
    if not quiet:
        logger.info("Redis [%s] connection successful", redis_config.addr)
    return client


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _text_map(mapping: dict) -> dict[str, str]:
    return {_text(k): _text(v) for k, v in mapping.items()}


@dataclass
class ChitChatHistory:
    prompts: dict[str, str] = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    summary: str = ""


def _keys(key: str) -> tuple[str, str, str]:
    return f"cc_sum_{key}", f"cc_his_pmt_{key}", f"cc_his_ans_{key}"


class ChitChatCache:
    """Keeps a running summary and the last few prompts and answers per chat."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def _trim(self, hash_key: str) -> None:
        fields = sorted(_text(f) for f in self.client.hkeys(hash_key))
        stale = fields[: max(len(fields) - HISTORY_LIMIT, 0)]
        if stale:
            self.client.hdel(hash_key, *stale)

    def cache(self, key: str, field: str, prompt: str, answer: str, summary: str) -> None:
        """Record one exchange and extend the summary, keeping the latest three."""
        summary_key, prompt_key, answer_key = _keys(key)

        previous = _text(self.client.get(summary_key)).encode("utf-8")[:SUMMARY_LIMIT]
        previous_text = previous.decode("utf-8", errors="ignore")

        self.client.set(summary_key, f"{previous_text};{summary}", ex=HISTORY_TTL)
        self.client.hset(prompt_key, field, prompt)
        self.client.expire(answer_key, HISTORY_TTL)
        self.client.hset(answer_key, field, answer)
        self.client.expire(prompt_key, HISTORY_TTL)

        self._trim(answer_key)
        self._trim(prompt_key)

    def get(self, key: str) -> ChitChatHistory:
        summary_key, prompt_key, answer_key = _keys(key)
        return ChitChatHistory(
            prompts=_text_map(self.client.hgetall(prompt_key)),
            answers=_text_map(self.client.hgetall(answer_key)),
            summary=_text(self.client.get(summary_key)),
        )

    def delete(self, key: str) -> None:
        for name in _keys(key):
            self.client.delete(name)