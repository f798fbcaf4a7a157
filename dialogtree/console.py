"""Timestamped terminal output for chat sessions."""

from __future__ import annotations

import sys
import time
from typing import IO, Iterable

from dialogtree.config import Config

USER = "💬 You "
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def agent_label(config: Config | None) -> str:
    """Label shown for the assistant: the configured model, or a generic name."""
    if config is None:
        return "💡Agent"
    return "💡" + config.ai.chat_anywhere.model


class Console:
    """Writes chat lines as '[time]speaker: message'."""

    def __init__(self, agent: str, debug_enabled: bool = False, out: IO[str] | None = None) -> None:
        self.agent = agent
        self.debug_enabled = debug_enabled
        self._out = out

    @classmethod
    def from_config(cls, config: Config | None, out: IO[str] | None = None) -> "Console":
        debug_enabled = config is not None and config.system.mode == "debug"
        return cls(agent_label(config), debug_enabled, out)

    @property
    def out(self) -> IO[str]:
        return self._out if self._out is not None else sys.stdout

    def _write(self, subject: str, msg: str, newline: bool) -> None:
        now = time.strftime(TIME_FORMAT)
        if newline:
            msg += "\n"
        self.out.write(f"[{now}]{subject}: {msg}")
        self.out.flush()

    def avatar_only(self) -> None:
        self._write(self.agent, "", False)

    def output(self, msg: str) -> None:
        self._write(self.agent, msg, False)

    def prompt(self) -> None:
        self._write(USER, "", False)

    def error(self, err: BaseException) -> None:
        self.error_msg(str(err))

    def error_msg(self, msg: str) -> None:
        self._write(" error", msg, True)

    def stream(self, chunks: Iterable[str]) -> str:
        """Echo chunks as they arrive and return the whole text."""
        parts = []
        for chunk in chunks:
            self.out.write(chunk)
            self.out.flush()
            parts.append(chunk)
        self.out.write("\n")
        self.out.flush()
        return "".join(parts)

    def exit_chat(self) -> None:
        self._write("exit", "本次会话结束，再见！", True)

    def debug(self, msg: str) -> None:
        if self.debug_enabled:
            self._write("debug", msg, True)