"""Command-line entry point: one-off chats, cached chit-chat and dialog browsing."""

from __future__ import annotations

import argparse
import logging
import sys
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Iterator, Sequence

from dialogtree import web
from dialogtree.chat_ai import ChatAnywhereClient, preprocess_from_cache
from dialogtree.config import Config, ConfigError, read_conf
from dialogtree.console import Console
from dialogtree.database import init_db
from dialogtree.logging_setup import init_logging
from dialogtree.models import migrate_db
from dialogtree.redis_cache import ChitChatCache, init_redis

logger = logging.getLogger(__name__)

PROMPT_DIR = Path(__file__).parent / "prompts"
CHAT_PROMPT_FILE = "prompt_chat.prompt"
SUMMARIZE_PROMPT_FILE = "prompt_summarize.prompt"

_DEMO_DIALOGS = ("对话1", "对话2", "对话3")
_MAX_DIALOG_NUMBER = 16

_COMMANDS = (
    ("chitchat", ("c", "chat"), "Quick one-off chat (non-blocking)"),
    ("dialog", ("d",), "Interact with persistent dialog sessions"),
    ("migrate", ("m", "db"), "Auto migration of database"),
    ("web", ("w",), "start web ui instead of cli"),
)
_DIALOG_COMMANDS = (
    ("list", ("l", "ls", "li", "show"), "Show all the dialogs"),
    ("enter", ("e", "en", "i", "in"), "Enter a certain dialog"),
    ("recent", ("r", "re", "c", "ch"), "Enter the most recent dialog"),
)
_COMMAND_NAMES = frozenset(
    name for primary, aliases, _ in _COMMANDS for name in (primary, *aliases)
)


@dataclass
class Services:
    """Connections opened for commands that need storage."""

    logger: logging.Logger
    engine: Any
    redis: Any


def core_init(config: Config) -> Services:
    """Set up logging, the database and Redis."""
    package_logger = init_logging(config)
    engine = init_db(config.db)
    redis_client = init_redis(config.redis, quiet=False)
    return Services(package_logger, engine, redis_client)


def _read_prompt(name: str) -> str:
    path = PROMPT_DIR / name
    return path.read_text(encoding="utf-8") if path.is_file() else ""


def _chat_client(config: Config) -> ChatAnywhereClient:
    return ChatAnywhereClient(
        secret_key=config.ai.chat_anywhere.secret_key,
        model=config.ai.chat_anywhere.model,
        chat_prompt=_read_prompt(CHAT_PROMPT_FILE),
        summarize_prompt=_read_prompt(SUMMARIZE_PROMPT_FILE),
        backend_model=config.ai.backend_ai.model,
    )


def _chat_inputs(console: Console, text: str, stdin: IO[str]) -> Iterator[str]:
    if text:
        yield text
    while True:
        console.prompt()
        entry = stdin.readline().strip()
        if not entry or entry == "exit":
            return
        yield entry


def _chat_once(client: Any, cache: ChitChatCache, console: Console, entry: str, key: str) -> None:
    field = str(int(time.time()))
    console.avatar_only()
    message = preprocess_from_cache(cache, entry, key)
    splitter = client.chat_stream_sum(message)
    record = console.stream(splitter)
    summary = splitter.summary()
    console.debug("概要：" + summary)
    cache.cache(key, field, entry, record, summary)


def chitchat(
    client: Any,
    cache: ChitChatCache,
    console: Console,
    text: str = "",
    stdin: IO[str] | None = None,
) -> int:
    """Chat with short-term history until 'exit' or an empty line; return the exchange count."""
    stdin = stdin if stdin is not None else sys.stdin
    key = str(uuid.uuid4())
    exchanges = 0
    for entry in _chat_inputs(console, text, stdin):
        _chat_once(client, cache, console, entry, key)
        exchanges += 1
    cache.delete(key)
    console.exit_chat()
    return exchanges


def one_time_chat(
    client: Any,
    console: Console,
    args: Sequence[str] = (),
    stdin: IO[str] | None = None,
) -> str | None:
    """Ask one question from piped input, arguments or a prompt; return the answer."""
    stdin = stdin if stdin is not None else sys.stdin
    if not stdin.isatty():
        text = stdin.read()
    elif args:
        text = " ".join(args)
    else:
        console.prompt()
        text = stdin.readline()

    text = text.strip()
    if not text:
        console.error_msg("No prompt provided")
        return None

    console.avatar_only()
    return console.stream(client.chat_stream(text))


def _read_choice(stdin: IO[str], limit: int) -> int | None:
    try:
        choice = int(stdin.readline().strip())
    except ValueError:
        return None
    return choice if 1 <= choice <= limit else None


def show_dialogs(stdin: IO[str] | None = None, out: IO[str] | None = None) -> str | None:
    """List dialogs, let the user pick one and enter it; return the choice."""
    stdin = stdin if stdin is not None else sys.stdin
    out = out if out is not None else sys.stdout
    out.write("请选择一个对话：\n")
    for number, dialog in enumerate(_DEMO_DIALOGS, start=1):
        out.write(f"{number}. {dialog}\n")
    out.write("输入编号：")
    out.flush()

    choice = _read_choice(stdin, len(_DEMO_DIALOGS))
    if choice is None:
        out.write("输入无效\n")
        return None

    selected = _DEMO_DIALOGS[choice - 1]
    out.write(f"你选择了：{selected}\n")
    enter(selected, stdin, out)
    return selected


def enter(dialog: str, stdin: IO[str] | None = None, out: IO[str] | None = None) -> int:
    """Echo chat inside a dialog until 'exit' or end of input; return the turn count."""
    stdin = stdin if stdin is not None else sys.stdin
    out = out if out is not None else sys.stdout
    out.write(f"现在进入对话：{dialog}\n")
    turns = 0
    while True:
        out.write("你：")
        out.flush()
        entry = stdin.readline().strip()
        if not entry or entry == "exit":
            out.write("退出对话。\n")
            return turns
        out.write(f"AI：你说了 {entry}\n")
        turns += 1


def enter_dialog(stdin: IO[str] | None = None, out: IO[str] | None = None) -> str | None:
    """Enter a dialog by number; return the number entered, or None if invalid."""
    stdin = stdin if stdin is not None else sys.stdin
    out = out if out is not None else sys.stdout
    out.write("输入编号：")
    out.flush()
    choice = _read_choice(stdin, _MAX_DIALOG_NUMBER)
    if choice is None:
        out.write("输入无效\n")
        return None
    dialog = str(choice)
    enter(dialog, stdin, out)
    return dialog


def enter_recent(out: IO[str] | None = None) -> None:
    """Announce the most recent dialog."""
    out = out if out is not None else sys.stdout
    out.write("最近的一次对话\n")
    out.flush()


def _add_dialog_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-t", "--text", default="", help="Text prompt to send")
    parser.add_argument("-l", "--li", "--list", dest="list", default="", help="List of all dialogs")


def build_parser() -> argparse.ArgumentParser:
    """The argument parser for every command."""
    parser = argparse.ArgumentParser(
        prog="dialogtree", description="Manage structured dialogs from CLI"
    )
    parser.set_defaults(command=None)
    commands = parser.add_subparsers(dest="command_alias", metavar="COMMAND")
    for name, aliases, help_text in _COMMANDS:
        sub = commands.add_parser(name, aliases=list(aliases), help=help_text)
        sub.set_defaults(command=name)
        if name == "chitchat":
            sub.add_argument("-t", "--text", default="", help="Text prompt to send")
            sub.add_argument("words", nargs="*", help="Opening message")
        elif name == "dialog":
            dialog_commands = sub.add_subparsers(dest="dialog_alias", metavar="SUBCOMMAND")
            for sub_name, sub_aliases, sub_help in _DIALOG_COMMANDS:
                child = dialog_commands.add_parser(
                    sub_name, aliases=list(sub_aliases), help=sub_help
                )
                _add_dialog_flags(child)
                child.set_defaults(dialog_command=sub_name)
    return parser


def _run_chitchat(config: Config, console: Console, args: argparse.Namespace) -> None:
    console.debug("=== 进入 chitchat 模式 ===")
    cache = ChitChatCache(init_redis(config.redis, quiet=True))
    text = args.text or (args.words[0] if args.words else "")
    chitchat(_chat_client(config), cache, console, text, sys.stdin)


def _run_dialog(config: Config, console: Console, args: argparse.Namespace) -> None:
    sub = getattr(args, "dialog_command", None)
    if sub == "list":
        show_dialogs(sys.stdin, sys.stdout)
    elif sub == "enter":
        enter_dialog(sys.stdin, sys.stdout)
    elif sub == "recent":
        enter_recent(sys.stdout)
    else:
        console.debug("=== 进入 dialog 模式 ===")
        core_init(config)
        enter_recent(sys.stdout)


def _run_migrate(config: Config, console: Console, args: argparse.Namespace) -> None:
    services = core_init(config)
    migrate_db(services.engine)


def _run_web(config: Config, console: Console, args: argparse.Namespace) -> None:
    web.run(config)


_HANDLERS = {
    "chitchat": _run_chitchat,
    "dialog": _run_dialog,
    "migrate": _run_migrate,
    "web": _run_web,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; return the process exit status."""
    arguments = list(sys.argv[1:] if argv is None else argv)
    try:
        config = read_conf(True)
    except (OSError, ConfigError) as exc:
        print(f"dialogtree: {exc}", file=sys.stderr)
        return 1
    console = Console.from_config(config)

    try:
        if not arguments or (
            arguments[0] not in _COMMAND_NAMES and not arguments[0].startswith("-")
        ):
            one_time_chat(_chat_client(config), console, arguments, sys.stdin)
            return 0
        args = build_parser().parse_args(arguments)
        if args.command is None:
            one_time_chat(_chat_client(config), console, [], sys.stdin)
            return 0
        _HANDLERS[args.command](config, console, args)
    except Exception as exc:
        logger.critical("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())