from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TextIO

from dotenv import load_dotenv

from lowbot.agent.bot import LowBot
from lowbot.config import settings
from lowbot.config.bot_config import BotConfig, BotConfigBuilder
from lowbot.io.terminal_channel import normalize_terminal_input, terminal_binding
from lowbot.skills.builtin import BUILTIN_INTENTS, builtin_skills

_EXIT_WORDS = {"exit", "quit", "bye"}


def main(argv: list[str] | None = None) -> None:
    _load_env()
    parser = argparse.ArgumentParser(prog="lowbot")
    parser.add_argument("--log-level", default=settings.get_log_level())
    sub = parser.add_subparsers(dest="command", required=True)

    say_parser = sub.add_parser("say", help="Send one message through the dispatch pipeline")
    say_parser.add_argument("text", help="Message text")
    say_parser.add_argument("--user-name", default=None, help="Author name")

    chat_parser = sub.add_parser("chat", help="Interactive terminal session")
    chat_parser.add_argument("--user-name", default=None, help="Author name")

    sub.add_parser("skills", help="List built-in skills in match order")

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    if args.command == "say":
        asyncio.run(_command_say(args.text, user_name=args.user_name))
    elif args.command == "chat":
        asyncio.run(_command_chat(sys.stdin, user_name=args.user_name))
    elif args.command == "skills":
        _command_skills()


def build_terminal_config(stream: TextIO | None = None) -> BotConfig:
    builder = BotConfigBuilder(default_adapter="terminal")
    builder.add_adapter(terminal_binding(stream))
    builder.add_skills(builtin_skills(builder.locale, skill_names=builder.skill_names))
    builder.add_intents(BUILTIN_INTENTS)
    return builder.build()


async def _command_say(text: str, *, user_name: str | None) -> None:
    bot = LowBot(build_terminal_config())
    await bot.start()
    await bot.respond(normalize_terminal_input(text, user_name=user_name))


async def _command_chat(source: TextIO, *, user_name: str | None) -> None:
    bot = LowBot(build_terminal_config())
    await bot.start()
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, source.readline)
        if not line:
            break
        text = line.strip()
        if not text:
            continue
        if text.lower() in _EXIT_WORDS:
            break
        bot.spawn(normalize_terminal_input(text, user_name=user_name))
    await bot.dispatcher.drain()


def _command_skills() -> None:
    config = build_terminal_config()
    for index, skill in enumerate(config.skills, start=1):
        print(f"{index}. {skill.info.name}")


def _load_env() -> None:
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(level=getattr(logging, level_name.upper(), logging.INFO))


if __name__ == "__main__":
    main()
