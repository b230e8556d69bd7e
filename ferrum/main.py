"""Command-line entry point: starts the agent and the terminal interface."""

from __future__ import annotations

import argparse
import asyncio
import curses
import logging
import logging.handlers
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from ferrum.agent import OllamaAgent
from ferrum.tools import Tool, default_tools
from ferrum.ui import App

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen3.5:397b-cloud"
DEFAULT_PROMPT_FILE = "./SOUL.md"


def load_system_prompt(path: str | Path = DEFAULT_PROMPT_FILE) -> str:
    """Read the system prompt from a file."""
    return Path(path).read_text(encoding="utf-8")


def setup_tools() -> dict[str, Tool]:
    """The tools the agent offers to the model."""
    return default_tools()


def _setup_logging(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        log_dir / "ferrum.log", when="midnight", encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    return handler


async def _run(screen: Any, url: str, model: str, system_prompt: str) -> None:
    agent = OllamaAgent(url, setup_tools(), model, system_prompt)
    agent_task = agent.start()
    logger.info("loaded tools and started agent!")
    app = App(agent)
    await app.run(screen)
    logger.info("The UI has been stopped. Starting cleanup...")
    try:
        await asyncio.wait_for(agent_task, timeout=5)
    except asyncio.TimeoutError:
        agent_task.cancel()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ferrum", description="Chat with a local model.")
    parser.add_argument("--url", default=DEFAULT_URL, help="address of the Ollama server")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="model to chat with")
    parser.add_argument("--soul", default=DEFAULT_PROMPT_FILE, help="system prompt file")
    parser.add_argument("--log-dir", default="logs", help="directory for log files")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    handler = _setup_logging(Path(args.log_dir))
    try:
        try:
            system_prompt = load_system_prompt(args.soul)
        except FileNotFoundError as exc:
            raise SystemExit(f"{Path(args.soul).name} not found") from exc
        curses.wrapper(
            lambda screen: asyncio.run(_run(screen, args.url, args.model, system_prompt))
        )
        return 0
    finally:
        logging.getLogger().removeHandler(handler)
        handler.close()


if __name__ == "__main__":
    raise SystemExit(main())