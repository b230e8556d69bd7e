"""Terminal chat interface: shows the conversation and forwards prompts to the agent."""

from __future__ import annotations

import asyncio
import curses
import logging
import textwrap
from dataclasses import dataclass
from typing import Any

from ferrum.agent import ChangeOutChannel, GeneratePrompt, Stop
from ferrum.events import (
    ErrorMessage,
    MessageReceived,
    TextMessage,
    UIEvent,
    UIMessage,
    WindowEvent,
)

logger = logging.getLogger(__name__)

_CTRL_D = "\x04"
_ENTER_KEYS = {"\n", "\r", curses.KEY_ENTER}
_BACKSPACE_KEYS = {"\x7f", "\b", curses.KEY_BACKSPACE}
_POLL_INTERVAL = 0.02


@dataclass
class _LineInput:
    """A single-line text field with a cursor."""

    value: str = ""
    cursor: int = 0

    def reset(self) -> None:
        self.value = ""
        self.cursor = 0

    def handle_key(self, key: Any) -> None:
        if key in _BACKSPACE_KEYS:
            if self.cursor > 0:
                self.value = self.value[: self.cursor - 1] + self.value[self.cursor :]
                self.cursor -= 1
        elif key == curses.KEY_DC:
            self.value = self.value[: self.cursor] + self.value[self.cursor + 1 :]
        elif key == curses.KEY_LEFT:
            self.cursor = max(0, self.cursor - 1)
        elif key == curses.KEY_RIGHT:
            self.cursor = min(len(self.value), self.cursor + 1)
        elif key == curses.KEY_HOME:
            self.cursor = 0
        elif key == curses.KEY_END:
            self.cursor = len(self.value)
        elif isinstance(key, str) and key.isprintable():
            self.value = self.value[: self.cursor] + key + self.value[self.cursor :]
            self.cursor += len(key)

    def visual_scroll(self, width: int) -> int:
        """How far the field must scroll so the cursor stays within ``width`` columns."""
        if width <= 0:
            return self.cursor
        return max(0, self.cursor - width + 1)


class App:
    """The chat window: history, a status bar and an input field."""

    def __init__(self, agent: Any, model: str = "my-coder") -> None:
        self.agent = agent
        self.messages: list[UIMessage] = []
        self.input = _LineInput()
        self.current_model = model
        self.is_processing = False
        self.should_quit = False
        self.vertical_scroll = 0
        self.events: asyncio.Queue[UIEvent] = asyncio.Queue(maxsize=300)
        self._colors = False

    async def on_msg(self, msg: UIMessage) -> None:
        """Add a message from the agent, joining streamed text from the same author."""
        latest = self.messages[-1] if self.messages else None
        if isinstance(latest, TextMessage):
            if isinstance(msg, TextMessage) and msg.author == latest.author:
                latest.content += msg.content
                return
            self.messages.append(msg)
            if isinstance(msg, ErrorMessage):
                self.is_processing = False
            return
        self.messages.append(msg)

    async def on_send(self) -> None:
        """Send the typed prompt to the agent and clear the input field."""
        if not self.input.value:
            return
        content = self.input.value
        self.input.reset()
        logger.info("Sending a prompt request with content: %s", content)
        self.messages.append(TextMessage(author="User", content=content))
        await self.agent.send(GeneratePrompt(content))
        self.is_processing = True

    async def handle_key(self, key: Any) -> None:
        """React to one key read from the terminal."""
        if key == _CTRL_D:
            await self.agent.send(Stop())
            self.should_quit = True
        elif key in _ENTER_KEYS:
            await self.on_send()
        elif key == curses.KEY_UP:
            self.vertical_scroll = max(0, self.vertical_scroll - 1)
        elif key == curses.KEY_DOWN:
            self.vertical_scroll += 1
        else:
            self.input.handle_key(key)

    def history_lines(self) -> list[tuple[str, bool]]:
        """The chat history as lines; the flag marks an author heading."""
        lines: list[tuple[str, bool]] = []
        for message in self.messages:
            lines.append((f"{message.author}: ", True))
            lines.extend((line, False) for line in message.text_ref.splitlines())
            lines.append(("", False))
        return lines

    def status_text(self) -> str:
        return f" Model: {self.current_model} | Mode: Standard | [Esc] Quit "

    async def run(self, screen: Any) -> None:
        """Drive the interface on a curses window until the user quits."""
        logger.info("start running App loop")
        await self.agent.send(ChangeOutChannel(self.events))
        self._init_colors()
        screen.nodelay(True)
        reader = asyncio.ensure_future(self._read_window_events(screen))
        try:
            self._draw(screen)
            while True:
                event = await self.events.get()
                if isinstance(event, WindowEvent):
                    await self.handle_key(event.event)
                elif isinstance(event, MessageReceived):
                    await self.on_msg(event.message)
                if self.should_quit:
                    return
                self._draw(screen)
        finally:
            reader.cancel()

    async def _read_window_events(self, screen: Any) -> None:
        while True:
            try:
                key = screen.get_wch()
            except curses.error:
                await asyncio.sleep(_POLL_INTERVAL)
                continue
            if key == curses.KEY_RESIZE:
                key = None
            await self.events.put(WindowEvent(key))

    def _init_colors(self) -> None:
        try:
            curses.start_color()
            curses.use_default_colors()
            curses.init_pair(1, curses.COLOR_CYAN, -1)
            curses.init_pair(2, curses.COLOR_BLACK, curses.COLOR_YELLOW)
            curses.init_pair(3, curses.COLOR_WHITE, curses.COLOR_BLUE)
            self._colors = True
        except curses.error:
            self._colors = False

    def _attr(self, pair: int) -> int:
        return curses.color_pair(pair) if self._colors else 0

    @staticmethod
    def _put(screen: Any, y: int, x: int, text: str, width: int, attr: int = 0) -> None:
        room = width - x
        if room <= 0 or not text:
            return
        try:
            screen.addnstr(y, x, text, room, attr)
        except curses.error:
            pass

    def _box(self, screen: Any, top: int, height: int, width: int, title: str) -> None:
        if height < 2 or width < 2:
            return
        inner = width - 2
        head = (title + "─" * inner)[:inner]
        self._put(screen, top, 0, "┌" + head + "┐", width)
        for row in range(top + 1, top + height - 1):
            self._put(screen, row, 0, "│", width)
            self._put(screen, row, width - 1, "│", width)
        self._put(screen, top + height - 1, 0, "└" + "─" * inner + "┘", width)

    def _draw(self, screen: Any) -> None:
        height, width = screen.getmaxyx()
        screen.erase()
        history_height = max(height - 6, 2)
        self._draw_history(screen, history_height, width)
        self._draw_status(screen, history_height, width)
        self._draw_input(screen, history_height + 1, width)
        screen.refresh()

    def _draw_history(self, screen: Any, height: int, width: int) -> None:
        self._box(screen, 0, height, width, "Chat History")
        inner_width = max(width - 2, 1)
        inner_height = max(height - 2, 0)
        rows: list[tuple[str, bool]] = []
        for text, heading in self.history_lines():
            wrapped = textwrap.wrap(text, inner_width) if text.strip() else [""]
            rows.extend((part, heading) for part in wrapped)
        visible = rows[self.vertical_scroll : self.vertical_scroll + inner_height]
        heading_attr = curses.A_BOLD | self._attr(1)
        for offset, (text, heading) in enumerate(visible):
            attr = heading_attr if heading else 0
            self._put(screen, 1 + offset, 1, text, width - 1, attr)

    def _draw_status(self, screen: Any, row: int, width: int) -> None:
        attr = self._attr(2 if self.is_processing else 3)
        self._put(screen, row, 0, self.status_text().center(width), width, attr)

    def _draw_input(self, screen: Any, top: int, width: int) -> None:
        self._box(screen, top, 5, width, "Input")
        field_width = max(width, 3) - 3
        scroll = self.input.visual_scroll(field_width)
        shown = self.input.value[scroll : scroll + field_width]
        self._put(screen, top + 1, 1, shown, width - 1)
        try:
            screen.move(top + 1, 1 + self.input.cursor - scroll)
        except curses.error:
            pass