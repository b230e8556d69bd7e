import asyncio
import curses

import pytest

from ferrum.agent import ChangeOutChannel, GeneratePrompt, Stop
from ferrum.client import CustomApiError
from ferrum.events import MessageReceived, TextMessage, message_from_error
from ferrum.ui import App


class FakeAgent:
    def __init__(self):
        self.commands = []

    async def send(self, command):
        self.commands.append(command)


class FakeScreen:
    def __init__(self, keys, size=(20, 60)):
        self.keys = list(keys)
        self.size = size
        self.written = []
        self.refreshes = 0

    def nodelay(self, flag):
        pass

    def getmaxyx(self):
        return self.size

    def erase(self):
        self.written.clear()

    def addnstr(self, y, x, text, n, attr=0):
        self.written.append(text[:n])

    def refresh(self):
        self.refreshes += 1

    def move(self, y, x):
        pass

    def get_wch(self):
        if not self.keys:
            raise curses.error("no input")
        return self.keys.pop(0)


async def type_text(app, text):
    for char in text:
        await app.handle_key(char)


@pytest.mark.asyncio
async def test_on_send_with_empty_input_does_nothing():
    agent = FakeAgent()
    app = App(agent)
    await app.on_send()
    assert app.messages == []
    assert agent.commands == []
    assert app.is_processing is False


@pytest.mark.asyncio
async def test_enter_sends_prompt_and_clears_input():
    agent = FakeAgent()
    app = App(agent)
    await type_text(app, "hello")
    await app.handle_key("\n")
    assert app.messages == [TextMessage(author="User", content="hello")]
    assert agent.commands == [GeneratePrompt("hello")]
    assert app.input.value == ""
    assert app.is_processing is True


@pytest.mark.asyncio
async def test_streamed_text_from_same_author_is_joined():
    app = App(FakeAgent())
    await app.on_msg(TextMessage("Assistant", "Hel"))
    await app.on_msg(TextMessage("Assistant", "lo"))
    assert app.messages == [TextMessage("Assistant", "Hello")]


@pytest.mark.asyncio
async def test_text_from_other_author_is_a_new_message():
    app = App(FakeAgent())
    await app.on_msg(TextMessage("User", "question"))
    await app.on_msg(TextMessage("Assistant", "answer"))
    assert [m.author for m in app.messages] == ["User", "Assistant"]


@pytest.mark.asyncio
async def test_error_after_text_stops_processing():
    agent = FakeAgent()
    app = App(agent)
    await type_text(app, "q")
    await app.on_send()
    error = message_from_error(CustomApiError("boom"))
    await app.on_msg(error)
    assert app.messages[-1] is error
    assert app.is_processing is False
    assert app.messages[-1].author == "System"


@pytest.mark.asyncio
async def test_ctrl_d_stops_agent_and_quits():
    agent = FakeAgent()
    app = App(agent)
    await app.handle_key("\x04")
    assert agent.commands == [Stop()]
    assert app.should_quit is True


@pytest.mark.asyncio
async def test_scrolling_never_goes_below_zero():
    app = App(FakeAgent())
    await app.handle_key(curses.KEY_UP)
    assert app.vertical_scroll == 0
    await app.handle_key(curses.KEY_DOWN)
    await app.handle_key(curses.KEY_DOWN)
    await app.handle_key(curses.KEY_UP)
    assert app.vertical_scroll == 1


@pytest.mark.asyncio
async def test_input_editing_keys():
    app = App(FakeAgent())
    await type_text(app, "ac")
    await app.handle_key(curses.KEY_LEFT)
    await app.handle_key("b")
    assert app.input.value == "abc"
    await app.handle_key(curses.KEY_END)
    await app.handle_key(curses.KEY_BACKSPACE)
    assert app.input.value == "ab"
    await app.handle_key(curses.KEY_HOME)
    await app.handle_key(curses.KEY_DC)
    assert app.input.value == "b"


@pytest.mark.asyncio
async def test_history_lines_have_heading_body_and_blank():
    app = App(FakeAgent())
    await app.on_msg(TextMessage("User", "first\nsecond"))
    assert app.history_lines() == [
        ("User: ", True),
        ("first", False),
        ("second", False),
        ("", False),
    ]


def test_status_text_names_model():
    app = App(FakeAgent())
    assert app.status_text() == " Model: my-coder | Mode: Standard | [Esc] Quit "
    assert "other-model" in App(FakeAgent(), "other-model").status_text()


@pytest.mark.asyncio
async def test_run_processes_keys_and_agent_messages():
    agent = FakeAgent()
    app = App(agent)
    await app.events.put(MessageReceived(TextMessage("Assistant", "welcome")))
    screen = FakeScreen(["h", "i", "\n", "\x04"])
    await asyncio.wait_for(app.run(screen), timeout=5)
    assert isinstance(agent.commands[0], ChangeOutChannel)
    assert agent.commands[0].channel is app.events
    assert agent.commands[1:] == [GeneratePrompt("hi"), Stop()]
    assert app.messages == [
        TextMessage("Assistant", "welcome"),
        TextMessage("User", "hi"),
    ]
    assert screen.refreshes >= 1
    assert any("Chat History" in text for text in screen.written)