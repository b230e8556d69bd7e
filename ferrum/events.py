"""Messages and events passed from the agent to the user interface."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from ferrum.client import OllamaApiError
from ferrum.dtos import StreamChatResponse
from ferrum.tools import RunToolError


class AgentError(Exception):
    """Base class of failures inside the agent."""


class ApiAgentError(AgentError):
    """The agent's request failed because the API reported an error."""

    def __init__(self, cause: OllamaApiError) -> None:
        super().__init__(f"The Request to the agent failed due to an API error: {cause}")
        self.cause = cause


class ToolAgentError(AgentError):
    """The agent failed while running a tool."""

    def __init__(self, cause: RunToolError) -> None:
        super().__init__(f"The Agent failed when trying to run a tool: {cause}")
        self.cause = cause


class UIUnreachableError(AgentError):
    """The agent could not deliver an event to the user interface."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"The Agent is unable to reach the UI: {detail}")
        self.detail = detail


@dataclass
class TextMessage:
    """A piece of chat text from the user or the assistant."""

    author: str
    content: str

    @property
    def text(self) -> str:
        return self.content

    @property
    def text_ref(self) -> str:
        return self.content


@dataclass
class ToolUseMessage:
    """A report that the agent used a tool."""

    tool_name: str
    arguments: str
    result: str

    @property
    def author(self) -> str:
        return "Tool"

    @property
    def text(self) -> str:
        result = json.dumps(self.result, ensure_ascii=False)
        return f"using {self.tool_name} with arguments: {self.arguments}. Result: {result}"

    @property
    def text_ref(self) -> str:
        return "The agent is using a tool..."


@dataclass
class ErrorMessage:
    """A failure of the agent shown to the user."""

    error: AgentError

    @property
    def author(self) -> str:
        return "System"

    @property
    def text(self) -> str:
        return f"the agent crashed: {self.error}"

    @property
    def text_ref(self) -> str:
        return "There was an error when trying to access the API"


UIMessage = Union[TextMessage, ToolUseMessage, ErrorMessage]


def message_from_stream_response(response: StreamChatResponse) -> TextMessage:
    """The assistant text carried by a streamed chat response."""
    return TextMessage(author="Assistant", content=response.message.content)


def message_from_error(error: Exception) -> ErrorMessage:
    """Wrap an agent, API or tool error as a message for the user interface."""
    if isinstance(error, AgentError):
        return ErrorMessage(error)
    if isinstance(error, OllamaApiError):
        return ErrorMessage(ApiAgentError(error))
    if isinstance(error, RunToolError):
        return ErrorMessage(ToolAgentError(error))
    raise TypeError(f"cannot turn {type(error).__name__} into a UI message")


@dataclass
class WindowEvent:
    """An input event from the terminal."""

    event: Any


@dataclass
class MessageReceived:
    """A message arriving from the agent."""

    message: UIMessage


UIEvent = Union[WindowEvent, MessageReceived]