"""The chat agent: keeps the conversation, talks to the API and runs tools."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

from ferrum.client import ApiConnection, OllamaApiError
from ferrum.dtos import (
    GenerateChatMessageRequest,
    GenerateChatMessageResponse,
    Message,
    Role,
    StreamChatPartialResponse,
    StreamChatResponse,
    ToolCall,
)
from ferrum.events import (
    MessageReceived,
    UIUnreachableError,
    AgentError,
    message_from_error,
    message_from_stream_response,
)
from ferrum.tools import RunToolError, Tool, ToolNotFoundError

logger = logging.getLogger(__name__)

_END = object()


class AgentMode(enum.Enum):
    PLAN = "plan"
    BUILD = "build"


@dataclass
class GeneratePrompt:
    prompt: str


@dataclass
class ChangeOutChannel:
    channel: Any


@dataclass
class ChangeMode:
    mode: AgentMode


@dataclass
class ChangeModel:
    model: str


@dataclass
class ClearHistory:
    pass


@dataclass
class Stop:
    pass


AgentCommand = Union[GeneratePrompt, ChangeOutChannel, ChangeMode, ChangeModel, ClearHistory, Stop]


async def _next_item(stream: AsyncIterator[Any]) -> Any:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return _END


class OllamaAgent:
    """Runs chat prompts against a model and feeds the replies to an output channel.

    Commands arrive through :meth:`send`; events go to ``message_out``, any object
    with an awaitable ``put`` method (an :class:`asyncio.Queue` by default).
    """

    def __init__(
        self,
        url: str,
        tools: Mapping[str, Tool],
        model: str,
        system_prompt: str | None = None,
        connection: Any = None,
    ) -> None:
        self.history: list[Message] = []
        self.mode = AgentMode.BUILD
        self.model = model
        self.tools: dict[str, Tool] = dict(tools)
        self._commands: asyncio.Queue[AgentCommand] = asyncio.Queue(maxsize=8)
        self.message_out: Any = asyncio.Queue(maxsize=8)
        self._owns_connection = connection is None
        self.connection = connection if connection is not None else ApiConnection(url)
        self._api_stream: AsyncIterator[Any] | None = None
        self.current_message_buffer: list[StreamChatResponse] = []
        if system_prompt is not None:
            self.history.append(Message(role=Role.SYSTEM, content=system_prompt))

    def start(self) -> asyncio.Task[None]:
        """Run the agent loop in a background task."""
        return asyncio.ensure_future(self.run())

    async def send(self, command: AgentCommand) -> None:
        await self._commands.put(command)

    async def _emit(self, event: Any) -> None:
        try:
            await self.message_out.put(event)
        except Exception as exc:
            logger.error("The Agent is unable to reach the UI: %s", exc)
            raise UIUnreachableError(str(exc)) from exc

    async def _apply(self, command: AgentCommand) -> None:
        if isinstance(command, ClearHistory):
            self.history = []
        elif isinstance(command, ChangeOutChannel):
            self.message_out = command.channel
        elif isinstance(command, ChangeMode):
            self.mode = command.mode
        elif isinstance(command, ChangeModel):
            self.model = command.model
        elif isinstance(command, GeneratePrompt):
            await self.start_generating_prompt(command.prompt)
        else:
            raise TypeError(f"unknown agent command: {command!r}")

    async def run(self) -> None:
        """Handle commands and streamed replies until a Stop command arrives."""
        logger.info("Starting the main Agent Loop")
        command_task: asyncio.Future[Any] | None = None
        api_task: asyncio.Future[Any] | None = None
        api_stream: AsyncIterator[Any] | None = None
        try:
            while True:
                if command_task is None:
                    command_task = asyncio.ensure_future(self._commands.get())
                if api_task is not None and api_stream is not self._api_stream:
                    api_task.cancel()
                    api_task = None
                if api_task is None and self._api_stream is not None:
                    api_stream = self._api_stream
                    api_task = asyncio.ensure_future(_next_item(api_stream))

                waiting = {command_task} if api_task is None else {command_task, api_task}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if command_task in done:
                    command = command_task.result()
                    command_task = None
                    if isinstance(command, Stop):
                        break
                    await self._apply(command)
                    continue

                assert api_task is not None
                item = api_task.result()
                api_task = None
                if item is _END:
                    self._api_stream = None
                    continue
                if isinstance(item, OllamaApiError):
                    await self._emit(MessageReceived(message_from_error(item)))
                    continue
                try:
                    await self.process_stream_response(item)
                except AgentError as exc:
                    logger.error("Agent loop stopped because of error: %s", exc)
                    break
        finally:
            for task in (command_task, api_task):
                if task is not None and not task.done():
                    task.cancel()
            if self._owns_connection:
                await self.connection.aclose()

    async def start_generating_prompt(self, prompt: str) -> None:
        """Add the user's prompt to the history and start streaming the reply."""
        self.history.append(Message(role=Role.USER, content=prompt))
        body = GenerateChatMessageRequest(
            model=self.model,
            messages=self.history,
            tools=[tool.as_api_tool() for tool in self.tools.values()],
            stream=True,
        )
        logger.debug("Start running prompt: %r", body)
        try:
            self._api_stream = await self.connection.run_chat_prompt_stream(body)
        except OllamaApiError as exc:
            logger.error("An error occured when trying to run the prompt: %s", exc)
            try:
                await self._emit(MessageReceived(message_from_error(exc)))
            except UIUnreachableError:
                pass

    async def process_stream_response(self, response: StreamChatResponse) -> None:
        """Forward a streamed reply; on the last one, record it and run its tool calls."""
        self.current_message_buffer.append(response)
        await self._emit(MessageReceived(message_from_stream_response(response)))
        if response.is_last:
            final = self.construct_message()
            self.history.append(
                Message(
                    role=Role.ASSISTANT,
                    content=final.message.content,
                    images=list(final.message.images),
                    tool_calls=list(final.message.tool_calls),
                )
            )
            await self.run_tool_calls(final.message.tool_calls)

    def construct_message(self) -> GenerateChatMessageResponse:
        """Merge the buffered replies into one response and clear the buffer."""
        buffered, self.current_message_buffer = self.current_message_buffer, []
        combined = GenerateChatMessageResponse()
        for part in buffered:
            message = part.message
            combined.message.tool_calls.extend(message.tool_calls)
            combined.message.content += message.content
            combined.message.images.extend(message.images)
            combined.message.thinking += message.thinking
            if isinstance(part, StreamChatPartialResponse):
                continue
            combined.done = True
            combined.model = part.model
            combined.created_at = part.created_at
            combined.logprobs = part.logprobs
            combined.eval_count = part.eval_count
            combined.done_reason = part.done_reason
            combined.load_duration = part.load_duration
            combined.eval_duration = part.eval_duration
            combined.total_duration = part.total_duration
            combined.prompt_eval_count = part.prompt_eval_count
        return combined

    async def run_tool_calls(self, tool_calls: list[ToolCall]) -> None:
        """Run each tool call and add its result to the history."""
        for tool_call in tool_calls:
            logger.info(
                "running tool call: %s, with arguments: %s",
                tool_call.function.name,
                tool_call.function.arguments,
            )
            try:
                content = await self.execute_tool_call(tool_call)
            except RunToolError as exc:
                content = f"The tool call failed with the error: {exc}"
            message = Message(role=Role.TOOL, content=content)
            logger.info("finished tool call with result: %r", message)
            self.history.append(message)

    async def execute_tool_call(self, tool_call: ToolCall) -> str:
        tool = self.tools.get(tool_call.function.name)
        if tool is None:
            raise ToolNotFoundError(tool_call.function.name)
        return await tool.run(tool_call.function.arguments)