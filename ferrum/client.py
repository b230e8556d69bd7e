"""Asynchronous client for the Ollama chat endpoint."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import Union

import httpx

from ferrum.dtos import (
    GenerateChatMessageRequest,
    GenerateChatMessageResponse,
    StreamChatPartialResponse,
    StreamChatResponse,
    ToolCall,
    parse_stream_chat_response,
)


class OllamaApiError(Exception):
    """Base class of every failure reported while talking to the API."""

    prefix = "The request failed"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{self.prefix}: {detail}")
        self.detail = detail


class UnreachableError(OllamaApiError):
    prefix = "Can't connect to ollama"


class TimedOutError(OllamaApiError):
    prefix = "The request timed out"


class DecodeFailureError(OllamaApiError):
    prefix = "Failed to decode the server response"


class ErrorStatusError(OllamaApiError):
    prefix = "The request returned an error status"


class BadRequestError(OllamaApiError):
    prefix = "The request was rejected because of an error in the body"


class CustomApiError(OllamaApiError):
    prefix = "The request failed"


StreamItem = Union[StreamChatResponse, OllamaApiError]


def api_error_from_httpx(error: Exception) -> OllamaApiError:
    """Classify an HTTP client exception as the matching API error."""
    if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout)):
        return UnreachableError(str(error))
    if isinstance(error, httpx.TimeoutException):
        return TimedOutError(str(error))
    if isinstance(error, httpx.DecodingError):
        return DecodeFailureError(str(error))
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return ErrorStatusError(f"{response.status_code} {response.reason_phrase}")
    if isinstance(error, (httpx.UnsupportedProtocol, httpx.LocalProtocolError, httpx.InvalidURL)):
        return BadRequestError(str(error))
    return CustomApiError(str(error))


@dataclass
class MessageAccumulator:
    """Collects streamed chunks and merges them into the final response."""

    content: str = ""
    thinking: str = ""
    images: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)

    def add_chunk(self, chunk: StreamChatPartialResponse) -> None:
        message = chunk.message
        self.content += message.content
        self.tool_calls.extend(message.tool_calls)
        self.images.extend(message.images)
        self.thinking += message.thinking
        if chunk.done:
            raise CustomApiError("Invalid API operation. Sent 'done' in a non 'done' response")

    def finish(self, last: GenerateChatMessageResponse) -> GenerateChatMessageResponse:
        message = replace(
            last.message,
            content=self.content + last.message.content,
            thinking=self.thinking + last.message.thinking,
            images=[*self.images, *last.message.images],
            tool_calls=[*self.tool_calls, *last.message.tool_calls],
        )
        return replace(last, message=message)


class ApiConnection:
    """A connection to an Ollama server."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=None)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def __aenter__(self) -> ApiConnection:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this connection created it."""
        if self._owns_client:
            await self._client.aclose()

    async def run_chat_prompt_stream(
        self, body: GenerateChatMessageRequest
    ) -> AsyncIterator[StreamItem]:
        """Start a streaming chat request.

        Connection and status failures raise at once. The returned iterator yields
        each decoded line; a line that cannot be decoded is yielded as a
        ``DecodeFailureError`` and the stream goes on.
        """
        body.stream = True
        request = self._client.build_request("POST", f"{self.url}/api/chat", json=body.to_dict())
        response: httpx.Response | None = None
        try:
            response = await self._client.send(request, stream=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            if response is not None:
                await response.aclose()
            raise api_error_from_httpx(exc) from exc
        return self._stream_lines(response)

    @staticmethod
    async def _stream_lines(response: httpx.Response) -> AsyncIterator[StreamItem]:
        try:
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    yield parse_stream_chat_response(json.loads(line))
                except ValueError as exc:
                    yield DecodeFailureError(str(exc))
        except httpx.HTTPError:
            return
        finally:
            await response.aclose()

    async def run_chat_prompt_blocking(
        self, body: GenerateChatMessageRequest
    ) -> GenerateChatMessageResponse:
        """Send a chat request and wait for the complete, merged response."""
        accumulator = MessageAccumulator()
        async with aclosing(await self.run_chat_prompt_stream(body)) as stream:
            async for item in stream:
                if isinstance(item, OllamaApiError):
                    raise item
                if isinstance(item, StreamChatPartialResponse):
                    accumulator.add_chunk(item)
                else:
                    return accumulator.finish(item)
        raise CustomApiError("The stream ended unexpectedly without 'Last' chunk")