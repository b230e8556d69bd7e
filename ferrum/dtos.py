"""Data objects exchanged with the Ollama HTTP API and their JSON encodings."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Union

_MISSING = object()


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a JSON object for {what}, got {type(data).__name__}")
    return data


def _get(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise ValueError(f"missing field `{key}`")
    return default


def _str(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> str:
    value = _get(data, key, default)
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = _get(data, key)
    if not isinstance(value, bool):
        raise ValueError(f"field `{key}` must be a boolean")
    return value


def _check_uint(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field `{key}` must be a non-negative integer")
    return value


def _uint(data: Mapping[str, Any], key: str) -> int:
    return _check_uint(_get(data, key), key)


def _opt_uint(data: Mapping[str, Any], key: str) -> int | None:
    value = data.get(key)
    return None if value is None else _check_uint(value, key)


def _float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field `{key}` must be a number")
    return float(value)


def _list(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> list[Any]:
    value = _get(data, key, default)
    if not isinstance(value, list):
        raise ValueError(f"field `{key}` must be an array")
    return value


def _str_list(data: Mapping[str, Any], key: str) -> list[str]:
    items = _list(data, key, [])
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"field `{key}` must be an array of strings")
    return list(items)


def _bytes(data: Mapping[str, Any], key: str) -> bytes:
    items = _list(data, key)
    try:
        return bytes(items)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"field `{key}` must be an array of bytes") from exc


def _drop_none(pairs: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in pairs.items() if value is not None}


@dataclass
class OllamaRequestOptions:
    """Runtime options shared by most API calls; unset options are not sent."""

    seed: int | None = None
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None
    min_p: float | None = None
    stop: list[str] = field(default_factory=list)
    num_ctx: int | None = None
    num_predict: int | None = None
    num_gpu: int | None = None
    num_thread: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "seed": self.seed,
                "temperature": self.temperature,
                "top_k": self.top_k,
                "top_p": self.top_p,
                "min_p": self.min_p,
                "stop": list(self.stop) if self.stop else None,
                "num_ctx": self.num_ctx,
                "num_predict": self.num_predict,
                "num_gpu": self.num_gpu,
                "num_thread": self.num_thread,
            }
        )


@dataclass(frozen=True)
class KeepAlive:
    """How long a model stays loaded after a request; no duration means forever."""

    duration: timedelta | None = None

    def __post_init__(self) -> None:
        if self.duration is not None and self.duration < timedelta(0):
            raise ValueError("keep-alive duration must not be negative")

    @classmethod
    def indefinitely(cls) -> KeepAlive:
        return cls()

    @classmethod
    def for_seconds(cls, seconds: float) -> KeepAlive:
        return cls(timedelta(seconds=seconds))

    def to_json(self) -> str:
        if self.duration is None:
            return "-1s"
        return f"{int(self.duration.total_seconds())}s"


@dataclass
class GenerateEmbeddingRequest:
    """Request body for generating embeddings."""

    model: str
    input: list[str] = field(default_factory=list)
    truncate: bool | None = None
    dimensions: int | None = None
    keep_alive: KeepAlive | None = None
    options: OllamaRequestOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "model": self.model,
                "input": list(self.input),
                "truncate": self.truncate,
                "dimensions": self.dimensions,
                "keep_alive": self.keep_alive.to_json() if self.keep_alive else None,
                "options": self.options.to_dict() if self.options else None,
            }
        )


@dataclass
class GenerateEmbeddingResponse:
    """Embeddings returned by the API, with timing information in nanoseconds."""

    model: str
    embeddings: list[list[float]]
    total_duration: int
    load_duration: int
    prompt_eval_count: int

    @classmethod
    def from_dict(cls, data: Any) -> GenerateEmbeddingResponse:
        data = _mapping(data, "embedding response")
        rows = _list(data, "embeddings")
        embeddings = []
        for row in rows:
            if not isinstance(row, list):
                raise ValueError("field `embeddings` must be an array of arrays")
            embeddings.append([_float(value, "embeddings") for value in row])
        return cls(
            model=_str(data, "model"),
            embeddings=embeddings,
            total_duration=_uint(data, "total_duration"),
            load_duration=_uint(data, "load_duration"),
            prompt_eval_count=_uint(data, "prompt_eval_count"),
        )


class Role(str, enum.Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCallFunction:
    """A function the model asks to call, with its JSON arguments."""

    name: str
    description: str | None = None
    arguments: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> ToolCallFunction:
        data = _mapping(data, "tool call function")
        description = data.get("description")
        if description is not None and not isinstance(description, str):
            raise ValueError("field `description` must be a string")
        return cls(
            name=_str(data, "name"),
            description=description,
            arguments=data.get("arguments"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": self.arguments,
        }


@dataclass
class ToolCall:
    """An explicit call to a tool requested by the model."""

    function: ToolCallFunction

    @classmethod
    def from_dict(cls, data: Any) -> ToolCall:
        data = _mapping(data, "tool call")
        return cls(function=ToolCallFunction.from_dict(_get(data, "function")))

    def to_dict(self) -> dict[str, Any]:
        return {"function": self.function.to_dict()}


@dataclass
class ToolFunction:
    """Description of a function the model may call."""

    name: str
    parameters: dict[str, Any]
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "parameters": self.parameters,
            "description": self.description,
        }


@dataclass
class Tool:
    """A tool offered to the model; its type is always ``function``."""

    function: ToolFunction

    def to_dict(self) -> dict[str, Any]:
        return {"type": "function", "function": self.function.to_dict()}


@dataclass(frozen=True)
class ResponseFormat:
    """Output format: plain JSON, or JSON matching a schema."""

    schema: dict[str, Any] | None = None

    @classmethod
    def json(cls) -> ResponseFormat:
        return cls()

    @classmethod
    def from_schema(cls, schema: dict[str, Any]) -> ResponseFormat:
        return cls(schema)

    def to_json(self) -> Any:
        return "json" if self.schema is None else self.schema


class ThinkLevel(enum.Enum):
    """Verbosity of the model's thinking output."""

    TRUE = True
    FALSE = False
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def to_json(self) -> bool | str:
        return self.value


@dataclass
class LogProbSecondary:
    """An unselected candidate token and its log probability."""

    token: str
    logprob: float
    bytes: bytes

    @classmethod
    def from_dict(cls, data: Any) -> LogProbSecondary:
        data = _mapping(data, "log probability")
        return cls(
            token=_str(data, "token"),
            logprob=_float(_get(data, "logprob"), "logprob"),
            bytes=_bytes(data, "bytes"),
        )


@dataclass
class LogProb:
    """A selected token, its log probability and the likeliest alternatives."""

    token: str
    logprob: float
    bytes: bytes
    top_logprobs: list[LogProbSecondary]

    @classmethod
    def from_dict(cls, data: Any) -> LogProb:
        data = _mapping(data, "log probability")
        key = "top_logprobs" if "top_logprobs" in data else "top_logporbs"
        return cls(
            token=_str(data, "token"),
            logprob=_float(_get(data, "logprob"), "logprob"),
            bytes=_bytes(data, "bytes"),
            top_logprobs=[LogProbSecondary.from_dict(item) for item in _list(data, key)],
        )


@dataclass
class Message:
    """A chat message in the conversation history."""

    role: Role = Role.SYSTEM
    content: str = ""
    images: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.images:
            result["images"] = list(self.images)
        if self.tool_calls:
            result["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return result


@dataclass
class GeneratedMessage:
    """A message produced by the model; its role is always assistant."""

    content: str = ""
    thinking: str = ""
    images: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> GeneratedMessage:
        data = _mapping(data, "message")
        return cls(
            content=_str(data, "content"),
            thinking=_str(data, "thinking", ""),
            images=_str_list(data, "images"),
            tool_calls=[ToolCall.from_dict(item) for item in _list(data, "tool_calls", [])],
        )

    def to_message(self) -> Message:
        return Message(
            role=Role.ASSISTANT,
            content=self.content,
            images=list(self.images),
            tool_calls=list(self.tool_calls),
        )


@dataclass
class GenerateChatMessageRequest:
    """Request body for the chat endpoint."""

    model: str
    messages: list[Message]
    tools: list[Tool] = field(default_factory=list)
    format: ResponseFormat | None = None
    options: OllamaRequestOptions | None = None
    stream: bool | None = None
    think: ThinkLevel | None = None
    keep_alive: KeepAlive | None = None
    logprobs: bool | None = None
    top_logprobs: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result = _drop_none(
            {
                "model": self.model,
                "messages": [message.to_dict() for message in self.messages],
                "tools": [tool.to_dict() for tool in self.tools] if self.tools else None,
                "format": self.format.to_json() if self.format else None,
                "options": self.options.to_dict() if self.options else None,
                "stream": self.stream,
                "think": self.think.to_json() if self.think is not None else None,
                "keep_alive": self.keep_alive.to_json() if self.keep_alive else None,
                "logprobs": self.logprobs,
            }
        )
        result["top_logprobs"] = self.top_logprobs
        return result


@dataclass
class GenerateChatMessageResponse:
    """The final response of a chat request, with statistics."""

    model: str = ""
    created_at: str = ""
    message: GeneratedMessage = field(default_factory=GeneratedMessage)
    done: bool = False
    done_reason: str | None = None
    total_duration: int = 0
    load_duration: int | None = None
    prompt_eval_count: int = 0
    prompt_eval_duration: int | None = None
    eval_count: int = 0
    eval_duration: int | None = None
    logprobs: list[LogProb] = field(default_factory=list)

    @property
    def is_last(self) -> bool:
        return True

    @classmethod
    def from_dict(cls, data: Any) -> GenerateChatMessageResponse:
        data = _mapping(data, "chat response")
        done_reason = data.get("done_reason")
        if done_reason is not None and not isinstance(done_reason, str):
            raise ValueError("field `done_reason` must be a string")
        return cls(
            model=_str(data, "model"),
            created_at=_str(data, "created_at"),
            message=GeneratedMessage.from_dict(_get(data, "message")),
            done=_bool(data, "done"),
            done_reason=done_reason,
            total_duration=_uint(data, "total_duration"),
            load_duration=_opt_uint(data, "load_duration"),
            prompt_eval_count=_uint(data, "prompt_eval_count"),
            prompt_eval_duration=_opt_uint(data, "prompt_eval_duration"),
            eval_count=_uint(data, "eval_count"),
            eval_duration=_opt_uint(data, "eval_duration"),
            logprobs=[LogProb.from_dict(item) for item in _list(data, "logprobs", [])],
        )


@dataclass
class StreamChatPartialResponse:
    """A partial message received while streaming a chat response."""

    model: str
    created_at: str
    message: GeneratedMessage
    done: bool

    @property
    def is_last(self) -> bool:
        return False

    @classmethod
    def from_dict(cls, data: Any) -> StreamChatPartialResponse:
        data = _mapping(data, "chat response chunk")
        return cls(
            model=_str(data, "model"),
            created_at=_str(data, "created_at"),
            message=GeneratedMessage.from_dict(_get(data, "message")),
            done=_bool(data, "done"),
        )


StreamChatResponse = Union[GenerateChatMessageResponse, StreamChatPartialResponse]


def parse_stream_chat_response(data: Any) -> StreamChatResponse:
    """Decode one streamed line: the final response when ``done`` is true, else a chunk."""
    data = _mapping(data, "chat response")
    done = data.get("done")
    if not isinstance(done, bool):
        raise ValueError("done not found in message")
    if done:
        return GenerateChatMessageResponse.from_dict(data)
    return StreamChatPartialResponse.from_dict(data)