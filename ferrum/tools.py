"""Tools the model can call, and the errors raised when running them."""

from __future__ import annotations

import abc
import asyncio
import copy
import json
from pathlib import Path
from typing import Any, ClassVar

from ferrum import dtos


class RunToolError(Exception):
    """Base class of failures while running a tool."""


class InvalidArgumentsError(RunToolError):
    def __init__(self, tool_name: str, expected_schema: str, serde_error: str) -> None:
        super().__init__(
            f"Deserializing Arguments for {tool_name} tool failed. "
            f"Expected Arguments with Schema: {expected_schema}: {serde_error}"
        )
        self.tool_name = tool_name
        self.expected_schema = expected_schema
        self.serde_error = serde_error


class FailedToRunError(RunToolError):
    def __init__(self, tool_name: str, arguments: str, inner: str) -> None:
        super().__init__(f"Running tool: {tool_name} with arguments: {arguments} failed: {inner}")
        self.tool_name = tool_name
        self.arguments = arguments
        self.inner = inner


class ToolNotFoundError(RunToolError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Can't find tool named: {tool_name}")
        self.tool_name = tool_name


class Tool(abc.ABC):
    """A tool the model may call with JSON arguments."""

    name: ClassVar[str]
    description: ClassVar[str]
    argument_schema: ClassVar[dict[str, Any]]
    tool_errors: ClassVar[tuple[type[BaseException], ...]] = (Exception,)

    def schema(self) -> dict[str, Any]:
        """The JSON schema of the tool's arguments."""
        return copy.deepcopy(self.argument_schema)

    @abc.abstractmethod
    def parse_arguments(self, value: Any) -> Any:
        """Turn JSON arguments into the tool's argument value; raise ValueError or TypeError."""

    @abc.abstractmethod
    async def run_tool(self, args: Any) -> str:
        """Run the tool with parsed arguments."""

    async def run(self, value: Any) -> str:
        """Parse JSON arguments and run the tool, raising RunToolError on failure."""
        try:
            args = self.parse_arguments(value)
        except (ValueError, TypeError) as exc:
            raise InvalidArgumentsError(self.name, json.dumps(self.schema()), str(exc)) from exc
        try:
            return await self.run_tool(args)
        except self.tool_errors as exc:
            raise FailedToRunError(self.name, repr(args), str(exc)) from exc

    def as_api_tool(self) -> dtos.Tool:
        return dtos.Tool(
            function=dtos.ToolFunction(
                name=self.name,
                parameters=self.schema(),
                description=self.description,
            )
        )


def _read_utf8(path: str) -> str:
    return Path(path).read_bytes().decode("utf-8")


class FileReaderTool(Tool):
    """Reads a whole text file."""

    name = "read_file"
    description = (
        "This tool allows you to open a file and read its content. "
        "It requires the path as an argument"
    )
    argument_schema = {"title": "String", "type": "string"}
    tool_errors = (OSError, UnicodeDecodeError)

    def parse_arguments(self, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError(f"invalid type: {json.dumps(value)}, expected a string")
        return value

    async def run_tool(self, path: str) -> str:
        return await asyncio.to_thread(_read_utf8, path)


def default_tools() -> dict[str, Tool]:
    """The tools offered to the model, keyed by name."""
    tools: list[Tool] = [FileReaderTool()]
    return {tool.name: tool for tool in tools}