# ferrum

ferrum is a chat agent for the terminal. It talks to an Ollama server,
shows the model's answer as it streams in, and runs the tools the model asks
for. The package also holds a small asynchronous client for Ollama's chat
endpoint that can be used on its own.

## Installation

```
pip install .
```

To run the test suite as well:

```
pip install ".[test]"
pytest
```

## Running the agent

```
ferrum
```

The contents of a prompt file (`./SOUL.md` by default) become the system
prompt of the conversation; if the file is missing, ferrum exits with
`SOUL.md not found`.

Options:

| Option       | Default                   | Meaning                         |
|--------------|---------------------------|---------------------------------|
| `--url`      | `http://localhost:11434`  | address of the Ollama server    |
| `--model`    | `qwen3.5:397b-cloud`      | model to chat with              |
| `--soul`     | `./SOUL.md`               | system prompt file              |
| `--log-dir`  | `logs`                    | directory for `ferrum.log`      |

Logs are written to `ferrum.log` in the log directory and rotated at
midnight.

The screen is split into the chat history, a status bar, and an input box.

| Key               | Action                                   |
|-------------------|------------------------------------------|
| Enter             | send the text in the input box           |
| Up, Down          | scroll the chat history                  |
| Left, Right, Home, End, Backspace, Delete | edit the input   |
| Ctrl-D            | stop the agent and quit                  |

Once a prompt is sent the status bar turns yellow; it returns to blue when an
error is reported. Streamed text from the assistant is joined into one entry
as it arrives.

### Tools

The model is offered one tool, `read_file` (`ferrum.tools.FileReaderTool`),
which takes a path as a JSON string and returns the file's UTF-8 text.

When the final part of an answer carries tool calls, the agent runs each one
and appends its result to the conversation history as a `tool` message. An
unknown tool name, arguments that do not match the tool's schema, or a failure
while running it are recorded the same way, as the text of the error, rather
than stopping the conversation. The results are sent to the model with the
next prompt.

New tools subclass `ferrum.tools.Tool`, giving `name`, `description`,
`argument_schema`, `parse_arguments` and an async `run_tool`.

## Using the API client

`ferrum.client.ApiConnection` sends chat requests to an Ollama server. The
request and response types live in `ferrum.dtos`.

```python
import asyncio

from ferrum.client import ApiConnection
from ferrum.dtos import GenerateChatMessageRequest, Message, Role


async def ask() -> None:
    async with ApiConnection("http://localhost:11434") as connection:
        request = GenerateChatMessageRequest(
            model="llama3",
            messages=[Message(role=Role.USER, content="Why is the sky blue?")],
        )
        response = await connection.run_chat_prompt_blocking(request)
        print(response.message.content)


asyncio.run(ask())
```

`ApiConnection` takes an optional `httpx.AsyncClient`; a client it creates
itself is closed by `aclose()` or on leaving the `async with` block.

`run_chat_prompt_blocking` waits for the whole answer and returns one
`GenerateChatMessageResponse` whose message joins the content, thinking,
images and tool calls of every streamed chunk.

`await run_chat_prompt_stream(request)` returns an async iterator of the
partial responses (`StreamChatPartialResponse`) followed by the final one
(`GenerateChatMessageResponse`). A line that cannot be decoded is yielded as
a `DecodeFailureError` and the stream goes on. `parse_stream_chat_response`
in `ferrum.dtos` tells chunks and the final response apart by the `done`
field. Both methods set `stream` on the request to true.

Failures are raised as subclasses of `ferrum.client.OllamaApiError`:
`UnreachableError`, `TimedOutError`, `DecodeFailureError`,
`ErrorStatusError`, `BadRequestError` and `CustomApiError`.

## What ferrum does not do

- The screen shows message text as plain wrapped lines; Markdown is not
  rendered, and tool results are not shown in the chat history.
- After running tool calls the agent does not ask the model to continue; the
  results reach the model with the next prompt you send.
- The agent's mode (`AgentMode.PLAN` / `AgentMode.BUILD`) is stored but
  changes nothing, and the screen offers no way to change the mode or the
  model or to clear the history. These exist only as agent commands
  (`ChangeMode`, `ChangeModel`, `ClearHistory`) for code that drives
  `ferrum.agent.OllamaAgent` itself.
- The status bar mentions `[Esc] Quit`, but Esc does nothing; quit with
  Ctrl-D.
- `ferrum.dtos` describes embedding requests and responses, but the client
  has no method that calls the embedding endpoint.