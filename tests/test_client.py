import json

import httpx
import pytest

from ferrum.client import (
    ApiConnection,
    BadRequestError,
    CustomApiError,
    DecodeFailureError,
    ErrorStatusError,
    MessageAccumulator,
    TimedOutError,
    UnreachableError,
    api_error_from_httpx,
)
from ferrum.dtos import (
    GenerateChatMessageRequest,
    GenerateChatMessageResponse,
    GeneratedMessage,
    Message,
    Role,
    StreamChatPartialResponse,
)

URL = "http://localhost:11434"


def _chunk(content, done=False, **message):
    return {
        "model": "m",
        "created_at": "2024-01-01T00:00:00Z",
        "message": {"role": "assistant", "content": content, **message},
        "done": done,
    }


def _last(content, **message):
    data = _chunk(content, done=True, **message)
    data.update(total_duration=10, prompt_eval_count=3, eval_count=7, done_reason="stop")
    return data


def _ndjson(*objects):
    return "".join(json.dumps(obj) + "\n" for obj in objects).encode()


def _connection(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ApiConnection(URL, client)


def _body():
    return GenerateChatMessageRequest(model="m", messages=[Message(role=Role.USER, content="hi")])


async def _collect(stream):
    return [item async for item in stream]


@pytest.mark.asyncio
async def test_stream_posts_to_chat_with_stream_flag():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, content=_ndjson(_last("ok")))

    conn = _connection(handler)
    body = _body()
    items = await _collect(await conn.run_chat_prompt_stream(body))
    assert body.stream is True
    assert captured[0].url.path == "/api/chat"
    sent = json.loads(captured[0].content)
    assert sent["stream"] is True
    assert sent["model"] == "m"
    assert sent["messages"] == [{"role": "user", "content": "hi"}]
    assert len(items) == 1


@pytest.mark.asyncio
async def test_stream_yields_chunks_then_last():
    def handler(request):
        return httpx.Response(200, content=_ndjson(_chunk("Hello "), _chunk("there"), _last("!")))

    items = await _collect(await _connection(handler).run_chat_prompt_stream(_body()))
    assert [item.is_last for item in items] == [False, False, True]
    assert [item.message.content for item in items] == ["Hello ", "there", "!"]
    assert isinstance(items[-1], GenerateChatMessageResponse)


@pytest.mark.asyncio
async def test_stream_reports_undecodable_line_and_continues():
    def handler(request):
        return httpx.Response(200, content=b"not json\n" + _ndjson(_last("done")))

    items = await _collect(await _connection(handler).run_chat_prompt_stream(_body()))
    assert isinstance(items[0], DecodeFailureError)
    assert items[1].message.content == "done"


@pytest.mark.asyncio
async def test_blocking_merges_all_chunks():
    call = {"function": {"name": "read_file", "arguments": "a.txt"}}

    def handler(request):
        return httpx.Response(
            200,
            content=_ndjson(
                _chunk("Hello ", thinking="hmm ", tool_calls=[call]),
                _chunk("world", images=["img1"]),
                _last("", thinking="ok"),
            ),
        )

    result = await _connection(handler).run_chat_prompt_blocking(_body())
    assert result.done is True
    assert result.message.content == "Hello world"
    assert result.message.thinking == "hmm ok"
    assert result.message.images == ["img1"]
    assert [c.function.name for c in result.message.tool_calls] == ["read_file"]
    assert result.eval_count == 7
    assert result.done_reason == "stop"


@pytest.mark.asyncio
async def test_blocking_without_last_raises():
    def handler(request):
        return httpx.Response(200, content=_ndjson(_chunk("partial")))

    with pytest.raises(CustomApiError) as info:
        await _connection(handler).run_chat_prompt_blocking(_body())
    assert info.value.detail == "The stream ended unexpectedly without 'Last' chunk"


@pytest.mark.asyncio
async def test_blocking_raises_decode_failure():
    def handler(request):
        return httpx.Response(200, content=b"{broken\n")

    with pytest.raises(DecodeFailureError):
        await _connection(handler).run_chat_prompt_blocking(_body())


@pytest.mark.asyncio
async def test_error_status_is_reported():
    def handler(request):
        return httpx.Response(404, content=b"missing")

    with pytest.raises(ErrorStatusError) as info:
        await _connection(handler).run_chat_prompt_stream(_body())
    assert info.value.detail == "404 Not Found"
    assert str(info.value).startswith("The request returned an error status: ")


@pytest.mark.asyncio
async def test_connection_failure_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UnreachableError) as info:
        await _connection(handler).run_chat_prompt_blocking(_body())
    assert str(info.value).startswith("Can't connect to ollama: ")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (httpx.ReadTimeout("slow"), TimedOutError),
        (httpx.ConnectTimeout("slow"), UnreachableError),
        (httpx.DecodingError("bad"), DecodeFailureError),
        (httpx.UnsupportedProtocol("ftp"), BadRequestError),
        (httpx.ReadError("reset"), CustomApiError),
    ],
)
def test_api_error_from_httpx(error, expected):
    result = api_error_from_httpx(error)
    assert type(result) is expected
    assert result.detail == str(error)


def test_accumulator_rejects_done_chunk():
    acc = MessageAccumulator()
    chunk = StreamChatPartialResponse(
        model="m", created_at="t", message=GeneratedMessage(content="x"), done=True
    )
    with pytest.raises(CustomApiError) as info:
        acc.add_chunk(chunk)
    assert info.value.detail == "Invalid API operation. Sent 'done' in a non 'done' response"
    assert acc.content == "x"


def test_accumulator_finish_keeps_last_when_empty():
    last = GenerateChatMessageResponse(model="m", done=True, message=GeneratedMessage(content="all"))
    result = MessageAccumulator().finish(last)
    assert result.message.content == "all"
    assert result.model == "m"


@pytest.mark.asyncio
async def test_aclose_leaves_provided_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    async with ApiConnection(URL, client) as conn:
        assert conn.client is client
    assert client.is_closed is False
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_closes_owned_client():
    conn = ApiConnection(URL)
    await conn.aclose()
    assert conn.client.is_closed is True