"""Tests for stream normalization across frame styles."""

import json

import pytest

from conduit.core.llm.anthropic import AnthropicFrameParser
from conduit.core.llm.google import GeminiFrameParser
from conduit.core.llm.huggingface import HuggingFaceFrameParser
from conduit.core.llm.ollama import OllamaFrameParser
from conduit.core.llm.types import DeltaChunk
from conduit.core.stream import (
    DONE_FRAME,
    FrameParser,
    StreamNormalizer,
    encode_sse,
    recover_field,
    unescape_fragment,
)

TEXTS = ["Hello", ", wor", "ld ✓", " ok"]


class ByteSource:
    """Async byte iterator that records whether it was closed."""

    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False
        self.reads = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        self.reads += 1
        return self._chunks.pop(0)

    async def aclose(self):
        self.closed = True


async def collect(normalizer, chunks):
    source = ByteSource(chunks)
    out = [c async for c in normalizer.normalize(source)]
    return out, source


def sse(obj) -> str:
    return f"data: {json.dumps(obj, ensure_ascii=False)}\n\n"


def openai_frames(texts):
    body = "".join(sse({"choices": [{"delta": {"content": t}}], "model": "gpt-x"}) for t in texts)
    return body + "data: [DONE]\n\n"


def anthropic_frames(texts):
    body = "event: message_start\n" + sse({"type": "message_start", "message": {"model": "claude-x"}})
    body += sse({"type": "content_block_start", "index": 0})
    for t in texts:
        body += "event: content_block_delta\n"
        body += sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": t}})
    body += "event: message_stop\n" + sse({"type": "message_stop"})
    return body


def gemini_frames(texts):
    return "".join(
        sse({"candidates": [{"content": {"parts": [{"text": t}]}}], "modelVersion": "gemini-x"})
        for t in texts
    )


def ollama_frames(texts):
    lines = [json.dumps({"model": "llama", "message": {"content": t}, "done": False}) for t in texts]
    lines.append(json.dumps({"model": "llama", "message": {"content": ""}, "done": True}))
    return "\n".join(lines) + "\n"


def hf_token_frames(texts):
    body = "".join(sse({"token": {"text": t, "special": False}}) for t in texts)
    body += sse({"token": {"text": "</s>", "special": True}})
    return body + "data: [DONE]\n\n"


def hf_snapshot_frames(texts):
    body, acc = "", ""
    for t in texts:
        acc += t
        body += sse({"generated_text": acc})
    return body + "data: [DONE]\n\n"


STYLES = [
    ("openai", FrameParser, openai_frames),
    ("anthropic", AnthropicFrameParser, anthropic_frames),
    ("gemini", GeminiFrameParser, gemini_frames),
    ("ollama", OllamaFrameParser, ollama_frames),
    ("hf-token", HuggingFaceFrameParser, hf_token_frames),
    ("hf-snapshot", HuggingFaceFrameParser, hf_snapshot_frames),
]


def split_every(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestFrameStyles:
    @pytest.mark.parametrize("style,parser_cls,render", STYLES, ids=[s[0] for s in STYLES])
    async def test_n_frames_give_n_chunks_then_one_done(self, style, parser_cls, render):
        data = render(TEXTS).encode()
        out, source = await collect(StreamNormalizer(parser_cls()), [data])
        assert [c.content for c in out[:-1]] == TEXTS
        assert all(not c.done for c in out[:-1])
        assert out[-1].done and out[-1].content == ""
        assert sum(c.done for c in out) == 1
        assert source.closed

    @pytest.mark.parametrize("style,parser_cls,render", STYLES, ids=[s[0] for s in STYLES])
    async def test_arbitrary_read_boundaries(self, style, parser_cls, render):
        data = render(TEXTS).encode()
        out, _ = await collect(StreamNormalizer(parser_cls()), split_every(data, 7))
        assert "".join(c.content for c in out) == "".join(TEXTS)
        assert [c.done for c in out].count(True) == 1


class TestNormalizer:
    async def test_multibyte_split_at_read_boundary(self):
        frame = openai_frames(["héllo ✓"]).encode()
        cut = frame.index("✓".encode()) + 1  # inside the 3-byte sequence
        out, _ = await collect(StreamNormalizer(), [frame[:cut], frame[cut:]])
        assert out[0].content == "héllo ✓"
        assert "�" not in out[0].content

    async def test_truncated_final_frame_recovered(self):
        data = b'data: {"choices":[{"delta":{"content":"partial tex'
        out, _ = await collect(StreamNormalizer(), [data])
        assert [(c.content, c.done) for c in out] == [("partial tex", False), ("", True)]

    async def test_truncated_escape_recovered(self):
        data = b'data: {"choices":[{"delta":{"content":"line\\nnext \\u00e9 \\'
        out, _ = await collect(StreamNormalizer(), [data])
        assert out[0].content == "line\nnext é "

    async def test_eof_without_sentinel_still_terminates(self):
        data = sse({"choices": [{"delta": {"content": "a"}}]}).encode()
        out, _ = await collect(StreamNormalizer(), [data])
        assert [(c.content, c.done) for c in out] == [("a", False), ("", True)]

    async def test_empty_stream_yields_only_done(self):
        out, _ = await collect(StreamNormalizer(model="m"), [])
        assert out == [DeltaChunk(content="", done=True, model="m")]

    async def test_nothing_after_done(self):
        data = (openai_frames(["x"]) + sse({"choices": [{"delta": {"content": "late"}}]})).encode()
        out, _ = await collect(StreamNormalizer(), [data])
        assert [c.content for c in out] == ["x", ""]

    async def test_comments_and_field_lines_skipped(self):
        data = (
            ": keep-alive\n\nid: 7\nretry: 1000\nevent: delta\n"
            + sse({"choices": [{"delta": {"content": "a"}}]})
            + "data: [DONE]\n\n"
        ).encode()
        out, _ = await collect(StreamNormalizer(), [data])
        assert [c.content for c in out] == ["a", ""]

    async def test_crlf_lines(self):
        data = b'data: {"choices":[{"delta":{"content":"a"}}]}\r\n\r\ndata: [DONE]\r\n\r\n'
        out, _ = await collect(StreamNormalizer(), [data])
        assert [c.content for c in out] == ["a", ""]

    async def test_model_from_payload_overrides_default(self):
        out, _ = await collect(StreamNormalizer(model="fallback"), [openai_frames(["a"]).encode()])
        assert out[0].model == "gpt-x"

    async def test_anthropic_model_from_message_start(self):
        out, _ = await collect(
            StreamNormalizer(AnthropicFrameParser(), model="requested"),
            [anthropic_frames(["hi"]).encode()],
        )
        assert out[0].model == "claude-x"

    async def test_source_closed_when_consumer_stops(self):
        source = ByteSource([openai_frames(["a", "b", "c"]).encode()])
        stream = StreamNormalizer().normalize(source)
        first = await stream.__anext__()
        assert first.content == "a"
        await stream.aclose()
        assert source.closed

    async def test_no_read_after_done(self):
        frames = [openai_frames(["a"]).encode(), b"never read"]
        out, source = await collect(StreamNormalizer(), frames)
        assert source.reads == 1
        assert out[-1].done

    async def test_hf_bare_full_text_terminates(self):
        data = json.dumps({"generated_text": "whole answer"}).encode() + b"\n"
        out, _ = await collect(StreamNormalizer(HuggingFaceFrameParser()), [data])
        assert [(c.content, c.done) for c in out] == [("whole answer", False), ("", True)]


class TestRecovery:
    def test_recover_field_without_closing_quote(self):
        assert recover_field('{"content":"abc', ("content",)) == "abc"

    def test_recover_field_with_escaped_quote(self):
        assert recover_field('{"content":"say \\"hi\\" now', ("content",)) == 'say "hi" now'

    def test_recover_field_missing(self):
        assert recover_field('{"role":"assistant"', ("content",)) == ""

    def test_unescape_drops_lone_surrogate(self):
        assert unescape_fragment("a\\ud83d") == "a"


class TestEncodeSSE:
    def test_canonical_frame(self):
        frame = encode_sse(DeltaChunk(content="héllo"), fallback_model="m")
        assert frame.startswith(b"data: ") and frame.endswith(b"\n\n")
        payload = json.loads(frame[len(b"data: "):].decode())
        assert payload == {"choices": [{"delta": {"content": "héllo"}}], "model": "m"}

    def test_done_frame(self):
        assert DONE_FRAME == b"data: [DONE]\n\n"
