"""Byte stream → canonical delta events.

Upstream backends disagree on framing (SSE ``data:`` lines with a ``[DONE]``
sentinel, bare NDJSON objects, typed events) and on where the text fragment
lives. ``StreamNormalizer`` owns the part they share: incremental decoding,
line reassembly across arbitrary read boundaries, sentinel handling, and
best-effort recovery of a truncated final object. A per-backend
``FrameParser`` owns the part they don't: pulling a delta (and a stop signal)
out of one decoded JSON payload.

Every normalized stream ends with exactly one ``done=True`` chunk.
"""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Iterator, Sequence

from conduit.core.llm.types import DeltaChunk
from conduit.utils.logging import get_logger

log = get_logger(__name__)

SSE_DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"

_SSE_FIELD_RE = re.compile(r"^(event|id|retry)\s*:")
_SURROGATE_RE = re.compile("[\ud800-\udfff]")
_JSON_ESCAPES = {
    '"': '"', "\\": "\\", "/": "/",
    "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t",
}
_ESCAPE_RE = re.compile(r"\\u([0-9a-fA-F]{4})|\\u[0-9a-fA-F]{0,3}$|\\(.)|\\$", re.DOTALL)

Path = Sequence[str | int]


@dataclass
class Frame:
    """What a parser found in one payload."""

    content: str = ""
    done: bool = False
    model: str | None = None


def dig(obj: Any, path: Path) -> Any:
    """Follow ``path`` through nested dicts/lists, returning None on any miss."""
    for step in path:
        if isinstance(step, int):
            if not isinstance(obj, list) or len(obj) <= step:
                return None
        elif not isinstance(obj, dict):
            return None
        obj = obj[step] if isinstance(step, int) else obj.get(step)
        if obj is None:
            return None
    return obj


def unescape_fragment(raw: str) -> str:
    """Decode JSON string escapes in a possibly truncated fragment."""
    try:
        text = json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        def _sub(m: re.Match[str]) -> str:
            if m.group(1):
                return chr(int(m.group(1), 16))
            if m.group(2) is not None:
                return _JSON_ESCAPES.get(m.group(2), m.group(2))
            return ""  # dangling backslash or half a \\u escape

        text = _ESCAPE_RE.sub(_sub, raw)
    # A surrogate half cut off from its pair can't be re-encoded downstream
    return _SURROGATE_RE.sub("", text)


def recover_field(text: str, keys: Sequence[str]) -> str:
    """Find ``"key": "value`` in raw text, tolerating a missing closing quote."""
    for key in keys:
        pattern = re.compile(
            r'"%s"\s*:\s*"((?:[^"\\]|\\.)*)(?:"|\\?$)' % re.escape(key), re.DOTALL
        )
        match = pattern.search(text)
        if match:
            fragment = unescape_fragment(match.group(1))
            if fragment:
                return fragment
    return ""


class FrameParser:
    """Default parser for the OpenAI-compatible chat-completions stream.

    Subclasses override ``parse`` for typed events or stateful deltas. One
    parser instance is used for exactly one stream.
    """

    delta_paths: tuple[Path, ...] = (
        ("choices", 0, "delta", "content"),
        ("message", "content"),
    )
    recovery_keys: tuple[str, ...] = ("content",)

    def parse(self, payload: Any) -> Frame | None:
        for path in self.delta_paths:
            delta = dig(payload, path)
            if isinstance(delta, str) and delta:
                return Frame(content=delta, model=dig(payload, ("model",)))
        return None

    def parse_bare(self, payload: Any) -> Frame | None:
        """Parse an object that arrived on a plain NDJSON line, outside SSE."""
        return self.parse(payload)

    def recover(self, text: str) -> Frame | None:
        fragment = recover_field(text, self.recovery_keys)
        return Frame(content=fragment) if fragment else None


class StreamNormalizer:
    def __init__(
        self,
        parser: FrameParser | None = None,
        model: str | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self._parser = parser or FrameParser()
        self._model = model
        self._encoding = encoding

    async def normalize(self, source: AsyncIterable[bytes]) -> AsyncIterator[DeltaChunk]:
        """Yield delta chunks in source order, then exactly one ``done`` chunk.

        The source is closed when the stream completes, fails, or the consumer
        stops iterating.
        """
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        pending = ""
        try:
            async for data in source:
                if not data:
                    continue
                pending += decoder.decode(data)
                *lines, pending = pending.split("\n")
                for chunk in self._chunks(lines):
                    yield chunk
                    if chunk.done:
                        return

            # Source exhausted without a sentinel: flush the decoder and
            # whatever partial line is left, then close the stream ourselves.
            pending += decoder.decode(b"", final=True)
            for chunk in self._chunks(pending.split("\n")):
                yield chunk
                if chunk.done:
                    return
            yield DeltaChunk(content="", done=True, model=self._model)
        finally:
            await _close(source)

    def _chunks(self, lines: list[str]) -> Iterator[DeltaChunk]:
        for line in lines:
            frame = self._parse_line(line)
            if frame is None:
                continue
            if frame.model:
                self._model = frame.model
            if frame.content:
                yield DeltaChunk(content=frame.content, done=False, model=self._model)
            if frame.done:
                yield DeltaChunk(content="", done=True, model=self._model)
                return

    def _parse_line(self, line: str) -> Frame | None:
        line = line.rstrip("\r\n")
        if not line.strip() or line.startswith(":") or _SSE_FIELD_RE.match(line):
            return None

        sse = line.startswith(SSE_DATA_PREFIX)
        if sse:
            payload = line[len(SSE_DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                return Frame(done=True)
        else:
            payload = line.strip()
        if not payload:
            return None

        try:
            obj = json.loads(payload)
        except json.JSONDecodeError:
            frame = self._parser.recover(payload)
            if frame is not None:
                log.debug("stream_fragment_recovered", chars=len(frame.content))
            return frame
        return self._parser.parse(obj) if sse else self._parser.parse_bare(obj)


async def _close(source: AsyncIterable[bytes]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


def encode_sse(chunk: DeltaChunk, fallback_model: str | None = None) -> bytes:
    """Render one chunk as a canonical outbound SSE frame."""
    data = json.dumps(
        {
            "choices": [{"delta": {"content": chunk.content}}],
            "model": chunk.model or fallback_model,
        },
        ensure_ascii=False,
    )
    return f"data: {data}\n\n".encode("utf-8")
