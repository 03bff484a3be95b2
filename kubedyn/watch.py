"""
Decoding of watch streams.

The server answers a `?watch=true` request with one JSON document per line,
for as long as the connection stays open:

    {"type":"ADDED","object":{...}}\\n
    {"type":"MODIFIED","object":{...}}\\n

The transport hands us the body in chunks of arbitrary size, so a line can be
split across any number of chunks and a chunk can hold any number of lines.
"""

import json
from typing import AsyncIterable, AsyncIterator, Iterator, Optional

from kubedyn.errors import DecodeError
from kubedyn.events import WatchEvent, WatchEventType


def decode_event(line: bytes) -> WatchEvent:
    try:
        text = line.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("Watch line is not valid utf-8", line) from exc

    try:
        dct = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError("Watch line is not valid json", line) from exc

    if not isinstance(dct, dict):
        raise DecodeError("Watch line is not a json object", line)

    try:
        event_type = WatchEventType(dct.get("type"))
    except ValueError as exc:
        raise DecodeError("Watch line has unknown event type", line) from exc

    return WatchEvent(type=event_type, object=dct.get("object"))


class WatchDecoder:
    def __init__(self) -> None:
        # the unterminated tail of the stream, never contains a newline
        self.buffer = b""

    def feed(self, chunk: bytes) -> Iterator[WatchEvent]:
        """
        Yields an event for every line completed by `chunk`, as soon as it is
        found. The generator must be exhausted before the next chunk is fed.
        """

        start = 0

        while True:
            index = chunk.find(b"\n", start)
            if index == -1:
                break

            line = self.buffer + chunk[start:index]
            self.buffer = b""
            start = index + 1

            yield decode_event(line)

        if start < len(chunk):
            self.buffer += chunk[start:]

    def finish(self) -> Optional[WatchEvent]:
        if not self.buffer:
            return None

        line, self.buffer = self.buffer, b""
        return decode_event(line)


async def decode_watch_stream(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[WatchEvent]:
    decoder = WatchDecoder()

    try:
        async for chunk in chunks:
            for event in decoder.feed(chunk):
                yield event

        event = decoder.finish()
        if event is not None:
            yield event

    finally:
        # release the connection when the consumer stops early
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
