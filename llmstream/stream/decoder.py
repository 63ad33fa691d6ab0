"""
Incremental decoder for ``data:``-prefixed event streams.

Network reads never line up with protocol lines: a single read may hold
several lines, half a line, or half of a multi-byte character. The decoder
keeps the unconsumed tail between reads so the frames it produces depend only
on the bytes received, never on how the transport split them.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import Iterable, Iterator

from llmstream.constants import DEFAULT_ENCODING, EVENT_DATA_PREFIX, STREAM_DONE_SENTINEL


@dataclass(frozen=True)
class Frame:
    """
    One decoded protocol unit: the payload of a single ``data:`` line.

    Parameters
    ----------
    payload : str
        Everything after the ``data: `` prefix.
    is_terminal : bool, default=False
        True for the termination sentinel; no frame follows a terminal one.
    """

    payload: str
    is_terminal: bool = False


class EventFrameDecoder:
    """
    Turn arbitrarily chunked stream text into an ordered list of Frames.

    Parameters
    ----------
    prefix : str, default="data: "
        Marker a line must start with to be relevant.
    sentinel : str, default="[DONE]"
        Payload that marks the clean end of the stream.

    Examples
    --------
    >>> decoder = EventFrameDecoder()
    >>> decoder.feed('data: {"text": "Hel')
    []
    >>> decoder.feed('lo"}\\n\\ndata: [DONE]\\n')
    [Frame(payload='{"text": "Hello"}', is_terminal=False), Frame(payload='[DONE]', is_terminal=True)]
    >>> decoder.done
    True
    """

    def __init__(
        self,
        prefix: str = EVENT_DATA_PREFIX,
        sentinel: str = STREAM_DONE_SENTINEL,
    ) -> None:
        self.prefix: str = prefix
        self.sentinel: str = sentinel
        self._buffer: str = ""
        self._text_decoder = codecs.getincrementaldecoder(DEFAULT_ENCODING)(errors="replace")
        self._done: bool = False

    @property
    def done(self) -> bool:
        """Whether the termination sentinel has been seen."""
        return self._done

    @property
    def buffered(self) -> str:
        """Text received after the last complete line."""
        return self._buffer

    def feed(self, chunk: str | bytes) -> list[Frame]:
        """
        Consume the next chunk and return the frames it completes.

        Parameters
        ----------
        chunk : str | bytes
            Next piece of the body. Bytes are decoded as UTF-8 incrementally.

        Returns
        -------
        list[Frame]
            Frames completed by this chunk, in wire order. Empty once the
            sentinel has been seen.
        """
        if self._done or not chunk:
            return []

        if isinstance(chunk, bytes):
            chunk = self._text_decoder.decode(chunk)
            if not chunk:
                return []

        *lines, self._buffer = (self._buffer + chunk).split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[Frame]:
        """
        Decode whatever is left once the transport reports end of body.

        A final line without a trailing newline is still a candidate line.

        Returns
        -------
        list[Frame]
            Zero or one frame.
        """
        if self._done:
            return []

        tail: str = self._buffer + self._text_decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail:
            return []
        return self._parse_lines([tail])

    def _parse_lines(self, lines: list[str]) -> list[Frame]:
        frames: list[Frame] = []
        for line in lines:
            frame: Frame | None = self._parse_line(line)
            if frame is None:
                continue
            frames.append(frame)
            if frame.is_terminal:
                self._done = True
                self._buffer = ""
                break
        return frames

    def _parse_line(self, line: str) -> Frame | None:
        if line.endswith("\r"):
            line = line[:-1]

        # Blank keep-alives, comments and other fields are not errors
        if not line.startswith(self.prefix):
            return None

        payload: str = line[len(self.prefix):]
        if payload == self.sentinel:
            return Frame(payload=payload, is_terminal=True)
        return Frame(payload=payload)


def iter_frames(chunks: Iterable[str | bytes]) -> Iterator[Frame]:
    """
    Decode an iterable of chunks, stopping after the terminal frame.

    Parameters
    ----------
    chunks : Iterable[str | bytes]
        Body chunks in arrival order.

    Yields
    ------
    Frame
        Decoded frames, including the terminal one if present.

    Examples
    --------
    >>> [f.payload for f in iter_frames(["data: a\\nda", "ta: b\\n"])]
    ['a', 'b']
    """
    decoder = EventFrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
        if decoder.done:
            return
    yield from decoder.flush()
