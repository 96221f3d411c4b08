"""Output stream decoration and secret masking.

A StreamDecorator wraps a byte-oriented output sink in another sink. The
MaskingDecorator buffers output line by line, and any line containing a bound
secret is re-encoded with every occurrence replaced by MASK before being
forwarded. Lines without a match are forwarded as the original bytes.

Decorators compose: ``merge_decorators(outer, inner).decorate(sink)`` gives
``outer.decorate(inner.decorate(sink))``, so writes pass through ``outer``
first and close propagates from ``outer`` down to the sink.

Example:
    >>> pattern = SecretPattern(get_aggregate_secret_pattern(["s3cr3t"]))
    >>> stream = MaskingDecorator(pattern, "utf-8").decorate(sys.stdout.buffer)
    >>> stream.write(b"token=s3cr3t\\n")   # emits b"token=****\\n"
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from .patterns import SecretPattern

MASK = "****"
"""Literal text replacing every masked secret occurrence."""


class OutputSink(Protocol):
    """Minimal byte sink interface (satisfied by binary files and BytesIO)."""

    def write(self, data: bytes, /) -> Any: ...

    def flush(self) -> Any: ...

    def close(self) -> Any: ...


class LineTransformationStream(ABC):
    """Byte stream that hands complete lines (including b"\\n") to eol().

    A trailing partial line is held until more data arrives, or until flush()
    or close() forces it out.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def eol(self, line: bytes) -> None:
        """Handle one complete line (or a forced partial line)."""
        pass

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed stream")
        self._buffer.extend(data)

        start = 0
        while True:
            end = self._buffer.find(b"\n", start)
            if end < 0:
                break
            self.eol(bytes(self._buffer[start : end + 1]))
            start = end + 1
        if start:
            del self._buffer[:start]
        return len(data)

    def force_eol(self) -> None:
        """Emit any held partial line."""
        if self._buffer:
            line = bytes(self._buffer)
            self._buffer.clear()
            self.eol(line)

    def flush(self) -> None:
        self.force_eol()

    def close(self) -> None:
        if not self._closed:
            self.force_eol()
            self._closed = True


class MaskingStream(LineTransformationStream):
    """Line stream replacing secret matches with MASK before forwarding."""

    def __init__(self, sink: OutputSink, pattern: SecretPattern, charset: str) -> None:
        super().__init__()
        self._sink = sink
        self._pattern = pattern
        self._charset = charset

    def eol(self, line: bytes) -> None:
        # surrogateescape keeps bytes that are invalid in the charset intact on re-encode
        text = line.decode(self._charset, errors="surrogateescape")
        if self._pattern.search(text):
            masked = self._pattern.sub(MASK, text)
            self._sink.write(masked.encode(self._charset, errors="surrogateescape"))
        else:
            # Avoid decode/encode round trip unless something was actually masked
            self._sink.write(line)

    def flush(self) -> None:
        super().flush()
        self._sink.flush()

    def close(self) -> None:
        super().close()
        self._sink.close()


class StreamDecorator(ABC):
    """Wraps an output sink in a transforming sink."""

    @abstractmethod
    def decorate(self, sink: OutputSink) -> OutputSink:
        pass


class MaskingDecorator(StreamDecorator):
    """Decorator masking secrets matched by an aggregate pattern."""

    def __init__(self, pattern: SecretPattern, charset: str) -> None:
        self.pattern = pattern
        self.charset = charset

    @classmethod
    def create_from(
        cls, pattern: SecretPattern, charset: str, original: StreamDecorator | None
    ) -> StreamDecorator:
        """Build a masking decorator placed in front of an existing chain."""
        merged = merge_decorators(cls(pattern, charset), original)
        assert merged is not None
        return merged

    def decorate(self, sink: OutputSink) -> OutputSink:
        return MaskingStream(sink, self.pattern, self.charset)

    def __repr__(self) -> str:
        return f"MaskingDecorator(charset={self.charset!r})"


class MergedDecorator(StreamDecorator):
    """Two decorators applied as ``original.decorate(subsequent.decorate(sink))``."""

    def __init__(self, original: StreamDecorator, subsequent: StreamDecorator) -> None:
        self.original = original
        self.subsequent = subsequent

    def decorate(self, sink: OutputSink) -> OutputSink:
        return self.original.decorate(self.subsequent.decorate(sink))


def merge_decorators(
    original: StreamDecorator | None, subsequent: StreamDecorator | None
) -> StreamDecorator | None:
    """Compose two decorators; either may be None."""
    if original is None:
        return subsequent
    if subsequent is None:
        return original
    return MergedDecorator(original, subsequent)


__all__ = [
    "MASK",
    "LineTransformationStream",
    "MaskingDecorator",
    "MaskingStream",
    "MergedDecorator",
    "OutputSink",
    "StreamDecorator",
    "merge_decorators",
]
