from __future__ import annotations

import codecs
import logging
from typing import Iterable, Iterator, Union

import requests

from ..core.errors import StreamReadError

LOG = logging.getLogger("blogify.stream")

FRAME_SEPARATOR = "\n\n"

Chunk = Union[bytes, str]


def iter_frames(chunks: Iterable[Chunk]) -> Iterator[str]:
    """Split a chunked event stream into raw frames.

    Chunks are decoded as UTF-8 incrementally, so a character or a frame
    boundary split across two reads is reassembled. A trailing frame that
    never sees its separator is dropped when the stream ends. Transport
    failures while reading surface as ``StreamReadError`` once every frame
    completed before the failure has been yielded.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    iterator = iter(chunks)
    while True:
        try:
            chunk = next(iterator)
        except StopIteration:
            break
        except (requests.exceptions.RequestException, OSError) as exc:
            LOG.warning("sse_read_failed", extra={"err": str(exc), "pending": len(buffer)})
            raise StreamReadError(f"Event stream interrupted: {exc}") from exc
        if not chunk:
            continue
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        while True:
            idx = buffer.find(FRAME_SEPARATOR)
            if idx == -1:
                break
            frame = buffer[:idx]
            buffer = buffer[idx + len(FRAME_SEPARATOR):]
            if frame.strip():
                yield frame
    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        LOG.debug("sse_unterminated_frame_dropped", extra={"chars": len(buffer)})
