"""Decoding of the chat-completion event stream.

The response body is a sequence of newline-delimited frames:

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: {"choices":[{"delta":{"content":"lo"}}]}
    data: [DONE]

`StreamDecoder` turns that body into `Chunk`s and hands them, one at a time,
to the renderer through a `Handoff`. It runs on its own thread and owns the
handoff's lifetime: it closes it exactly once, whatever way it exits.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ghcopilot.cancel import CancellationError, CancelToken
from ghcopilot.handoff import Handoff

logger = logging.getLogger(__name__)

# Longest line buffered before the stream is treated as broken.
MAX_LINE_BYTES = 1024 * 1024
READ_SIZE = 4096

DATA_PREFIX = "data: "
DONE_FRAME = "data: [DONE]"


class StreamReadError(OSError):
    """The response body could not be read. Always fatal."""


class DecodeError(ValueError):
    """A single frame could not be parsed. The frame is skipped."""


@dataclass(frozen=True)
class Chunk:
    content: str = ""
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class ChoiceContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    delta: ChoiceContent = Field(default_factory=ChoiceContent)
    message: ChoiceContent = Field(default_factory=ChoiceContent)

    def text(self) -> str:
        # Streaming responses carry `delta`; some models send a whole `message`.
        return self.delta.content or self.message.content or ""


class ChatResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: list[Choice] = Field(default_factory=list)


def parse_frame(data: str) -> str:
    """Return the content carried by one frame payload (may be empty).

    Raises DecodeError if the payload is not a chat-completion JSON object.
    """

    try:
        response = ChatResponse.model_validate_json(data)
    except ValidationError as e:
        raise DecodeError(str(e)) from e

    if not response.choices:
        return ""
    return response.choices[0].text()


class StreamDecoder:
    def __init__(
        self,
        body,
        handoff: Handoff[Chunk],
        cancel_token: CancelToken,
    ) -> None:
        self._body = body
        self._handoff = handoff
        self._cancel_token = cancel_token

    def start(self) -> threading.Thread:
        """Run the decoder on a background (daemon) thread."""
        thread = threading.Thread(target=self.run, name="stream-decoder", daemon=True)
        thread.start()
        return thread

    def run(self) -> None:
        try:
            self._decode()
        finally:
            self._handoff.close()

    def _decode(self) -> None:
        try:
            for line in self._lines():
                if line == "" or line == DONE_FRAME:
                    continue

                data = line[len(DATA_PREFIX):] if line.startswith(DATA_PREFIX) else line
                try:
                    content = parse_frame(data)
                except DecodeError as e:
                    logger.debug("skipping malformed frame %.80r: %s", line, e)
                    continue

                if content and not self._handoff.send(Chunk(content=content)):
                    logger.debug("renderer stopped reading; decoder exiting")
                    return
        except CancellationError as e:
            logger.debug("decoder cancelled: %s", e)
            self._handoff.send(Chunk(error=e))
        except StreamReadError as e:
            logger.debug("stream read failed: %s", e)
            self._handoff.send(Chunk(error=e))
        except Exception as e:
            # Whatever else the body raises also ends the stream with an error.
            logger.debug("stream read failed: %s", e)
            err = StreamReadError(f"error reading response stream: {e}")
            err.__cause__ = e
            self._handoff.send(Chunk(error=err))

    def _reads(self) -> Iterator[bytes]:
        body = self._body
        if hasattr(body, "read"):
            fragments: Iterable[bytes] = _read_body(body)
        else:
            fragments = body

        it = iter(fragments)
        while True:
            # Checked before every read; an in-flight read is only unblocked by
            # the transport timeout.
            self._cancel_token.check()
            try:
                fragment = next(it)
            except StopIteration:
                return
            if fragment:
                yield fragment

    def _lines(self) -> Iterator[str]:
        pending = bytearray()
        for fragment in self._reads():
            # Bytes before `start` were already searched for a newline.
            start = len(pending)
            pending += fragment
            while True:
                idx = pending.find(b"\n", start)
                if idx < 0:
                    break
                if idx > MAX_LINE_BYTES:
                    raise StreamReadError(f"stream line exceeds {MAX_LINE_BYTES} bytes")
                raw = bytes(pending[:idx])
                del pending[: idx + 1]
                start = 0
                yield _decode_line(raw)

            if len(pending) > MAX_LINE_BYTES:
                raise StreamReadError(f"stream line exceeds {MAX_LINE_BYTES} bytes")

        if pending:
            yield _decode_line(bytes(pending))


def _read_body(body) -> Iterator[bytes]:
    while True:
        fragment = body.read(READ_SIZE)
        if fragment is None:
            # A non-blocking raw stream with nothing ready; we only do blocking reads.
            raise StreamReadError("response body returned no data (non-blocking stream)")
        if not fragment:
            return
        yield fragment


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")
