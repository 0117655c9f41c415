from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import TextIO

from ghcopilot.cancel import CancellationError, CancelToken
from ghcopilot.handoff import Handoff
from ghcopilot.markdown_render import MarkdownRenderer
from ghcopilot.segmenter import find_break_point
from ghcopilot.stream_decoder import Chunk

logger = logging.getLogger(__name__)


class RendererState(Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    DRAINING = "draining"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TerminalRenderer:
    """Consume chunks from the handoff and print them as they become safe.

    Plain mode (no `markdown` renderer) prints text verbatim. Styled mode
    renders each segment through `markdown` before printing it.

    The renderer owns the accumulation buffer; nothing else reads or writes it.
    """

    def __init__(
        self,
        cancel_token: CancelToken,
        markdown: MarkdownRenderer | None = None,
        out: TextIO | None = None,
    ) -> None:
        self._cancel_token = cancel_token
        self._markdown = markdown
        self._out = out if out is not None else sys.stdout
        self._buffer = ""
        self.state = RendererState.WAITING

    @property
    def plain_text(self) -> bool:
        return self._markdown is None

    def render(self, chunks: Handoff[Chunk]) -> None:
        """Run the consumption loop until the stream ends, fails or is cancelled."""

        if self.state is not RendererState.WAITING:
            raise RuntimeError(f"renderer already ran (state: {self.state.value})")

        try:
            for chunk in chunks:
                if chunk.is_error:
                    raise chunk.error  # type: ignore[misc]

                self.state = RendererState.PROCESSING
                self._process_chunk(chunk.content)
                self.state = RendererState.WAITING

            self.state = RendererState.DRAINING
            self._render_remaining()
        except CancellationError:
            self.state = RendererState.CANCELLED
            raise
        except Exception:
            self.state = RendererState.FAILED
            raise

        self.state = RendererState.DONE

    def _process_chunk(self, content: str) -> None:
        self._buffer += content

        idx = find_break_point(self._buffer)
        if idx is None or idx <= 0:
            return

        self._cancel_token.check()
        segment, self._buffer = self._buffer[:idx], self._buffer[idx:]
        logger.debug("flushing segment of %d chars (%d buffered)", len(segment), len(self._buffer))
        self._render_content(segment)

    def _render_remaining(self) -> None:
        # Open blocks no longer matter: the stream is over.
        remaining, self._buffer = self._buffer, ""
        if remaining:
            self._render_content(remaining)
        print(file=self._out, flush=True)

    def _render_content(self, content: str) -> None:
        if self._markdown is None:
            self._out.write(content)
            self._out.flush()
            return

        content = content.strip()
        if not content:
            return
        if content.startswith("#"):
            # Keep headings from sticking to whatever was printed before.
            print(file=self._out)

        styled = self._markdown.render(content)
        print(styled.strip(), file=self._out, flush=True)
