from __future__ import annotations

import logging

from ghcopilot.cancel import CancelToken
from ghcopilot.handoff import Handoff
from ghcopilot.stream_decoder import Chunk, StreamDecoder
from ghcopilot.terminal_renderer import TerminalRenderer

logger = logging.getLogger(__name__)


def stream_response(body, renderer: TerminalRenderer, cancel_token: CancelToken) -> None:
    """Decode `body` on a background thread and render it on this one.

    Returns when the renderer is done, or raises the first fatal error from
    either side (read failure, cancellation, render failure).

    The decoder thread is not joined. Once the renderer stops, the handoff is
    abandoned so a decoder blocked on `send` exits on its own.
    """

    chunks: Handoff[Chunk] = Handoff(cancel_token)
    StreamDecoder(body, chunks, cancel_token).start()

    try:
        renderer.render(chunks)
    finally:
        chunks.abandon()
        logger.debug("renderer finished in state %s", renderer.state.value)
