from __future__ import annotations

import io
import json
import threading
import time
from unittest.mock import Mock

import pytest

from ghcopilot.cancel import CancellationError, CancelToken
from ghcopilot.pipeline import stream_response
from ghcopilot.stream_decoder import StreamReadError
from ghcopilot.terminal_renderer import RendererState, TerminalRenderer

DOC = """# Heading

Intro paragraph.

```python
def f():

    return 1
```

| a | b |
|---|---|
| 1 | 2 |

- item one
- item two

> quote

Done.
"""


def frame(content: str) -> bytes:
    return b"data: " + json.dumps({"choices": [{"delta": {"content": content}}]}).encode() + b"\n"


def frames(pieces: list[str], done: bool = True) -> list[bytes]:
    out = [frame(p) for p in pieces]
    if done:
        out.append(b"data: [DONE]\n")
    return out


def split_every(text: str, n: int) -> list[str]:
    return [text[i : i + n] for i in range(0, len(text), n)]


def capturing_markdown(segments: list[str]):
    md = Mock()

    def render(text):
        segments.append(text)
        return text

    md.render.side_effect = render
    return md


def test_scenario_a_heading_then_body_styled():
    out = io.StringIO()
    segments: list[str] = []
    token = CancelToken()
    renderer = TerminalRenderer(token, markdown=capturing_markdown(segments), out=out)

    stream_response(frames(["# Title\n\n", "Body text.\n\n"]), renderer, token)

    assert segments == ["# Title", "Body text."]
    assert out.getvalue() == "\n# Title\nBody text.\n\n"
    assert renderer.state is RendererState.DONE


def test_scenario_b_malformed_frame_between_valid_frames():
    out = io.StringIO()
    token = CancelToken()
    body = [frame("first "), b"data: {oops\n", frame("second"), b"data: [DONE]\n"]

    stream_response(body, TerminalRenderer(token, out=out), token)

    assert out.getvalue() == "first second\n"


def test_scenario_c_table_flushed_as_one_segment():
    segments: list[str] = []
    token = CancelToken()
    renderer = TerminalRenderer(token, markdown=capturing_markdown(segments), out=io.StringIO())
    text = "| a | b |\n| - | - |\n| 1 | 2 |\n\nNext paragraph"

    stream_response(frames(split_every(text, 2)), renderer, token)

    assert segments == ["| a | b |\n| - | - |\n| 1 | 2 |", "Next paragraph"]


def test_scenario_d_unterminated_fence_force_flushed_once():
    segments: list[str] = []
    token = CancelToken()
    renderer = TerminalRenderer(token, markdown=capturing_markdown(segments), out=io.StringIO())
    text = "```go\nfunc main() {\n\n}\n"

    stream_response(frames(split_every(text, 4)), renderer, token)

    assert segments == [text.strip()]


@pytest.mark.parametrize("size", [1, 3, 7, 64])
def test_plain_output_equals_decoded_content(size):
    out = io.StringIO()
    token = CancelToken()

    stream_response(frames(split_every(DOC, size)), TerminalRenderer(token, out=out), token)

    assert out.getvalue() == DOC + "\n"


@pytest.mark.parametrize("size", [1, 2, 5, 11])
def test_blocks_never_split_across_segments(size):
    segments: list[str] = []
    token = CancelToken()
    renderer = TerminalRenderer(token, markdown=capturing_markdown(segments), out=io.StringIO())

    stream_response(frames(split_every(DOC, size)), renderer, token)

    assert "\n\n".join(segments) == DOC.strip()
    for seg in segments:
        fences = [line for line in seg.split("\n") if line.strip().startswith("```")]
        assert len(fences) % 2 == 0
        rows = [line for line in seg.split("\n") if line.startswith("|")]
        assert len(rows) in (0, 3)


def test_read_error_surfaces_after_partial_output():
    out = io.StringIO()
    token = CancelToken()

    def body():
        yield frame("Partial answer.\n\n")
        raise ConnectionResetError("reset by peer")

    with pytest.raises(StreamReadError):
        stream_response(body(), TerminalRenderer(token, out=out), token)

    assert out.getvalue() == "Partial answer.\n"


class _ClosedAfterFirstRead(io.BytesIO):
    def read(self, size=-1):
        if self.tell() > 0:
            raise ValueError("I/O operation on closed file.")
        return super().read(size)


def test_unexpected_body_error_is_not_reported_as_success():
    out = io.StringIO()
    token = CancelToken()
    renderer = TerminalRenderer(token, out=out)
    body = _ClosedAfterFirstRead(frame("Partial answer.\n\n") + b"data: " + b"x" * 5000)

    with pytest.raises(StreamReadError, match="closed file"):
        stream_response(body, renderer, token)

    assert renderer.state is RendererState.FAILED
    assert out.getvalue() == "Partial answer.\n"


def test_cancellation_mid_stream():
    out = io.StringIO()
    token = CancelToken()
    gate = threading.Event()
    renderer = TerminalRenderer(token, out=out)

    def body():
        yield frame("one\n\n")
        gate.wait(timeout=5)
        yield frame("two\n\n")

    errors: list[BaseException] = []

    def run():
        try:
            stream_response(body(), renderer, token)
        except BaseException as e:
            errors.append(e)

    t = threading.Thread(target=run, daemon=True)
    t.start()

    deadline = time.monotonic() + 5
    while "one" not in out.getvalue() and time.monotonic() < deadline:
        time.sleep(0.01)

    token.cancel("interrupted")
    t.join(timeout=2)
    gate.set()

    assert not t.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], CancellationError)
    assert "two" not in out.getvalue()
    assert renderer.state is RendererState.CANCELLED


def test_deadline_cancels_slow_stream():
    token = CancelToken()
    token.set_deadline(0.1)

    def body():
        yield frame("slow ")
        time.sleep(0.3)
        yield frame("answer")

    with pytest.raises(CancellationError, match="deadline exceeded"):
        stream_response(body(), TerminalRenderer(token, out=io.StringIO()), token)
