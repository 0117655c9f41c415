from __future__ import annotations

"""Markdown rendering helpers for terminal output.

We use Rich to turn markdown segments into styled (ANSI) text. Rendering goes
into a string first so the caller decides how the result is trimmed and
printed. Raw HTML support stays disabled to avoid accidental injection when
content includes snippets of untrusted text.
"""

import io
import shutil

from rich.console import Console
from rich.markdown import Markdown

DEFAULT_WRAP_WIDTH = 120

# Theme name -> Pygments style used for fenced code.
CODE_THEMES = {
    "auto": "monokai",
    "dark": "monokai",
    "light": "default",
    "notty": "default",
}


class RenderError(RuntimeError):
    """Styled rendering failed. Never retried."""


class MarkdownRenderer:
    def __init__(self, theme: str = "auto", wrap_width: int | None = DEFAULT_WRAP_WIDTH) -> None:
        self.theme = theme
        self.wrap_width = wrap_width
        # Unknown names are taken to be Pygments styles.
        self.code_theme = CODE_THEMES.get(theme, theme)

    def _width(self) -> int:
        if self.wrap_width and self.wrap_width > 0:
            return self.wrap_width
        return shutil.get_terminal_size().columns

    def render(self, text: str) -> str:
        buffer = io.StringIO()
        no_color = self.theme == "notty"
        console = Console(
            file=buffer,
            width=self._width(),
            force_terminal=not no_color,
            no_color=no_color,
            color_system=None if no_color else "auto",
            highlight=False,
        )
        try:
            # Rich's Markdown supports GitHub-ish basics (lists, bold, code fences, etc.).
            md = Markdown(text, code_theme=self.code_theme, hyperlinks=True)
            console.print(md)
        except Exception as e:
            raise RenderError(f"failed to render markdown: {e}") from e
        return buffer.getvalue()
