"""Finding places where a growing markdown buffer can be flushed.

Rendering markdown piecewise only looks right if no block construct (code
fence, table, list, blockquote) is cut in half. `find_break_point` scans the
buffer line by line and returns the last position that sits outside any open
block.

This is a line-prefix heuristic, not a markdown parser. Block state is flat:
a list inside a blockquote is just "blockquote" or "list", whichever prefix
check matches first (table, then blockquote, then list). The state is
recomputed from the start of the buffer on every call.
"""

from __future__ import annotations

import re
from enum import Enum

CODE_FENCE = "```"
BULLET_MARKERS = ("- ", "* ", "+ ")
_NUMBERED_ITEM = re.compile(r"\d+\. ")


class BlockState(Enum):
    NONE = "none"
    CODE_BLOCK = "code_block"
    TABLE = "table"
    LIST = "list"
    BLOCKQUOTE = "blockquote"


def is_list_item(trimmed: str) -> bool:
    return trimmed.startswith(BULLET_MARKERS) or _NUMBERED_ITEM.match(trimmed) is not None


def _block_for_line(trimmed: str) -> BlockState | None:
    if trimmed.startswith("|"):
        return BlockState.TABLE
    if trimmed.startswith(">"):
        return BlockState.BLOCKQUOTE
    if is_list_item(trimmed):
        return BlockState.LIST
    return None


def find_break_point(content: str) -> int | None:
    """Return the largest prefix length of `content` that is safe to flush.

    Returns None when there is no safe point yet (for example while the
    buffer is inside an unterminated code fence).
    """

    lines = content.split("\n")
    if lines[-1] == "":
        # Nothing after the final newline yet; that is not a blank line.
        lines.pop()

    state = BlockState.NONE
    last_break: int | None = None

    position = 0
    for i, line in enumerate(lines):
        line_start = position
        position += len(line) + 1
        trimmed = line.strip()

        if trimmed.startswith(CODE_FENCE):
            state = BlockState.NONE if state is BlockState.CODE_BLOCK else BlockState.CODE_BLOCK
        if state is BlockState.CODE_BLOCK:
            continue

        block = _block_for_line(trimmed)
        if block is not None:
            state = block
        elif trimmed == "":
            if state is not BlockState.NONE:
                # Blank line closes the open block.
                state = BlockState.NONE
                last_break = line_start
            elif i > 0:
                is_last = i == len(lines) - 1
                if is_last or lines[i + 1].strip() != "":
                    last_break = line_start
        elif trimmed.startswith("#") and state is BlockState.NONE and i > 0:
            # Headings start a fresh segment.
            last_break = line_start

    return last_break
