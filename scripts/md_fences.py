#!/usr/bin/env python3
"""
Markdown fence extraction for the MoonBit markdown linter.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List

from markdown_it import MarkdownIt

# Container markers in front of an opening fence: indentation and "> " quotes.
_CONTAINER_PREFIX_RE = re.compile(r"^(?:[ \t]*>[ ]?)*[ \t]*")


@dataclass(frozen=True)
class FenceToken:
    info: str
    content: str
    # markdown-it token.map convention: 0-based, end exclusive.
    begin_line: int
    end_line: int
    # source columns stripped from each content line (indent, "> " markers)
    indent: int = 0


def _content_indent(lines: List[str], begin: int, end: int, content: str) -> int:
    first = content.split("\n", 1)[0]
    if first and begin + 1 < min(end, len(lines)):
        src = lines[begin + 1]
        if src.endswith(first):
            return len(src) - len(first)
    if begin < len(lines):
        return len(_CONTAINER_PREFIX_RE.match(lines[begin]).group(0))
    return 0


def iter_fences(text: str) -> Iterator[FenceToken]:
    """Yield every fenced code block (``` or ~~~) of a markdown document.

    Fences nested in lists or blockquotes are included; ``indent`` is the
    number of source columns markdown-it stripped in front of the content.
    Indented code blocks are not yielded, they carry no info string to
    classify.
    """
    md = MarkdownIt()
    lines = text.splitlines()
    for token in md.parse(text):
        if token.type != "fence" or not token.map:
            continue
        begin, end = token.map
        yield FenceToken(
            info=token.info.strip(),
            content=token.content,
            begin_line=begin,
            end_line=end,
            indent=_content_indent(lines, begin, end, token.content),
        )
