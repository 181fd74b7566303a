"""Index text parser.

Turns a human-written chapter index into ordered segments. Handles:
- Timestamp ranges ``HH:MM:SS-HH:MM:SS`` (hyphen or en dash)
- Marker glyphs and bracketed fragments around ranges
- Labeled titles (``内容: ...``, ``title: ...``)
- A flag annotation (``DAW操作: Yes`` by default) anywhere in a block

Two strategies are available. The block strategy (default) treats a range
line plus everything up to the next range line as one block. The line
strategy scans line by line and attaches a flag annotation only when it sits
directly before or after a range line; it keeps whole cleaned lines as
titles.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from index_clipper.models import ParseMode, Segment

DEFAULT_FLAG_PATTERN = r"DAW操作\s*[:：]\s*Yes"
DEFAULT_TITLE = "clip"


class ParseStrategy(str, Enum):
    """How flag annotations and titles are associated with ranges."""

    BLOCK = "block"
    LINE = "line"


@dataclass
class IndexBlock:
    """A range line and the lines that follow it up to the next range line.

    Attributes:
        line_number: Line number of the opening line (1-indexed)
        opening_line: The line holding the range markers
        body_lines: Following lines without ranges
    """

    line_number: int
    opening_line: str
    body_lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Full text of the block."""
        return "\n".join([self.opening_line, *self.body_lines])


class IndexParser:
    """Parser for timestamp index text.

    Example usage:
        parser = IndexParser()
        segments = parser.parse_text(text, ParseMode.FLAGGED)
        for segment in segments:
            print(segment.start, segment.end, segment.title)
    """

    RANGE_PATTERN = re.compile(r"(\d{2}:\d{2}:\d{2})\s*[-–]\s*(\d{2}:\d{2}:\d{2})")

    LABEL_PATTERN = re.compile(
        r"(?:内容|タイトル|題名|(?<![A-Za-z])(?:title|content))\s*[:：]\s*(?P<value>[^\n]*)",
        re.IGNORECASE,
    )

    BRACKETED_PATTERN = re.compile(r"\[[^\]\n]*\]")
    GLYPH_PATTERN = re.compile(r"[■◆●•□◇○▶▪]")
    WHITESPACE_PATTERN = re.compile(r"\s+")

    # Stripped from both ends of a title
    EDGE_CHARS = " \t-–—:：|/・,、。;；\"'"

    # Brackets are only stripped when they wrap the whole title or are unpaired
    BRACKET_PAIRS = {"(": ")", "（": "）", "[": "]", "【": "】", "「": "」", "『": "』"}
    CLOSING_BRACKETS = {close: open_ for open_, close in BRACKET_PAIRS.items()}

    def __init__(
        self,
        strategy: ParseStrategy = ParseStrategy.BLOCK,
        flag_pattern: str | re.Pattern[str] = DEFAULT_FLAG_PATTERN,
    ):
        """Initialize the parser.

        Args:
            strategy: Block-based or line-scanning association rules
            flag_pattern: Regex marking a block as flagged (case-insensitive)
        """
        self.strategy = strategy
        if isinstance(flag_pattern, re.Pattern):
            self.flag_pattern = flag_pattern
        else:
            self.flag_pattern = re.compile(flag_pattern, re.IGNORECASE)

    def parse_file(self, path: Path | str, mode: ParseMode = ParseMode.ALL) -> tuple[Segment, ...]:
        """Parse an index file (UTF-8)."""
        return self.parse_text(Path(path).read_text(encoding="utf-8"), mode)

    def parse_text(self, text: str, mode: ParseMode = ParseMode.ALL) -> tuple[Segment, ...]:
        """Parse index text into ordered segments.

        Args:
            text: Raw index text
            mode: Keep all segments or only flagged ones

        Returns:
            Segments in order of appearance; empty when no range is found
        """
        if self.strategy == ParseStrategy.LINE:
            segments = self._parse_lines(text)
        else:
            segments = []
            for block in self.split_blocks(text):
                segments.extend(self._parse_block(block))

        if mode == ParseMode.FLAGGED:
            segments = [s for s in segments if s.flagged is True]

        return tuple(segments)

    def split_blocks(self, text: str) -> list[IndexBlock]:
        """Split text into blocks, each opened by a line holding a range.

        Lines before the first range line are dropped.
        """
        blocks: list[IndexBlock] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if self.RANGE_PATTERN.search(line):
                blocks.append(IndexBlock(line_number=line_number, opening_line=line))
            elif blocks:
                blocks[-1].body_lines.append(line)
        return blocks

    def _parse_block(self, block: IndexBlock) -> list[Segment]:
        flagged = True if self.flag_pattern.search(block.text) else None
        block_title = self._block_title(block)

        line = block.opening_line
        matches = list(self.RANGE_PATTERN.finditer(line))
        segments = []
        for i, match in enumerate(matches):
            span_end = matches[i + 1].start() if i + 1 < len(matches) else len(line)
            title = self._span_title(line[match.end():span_end])
            if not title and i == 0:
                # "1. Opening 00:00:00-00:05:00": title written before the range
                title = self._span_title(line[:match.start()])
            segments.append(
                Segment(
                    start=match.group(1),
                    end=match.group(2),
                    title=title or block_title or DEFAULT_TITLE,
                    flagged=flagged,
                )
            )
        return segments

    def _block_title(self, block: IndexBlock) -> str:
        """First labeled value anywhere in the block."""
        for match in self.LABEL_PATTERN.finditer(self.flag_pattern.sub(" ", block.text)):
            title = self.clean(match.group("value"))
            if title:
                return title
        return ""

    def _span_title(self, span: str) -> str:
        """Title written right after one range on its own line."""
        span = self.flag_pattern.sub(" ", span)
        label = self.LABEL_PATTERN.search(span)
        if label:
            return self.clean(label.group("value"))
        return self.clean(span)

    def _parse_lines(self, text: str) -> list[Segment]:
        lines = text.splitlines()
        segments: list[Segment] = []
        pending_flag = False
        last_range_line = -1

        for index, line in enumerate(lines):
            has_flag = bool(self.flag_pattern.search(line))
            matches = list(self.RANGE_PATTERN.finditer(line))

            if matches:
                flagged = True if (has_flag or pending_flag) else None
                pending_flag = False
                last_range_line = index
                for match in matches:
                    remainder = self.flag_pattern.sub(" ", line.replace(match.group(0), " "))
                    segments.append(
                        Segment(
                            start=match.group(1),
                            end=match.group(2),
                            title=self.clean(remainder) or DEFAULT_TITLE,
                            flagged=flagged,
                        )
                    )
                continue

            if not has_flag:
                continue

            # Flag line right after a range line belongs to the last segment
            if last_range_line == index - 1 and segments:
                segments[-1] = segments[-1].model_copy(update={"flagged": True})
            elif index + 1 < len(lines) and self.RANGE_PATTERN.search(lines[index + 1]):
                pending_flag = True

        return segments

    @classmethod
    def clean(cls, text: str) -> str:
        """Strip brackets, glyphs, extra whitespace and edge punctuation.

        Brackets inside the title are kept: ``Intro (part 1)`` stays intact,
        while ``「Intro」`` and a stray ``] Intro`` both become ``Intro``.
        """
        text = cls.BRACKETED_PATTERN.sub(" ", text)
        text = cls.GLYPH_PATTERN.sub(" ", text)
        text = cls.WHITESPACE_PATTERN.sub(" ", text).strip(cls.EDGE_CHARS)

        while text:
            first, last = text[0], text[-1]
            if cls.BRACKET_PAIRS.get(first) == last and cls._encloses(text):
                text = text[1:-1]
            elif first in cls.CLOSING_BRACKETS or (
                first in cls.BRACKET_PAIRS and cls.BRACKET_PAIRS[first] not in text[1:]
            ):
                text = text[1:]
            elif last in cls.BRACKET_PAIRS or (
                last in cls.CLOSING_BRACKETS and cls.CLOSING_BRACKETS[last] not in text[:-1]
            ):
                text = text[:-1]
            else:
                break
            text = text.strip(cls.EDGE_CHARS)
        return text

    @classmethod
    def _encloses(cls, text: str) -> bool:
        """Whether the opening bracket at text[0] is closed by text[-1]."""
        opening, closing = text[0], cls.BRACKET_PAIRS[text[0]]
        depth = 0
        for index, char in enumerate(text):
            if char == opening:
                depth += 1
            elif char == closing:
                depth -= 1
                if depth == 0:
                    return index == len(text) - 1
        return False


def parse_index(
    text: str,
    mode: ParseMode = ParseMode.ALL,
    *,
    strategy: ParseStrategy = ParseStrategy.BLOCK,
    flag_pattern: str | re.Pattern[str] = DEFAULT_FLAG_PATTERN,
) -> tuple[Segment, ...]:
    """Parse index text with a one-off parser.

    Args:
        text: Raw index text
        mode: Keep all segments or only flagged ones
        strategy: Association rules for titles and flags
        flag_pattern: Regex for the flag annotation

    Returns:
        Ordered segments (possibly empty)
    """
    return IndexParser(strategy=strategy, flag_pattern=flag_pattern).parse_text(text, mode)
