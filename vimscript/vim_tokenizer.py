"""
Splits script text into logical statements.

A statement (`Line`) is bounded by a newline or `|` and decomposes into
an optional range prefix, a command keyword, a bang flag and the
remaining parameter text. Two line sources share one interface: the live
`Tokenizer` over script text, and `LineReplay` over lines captured earlier
(function and loop bodies). Both can be cloned to restart a scan from the
current position.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_CONTINUATION = re.compile(r"\\[ \t]*\n[ \t]*")
_NUMERIC_RANGE = re.compile(r"(\d*)(?:[ \t]*(,)[ \t]*(\d*))?")


@dataclass(frozen=True)
class CmdRange:
    """The line range a command applies to.

    kind is one of: 'current', 'line', 'whole', 'select', 'from', 'to',
    'range'.
    """
    kind: str
    start: Optional[int] = None
    end: Optional[int] = None
    pattern: Optional[str] = None

    @classmethod
    def current_line(cls) -> "CmdRange":
        return cls("current")

    @classmethod
    def line(cls, n: int) -> "CmdRange":
        return cls("line", start=n)

    @classmethod
    def whole(cls) -> "CmdRange":
        return cls("whole")

    @classmethod
    def select(cls, pattern: str) -> "CmdRange":
        return cls("select", pattern=pattern)

    @classmethod
    def range_from(cls, n: int) -> "CmdRange":
        return cls("from", start=n)

    @classmethod
    def range_to(cls, n: int) -> "CmdRange":
        return cls("to", end=n)

    @classmethod
    def range(cls, start: int, end: int) -> "CmdRange":
        return cls("range", start=start, end=end)

    @property
    def is_current(self) -> bool:
        return self.kind == "current"

    def __str__(self) -> str:
        match self.kind:
            case "current":
                return ""
            case "line":
                return str(self.start)
            case "whole":
                return "%"
            case "select":
                return f"/{self.pattern}/"
            case "from":
                return f"{self.start},"
            case "to":
                return f",{self.end}"
        return f"{self.start},{self.end}"


@dataclass(frozen=True)
class Line:
    """One logical statement."""
    range: CmdRange
    command: str
    bang: bool
    params: str
    lineno: int = field(default=0, compare=False)

    @classmethod
    def parse(cls, text: str, lineno: int = 0) -> Optional["Line"]:
        """Decomposes one statement; returns None for blanks and comments."""
        text = _CONTINUATION.sub(" ", text).strip().lstrip(":").lstrip()
        if not text or text.startswith('"'):
            return None
        cmd_range, rest = split_range(text)
        command, rest = split_command(rest)
        bang, params = split_bang(rest)
        if not bang and not command:
            return None
        return cls(cmd_range, command, bang, params.lstrip(), lineno)

    def __str__(self) -> str:
        bang = "!" if self.bang else ""
        sep = " " if self.params else ""
        return f"{self.range}{self.command}{bang}{sep}{self.params}"


def split_range(text: str) -> Tuple[CmdRange, str]:
    if text.startswith("/"):
        i = 1
        while i < len(text) and text[i] != "/":
            # An escaped slash stays part of the pattern.
            i += 2 if text[i] == "\\" else 1
        pattern = text[1:i]
        return CmdRange.select(pattern), text[i + 1:]
    if text.startswith("%"):
        return CmdRange.whole(), text[1:]
    m = _NUMERIC_RANGE.match(text)
    start, comma, end = m.group(1), m.group(2), m.group(3)
    rest = text[m.end():]
    if not comma:
        return (CmdRange.line(int(start)) if start else CmdRange.current_line()), rest
    if start and end:
        return CmdRange.range(int(start), int(end)), rest
    if start:
        return CmdRange.range_from(int(start)), rest
    if end:
        return CmdRange.range_to(int(end)), rest
    return CmdRange.whole(), rest


def split_command(text: str) -> Tuple[str, str]:
    i = 0
    while i < len(text) and text[i].isalnum():
        i += 1
    return text[:i], text[i:]


def split_bang(text: str) -> Tuple[bool, str]:
    if text.startswith("!"):
        return True, text.lstrip("!")
    return False, text


# =================================================================
# Line sources
# =================================================================

class LineSource(ABC):
    """An iterator of Lines that can be cloned at its current position."""

    def __iter__(self):
        return self

    def __next__(self) -> Line:
        line = self.next_line()
        if line is None:
            raise StopIteration
        return line

    @abstractmethod
    def next_line(self) -> Optional[Line]:
        raise NotImplementedError

    @abstractmethod
    def clone(self) -> "LineSource":
        raise NotImplementedError


class Tokenizer(LineSource):
    """Live scan over script text."""

    def __init__(self, script: str, pos: int = 0, lineno: int = 1):
        self.script = script
        self.pos = pos
        self.lineno = lineno

    def next_line(self) -> Optional[Line]:
        while self.pos < len(self.script):
            lineno = self.lineno
            line = Line.parse(self._take_segment(), lineno)
            if line is not None:
                return line
        return None

    def _take_segment(self) -> str:
        s = self.script
        i = self.pos
        while i < len(s) and s[i] in " \t":
            i += 1
        # A comment runs to the end of the physical line, `|` included.
        separators = "\n" if i < len(s) and s[i] == '"' else "\n|"
        last = " "
        while i < len(s):
            c = s[i]
            if c in separators and last != "\\":
                break
            if c == "\n":
                self.lineno += 1
            if not c.isspace():
                last = c
            i += 1
        segment = s[self.pos:i]
        if i < len(s) and s[i] == "\n":
            self.lineno += 1
        self.pos = i + 1
        return segment

    def clone(self) -> "Tokenizer":
        return Tokenizer(self.script, self.pos, self.lineno)


class LineReplay(LineSource):
    """Replays lines captured earlier, without re-tokenizing."""

    def __init__(self, lines: List[Line], pos: int = 0):
        self.lines = lines
        self.pos = pos

    def next_line(self) -> Optional[Line]:
        if self.pos >= len(self.lines):
            return None
        line = self.lines[self.pos]
        self.pos += 1
        return line

    def clone(self) -> "LineReplay":
        return LineReplay(self.lines, self.pos)
