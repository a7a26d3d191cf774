"""Rule engine: compiles rule text into a per-file name transform.

A rule is a small, safe language of statements separated by ``;`` or
newlines::

    s/ +/_/g                 regex substitution (flags g, i, x)
    y/A-Z/a-z/               transliteration (also tr///)
    clean("collapse")        call a named transform
    last if /\\.bak$/          stop processing this file
    prefix("old-") unless /^old-/

Rules never execute arbitrary code; the only callables are the named
transforms registered in :mod:`brename.transforms`.
"""

import logging
import re
from collections.abc import Callable, Iterable
from enum import Enum

from brename.context import RuleContext
from brename.transforms import TRANSFORMS


log = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"[A-Za-z_]\w*")
INTEGER = re.compile(r"-?\d+")
REGEX_FLAGS = {"i": re.IGNORECASE, "x": re.VERBOSE}

# Perl-style group references in a substitution's replacement.
PERL_GROUP_REF = re.compile(r"\\\$|\$(\d+)|\$\{(\w+)\}|\$&")


class RuleError(Exception):
    """Base class for rule failures."""


class RuleSyntaxError(RuleError):
    """The rule text could not be compiled."""

    def __init__(self, message: str, text: str = "", offset: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.text = text
        self.offset = offset

    def __str__(self) -> str:
        if not self.text:
            return self.message
        return f"{self.message} at position {self.offset} of rule {self.text!r}"


class TransformError(RuleError):
    """Applying a compiled rule to one file failed."""

    def __init__(self, message: str, filename: str) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename

    def __str__(self) -> str:
        return f"{self.filename}: {self.message}"


class Flow(Enum):
    """What the engine does after a step."""

    CONTINUE = "continue"
    STOP = "stop"


Step = Callable[[str, RuleContext], tuple[str, Flow]]


def _substitution(pattern: re.Pattern[str], template: str, count: int) -> Step:
    def run(value: str, context: RuleContext) -> tuple[str, Flow]:
        return pattern.sub(template, value, count=count), Flow.CONTINUE

    return run


def _transliteration(table: dict[int, str]) -> Step:
    def run(value: str, context: RuleContext) -> tuple[str, Flow]:
        return value.translate(table), Flow.CONTINUE

    return run


def _call(func: Callable[..., str], args: tuple) -> Step:
    def run(value: str, context: RuleContext) -> tuple[str, Flow]:
        return func(value, context, *args), Flow.CONTINUE

    return run


def _stop(value: str, context: RuleContext) -> tuple[str, Flow]:
    return value, Flow.STOP


def _guarded(step: Step, pattern: re.Pattern[str], negate: bool) -> Step:
    def run(value: str, context: RuleContext) -> tuple[str, Flow]:
        if bool(pattern.search(value)) != negate:
            return step(value, context)
        return value, Flow.CONTINUE

    return run


def _perl_replacement(template: str) -> str:
    """Translate ``$1``, ``${name}`` and ``$&`` into Python template syntax."""

    def convert(match: re.Match[str]) -> str:
        if match.group() == "\\$":
            return "$"
        if match.group() == "$&":
            return r"\g<0>"
        return rf"\g<{match.group(1) or match.group(2)}>"

    return PERL_GROUP_REF.sub(convert, template)


def _tr_chars(spec: str) -> list[str]:
    """Expand a transliteration list, honouring ``a-z`` ranges and escapes."""
    escapes = {"n": "\n", "t": "\t"}
    chars: list[tuple[str, bool]] = []
    i = 0
    while i < len(spec):
        if spec[i] == "\\" and i + 1 < len(spec):
            chars.append((escapes.get(spec[i + 1], spec[i + 1]), True))
            i += 2
        else:
            chars.append((spec[i], False))
            i += 1

    expanded: list[str] = []
    i = 0
    while i < len(chars):
        char = chars[i][0]
        if i + 2 < len(chars) and chars[i + 1] == ("-", False):
            end = chars[i + 2][0]
            if ord(end) < ord(char):
                raise ValueError(f"invalid range {char}-{end}")
            expanded.extend(chr(code) for code in range(ord(char), ord(end) + 1))
            i += 3
        else:
            expanded.append(char)
            i += 1
    return expanded


class _Parser:
    """Recursive-descent parser turning rule text into steps."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def error(self, message: str, offset: int | None = None) -> RuleSyntaxError:
        return RuleSyntaxError(message, self.text, self.pos if offset is None else offset)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_blanks(self) -> None:
        while self.peek() in (" ", "\t", "\r"):
            self.pos += 1

    def at_statement_end(self) -> bool:
        return self.peek() in ("", ";", "\n")

    def parse(self) -> list[Step]:
        steps: list[Step] = []
        while True:
            self.skip_blanks()
            char = self.peek()
            if not char:
                return steps
            if char in (";", "\n"):
                self.pos += 1
                continue
            if char == "#":
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end == -1 else end
                continue

            step = self.parse_statement()
            self.skip_blanks()
            step = self.parse_modifier(step)
            self.skip_blanks()
            if not self.at_statement_end():
                raise self.error(f"unexpected {self.peek()!r}")
            steps.append(step)

    def read_identifier(self) -> str:
        match = IDENTIFIER.match(self.text, self.pos)
        if not match:
            raise self.error(f"unexpected {self.peek()!r}" if self.peek() else "unexpected end of rule")
        self.pos = match.end()
        return match.group()

    def is_delimiter(self, char: str) -> bool:
        return bool(char) and not (char.isalnum() or char.isspace() or char in "_;(\\")

    def read_delimited(self, delimiter: str) -> str:
        """Read up to the next unescaped ``delimiter`` and step past it."""
        start = self.pos
        parts: list[str] = []
        while True:
            char = self.peek()
            if not char:
                raise self.error(f"unterminated expression, missing closing {delimiter!r}", start)
            if char == "\\" and self.pos + 1 < len(self.text):
                following = self.text[self.pos + 1]
                parts.append(following if following == delimiter else char + following)
                self.pos += 2
                continue
            self.pos += 1
            if char == delimiter:
                return "".join(parts)
            parts.append(char)

    def read_flags(self, allowed: str) -> str:
        start = self.pos
        match = IDENTIFIER.match(self.text, self.pos)
        flags = match.group() if match else ""
        for flag in flags:
            if flag not in allowed:
                raise self.error(f"unknown flag {flag!r}", start)
        self.pos += len(flags)
        return flags

    def compile_regex(self, source: str, flags: str, offset: int) -> re.Pattern[str]:
        value = 0
        for flag in flags:
            value |= REGEX_FLAGS.get(flag, 0)
        try:
            return re.compile(source, value)
        except re.error as e:
            raise self.error(f"invalid regular expression {source!r}: {e.msg}", offset) from e

    def parse_statement(self) -> Step:
        start = self.pos
        name = self.read_identifier()

        if name in ("s", "y", "tr") and self.is_delimiter(self.peek()):
            delimiter = self.peek()
            self.pos += 1
            if name == "s":
                return self.parse_substitution(delimiter, start)
            return self.parse_transliteration(delimiter, start)

        if name == "last":
            return _stop

        args = self.parse_arguments()
        transform = TRANSFORMS.get(name)
        if transform is None:
            raise self.error(f"unknown transform {name!r}", start)
        try:
            transform.check_args(name, args)
        except ValueError as e:
            raise self.error(str(e), start) from e
        return _call(transform.func, args)

    def parse_substitution(self, delimiter: str, start: int) -> Step:
        source = self.read_delimited(delimiter)
        replacement = _perl_replacement(self.read_delimited(delimiter))
        flags = self.read_flags("gix")

        pattern = self.compile_regex(source, flags, start)
        try:
            pattern.sub(replacement, "")
        except (re.error, IndexError) as e:
            raise self.error(f"invalid replacement {replacement!r}: {e}", start) from e
        return _substitution(pattern, replacement, 0 if "g" in flags else 1)

    def parse_transliteration(self, delimiter: str, start: int) -> Step:
        try:
            source = _tr_chars(self.read_delimited(delimiter))
            target = _tr_chars(self.read_delimited(delimiter)) or list(source)
        except ValueError as e:
            raise self.error(str(e), start) from e
        if len(target) < len(source):
            target += target[-1:] * (len(source) - len(target))

        table: dict[int, str] = {}
        for char, replacement in zip(source, target):
            table.setdefault(ord(char), replacement)
        return _transliteration(table)

    def parse_arguments(self) -> tuple:
        self.skip_blanks()
        if self.peek() != "(":
            return ()
        self.pos += 1

        args: list[int | str] = []
        while True:
            self.skip_blanks()
            char = self.peek()
            if char == ")" and not args:
                self.pos += 1
                return ()
            if char in ("'", '"'):
                self.pos += 1
                args.append(self.read_delimited(char).replace("\\\\", "\\"))
            elif INTEGER.match(self.text, self.pos):
                match = INTEGER.match(self.text, self.pos)
                args.append(int(match.group()))
                self.pos = match.end()
            else:
                args.append(self.read_identifier())

            self.skip_blanks()
            char = self.peek()
            self.pos += 1
            if char == ")":
                return tuple(args)
            if char != ",":
                self.pos -= 1
                raise self.error("expected ',' or ')' in argument list")

    def parse_modifier(self, step: Step) -> Step:
        match = IDENTIFIER.match(self.text, self.pos)
        if not match or match.group() not in ("if", "unless"):
            return step
        self.pos = match.end()
        self.skip_blanks()

        start = self.pos
        if self.peek() == "m" and self.is_delimiter(self.text[self.pos + 1 : self.pos + 2]):
            self.pos += 1
        delimiter = self.peek()
        if not self.is_delimiter(delimiter):
            raise self.error(f"expected a /pattern/ after {match.group()!r}")
        self.pos += 1

        source = self.read_delimited(delimiter)
        flags = self.read_flags("ix")
        pattern = self.compile_regex(source, flags, start)
        return _guarded(step, pattern, negate=match.group() == "unless")


class Rule:
    """A compiled rule, applied once per input file."""

    def __init__(self, text: str, steps: list[Step], context: RuleContext) -> None:
        self.text = text
        self.steps = steps
        self.context = context

    @classmethod
    def compile(cls, fragments: Iterable[str], context: RuleContext | None = None) -> "Rule":
        """Join rule fragments in order and compile them.

        Args:
            fragments: Pieces of rule text, each one or more statements.
            context: Shared run state. A fresh one is created if omitted.

        Returns:
            The compiled rule.

        Raises:
            RuleSyntaxError: If the text does not parse.
        """
        text = "\n".join(fragments)
        steps = _Parser(text).parse()
        log.debug("Compiled rule %r into %d step(s)", text, len(steps))
        return cls(text, steps, context if context is not None else RuleContext())

    def apply(self, name: str) -> str:
        """Run every step on ``name`` and return the resulting name.

        Raises:
            TransformError: If a step fails for this file.
        """
        self.context.source = name
        value = name
        for step in self.steps:
            try:
                value, flow = step(value, self.context)
            except (re.error, ValueError, OSError, IndexError) as e:
                raise TransformError(str(e), name) from e
            if flow is Flow.STOP:
                break
        return value

    __call__ = apply

    def __len__(self) -> int:
        return len(self.steps)
