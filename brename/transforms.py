"""Built-in named transforms callable from a rule.

Every transform receives the working filename and the shared
:class:`~brename.context.RuleContext` and returns the rewritten name.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from brename.context import RuleContext


log = logging.getLogger(__name__)

# Characters left alone by clean and url_encode.
UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_./-]")
UNSAFE_RUNS = re.compile(r"[^A-Za-z0-9_./-]+")

# "#<digits>" marker used by unique to number duplicates.
DUPLICATE_MARKER = re.compile(r"#(\d+)")

CLEAN_MODES = ("strip", "collapse")


def _guard_leading_dash(value: str) -> str:
    """Keep a name from being read as a command-line flag."""
    if value.startswith("-"):
        return "_" + value[1:]
    return value


def _split_basename(value: str) -> tuple[str, str]:
    """Split ``value`` into its directory part (with trailing slash) and basename."""
    head, sep, base = value.rpartition("/")
    return head + sep, base


def lowercase(value: str, context: RuleContext) -> str:
    return value.lower()


def uppercase(value: str, context: RuleContext) -> str:
    return value.upper()


def clean(value: str, context: RuleContext, mode: str = "strip") -> str:
    """Remove characters outside the safe set.

    In ``strip`` mode unsafe characters are dropped; in ``collapse`` mode each
    run of them becomes a single underscore. The leading-dash guard runs
    before the scrub and again after it, so the result never starts with
    ``-`` and cleaning twice is the same as cleaning once.
    """
    if mode not in CLEAN_MODES:
        raise ValueError(f"unknown clean mode {mode!r}, expected one of {', '.join(CLEAN_MODES)}")

    value = _guard_leading_dash(value)
    if mode == "strip":
        value = UNSAFE_CHARS.sub("", value)
    else:
        value = UNSAFE_RUNS.sub("_", value)
    return _guard_leading_dash(value)


def _percent_encode(match: re.Match[str]) -> str:
    raw = match.group().encode("utf-8", "surrogateescape")
    return "".join(f"%{byte:02X}" for byte in raw)


def url_encode(value: str, context: RuleContext) -> str:
    """Percent-encode every character outside the safe set as ``%XX``."""
    return UNSAFE_CHARS.sub(_percent_encode, _guard_leading_dash(value))


def _next_candidate(value: str) -> str:
    directory, base = _split_basename(value)

    markers = list(DUPLICATE_MARKER.finditer(base))
    if markers:
        marker = markers[-1]
        digits = marker.group(1)
        bumped = str(int(digits) + 1).zfill(len(digits))
        base = f"{base[: marker.start()]}#{bumped}{base[marker.end() :]}"
    elif "." in base:
        stem, _, extension = base.rpartition(".")
        base = f"{stem}#1.{extension}"
    else:
        base = f"{base}#1"

    return directory + base


def unique(value: str, context: RuleContext) -> str:
    """Rewrite ``value`` until it names nothing on disk.

    ``foo.txt`` becomes ``foo#1.txt``, then ``foo#2.txt`` and so on. There is
    no iteration cap: the loop ends only when the existence probe says no.
    """
    while context.exists(value):
        candidate = _next_candidate(value)
        log.debug("%s exists, trying %s", value, candidate)
        value = candidate
    return value


def renumber(value: str, context: RuleContext, digits: int) -> str:
    """Replace the whole name with the next value of the run-wide counter.

    The extension is dropped along with the rest of the name.
    """
    return f"{context.next_number():0{digits}d}"


def by_date(value: str, context: RuleContext) -> str:
    """Prefix the name with a ``YYYY-MM-DD/`` directory from the file's mtime."""
    path = context.source or value
    try:
        stamp = context.mtime(path)
    except OSError as e:
        log.error("Cannot read modification time of %s: %s", path, e.strerror or e)
        context.mark_failed()
        return value

    local = context.localtime(stamp)
    return f"{local.tm_year:04d}-{local.tm_mon:02d}-{local.tm_mday:02d}/{value}"


def prefix(value: str, context: RuleContext, text: str) -> str:
    return text + value


def suffix(value: str, context: RuleContext, text: str) -> str:
    """Insert ``text`` before the extension, or at the end when there is none."""
    directory, base = _split_basename(value)
    stem, dot, extension = base.rpartition(".")
    if not dot or not stem:
        return value + text
    return f"{directory}{stem}{text}.{extension}"


@dataclass(frozen=True)
class NamedTransform:
    """A transform as seen by the rule compiler."""

    func: Callable[..., str]
    arg_types: tuple[type, ...] = ()
    required: int = 0

    def check_args(self, name: str, args: tuple) -> None:
        """Validate call arguments, raising ValueError on a bad call."""
        if not self.required <= len(args) <= len(self.arg_types):
            if self.required == len(self.arg_types):
                expected = str(self.required)
            else:
                expected = f"{self.required} to {len(self.arg_types)}"
            raise ValueError(f"{name} takes {expected} argument(s), got {len(args)}")

        for arg, arg_type in zip(args, self.arg_types):
            if not isinstance(arg, arg_type):
                raise ValueError(f"{name} expects a {arg_type.__name__} argument, got {arg!r}")

        if self.func is clean and args and args[0] not in CLEAN_MODES:
            raise ValueError(f"unknown clean mode {args[0]!r}, expected one of {', '.join(CLEAN_MODES)}")
        if self.func is renumber and args[0] < 0:
            raise ValueError(f"renumber needs a non-negative digit count, got {args[0]}")


TRANSFORMS: dict[str, NamedTransform] = {
    "lowercase": NamedTransform(lowercase),
    "lc": NamedTransform(lowercase),
    "uppercase": NamedTransform(uppercase),
    "uc": NamedTransform(uppercase),
    "clean": NamedTransform(clean, (str,), required=0),
    "url_encode": NamedTransform(url_encode),
    "unique": NamedTransform(unique),
    "renumber": NamedTransform(renumber, (int,), required=1),
    "by_date": NamedTransform(by_date),
    "prefix": NamedTransform(prefix, (str,), required=1),
    "suffix": NamedTransform(suffix, (str,), required=1),
}
