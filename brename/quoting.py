"""Quoting of strings for display as single POSIX shell arguments."""

import re


SHELL_SAFE = re.compile(r"[A-Za-z0-9@%:,./=+_-]+")


def quote(value: str) -> str:
    """Return ``value`` in a form a POSIX shell reads back as one word.

    Strings made only of safe characters are returned as they are. Anything
    else, the empty string included, is wrapped in single quotes, with each
    embedded single quote written as ``'\\''`` (close, escaped quote, reopen).
    """
    if SHELL_SAFE.fullmatch(value):
        return value
    return "'" + value.replace("'", "'\\''") + "'"
