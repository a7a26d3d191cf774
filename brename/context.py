"""Execution state shared by every file a rule is applied to."""

import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class RuleContext:
    """Process-wide state and filesystem collaborators for one run.

    A single context is created per invocation and handed by reference to
    every per-file application of a rule. Only the renumber counter, the
    set of created directories and the failure flag survive from one file
    to the next.
    """

    counter: int = 0
    created_dirs: set[str] = field(default_factory=set)
    failed: bool = False

    # Input path of the file currently being transformed.
    source: str = ""

    exists: Callable[[str], bool] = os.path.lexists
    mtime: Callable[[str], float] = os.path.getmtime
    localtime: Callable[[float], time.struct_time] = time.localtime

    def next_number(self) -> int:
        """Advance the renumber counter and return its new value."""
        self.counter += 1
        return self.counter

    def mark_failed(self) -> None:
        self.failed = True
