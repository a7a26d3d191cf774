"""Driver applying a compiled rule to a batch of files."""

import logging
import os
import shlex
import subprocess
from collections.abc import Callable, Iterable

from brename.context import RuleContext
from brename.models.rename import RenameOp, RenameOptions, RenameReport, RenameStatus
from brename.rules import Rule, TransformError


log = logging.getLogger(__name__)


class RenameProcessor:
    """Renames files one at a time according to a rule."""

    def __init__(self, rule: Rule, options: RenameOptions | None = None) -> None:
        """Initialize the rename processor.

        Args:
            rule: Compiled rule computing each new name. Its context carries
                the state shared across the batch.
            options: How computed names are applied.
        """
        self.rule = rule
        self.options = options or RenameOptions()

    @property
    def context(self) -> RuleContext:
        return self.rule.context

    def _ensure_directory(self, target: str) -> None:
        """Create the parent directory of ``target`` unless already seen.

        Raises:
            OSError: If the directory cannot be created.
        """
        directory = os.path.dirname(target)
        if not directory or directory in self.context.created_dirs:
            return
        if not os.path.isdir(directory):
            if self.options.dry_run:
                log.info("Would create directory %s", directory)
            else:
                os.makedirs(directory, exist_ok=True)
                log.info("Created directory %s", directory)
        self.context.created_dirs.add(directory)

    def _move(self, source: str, target: str) -> None:
        """Rename ``source`` to ``target`` directly or via the configured command.

        Raises:
            OSError: If the rename fails or the command cannot be run or
                exits non-zero.
        """
        if self.options.command is None:
            os.rename(source, target)
            return

        argv = [*self.options.command, source, target]
        log.info("Running %s", shlex.join(argv))
        completed = subprocess.run(argv, check=False)
        if completed.returncode != 0:
            raise OSError(f"{shlex.join(self.options.command)} exited with status {completed.returncode}")

    def process(self, source: str) -> RenameOp:
        """Compute the new name for ``source`` and apply it.

        Collisions, missing sources and rename failures are recorded in the
        returned operation rather than raised.

        Raises:
            TransformError: If the rule fails for this file and
                ``keep_going`` is off.
        """
        try:
            target = self.rule.apply(source)
        except TransformError as e:
            if not self.options.keep_going:
                raise
            return RenameOp(source=source, target=source, status=RenameStatus.FAILED, message=str(e))

        if target == source:
            log.info("%s unchanged", source)
            return RenameOp(source=source, target=target, status=RenameStatus.UNCHANGED)

        if not self.context.exists(source):
            return RenameOp(
                source=source,
                target=target,
                status=RenameStatus.MISSING,
                message=f"Source file not found: {source}",
            )

        if not self.options.force and self.context.exists(target):
            return RenameOp(
                source=source,
                target=target,
                status=RenameStatus.COLLISION,
                message=f"Target file already exists: {target}",
            )

        try:
            if self.options.mkdir:
                self._ensure_directory(target)
            if self.options.dry_run:
                return RenameOp(source=source, target=target, status=RenameStatus.PLANNED)
            self._move(source, target)
        except OSError as e:
            return RenameOp(
                source=source,
                target=target,
                status=RenameStatus.FAILED,
                message=f"Cannot rename {source} to {target}: {e.strerror or e}",
            )

        return RenameOp(source=source, target=target, status=RenameStatus.RENAMED)

    def run(
        self,
        sources: Iterable[str],
        on_result: Callable[[RenameOp], None] | None = None,
    ) -> RenameReport:
        """Process every source in order.

        Args:
            sources: Input paths.
            on_result: Called with each operation as soon as it is done.

        Returns:
            RenameReport with one operation per source.

        Raises:
            TransformError: If the rule fails and ``keep_going`` is off.
                Files processed before the failure keep their new names.
        """
        report = RenameReport()
        for source in sources:
            op = self.process(source)
            report.operations.append(op)
            if on_result is not None:
                on_result(op)

        report.lookup_failed = self.context.failed
        return report
