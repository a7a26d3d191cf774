"""Rename operation data models."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class RenameStatus(str, Enum):
    """Outcome of processing one input path."""

    RENAMED = "renamed"
    PLANNED = "planned"
    UNCHANGED = "unchanged"
    COLLISION = "collision"
    MISSING = "missing"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        return self in (RenameStatus.COLLISION, RenameStatus.MISSING, RenameStatus.FAILED)


class RenameOp(BaseModel):
    """A single file rename and its outcome."""

    source: str = Field(description="Path as given on input")
    target: str = Field(description="Path computed by the rule")
    status: RenameStatus = Field(description="What happened to this file")
    message: str = Field(description="Diagnostic for failed operations", default="")

    def __str__(self) -> str:
        return f"RenameOp('{self.source}' -> '{self.target}', status={self.status.value})"


class RenameReport(BaseModel):
    """Outcomes for every file of a batch, in input order."""

    operations: list[RenameOp] = Field(
        description="Processed rename operations",
        default_factory=list,
    )
    lookup_failed: bool = Field(
        description="A transform could not read file metadata during the run",
        default=False,
    )

    def __len__(self) -> int:
        return len(self.operations)

    def count(self, status: RenameStatus) -> int:
        return sum(1 for op in self.operations if op.status is status)

    @property
    def failed(self) -> bool:
        """True if any file failed, which makes the process exit non-zero."""
        return self.lookup_failed or any(op.status.is_failure for op in self.operations)


class RenameOptions(BaseModel):
    """Settings controlling how computed names are applied."""

    force: bool = Field(description="Overwrite existing destinations", default=False)
    dry_run: bool = Field(description="Report renames without performing them", default=False)
    mkdir: bool = Field(description="Create missing destination directories", default=False)
    command: list[str] | None = Field(
        description="Program run as COMMAND SOURCE TARGET instead of renaming directly",
        default=None,
    )
    keep_going: bool = Field(
        description="Record rule errors per file instead of aborting the run",
        default=False,
    )

    @field_validator("command")
    @classmethod
    def command_not_empty(cls, value: list[str] | None) -> list[str] | None:
        if value is not None and not value:
            raise ValueError("command must name a program")
        return value
