from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationIssue:
    row: int | None
    field: str | None
    message: str

    def __str__(self) -> str:
        where = []
        if self.row is not None:
            where.append(f"row {self.row}")
        if self.field is not None:
            where.append(f"field '{self.field}'")
        prefix = ", ".join(where)
        return f"{prefix}: {self.message}" if prefix else self.message

    def to_dict(self) -> dict:
        return {"row": self.row, "field": self.field, "message": self.message}


class ValidationError(ValueError):
    """Input rejected before analysis.

    Carries every offending row/field found in one pass, so callers can show the
    full list to the user instead of fixing one cell at a time.
    """

    def __init__(self, issues: list[ValidationIssue]):
        if not issues:
            raise ValueError("ValidationError needs at least one issue")
        self.issues = list(issues)
        super().__init__("; ".join(str(i) for i in self.issues))

    @property
    def rows(self) -> list[int]:
        return sorted({i.row for i in self.issues if i.row is not None})

    @property
    def fields(self) -> list[str]:
        seen: list[str] = []
        for i in self.issues:
            if i.field is not None and i.field not in seen:
                seen.append(i.field)
        return seen


class SettingsError(ValueError):
    pass


class ScoringInvariantError(RuntimeError):
    pass


class AnalysisCancelled(RuntimeError):
    pass
