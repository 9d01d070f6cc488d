"""Dry-run preview of a bulk migration."""

from typing import List

from pydantic import BaseModel, Field

from .planning import Disposition, WorkPlan

DEFAULT_SECONDS_PER_ENGINE = 240.0

LABELS = {
    Disposition.COMPLETED: '[COMPLETED]',
    Disposition.NOT_PREVIOUSLY_FAILED: '[SKIP - not failed]',
    Disposition.EXISTS_ON_TARGET: '[SKIP - exists]',
    Disposition.RETRY: '[RETRY]',
    Disposition.OVERWRITE: '[OVERWRITE]',
    Disposition.FRESH: '',
}


class DryRunRow(BaseModel):
    """One candidate as shown in the preview."""

    index: int
    source: str
    destination: str
    disposition: Disposition

    @property
    def label(self) -> str:
        return LABELS[self.disposition]

    @property
    def will_migrate(self) -> bool:
        return self.disposition.should_process


class DryRunReport(BaseModel):
    """Preview of what a live run with the same inputs would do."""

    rows: List[DryRunRow] = Field(default_factory=list)
    concurrency: int = Field(..., description='Engines processed in parallel')
    seconds_per_engine: float = Field(default=DEFAULT_SECONDS_PER_ENGINE)

    @property
    def will_migrate(self) -> int:
        return sum(1 for row in self.rows if row.will_migrate)

    @property
    def will_skip(self) -> int:
        return len(self.rows) - self.will_migrate

    @property
    def estimated_seconds(self) -> float:
        return self.will_migrate * self.seconds_per_engine / self.concurrency

    @property
    def estimated_minutes(self) -> float:
        return self.estimated_seconds / 60

    @property
    def migrating(self) -> List[str]:
        """Source names the live run would process."""
        return [row.source for row in self.rows if row.will_migrate]


def build_dry_run_report(
    plan: WorkPlan,
    concurrency: int,
    seconds_per_engine: float = DEFAULT_SECONDS_PER_ENGINE,
) -> DryRunReport:
    """Project a work plan into preview rows and a duration estimate."""
    rows = [
        DryRunRow(
            index=index,
            source=item.name,
            destination=item.destination,
            disposition=item.disposition,
        )
        for index, item in enumerate(plan.items, start=1)
    ]
    return DryRunReport(
        rows=rows, concurrency=concurrency, seconds_per_engine=seconds_per_engine
    )
