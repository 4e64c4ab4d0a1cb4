"""Discovery and orphan-scan result schemas."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class CrewDiscoveryResult(BaseModel):
    new_count: int = 0
    skipped_count: int = 0
    error_count: int = 0

    def __iadd__(self, other: "CrewDiscoveryResult") -> "CrewDiscoveryResult":
        self.new_count += other.new_count
        self.skipped_count += other.skipped_count
        self.error_count += other.error_count
        return self


class DiscoveryResult(CrewDiscoveryResult):
    """Totals over every crew of one client."""

    crews_scanned: int = 0


class DiscoveryJobResult(BaseModel):
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    clients_processed: int = 0
    clients_failed: int = 0
    total_new: int = 0
    total_skipped: int = 0
    total_errors: int = 0


class OrphanedTable(BaseModel):
    table_name: str
    table_type: Literal["vector", "histories"]
    reason: str


class CrewTableStats(BaseModel):
    total_crew_tables: int
    registered_tables: int
    orphaned_tables: int
    vector_tables: int
    histories_tables: int
