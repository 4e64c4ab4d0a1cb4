"""Crew provisioning schemas."""
from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CrewType = Literal["customer_support", "lead_generation"]
CrewStatus = Literal["active", "inactive", "error"]
TableType = Literal["vector", "histories"]


class CrewConfig(BaseModel):
    """The JSON blob stored in crews.config.

    Keys are camelCase on disk; unknown keys written by other flows are kept.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    vector_table_name: Optional[str] = Field(default=None, alias="vectorTableName")
    histories_table_name: Optional[str] = Field(default=None, alias="historiesTableName")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProvisionCrewInput(BaseModel):
    name: str = Field(min_length=1)
    client_id: str = Field(min_length=1, description="Owning client's client_code")
    type: CrewType
    webhook_url: str = Field(min_length=1)
    status: CrewStatus = "inactive"


class CrewRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    client_id: str
    crew_code: str
    type: CrewType
    config: Dict[str, Any]
    webhook_url: str
    status: CrewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TablesCreated(BaseModel):
    vector_table: Optional[str] = None
    histories_table: Optional[str] = None


class ProvisionCrewResult(BaseModel):
    crew: CrewRecord
    tables_created: TablesCreated


class DeprovisionCrewResult(BaseModel):
    crew_id: UUID
    crew_code: str
    dropped_tables: list[str] = Field(default_factory=list)
