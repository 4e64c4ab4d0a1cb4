from .crew import (
    CrewType,
    CrewStatus,
    TableType,
    CrewConfig,
    ProvisionCrewInput,
    CrewRecord,
    TablesCreated,
    ProvisionCrewResult,
    DeprovisionCrewResult,
)
from .conversation import (
    ConversationMessage,
    SessionMetadata,
    ConversationMetadata,
    ConversationDetail,
)
from .discovery import (
    CrewDiscoveryResult,
    DiscoveryResult,
    DiscoveryJobResult,
    OrphanedTable,
    CrewTableStats,
)

__all__ = [
    "CrewType", "CrewStatus", "TableType", "CrewConfig", "ProvisionCrewInput",
    "CrewRecord", "TablesCreated", "ProvisionCrewResult", "DeprovisionCrewResult",
    "ConversationMessage", "SessionMetadata", "ConversationMetadata", "ConversationDetail",
    "CrewDiscoveryResult", "DiscoveryResult", "DiscoveryJobResult",
    "OrphanedTable", "CrewTableStats",
]
