"""Crew lifecycle: codes, dynamic table names and DDL, provisioning, orphan cleanup."""
from crews.codes import generate_crew_code
from crews.orphans import cleanup_orphaned_tables, find_orphaned_tables, get_crew_table_stats
from crews.provisioning import deprovision_crew, provision_crew
from crews.table_names import generate_crew_table_name
from crews.tables import create_histories_table, create_vector_table, drop_table

__all__ = [
    "generate_crew_code",
    "generate_crew_table_name",
    "create_vector_table",
    "create_histories_table",
    "drop_table",
    "provision_crew",
    "deprovision_crew",
    "find_orphaned_tables",
    "cleanup_orphaned_tables",
    "get_crew_table_stats",
]
