"""Discovery: reconcile conversation and document metadata with crew tables."""
from discovery.conversations import discover_conversations
from discovery.incremental import (
    discover_conversations_optimized,
    discover_crew_conversations_optimized,
)
from discovery.job import run_conversation_discovery_job
from discovery.knowledge_base import discover_documents
from discovery.transcripts import (
    analyze_sentiment,
    calculate_duration,
    extract_customer_email,
    mask_email,
)

__all__ = [
    "discover_conversations",
    "discover_conversations_optimized",
    "discover_crew_conversations_optimized",
    "run_conversation_discovery_job",
    "discover_documents",
    "analyze_sentiment",
    "calculate_duration",
    "extract_customer_email",
    "mask_email",
]
