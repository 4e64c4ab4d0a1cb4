"""Repository layer.

Fixed tables (ORM):
- clients: get_by_code, get_all_codes
- crews: get_by_id, get_by_code, get_by_client, get_configs_for_client_type,
         get_codes_for_client_type, get_all_configs, insert, delete
- conversations: get_conversations, get_conversation_by_id, get_known_session_ids,
                 get_latest_created_at, insert_if_absent
- knowledge_base: get_documents, get_by_doc_id, get_document_with_chunks,
                  get_known_doc_ids, insert_if_absent, delete_document

Dynamic crew tables (raw SQL, names validated by db.identifiers):
- histories: query_histories_table, get_distinct_session_ids, get_session_metadata
- vectors: get_document_groups, get_document_chunks, delete_document_chunks
"""
