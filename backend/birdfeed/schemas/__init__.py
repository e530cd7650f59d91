# Schemas package init
"""
Bird Feed Backend — Pydantic Request/Response Schemas
======================================================

Schemas are separate from the SQLAlchemy models: the API contract (computed
fields like photo_count and url, snake_case JSON) changes independently of
the tables, and nothing internal leaks into responses by accident.
"""
