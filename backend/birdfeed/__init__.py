"""
Bird Feed Backend — Application Package Initializer
===================================================

What: Marks the `birdfeed` directory as a Python package.
Who:  Imported by uvicorn (`birdfeed.main:app`), Alembic, and pytest.

Architecture Note:
    The backend is layered the same way top to bottom:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← photo limits, Haikubox sync, scoring
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes hand work to services; services return schemas, not HTTP responses.
"""

__version__ = "1.0.0"
