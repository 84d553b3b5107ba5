"""
Heimursaga API — Application Package
=====================================

What: The `saga` package holds the Heimursaga REST API (explorers, entries,
      expeditions, sponsorships).
Who:  Imported by uvicorn (`saga.main:app`), Alembic, and the test suite.

Layering:
    ┌─────────────────────────────────────┐
    │  Routes (HTTP, /v1)                 │  ← request parsing, status codes
    ├─────────────────────────────────────┤
    │  Services (business rules)          │  ← ownership, Stripe, events
    ├─────────────────────────────────────┤
    │  lib (pure helpers)                 │  ← money, tiers, sanitizer, geo
    ├─────────────────────────────────────┤
    │  Models & Schemas                   │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Database                           │  ← async sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
