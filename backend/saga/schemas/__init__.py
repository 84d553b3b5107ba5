"""
Heimursaga API — Request/Response Schemas
===========================================

Pydantic v2 models defining the API contract. They are separate from the
ORM models: integer ids, password hashes and Stripe ids never leave the
service layer. Money is exposed in dollars and stored in cents.
"""
