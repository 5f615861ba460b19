"""
Schemas module - Request/Response schemas for API endpoints.

Difference from models:
- Models: Internal domain types (enums, value objects, reconciliation)
- Schemas: API contract (what client sends/receives)
"""
