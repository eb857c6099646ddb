"""
Infrastructure layer for Billsync.

This layer contains the implementation details for external systems integration:
- Backing stores (in-memory, SQLAlchemy)
- The Jira REST client
- The FastAPI web surface

It implements the interfaces defined in the domain layer.
"""
