"""
Collaborator data layer.

Responsibilities:
- Define the catalog, customer, order, preference and tag records.
- Provide the in-memory stores the core queries and upserts into.
- Load JSON snapshots of the surrounding backend's data.
"""
