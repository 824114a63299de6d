"""API Layer — route groups, request dependencies and error handlers.

Invariants:
    - Routes registered explicitly by mount_routes (no auto-discovery)
    - Every response body, success or error, is structured JSON
"""
