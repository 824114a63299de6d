"""Core Layer — error hierarchy, per-request context and collaborator protocols.

Invariants:
    - No module in core/ imports from api/, middleware/, services/ or infrastructure/
    - No IO: nothing here touches the network, the database or the filesystem
"""
