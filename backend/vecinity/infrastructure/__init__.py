"""Infrastructure Layer — database engine and logging setup.

Invariants:
    - Infrastructure never imports from api/ or middleware/
    - Driver errors are mapped to VecinityError subclasses before leaving this layer
"""
