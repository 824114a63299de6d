"""Services Layer — startup workflows that coordinate infrastructure.

Invariants:
    - Services depend on protocols from core/, never on concrete drivers
"""
