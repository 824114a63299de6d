"""Pydantic Schemas — response contracts for the gateway's own endpoints.

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
