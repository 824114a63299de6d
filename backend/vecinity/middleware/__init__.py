"""Middleware Pipeline — pure ASGI stages applied to every request.

Invariants:
    - Stage order is declared once in pipeline.PIPELINE
    - Stages share per-request data only through RequestContext
"""
