"""apiframe — typed request dispatch between Starlette/FastAPI routing and handlers.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: callers import from the defining module
"""
