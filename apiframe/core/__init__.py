"""Core Layer — error envelope, tri-state fields, validation adapter.

Invariants:
    - No module in core/ imports from api/ or infrastructure/
    - No IO; everything here is usable outside a running server

Design Decisions:
    - Support types separated from the execution pipeline so handlers and
      tests can depend on them without pulling in routing
"""
