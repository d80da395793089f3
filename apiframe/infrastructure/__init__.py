"""Infrastructure Layer — logging setup and backend failure interpretation.

Invariants:
    - Infrastructure never imports from api/
"""
