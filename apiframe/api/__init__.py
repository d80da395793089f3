"""API Layer — endpoint contract, execution pipeline, middleware composition.

Invariants:
    - Classification happens only in endpoint.execute_endpoint
    - Endpoints never write to the response themselves (except RawResponder)
"""
