"""Services Layer — schema store, audit ledger, completion channel and the gateway.

Invariants:
    - The gateway owns all mutable state (no module-level registries)
    - Dispatch uses an explicit dict mapping (no auto-discovery)

Design Decisions:
    - One file per collaborator for locality (ADR: ExMA no god objects)
"""
