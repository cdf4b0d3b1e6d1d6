"""Route Modules — one file per concern.

Invariants:
    - Routers are built by factories (paths and operations come from configuration)
    - Routes never contain business logic (delegate to services)

Design Decisions:
    - Explicit registration in main.py over auto-discovery (ADR: ExMA anti-pattern)
"""
