"""Infrastructure Layer — database access, audit persistence, logging setup.

Invariants:
    - Infrastructure never holds request-path state
    - All database errors mapped to DatabaseError

Design Decisions:
    - Thin wrappers over SQLAlchemy and stdlib logging (ADR: ExMA single responsibility)
"""
