"""
Database package: declarative base, async engine/session management and
the ORM models for orders and their read-only collaborators.

Submodules are imported explicitly where needed to avoid import cycles.
"""

__all__ = []
