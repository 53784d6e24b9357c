"""Data models for Backlog Tasks."""

from .issue import Issue, NamedRef, ParentRef, ResolvedParent, StubParent

__all__ = ["Issue", "NamedRef", "ParentRef", "ResolvedParent", "StubParent"]
