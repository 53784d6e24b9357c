"""Issue data models for Backlog Tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class NamedRef:
    """A small named enum value fetched from Backlog (issue type, status, priority)."""

    id: int
    name: str

    @classmethod
    def from_api(cls, data: Optional[dict]) -> "NamedRef":
        if not data:
            return cls(id=0, name="")
        return cls(id=data.get("id", 0), name=data.get("name") or "")


@dataclass(frozen=True)
class Issue:
    """A Backlog issue as fetched for one sync pass."""

    id: int
    issue_key: str
    summary: str
    description: str = ""
    project_id: Optional[int] = None
    issue_type: NamedRef = NamedRef(0, "")
    priority: NamedRef = NamedRef(0, "")
    status: NamedRef = NamedRef(0, "")
    parent_issue_id: Optional[int] = None
    assignee: Optional[str] = None
    created_user: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    due_date: Optional[str] = None
    categories: tuple[str, ...] = ()
    versions: tuple[str, ...] = ()
    milestones: tuple[str, ...] = ()

    # Full API payload, kept for get-issue output
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False, hash=False)

    @property
    def has_parent(self) -> bool:
        return self.parent_issue_id is not None

    @property
    def tags(self) -> list[str]:
        """Tag projection: type, priority, status, categories, versions, milestones."""
        candidates = [
            self.issue_type.name,
            self.priority.name,
            self.status.name,
            *self.categories,
            *self.versions,
            *self.milestones,
        ]
        return [tag for tag in candidates if tag and tag.strip()]

    @classmethod
    def from_api(cls, data: dict) -> "Issue":
        """Create an Issue from a Backlog API issue payload."""
        assignee = data.get("assignee") or {}
        created_user = data.get("createdUser") or {}
        return cls(
            id=data["id"],
            issue_key=data["issueKey"],
            summary=data.get("summary") or "",
            description=data.get("description") or "",
            project_id=data.get("projectId"),
            issue_type=NamedRef.from_api(data.get("issueType")),
            priority=NamedRef.from_api(data.get("priority")),
            status=NamedRef.from_api(data.get("status")),
            parent_issue_id=data.get("parentIssueId"),
            assignee=assignee.get("name"),
            created_user=created_user.get("name"),
            created=data.get("created"),
            updated=data.get("updated"),
            due_date=data.get("dueDate"),
            categories=tuple(c.get("name", "") for c in data.get("category") or []),
            versions=tuple(v.get("name", "") for v in data.get("versions") or []),
            milestones=tuple(m.get("name", "") for m in data.get("milestone") or []),
            raw=data,
        )


@dataclass(frozen=True)
class ResolvedParent:
    """Parent reference whose issue was fetched in the current pass."""

    issue: Issue

    @property
    def id(self) -> int:
        return self.issue.id

    @property
    def key(self) -> str:
        return self.issue.issue_key


@dataclass(frozen=True)
class StubParent:
    """Parent known only by id and key, recalled from the previous sync.

    Carries no issue fields: a stub is a grouping handle for folder
    placement, never an issue to write or push.
    """

    id: int
    key: str


ParentRef = Union[ResolvedParent, StubParent]
