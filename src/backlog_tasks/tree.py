"""Parent/child relationship tree for one sync pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from .models import Issue, ParentRef, ResolvedParent, StubParent


@dataclass
class TreeNode:
    """An issue with its parent reference and the children fetched this pass."""

    issue: Issue
    parent: Optional[ParentRef] = None
    children: list[Issue] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.issue.issue_key

    @property
    def has_children(self) -> bool:
        return bool(self.children)


def build_tree(
    issues: Iterable[Issue],
    id_to_key: Optional[Mapping[int, str]] = None,
) -> dict[str, TreeNode]:
    """Build the relationship tree over the issues of the current pass.

    Children are always recomputed from `issues`; nothing is carried over
    from previous runs except the id -> key map used to name parents that
    were not fetched this time (`StubParent`). A parent id with no known key
    leaves the node parentless.

    Args:
        issues: Issues of this pass (already filtered)
        id_to_key: Issue id -> key map persisted by the previous sync

    Returns:
        Mapping of issue key -> TreeNode, in input order
    """
    issues = list(issues)
    id_to_key = id_to_key or {}
    by_id = {issue.id: issue for issue in issues}

    children_by_parent: dict[int, list[Issue]] = {}
    for issue in issues:
        if issue.parent_issue_id is not None and issue.parent_issue_id != issue.id:
            children_by_parent.setdefault(issue.parent_issue_id, []).append(issue)

    tree: dict[str, TreeNode] = {}
    for issue in issues:
        tree[issue.issue_key] = TreeNode(
            issue=issue,
            parent=_resolve_parent(issue, by_id, id_to_key),
            children=children_by_parent.get(issue.id, []),
        )
    return tree


def _resolve_parent(
    issue: Issue,
    by_id: Mapping[int, Issue],
    id_to_key: Mapping[int, str],
) -> Optional[ParentRef]:
    parent_id = issue.parent_issue_id
    if parent_id is None or parent_id == issue.id:
        return None

    parent = by_id.get(parent_id)
    if parent is not None:
        return ResolvedParent(parent)

    parent_key = id_to_key.get(parent_id)
    if parent_key:
        return StubParent(id=parent_id, key=parent_key)

    return None
