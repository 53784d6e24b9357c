"""Folder inference: which directory each task file belongs in.

Directory classes under the task root:

- custom folder: any directory whose name is not a bare issue key
  (`sprint-3`, `backend/auth`) or is an issue key with a suffix
  (`PROJ-12-login`). Files found there stay there.
- relationship folder: a bare issue key directory (`PROJ-12`) holding a
  parent issue and its children.
- `others/`: issues with no parent and no children.

A user folder that happens to be named exactly like an issue key is
indistinguishable from a relationship folder and is treated as one.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Mapping, Optional

from .models import ResolvedParent
from .task_files import (
    CUSTOM_PARENT_PATTERN,
    ISSUE_KEY_PATTERN,
    OTHERS_DIR_NAME,
    TaskFileIndex,
)
from .tree import TreeNode

logger = logging.getLogger(__name__)


def is_relationship_folder_name(name: str) -> bool:
    """Check for a bare issue key folder name (`PROJ-12`)."""
    return bool(ISSUE_KEY_PATTERN.match(name))


def is_custom_parent_folder_name(name: str) -> bool:
    """Check for an issue key folder name with a suffix (`PROJ-12-login`)."""
    return bool(CUSTOM_PARENT_PATTERN.match(name))


def is_custom_folder(directory: Path, root: Path) -> bool:
    """Check whether a directory is a user-chosen location that must be kept."""
    if directory == root / OTHERS_DIR_NAME:
        return False
    name = directory.name
    return not is_relationship_folder_name(name) or is_custom_parent_folder_name(name)


class FolderAssignmentCache:
    """Resolved target directory per issue key for one sync pass.

    Also remembers renamed parent folders (`PROJ-12-*`) discovered while
    resolving, so every child of the same parent adopts the same one.
    """

    def __init__(self) -> None:
        self._folders: dict[str, Path] = {}
        self._renamed_parent_folders: dict[str, Optional[Path]] = {}

    def get(self, issue_key: str, default: Optional[Path] = None) -> Optional[Path]:
        return self._folders.get(issue_key, default)

    def set(self, issue_key: str, folder: Path) -> None:
        self._folders[issue_key] = folder

    def has_renamed_parent_folder(self, parent_key: str) -> bool:
        return parent_key in self._renamed_parent_folders

    def renamed_parent_folder(self, parent_key: str) -> Optional[Path]:
        return self._renamed_parent_folders.get(parent_key)

    def remember_renamed_parent_folder(self, parent_key: str, folder: Optional[Path]) -> None:
        self._renamed_parent_folders[parent_key] = folder

    def items(self) -> Iterator[tuple[str, Path]]:
        return iter(self._folders.items())

    def __getitem__(self, issue_key: str) -> Path:
        return self._folders[issue_key]

    def __contains__(self, issue_key: str) -> bool:
        return issue_key in self._folders

    def __len__(self) -> int:
        return len(self._folders)


class FolderPolicy:
    """Assigns a target directory to every issue of a relationship tree.

    Precedence per key:

    1. the key's file already sits in a custom folder -> keep it
    2. the node has a parent -> the parent's folder (the parent's own
       assignment when it was fetched; for a stub, the directory of its
       current file, else a renamed `PARENT-*` folder, else `others/`)
    3. the node has children -> its own `KEY-*` folder if one exists,
       else `KEY/` at the task root
    4. otherwise -> `others/`

    Assignments are resolved on demand and cached, so the result does not
    depend on the order the tree is visited in.
    """

    def __init__(self, root: Path, index: TaskFileIndex):
        self.root = root
        self.index = index

    @property
    def others_dir(self) -> Path:
        return self.root / OTHERS_DIR_NAME

    def assign(self, tree: Mapping[str, TreeNode]) -> FolderAssignmentCache:
        cache = FolderAssignmentCache()
        for issue_key in tree:
            self._resolve(issue_key, tree, cache, set())
        return cache

    def _resolve(
        self,
        issue_key: str,
        tree: Mapping[str, TreeNode],
        cache: FolderAssignmentCache,
        resolving: set[str],
    ) -> Path:
        cached = cache.get(issue_key)
        if cached is not None:
            return cached

        resolving.add(issue_key)
        node = tree[issue_key]

        current = self.index.find(issue_key)
        parent = node.parent
        if parent is not None and parent.key in resolving:
            logger.warning("Parent cycle at %s -> %s; ignoring parent", issue_key, parent.key)
            parent = None

        if current is not None and is_custom_folder(current.parent, self.root):
            folder = current.parent
        elif parent is not None:
            if isinstance(parent, ResolvedParent) and parent.key in tree:
                folder = self._resolve(parent.key, tree, cache, resolving)
            else:
                folder = self._stub_parent_folder(parent.key, cache)
        elif node.has_children:
            folder = self._find_renamed_parent_folder(issue_key, cache) or self.root / issue_key
        else:
            folder = self.others_dir

        resolving.discard(issue_key)
        cache.set(issue_key, folder)
        return folder

    def _stub_parent_folder(self, parent_key: str, cache: FolderAssignmentCache) -> Path:
        parent_path = self.index.find(parent_key)
        if parent_path is not None:
            return parent_path.parent
        return self._find_renamed_parent_folder(parent_key, cache) or self.others_dir

    def _find_renamed_parent_folder(
        self,
        parent_key: str,
        cache: FolderAssignmentCache,
    ) -> Optional[Path]:
        """Find an existing `PARENT-*` directory, caching the answer."""
        if cache.has_renamed_parent_folder(parent_key):
            return cache.renamed_parent_folder(parent_key)

        found = None
        for directory in self.index.directories():
            match = CUSTOM_PARENT_PATTERN.match(directory.name)
            if match and match.group(1) == parent_key:
                found = directory
                break

        cache.remember_renamed_parent_folder(parent_key, found)
        return found


def assign_folders(
    tree: Mapping[str, TreeNode],
    root: Path,
    index: TaskFileIndex,
) -> FolderAssignmentCache:
    """Resolve the target folder for every key in the tree."""
    return FolderPolicy(root, index).assign(tree)
