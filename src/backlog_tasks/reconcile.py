"""Reconciliation of Backlog issues with the markdown task directory.

One pass:

1. drop issues whose type is ignored (they are invisible to the pass)
2. build the relationship tree with the id -> key map from the last sync
3. assign a folder to every issue (completed before touching any file)
4. per issue: create the missing file, move a misplaced file (content
   kept verbatim), or refresh the content of a correctly placed file
5. on a first (full) sync only, delete files of issues that no longer exist

Refreshing a file overwrites local edits to the title and description.
Push local edits with `update-issues` before syncing, or they are lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .folders import FolderAssignmentCache, assign_folders, is_relationship_folder_name
from .models import Issue
from .sync_state import SyncState, SyncStateStore
from .task_files import (
    OTHERS_DIR_NAME,
    TASK_FILE_SUFFIX,
    TaskFileIndex,
    TaskFileStore,
    issue_to_task_file,
)
from .tree import build_tree

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """What a reconcile pass did to the task directory."""

    created: list[str] = field(default_factory=list)
    moved: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    ignored: int = 0
    full_sync: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.created or self.moved or self.updated or self.removed)

    def summary(self) -> str:
        parts = [
            f"{len(self.created)} recovered",
            f"{len(self.moved)} moved",
            f"{len(self.updated)} updated",
            f"{len(self.unchanged)} unchanged",
        ]
        if self.full_sync:
            parts.append(f"{len(self.removed)} removed")
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        return ", ".join(parts)


def filter_ignored_issue_types(
    issues: Iterable[Issue],
    ignored_types: Optional[Sequence[str]] = None,
) -> list[Issue]:
    """Drop issues whose type name is listed (case-sensitive)."""
    issues = list(issues)
    if not ignored_types:
        return issues
    ignored = set(ignored_types)
    return [issue for issue in issues if issue.issue_type.name not in ignored]


class Reconciler:
    """Converges the task directory with a set of fetched issues."""

    def __init__(self, store: TaskFileStore, state_store: Optional[SyncStateStore] = None):
        self.store = store
        self.state_store = state_store or SyncStateStore(store.tasks_dir)

    @property
    def root(self) -> Path:
        return self.store.tasks_dir

    def reconcile(
        self,
        issues: Sequence[Issue],
        base_url: str,
        ignored_types: Optional[Sequence[str]] = None,
        state: Optional[SyncState] = None,
    ) -> ReconcileReport:
        """Apply one reconcile pass.

        Args:
            issues: Issues fetched for this sync (all of them on a full sync,
                the updated ones on an incremental sync)
            base_url: Backlog space URL, used for issue links
            ignored_types: Issue type names to leave alone
            state: Sync state loaded at the start of the sync; loaded from
                the state store when omitted. A state without timestamp
                marks a full sync and enables orphan cleanup.

        Returns:
            ReconcileReport of the file operations performed
        """
        if state is None:
            state = self.state_store.load()

        filtered = filter_ignored_issue_types(issues, ignored_types)
        report = ReconcileReport(ignored=len(issues) - len(filtered), full_sync=state.is_first_sync)
        if report.ignored:
            logger.info(
                "Filtered out %d issues with ignored types: %s",
                report.ignored,
                ", ".join(ignored_types or []),
            )

        index = self.store.build_index()
        tree = build_tree(filtered, state.id_to_key)
        folders = assign_folders(tree, self.root, index)

        vacated: set[Path] = set()
        for issue in filtered:
            try:
                self._apply(issue, folders, index, base_url, report, vacated)
            except (OSError, UnicodeError) as e:
                logger.error("Failed to sync %s: %s", issue.issue_key, e)
                report.failed[issue.issue_key] = str(e)

        if report.full_sync:
            # Ignored issues still exist remotely; only unknown keys are orphans
            fetched_keys = {issue.issue_key for issue in issues}
            self._remove_orphans(fetched_keys, index, report, vacated)

        self._prune_empty_relationship_folders(vacated)

        if report.created:
            logger.info("Recovered %d missing task files", len(report.created))
        return report

    def _apply(
        self,
        issue: Issue,
        folders: FolderAssignmentCache,
        index: TaskFileIndex,
        base_url: str,
        report: ReconcileReport,
        vacated: set[Path],
    ) -> None:
        key = issue.issue_key
        target_folder = folders.get(key) or self.root / OTHERS_DIR_NAME
        target_path = target_folder / f"{key}{TASK_FILE_SUFFIX}"
        existing = index.find(key)

        if existing is None:
            task = issue_to_task_file(issue, base_url, target_path)
            target_folder.mkdir(parents=True, exist_ok=True)
            target_path.write_bytes(task.render().encode("utf-8"))
            index.record(key, target_path)
            report.created.append(key)
            logger.info("Recovered missing file: %s in %s/ (%s)", target_path.name, target_folder.name, task.url)

        elif existing.parent != target_folder:
            content = existing.read_bytes()
            target_folder.mkdir(parents=True, exist_ok=True)
            target_path.write_bytes(content)
            existing.unlink()
            index.record(key, target_path)
            vacated.add(existing.parent)
            report.moved.append(key)
            logger.info("Moved %s: %s -> %s", key, existing, target_path)

        else:
            content = issue_to_task_file(issue, base_url, existing).render().encode("utf-8")
            if existing.read_bytes() == content:
                report.unchanged.append(key)
                return
            existing.write_bytes(content)
            report.updated.append(key)

    def _remove_orphans(
        self,
        fetched_keys: set[str],
        index: TaskFileIndex,
        report: ReconcileReport,
        vacated: set[Path],
    ) -> None:
        for key, path in index.items():
            if key in fetched_keys:
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.error("Failed to remove task file for %s: %s", key, e)
                report.failed[key] = str(e)
                continue
            index.forget(key)
            vacated.add(path.parent)
            report.removed.append(key)
            logger.info("Removed task file of deleted issue %s", key)

    def _prune_empty_relationship_folders(self, vacated: Iterable[Path]) -> None:
        """Remove bare-key folders at the root left empty by this pass."""
        for folder in sorted(vacated):
            if folder.parent != self.root or not is_relationship_folder_name(folder.name):
                continue
            try:
                if any(folder.iterdir()):
                    continue
                folder.rmdir()
                logger.info("Removed empty parent folder: %s", folder.name)
            except OSError as e:
                logger.warning("Could not remove folder %s: %s", folder, e)


def reconcile(
    issues: Sequence[Issue],
    base_url: str,
    ignored_types: Optional[Sequence[str]] = None,
    tasks_dir: Path | str = ".tasks",
    state: Optional[SyncState] = None,
) -> ReconcileReport:
    """Reconcile `tasks_dir` with `issues` in one call."""
    return Reconciler(TaskFileStore(tasks_dir)).reconcile(issues, base_url, ignored_types, state)
