"""Markdown task files and the on-disk index of them.

A task file is the local projection of one Backlog issue:

```
# {title}

{description}
```

Only the title and description round-trip. The file name is always
`{issueKey}.md`; the directory it lives in is decided by the folder policy
(see `folders.py`).
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from .models import Issue

logger = logging.getLogger(__name__)

OTHERS_DIR_NAME = "others"
TASK_FILE_SUFFIX = ".md"

# Bare issue key: PROJ-123
ISSUE_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*-\d+$")
# Issue key followed by a separator and anything: PROJ-123-login, PROJ-123.v2
CUSTOM_PARENT_PATTERN = re.compile(r"^([A-Z][A-Z0-9_]*-\d+)[-._].+$")


@dataclass
class TaskContent:
    """The locally editable part of a task file."""

    title: str
    description: str = ""


@dataclass
class TaskFile:
    """Projection of an issue into a task file."""

    issue_key: str
    title: str
    description: str
    status: str
    priority: str
    url: str
    path: Path
    assignee: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    due_date: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    def render(self) -> str:
        return render_task_file(self.title, self.description)


@dataclass
class TemporaryTaskFile:
    """A not-yet-created task waiting in a parent folder (`PROJ-2-1.md`)."""

    file_name: str
    path: Path
    content: TaskContent


def render_task_file(title: str, description: Optional[str]) -> str:
    """Render task file content from a title and description."""
    content = f"# {title}\n\n"
    if description and description.strip():
        content += description
    return content


def parse_task_file(content: str) -> TaskContent:
    """Parse task file content into title and description.

    The title is the first `# ` heading; the description is everything
    after it. Both are trimmed.
    """
    lines = content.split("\n")
    title_index = next((i for i, line in enumerate(lines) if line.startswith("# ")), None)
    if title_index is None:
        return TaskContent(title="", description="")

    title = lines[title_index][2:].strip()
    description = "\n".join(lines[title_index + 1:]).strip()
    return TaskContent(title=title, description=description)


def issue_to_task_file(issue: Issue, base_url: str, path: Path) -> TaskFile:
    """Project an issue onto a task file at `path`."""
    return TaskFile(
        issue_key=issue.issue_key,
        title=issue.summary,
        description=issue.description or "",
        status=issue.status.name,
        priority=issue.priority.name,
        url=f"{base_url.rstrip('/')}/view/{issue.issue_key}",
        path=path,
        assignee=issue.assignee,
        created=issue.created,
        updated=issue.updated,
        due_date=issue.due_date,
        tags=issue.tags,
    )


def is_task_file_name(name: str) -> bool:
    """Check whether a file name looks like `PROJ-123.md`."""
    return name.endswith(TASK_FILE_SUFFIX) and bool(
        ISSUE_KEY_PATTERN.match(name[: -len(TASK_FILE_SUFFIX)])
    )


class TaskFileIndex:
    """Key -> path index of every task file under the task root.

    Built with a single walk of the tree; the reconciler keeps it current
    with `record` / `forget` as it creates, moves and deletes files, so
    lookups never rescan the disk.

    The walk visits directories in sorted order and skips hidden
    directories. When the same key appears twice, the first file seen wins.
    """

    def __init__(self, root: Path):
        self.root = root
        self._paths: dict[str, Path] = {}
        self._directories: list[Path] = []

    def refresh(self) -> None:
        """Rebuild the index from disk."""
        self._paths = {}
        self._directories = []
        if not self.root.is_dir():
            return

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=self._on_walk_error):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            current = Path(dirpath)
            if current != self.root:
                self._directories.append(current)

            for name in sorted(filenames):
                if not is_task_file_name(name):
                    continue
                key = name[: -len(TASK_FILE_SUFFIX)]
                self._paths.setdefault(key, current / name)

    @staticmethod
    def _on_walk_error(error: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", error.filename, error)

    def find(self, issue_key: str) -> Optional[Path]:
        return self._paths.get(issue_key)

    def record(self, issue_key: str, path: Path) -> None:
        self._paths[issue_key] = path
        if path.parent != self.root and path.parent not in self._directories:
            self._directories.append(path.parent)

    def forget(self, issue_key: str) -> None:
        self._paths.pop(issue_key, None)

    def keys(self) -> list[str]:
        return list(self._paths)

    def items(self) -> Iterator[tuple[str, Path]]:
        return iter(list(self._paths.items()))

    def directories(self) -> list[Path]:
        """All non-hidden directories below the root, in walk order."""
        return list(self._directories)

    def __contains__(self, issue_key: str) -> bool:
        return issue_key in self._paths

    def __len__(self) -> int:
        return len(self._paths)


class TaskFileStore:
    """File operations on the task directory used by the tools."""

    def __init__(self, tasks_dir: Path | str = ".tasks"):
        self.tasks_dir = Path(tasks_dir).resolve()

    @property
    def others_dir(self) -> Path:
        return self.tasks_dir / OTHERS_DIR_NAME

    def initialize(self) -> None:
        """Create the task directory and the `others/` catch-all."""
        self.tasks_dir.mkdir(parents=True, exist_ok=True)
        self.others_dir.mkdir(exist_ok=True)

    def build_index(self) -> TaskFileIndex:
        index = TaskFileIndex(self.tasks_dir)
        index.refresh()
        return index

    def find_task_file(self, issue_key: str) -> Optional[Path]:
        return self.build_index().find(issue_key)

    def task_file_exists(self, issue_key: str) -> bool:
        return self.find_task_file(issue_key) is not None

    def list_task_files(self) -> list[str]:
        """Task files relative to the task root, as sorted posix paths."""
        if not self.tasks_dir.is_dir():
            return []
        index = self.build_index()
        return sorted(path.relative_to(self.tasks_dir).as_posix() for _, path in index.items())

    def read_task(self, issue_key: str) -> Optional[TaskContent]:
        """Read and parse the task file for a key, or None if there is none."""
        path = self.find_task_file(issue_key)
        if path is None:
            return None
        try:
            return parse_task_file(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read task file for %s: %s", issue_key, e)
            return None

    def write_task(self, path: Path, title: str, description: Optional[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_task_file(title, description), encoding="utf-8")

    def remove_task_file(self, issue_key: str) -> bool:
        path = self.find_task_file(issue_key)
        if path is None:
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Bulk creation helpers
    # ------------------------------------------------------------------

    def find_parent_task_folders(self) -> list[str]:
        """Top-level folders named after a parent issue (`PROJ-2` or `PROJ-2-login`)."""
        if not self.tasks_dir.is_dir():
            return []
        folders = []
        for entry in sorted(self.tasks_dir.iterdir()):
            if entry.is_dir() and parent_key_for_folder(entry.name):
                folders.append(entry.name)
        return folders

    def find_temporary_task_files(self, folder_name: str) -> list[TemporaryTaskFile]:
        """Find `{parentKey}-{n}.md` files waiting to be created in a parent folder."""
        parent_key = parent_key_for_folder(folder_name)
        if not parent_key:
            return []

        pattern = re.compile(rf"^{re.escape(parent_key)}-\d+$")
        folder = self.tasks_dir / folder_name
        temp_files = []
        for entry in sorted(folder.iterdir()):
            if not entry.is_file() or entry.suffix != TASK_FILE_SUFFIX:
                continue
            if not pattern.match(entry.stem):
                continue
            try:
                content = parse_task_file(entry.read_text(encoding="utf-8"))
            except UnicodeDecodeError as e:
                logger.warning("Skipping %s: not valid UTF-8 (%s)", entry, e)
                continue
            temp_files.append(TemporaryTaskFile(file_name=entry.stem, path=entry, content=content))
        return temp_files

    def rename_task_file(self, old_path: Path, new_issue_key: str) -> Path:
        """Rename a file in place to `{new_issue_key}.md`."""
        new_path = old_path.with_name(f"{new_issue_key}{TASK_FILE_SUFFIX}")
        old_path.rename(new_path)
        return new_path


def parent_key_for_folder(folder_name: str) -> Optional[str]:
    """Return the parent issue key a folder is named after, if any."""
    if ISSUE_KEY_PATTERN.match(folder_name):
        return folder_name
    match = CUSTOM_PARENT_PATTERN.match(folder_name)
    return match.group(1) if match else None
