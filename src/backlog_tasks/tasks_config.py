"""Backlog Tasks configuration with directory-based detection.

## .backlog/ Folder Layout

```
.backlog/
└── config.json          # Main config file
```

### config.json Structure

```json
{
  "backlog": {
    "base_url": "https://example.backlog.com",
    "project_key": "PROJ"
  },
  "tasks": {
    "dir": ".tasks",
    "ignore_issue_types": ["Epic"]
  },
  "create": {
    "default_issue_type": "Task",
    "default_priority": "Normal"
  },
  "auth": {
    "api_key_env": "BACKLOG_API_KEY_WORK"
  }
}
```

### Resolution Order

1. .backlog/config.json in the current directory or any parent
2. config.json in the current directory (flat legacy format:
   apiKey, baseUrl, projectKey, tasksDir, ignoreIssueTypes)
3. config.json in the user config directory (same shape as 1)
4. Environment variables for anything still unset
"""

import os
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "backlog-tasks"

# User-level config location
USER_CONFIG_DIR = Path(user_config_dir(APP_NAME))
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.json"

# Directory-level config
PROJECT_CONFIG_DIR = ".backlog"
PROJECT_CONFIG_FILE = "config.json"
LEGACY_CONFIG_FILE = "config.json"

DEFAULT_TASKS_DIR = ".tasks"
DEFAULT_API_KEY_ENV = "BACKLOG_API_KEY"


class ConfigurationError(Exception):
    """Raised when required Backlog settings are missing or invalid."""

    def __init__(self, message: str, suggestions: list[str] | None = None):
        super().__init__(message)
        self.suggestions = suggestions or []


@dataclass
class TasksContext:
    """Resolved Backlog Tasks settings for a directory."""

    # Source of config
    config_path: Optional[Path] = None
    config_source: str = "none"  # "directory", "parent", "legacy", "user", "none"
    base_dir: Path = field(default_factory=Path.cwd)

    # Backlog
    base_url: Optional[str] = None
    project_key: Optional[str] = None

    # Auth
    api_key: Optional[str] = None
    api_key_env: str = DEFAULT_API_KEY_ENV

    # Task directory
    tasks_dir: str = DEFAULT_TASKS_DIR
    ignore_issue_types: list[str] = field(default_factory=list)

    # Bulk creation defaults (names, resolved against the project)
    default_issue_type: Optional[str] = None
    default_priority: Optional[str] = None

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.api_key:
            missing.append("api_key")
        if not self.base_url:
            missing.append("base_url")
        if not self.project_key:
            missing.append("project_key")
        return missing

    def is_configured(self) -> bool:
        return not self.missing_fields()

    def get_tasks_path(self) -> Path:
        """Absolute task directory; relative values resolve against `base_dir`."""
        path = Path(self.tasks_dir).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path.resolve()


def find_project_config(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest .backlog/config.json by walking up the directory tree.

    Args:
        start_path: Directory to start searching from (default: cwd)

    Returns:
        Path to config.json if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()

    while True:
        config_path = current / PROJECT_CONFIG_DIR / PROJECT_CONFIG_FILE
        if config_path.exists():
            return config_path
        if current == current.parent:
            return None
        current = current.parent


def load_config_file(config_path: Path) -> dict:
    """Load and parse a JSON config file."""
    with open(config_path, encoding="utf-8") as f:
        return json.load(f) or {}


def load_user_config() -> Optional[dict]:
    """Load user-level config from the platform config directory."""
    if not USER_CONFIG_FILE.exists():
        return None
    try:
        return load_config_file(USER_CONFIG_FILE)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to load %s: %s", USER_CONFIG_FILE, e)
        return None


def _split_types(value) -> list[str]:
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return [str(t).strip() for t in value or [] if str(t).strip()]


def _apply_nested(context: TasksContext, data: dict) -> None:
    """Fill unset context fields from the nested (.backlog / user) format."""
    backlog = data.get("backlog", {})
    context.base_url = context.base_url or backlog.get("base_url")
    context.project_key = context.project_key or backlog.get("project_key")
    context.api_key = context.api_key or backlog.get("api_key")

    tasks = data.get("tasks", {})
    if tasks.get("dir") and context.tasks_dir == DEFAULT_TASKS_DIR:
        context.tasks_dir = tasks["dir"]
    if not context.ignore_issue_types:
        context.ignore_issue_types = _split_types(tasks.get("ignore_issue_types"))

    create = data.get("create", {})
    context.default_issue_type = context.default_issue_type or create.get("default_issue_type")
    context.default_priority = context.default_priority or create.get("default_priority")

    auth = data.get("auth", {})
    if auth.get("api_key_env"):
        context.api_key_env = auth["api_key_env"]


def _apply_legacy(context: TasksContext, data: dict) -> None:
    """Fill context fields from the flat legacy config.json format."""
    context.api_key = data.get("apiKey")
    context.base_url = data.get("baseUrl")
    context.project_key = data.get("projectKey")
    context.tasks_dir = data.get("tasksDir") or DEFAULT_TASKS_DIR
    context.ignore_issue_types = _split_types(data.get("ignoreIssueTypes"))


def resolve_context(path: Optional[Path] = None) -> TasksContext:
    """Resolve Backlog Tasks settings for a path.

    Resolution order:
    1. .backlog/config.json in the path or its parents
    2. config.json in the path (legacy flat format)
    3. User config directory
    4. Environment variables

    Args:
        path: Directory to resolve context for (default: cwd)

    Returns:
        TasksContext with resolved configuration
    """
    target_dir = Path(path).resolve() if path else Path.cwd().resolve()
    context = TasksContext(base_dir=target_dir)

    # Step 1: Look for .backlog/config.json
    project_config = find_project_config(target_dir)
    legacy_config = target_dir / LEGACY_CONFIG_FILE

    if project_config:
        try:
            data = load_config_file(project_config)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load %s, falling back to user config: %s", project_config, e)
        else:
            context.config_path = project_config
            config_dir = project_config.parent.parent  # .backlog/config.json -> .backlog -> parent
            context.config_source = "directory" if config_dir == target_dir else "parent"
            context.base_dir = config_dir
            _apply_nested(context, data)

    # Step 2: Legacy config.json next to where the server runs
    elif legacy_config.exists():
        try:
            data = load_config_file(legacy_config)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load %s, falling back to environment variables: %s", legacy_config, e)
        else:
            context.config_path = legacy_config
            context.config_source = "legacy"
            _apply_legacy(context, data)

    # Step 3: Fall back to user config for anything missing
    if not (context.base_url and context.project_key):
        user_config = load_user_config()
        if user_config:
            if not context.config_path:
                context.config_path = USER_CONFIG_FILE
                context.config_source = "user"
            _apply_nested(context, user_config)

    # Step 4: Environment variables
    env_api_key = os.environ.get(context.api_key_env)
    if env_api_key:
        context.api_key = env_api_key
    elif not context.api_key:
        context.api_key = os.environ.get(DEFAULT_API_KEY_ENV)

    context.base_url = context.base_url or os.environ.get("BACKLOG_BASE_URL")
    context.project_key = context.project_key or os.environ.get("BACKLOG_PROJECT_KEY")

    if context.tasks_dir == DEFAULT_TASKS_DIR:
        context.tasks_dir = (
            os.environ.get("BACKLOG_TASKS_DIR")
            or os.environ.get("TASKS_DIR")
            or DEFAULT_TASKS_DIR
        )
    if not context.ignore_issue_types:
        context.ignore_issue_types = _split_types(os.environ.get("BACKLOG_IGNORE_ISSUE_TYPES"))

    return context


def validate_context(context: TasksContext) -> None:
    """Check that the context can talk to Backlog.

    Raises:
        ConfigurationError: If credentials are missing or the base URL is invalid
    """
    missing = context.missing_fields()
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            suggestions=[
                f"Set: export {context.api_key_env}=your_api_key",
                "Set: export BACKLOG_BASE_URL=https://your-space.backlog.com",
                "Set: export BACKLOG_PROJECT_KEY=PROJ",
                "Or run: backlog-tasks init",
            ],
        )

    parsed = urlparse(context.base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"Invalid base URL format: {context.base_url}",
            suggestions=["Use the space URL, e.g. https://your-space.backlog.com"],
        )

    if "backlog" not in parsed.netloc:
        logger.warning("Base URL does not appear to be a Backlog domain: %s", context.base_url)


def create_project_config(
    path: Path,
    base_url: str,
    project_key: str,
    tasks_dir: Optional[str] = None,
    ignore_issue_types: Optional[list[str]] = None,
    api_key_env: Optional[str] = None,
) -> Path:
    """Create a .backlog/config.json file in the specified directory.

    The API key itself is never written; it is read from the environment.

    Returns:
        Path to created config file
    """
    config_dir = Path(path) / PROJECT_CONFIG_DIR
    config_dir.mkdir(exist_ok=True)

    config: dict = {
        "backlog": {"base_url": base_url, "project_key": project_key},
        "tasks": {},
    }
    if tasks_dir:
        config["tasks"]["dir"] = tasks_dir
    if ignore_issue_types:
        config["tasks"]["ignore_issue_types"] = ignore_issue_types
    if api_key_env:
        config["auth"] = {"api_key_env": api_key_env}

    config_path = config_dir / PROJECT_CONFIG_FILE
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)

    return config_path


def get_context_help_message(context: TasksContext) -> str:
    """Generate a helpful message about the current context."""
    if context.config_source == "none" and not context.is_configured():
        return """No Backlog configuration found.

To configure this directory, create .backlog/config.json:

```json
{
  "backlog": {
    "base_url": "https://your-space.backlog.com",
    "project_key": "PROJ"
  }
}
```

and set BACKLOG_API_KEY in your environment.

Or set BACKLOG_API_KEY, BACKLOG_BASE_URL and BACKLOG_PROJECT_KEY.
"""

    lines = [f"Backlog context (from {context.config_source}):"]
    if context.config_path:
        lines.append(f"  Config: {context.config_path}")
    lines.append(f"  Base URL: {context.base_url or 'Not configured'}")
    lines.append(f"  Project: {context.project_key or 'Not configured'}")
    lines.append(f"  Tasks dir: {context.get_tasks_path()}")
    if context.ignore_issue_types:
        lines.append(f"  Ignored issue types: {', '.join(context.ignore_issue_types)}")

    if context.api_key:
        lines.append(f"  Auth: {context.api_key_env} (configured)")
    else:
        lines.append(f"  Auth: {context.api_key_env} (NOT SET)")

    return "\n".join(lines)
