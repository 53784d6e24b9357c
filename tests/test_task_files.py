"""Tests for the task_files module."""

from pathlib import Path

from backlog_tasks.task_files import (
    TaskFileIndex,
    TaskFileStore,
    issue_to_task_file,
    is_task_file_name,
    parent_key_for_folder,
    parse_task_file,
    render_task_file,
)

from conftest import BASE_URL


class TestTaskFileFormat:
    """Tests for rendering and parsing task file content."""

    def test_render_with_description(self):
        assert render_task_file("Login page", "Build it.") == "# Login page\n\nBuild it."

    def test_render_without_description(self):
        assert render_task_file("Login page", "") == "# Login page\n\n"
        assert render_task_file("Login page", None) == "# Login page\n\n"
        assert render_task_file("Login page", "  \n ") == "# Login page\n\n"

    def test_round_trip_trims(self):
        content = render_task_file("  Title  ", "\n  Line one\nLine two\n\n")
        parsed = parse_task_file(content)

        assert parsed.title == "Title"
        assert parsed.description == "Line one\nLine two"

    def test_parse_multiline_description(self):
        parsed = parse_task_file("# Title\n\n## Steps\n- one\n- two\n")

        assert parsed.title == "Title"
        assert parsed.description == "## Steps\n- one\n- two"

    def test_parse_without_heading(self):
        parsed = parse_task_file("just some text\n")

        assert parsed.title == ""
        assert parsed.description == ""

    def test_issue_projection(self, make_issue, tmp_path: Path):
        issue = make_issue(1, "PROJ-1", summary="Title", description="Body")
        task = issue_to_task_file(issue, BASE_URL + "/", tmp_path / "PROJ-1.md")

        assert task.url == "https://example.backlog.com/view/PROJ-1"
        assert task.status == "Open"
        assert task.priority == "Normal"
        assert task.tags == ["Task", "Normal", "Open"]
        assert task.render() == "# Title\n\nBody"


class TestNames:
    """Tests for file and folder name helpers."""

    def test_task_file_names(self):
        assert is_task_file_name("PROJ-1.md")
        assert is_task_file_name("MY_PROJ2-123.md")
        assert not is_task_file_name("PROJ-1.txt")
        assert not is_task_file_name("notes.md")
        assert not is_task_file_name("proj-1.md")
        assert not is_task_file_name("PROJ-1-draft.md")

    def test_parent_key_for_folder(self):
        assert parent_key_for_folder("PROJ-2") == "PROJ-2"
        assert parent_key_for_folder("PROJ-2-login") == "PROJ-2"
        assert parent_key_for_folder("PROJ-2.v2") == "PROJ-2"
        assert parent_key_for_folder("PROJ-2_old") == "PROJ-2"
        assert parent_key_for_folder("sprint-3") is None
        assert parent_key_for_folder("others") is None


class TestTaskFileIndex:
    """Tests for the key -> path index."""

    def test_indexes_nested_files(self, tasks_dir: Path):
        (tasks_dir / "others" / "PROJ-1.md").write_text("# One\n\n")
        (tasks_dir / "PROJ-2").mkdir()
        (tasks_dir / "PROJ-2" / "PROJ-3.md").write_text("# Three\n\n")
        (tasks_dir / "PROJ-2" / "notes.md").write_text("not a task")

        index = TaskFileIndex(tasks_dir)
        index.refresh()

        assert sorted(index.keys()) == ["PROJ-1", "PROJ-3"]
        assert index.find("PROJ-3") == tasks_dir / "PROJ-2" / "PROJ-3.md"
        assert index.find("PROJ-9") is None

    def test_first_match_wins_in_sorted_order(self, tasks_dir: Path):
        (tasks_dir / "a-folder").mkdir()
        (tasks_dir / "b-folder").mkdir()
        (tasks_dir / "b-folder" / "PROJ-1.md").write_text("# B\n\n")
        (tasks_dir / "a-folder" / "PROJ-1.md").write_text("# A\n\n")

        index = TaskFileIndex(tasks_dir)
        index.refresh()

        assert index.find("PROJ-1") == tasks_dir / "a-folder" / "PROJ-1.md"

    def test_skips_hidden_directories(self, tasks_dir: Path):
        (tasks_dir / ".git").mkdir()
        (tasks_dir / ".git" / "PROJ-1.md").write_text("# Hidden\n\n")

        index = TaskFileIndex(tasks_dir)
        index.refresh()

        assert "PROJ-1" not in index
        assert tasks_dir / ".git" not in index.directories()

    def test_missing_root(self, tmp_path: Path):
        index = TaskFileIndex(tmp_path / "missing")
        index.refresh()

        assert len(index) == 0

    def test_record_and_forget(self, tasks_dir: Path):
        index = TaskFileIndex(tasks_dir)
        index.refresh()

        index.record("PROJ-1", tasks_dir / "PROJ-5" / "PROJ-1.md")
        assert index.find("PROJ-1") == tasks_dir / "PROJ-5" / "PROJ-1.md"
        assert tasks_dir / "PROJ-5" in index.directories()

        index.forget("PROJ-1")
        assert "PROJ-1" not in index


class TestTaskFileStore:
    """Tests for TaskFileStore operations."""

    def test_initialize_creates_others(self, tmp_path: Path):
        store = TaskFileStore(tmp_path / "tasks")
        store.initialize()

        assert (tmp_path / "tasks" / "others").is_dir()

    def test_list_task_files(self, store: TaskFileStore, tasks_dir: Path):
        store.write_task(tasks_dir / "others" / "PROJ-2.md", "Two", "")
        store.write_task(tasks_dir / "PROJ-1" / "PROJ-1.md", "One", "")
        (tasks_dir / ".last-sync").write_text("{}")

        assert store.list_task_files() == ["PROJ-1/PROJ-1.md", "others/PROJ-2.md"]

    def test_read_task(self, store: TaskFileStore, tasks_dir: Path):
        store.write_task(tasks_dir / "sprint-3" / "PROJ-1.md", "One", "Details")

        content = store.read_task("PROJ-1")

        assert content.title == "One"
        assert content.description == "Details"
        assert store.read_task("PROJ-2") is None

    def test_remove_task_file(self, store: TaskFileStore, tasks_dir: Path):
        store.write_task(tasks_dir / "others" / "PROJ-1.md", "One", "")

        assert store.remove_task_file("PROJ-1") is True
        assert store.remove_task_file("PROJ-1") is False
        assert not store.task_file_exists("PROJ-1")

    def test_find_parent_task_folders(self, store: TaskFileStore, tasks_dir: Path):
        (tasks_dir / "PROJ-2").mkdir()
        (tasks_dir / "PROJ-5-login").mkdir()
        (tasks_dir / "sprint-3").mkdir()

        assert store.find_parent_task_folders() == ["PROJ-2", "PROJ-5-login"]

    def test_find_temporary_task_files(self, store: TaskFileStore, tasks_dir: Path):
        folder = tasks_dir / "PROJ-2-login"
        store.write_task(folder / "PROJ-2-1.md", "First draft", "Body")
        store.write_task(folder / "PROJ-2-2.md", "Second draft", "")
        store.write_task(folder / "PROJ-2.md", "The parent", "")
        store.write_task(folder / "PROJ-7.md", "Existing child", "")

        temp_files = store.find_temporary_task_files("PROJ-2-login")

        assert [t.file_name for t in temp_files] == ["PROJ-2-1", "PROJ-2-2"]
        assert temp_files[0].content.title == "First draft"
        assert temp_files[0].content.description == "Body"

    def test_rename_task_file(self, store: TaskFileStore, tasks_dir: Path):
        old_path = tasks_dir / "PROJ-2" / "PROJ-2-1.md"
        store.write_task(old_path, "Draft", "")

        new_path = store.rename_task_file(old_path, "PROJ-40")

        assert new_path == tasks_dir / "PROJ-2" / "PROJ-40.md"
        assert new_path.exists()
        assert not old_path.exists()
