"""Tests for directory operations and glob matching."""

from __future__ import annotations

from pathlib import Path

import pytest

from filesystem_server.directory_operations import (
    create_directory,
    find_files,
    get_directory_size,
    list_directory,
    match_parts,
    split_pattern,
)


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """a.txt, .hidden, sub/b.txt, sub/deeper/c.md"""
    (tmp_path / "a.txt").write_text("hello")
    (tmp_path / ".hidden").write_text("secret")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.txt").write_text("abc")
    (tmp_path / "sub" / "deeper").mkdir()
    (tmp_path / "sub" / "deeper" / "c.md").write_text("# c")
    return tmp_path


def _names(items: list) -> set:
    return {item["name"] for item in items}


class TestCreateDirectory:
    """Test create_directory."""

    def test_create(self, tmp_path: Path) -> None:
        target = tmp_path / "new"

        result = create_directory(str(target))

        assert result.success
        assert result.data == {"created": True, "recursive": False}
        assert target.is_dir()

    def test_nested_requires_recursive(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b"

        assert create_directory(str(target)).error_type == "NotFound"
        assert create_directory(str(target), recursive=True).success
        assert target.is_dir()

    def test_existing(self, tmp_path: Path) -> None:
        assert create_directory(str(tmp_path)).error_type == "AlreadyExists"
        assert create_directory(str(tmp_path), recursive=True).success

    def test_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "private"

        assert create_directory(str(target), mode="700").success
        assert (target.stat().st_mode & 0o077) == 0

    def test_invalid_mode(self, tmp_path: Path) -> None:
        result = create_directory(str(tmp_path / "x"), mode="9z")

        assert result.error_type == "ValidationError"
        assert not (tmp_path / "x").exists()


class TestListDirectory:
    """Test list_directory."""

    def test_default_lists_direct_children(self, tree: Path) -> None:
        result = list_directory(str(tree))

        assert result.success
        assert _names(result.data["items"]) == {"a.txt", "sub"}
        assert result.data["count"] == 2

    def test_include_hidden(self, tree: Path) -> None:
        result = list_directory(str(tree), include_hidden=True)

        assert ".hidden" in _names(result.data["items"])

    def test_recursive_is_unbounded(self, tree: Path) -> None:
        result = list_directory(str(tree), recursive=True)

        assert _names(result.data["items"]) == {"a.txt", "sub", "b.txt", "deeper", "c.md"}

    def test_recursive_with_max_depth(self, tree: Path) -> None:
        result = list_directory(str(tree), recursive=True, max_depth=2)

        assert _names(result.data["items"]) == {"a.txt", "sub", "b.txt", "deeper"}

    def test_file_types_filter(self, tree: Path) -> None:
        result = list_directory(str(tree), recursive=True, file_types=["file"])

        assert _names(result.data["items"]) == {"a.txt", "b.txt", "c.md"}

    def test_invalid_file_type(self, tree: Path) -> None:
        assert list_directory(str(tree), file_types=["socket"]).error_type == "ValidationError"

    def test_not_a_directory(self, tree: Path) -> None:
        assert list_directory(str(tree / "a.txt")).error_type == "NotADirectory"

    def test_missing(self, tmp_path: Path) -> None:
        assert list_directory(str(tmp_path / "nope")).error_type == "NotFound"

    def test_unreadable_entries_are_skipped(self, tree: Path) -> None:
        """A dangling symlink cannot be stat'ed and is dropped silently."""
        (tree / "dangling").symlink_to(tree / "does-not-exist")

        result = list_directory(str(tree))

        assert result.success
        assert "dangling" not in _names(result.data["items"])
        assert "skipped" not in result.data

    def test_collect_policy(self, tree: Path) -> None:
        (tree / "dangling").symlink_to(tree / "does-not-exist")

        result = list_directory(str(tree), on_entry_error="collect")

        assert result.success
        assert [entry["path"] for entry in result.data["skipped"]] == [str(tree / "dangling")]

    def test_abort_policy(self, tree: Path) -> None:
        (tree / "dangling").symlink_to(tree / "does-not-exist")

        result = list_directory(str(tree), on_entry_error="abort")

        assert result.success is False
        assert result.error_type == "NotFound"


class TestFindFiles:
    """Test find_files."""

    def test_top_level_pattern(self, tree: Path) -> None:
        result = find_files("*.txt", str(tree))

        assert result.success
        assert _names(result.data["files"]) == {"a.txt"}
        assert result.data["files"][0]["size"] == 5
        assert result.data["directory"] == str(tree)

    def test_globstar(self, tree: Path) -> None:
        result = find_files("**/*.txt", str(tree))

        assert _names(result.data["files"]) == {"a.txt", "b.txt"}

    def test_nested_pattern(self, tree: Path) -> None:
        result = find_files("sub/*", str(tree))

        assert _names(result.data["files"]) == {"b.txt", "deeper"}

    def test_case_sensitivity(self, tree: Path) -> None:
        assert find_files("*.TXT", str(tree)).data["count"] == 1
        assert find_files("*.TXT", str(tree), case_sensitive=True).data["count"] == 0

    def test_hidden(self, tree: Path) -> None:
        assert find_files("*", str(tree)).data["count"] == 2
        assert ".hidden" in _names(find_files("*", str(tree), include_hidden=True).data["files"])

    def test_file_types(self, tree: Path) -> None:
        result = find_files("**/*", str(tree), file_types=["directory"])

        assert _names(result.data["files"]) == {"sub", "deeper"}

    def test_max_depth(self, tree: Path) -> None:
        result = find_files("**/*", str(tree), max_depth=1)

        assert _names(result.data["files"]) == {"a.txt", "sub"}

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert find_files("*", str(tmp_path / "nope")).error_type == "NotFound"

    def test_absolute_pattern_inside_directory(self, tree: Path) -> None:
        result = find_files(str(tree / "sub" / "*.txt"), str(tree))

        assert _names(result.data["files"]) == {"b.txt"}

    def test_absolute_pattern_outside_directory(self, tree: Path) -> None:
        result = find_files(str(tree.parent / "*.txt"), str(tree / "sub"))

        assert result.success is False
        assert result.error_type == "ValidationError"


class TestGlobMatching:
    """Test the segment matcher behind find and search."""

    @pytest.mark.parametrize(
        "pattern, path, expected",
        [
            ("*.txt", "a.txt", True),
            ("*.txt", "sub/a.txt", False),
            ("**/*.txt", "a.txt", True),
            ("**/*.txt", "x/y/a.txt", True),
            ("sub/**", "sub/x/y", True),
            ("sub/*.md", "sub/readme.md", True),
            ("data_?.csv", "data_1.csv", True),
            ("data_?.csv", "data_10.csv", False),
        ],
    )
    def test_match(self, pattern: str, path: str, expected: bool) -> None:
        assert match_parts(split_pattern(pattern), path.split("/"), True) is expected

    def test_case_insensitive(self) -> None:
        assert match_parts(["*.TXT"], ["a.txt"], False)
        assert not match_parts(["*.TXT"], ["a.txt"], True)


class TestDirectorySize:
    """Test get_directory_size."""

    def test_size(self, tree: Path) -> None:
        result = get_directory_size(str(tree))

        assert result.success
        assert result.data["total_size"] == 5 + 6 + 3 + 3
        assert result.data["file_count"] == 4
        assert result.data["dir_count"] == 2
        assert result.data["human_readable"] == "17 Bytes"

    def test_empty(self, tmp_path: Path) -> None:
        data = get_directory_size(str(tmp_path)).data

        assert data == {"total_size": 0, "file_count": 0, "dir_count": 0, "human_readable": "0 Bytes"}

    def test_missing(self, tmp_path: Path) -> None:
        assert get_directory_size(str(tmp_path / "nope")).error_type == "NotFound"
