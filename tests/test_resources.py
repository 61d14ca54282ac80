"""Tests for the cached resource views."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import quote

import pytest

from filesystem_server.cache import TTLCache
from filesystem_server.config import ServerConfig
from filesystem_server.errors import UnsupportedError
from filesystem_server.resources import RESOURCE_TEMPLATES, ResourceRouter


@pytest.fixture
def router(registry, clock, tmp_path: Path) -> ResourceRouter:
    return ResourceRouter(TTLCache(clock=clock), registry, ServerConfig(search_root=tmp_path))


def _strip(payload: dict) -> dict:
    return {key: value for key, value in payload.items() if key != "cached"}


class TestCaching:
    """Test hit/miss tagging and expiry of resource payloads."""

    def test_second_read_is_cached(self, router, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("hello")
        path = str(tmp_path / "a.txt")

        first = router.metadata(path)
        second = router.metadata(path)

        assert first["cached"] is False
        assert second["cached"] is True
        assert _strip(first) == _strip(second)
        assert first["metadata"]["data"]["size"] == 5

    def test_expired_payload_is_recomputed(self, router, clock, tmp_path: Path) -> None:
        path = str(tmp_path)
        assert router.directory(path)["cached"] is False

        clock.advance(300)
        assert router.directory(path)["cached"] is True

        clock.advance(1)
        assert router.directory(path)["cached"] is False

    def test_hit_does_not_mutate_stored_payload(self, router, tmp_path: Path) -> None:
        path = str(tmp_path)
        router.directory(path)["extra"] = True

        assert "extra" not in router.directory(path)

    def test_invalidate_path(self, router, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("hello")
        path = str(tmp_path / "a.txt")
        router.metadata(path)
        router.directory(str(tmp_path))

        assert router.invalidate_path(path) == 2
        assert router.metadata(path)["cached"] is False
        assert router.directory(str(tmp_path))["cached"] is False

    def test_invalidate_directory_drops_descendants(self, router, tmp_path: Path) -> None:
        (tmp_path / "d" / "e").mkdir(parents=True)
        (tmp_path / "d" / "e" / "a.txt").write_text("hello")
        (tmp_path / "dx.txt").write_text("sibling")
        deep = str(tmp_path / "d" / "e" / "a.txt")
        sibling = str(tmp_path / "dx.txt")
        router.metadata(deep)
        router.preview(deep)
        router.structure(str(tmp_path / "d" / "e"))
        router.metadata(sibling)

        assert router.invalidate_path(str(tmp_path / "d") + "/") == 3
        assert router.metadata(deep)["cached"] is False
        assert router.metadata(sibling)["cached"] is True

    def test_invalidate_keeps_unrelated_kinds(self, router, tmp_path: Path) -> None:
        router.recent("read")

        router.invalidate_path(str(tmp_path))

        assert router.recent("read")["cached"] is True


class TestRead:
    """Test URI dispatch."""

    def test_templates(self) -> None:
        assert [template["uri"] for template in RESOURCE_TEMPLATES] == [
            "file://metadata/{path}",
            "file://directory/{path}",
            "file://search/cache/{query}",
            "file://watch/status/{path}",
            "file://recent/{type}",
            "file://structure/{path}",
            "file://content/preview/{path}",
        ]

    def test_percent_encoded_path(self, router, tmp_path: Path) -> None:
        (tmp_path / "a b.txt").write_text("hello")
        path = str(tmp_path / "a b.txt")

        payload = router.read("file://metadata/" + quote(path, safe=""))

        assert payload["path"] == path
        assert payload["metadata"]["success"] is True

    @pytest.mark.parametrize("uri", ["file://bogus/x", "http://metadata/x", "file://"])
    def test_unknown_uri(self, router, uri: str) -> None:
        with pytest.raises(UnsupportedError):
            router.read(uri)

    def test_read_matches_view(self, router, tmp_path: Path) -> None:
        """read() and the view it dispatches to share one cache entry."""
        router.structure(str(tmp_path))

        assert router.read("file://structure/" + quote(str(tmp_path), safe=""))["cached"] is True

    def test_missing_path_is_reported_in_payload(self, router, tmp_path: Path) -> None:
        payload = router.read("file://metadata/" + quote(str(tmp_path / "nope"), safe=""))

        assert payload["metadata"]["success"] is False
        assert payload["metadata"]["error_type"] == "NotFound"


class TestViews:
    """Test the payload of each resource category."""

    def test_search(self, router, tmp_path: Path) -> None:
        (tmp_path / "hay.txt").write_text("one needle here")

        payload = router.read("file://search/cache/needle")

        assert payload["query"] == "needle"
        assert payload["directory"] == str(tmp_path)
        assert payload["results"]["data"]["total_matches"] == 1

    def test_recent_is_empty(self, router) -> None:
        payload = router.read("file://recent/read")

        assert payload["type"] == "read"
        assert payload["files"] == []
        assert payload["count"] == 0

    def test_structure(self, router, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("hello")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "deep.txt").write_text("not counted")

        structure = router.structure(str(tmp_path))["structure"]

        assert structure["name"] == tmp_path.name
        assert {child["name"] for child in structure["children"]} == {"a.txt", "sub"}
        assert structure["stats"] == {"total_files": 1, "total_dirs": 1, "total_size": 5}

    def test_structure_of_missing_path(self, router, tmp_path: Path) -> None:
        structure = router.structure(str(tmp_path / "nope"))["structure"]

        assert structure["children"] == []
        assert structure["error"]

    def test_watch_status_follows_its_own_ttl(self, router, registry, clock, tmp_path: Path) -> None:
        path = str(tmp_path)

        assert router.watch_status(path)["is_watching"] is False
        registry.start(path)

        stale = router.watch_status(path)
        assert stale["cached"] is True
        assert stale["is_watching"] is False

        clock.advance(31)
        fresh = router.watch_status(path)
        assert fresh["is_watching"] is True
        assert fresh["last_events"] == []


class TestPreview:
    """Test the content preview view."""

    def test_text_is_truncated(self, router, tmp_path: Path) -> None:
        (tmp_path / "long.txt").write_text("a" * 600)

        preview = router.preview(str(tmp_path / "long.txt"))["preview"]

        assert preview["can_preview"] is True
        assert preview["preview"] == "a" * 500
        assert preview["encoding"] == "utf8"
        assert preview["mime_type"] == "text/plain"
        assert preview["size"] == 600

    def test_multibyte_character_cut_at_byte_limit(self, router, tmp_path: Path) -> None:
        (tmp_path / "euro.txt").write_text("€" * 400, encoding="utf-8")

        preview = router.preview(str(tmp_path / "euro.txt"))["preview"]

        assert preview["can_preview"] is True
        assert preview["preview"] == "€" * 341

    def test_binary(self, router, tmp_path: Path) -> None:
        (tmp_path / "blob").write_bytes(b"\x00\x01\x02")

        preview = router.preview(str(tmp_path / "blob"))["preview"]

        assert preview["can_preview"] is False
        assert preview["preview"] == "Binary file or read error"
        assert preview["encoding"] == "binary"
        assert preview["mime_type"] == "application/octet-stream"

    def test_directory(self, router, tmp_path: Path) -> None:
        preview = router.preview(str(tmp_path))["preview"]

        assert preview["preview"] == "Directory contents"
        assert preview["can_preview"] is False

    def test_missing(self, router, tmp_path: Path) -> None:
        preview = router.preview(str(tmp_path / "nope"))["preview"]

        assert preview["preview"] == "Unable to get file info"
        assert preview["can_preview"] is False
        assert preview["error"]
