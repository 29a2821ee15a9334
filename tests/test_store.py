"""Tests for trackdown.store.frontmatter module."""

import pytest

from trackdown.lib.validate import SchemaValidationError
from trackdown.models import ItemKind
from trackdown.store.frontmatter import (
    DocumentParseError,
    DocumentStore,
    render_document,
    split_frontmatter,
)

from conftest import write_doc


class TestSplitFrontmatter:
    def test_splits_header_and_body(self):
        """Header YAML and body are split at the closing delimiter."""
        data, body = split_frontmatter("---\nissue_id: ISS-0001\ntitle: T\n---\n\nBody text\n")
        assert data == {"issue_id": "ISS-0001", "title": "T"}
        assert body == "Body text\n"

    def test_missing_delimiter(self):
        """A document not starting with --- is rejected."""
        with pytest.raises(ValueError, match="missing"):
            split_frontmatter("issue_id: ISS-0001\n")

    def test_unterminated(self):
        """A header without a closing --- is rejected."""
        with pytest.raises(ValueError, match="unterminated"):
            split_frontmatter("---\nissue_id: ISS-0001\n")

    def test_not_a_mapping(self):
        """Frontmatter must be a YAML mapping."""
        with pytest.raises(ValueError, match="mapping"):
            split_frontmatter("---\n- a\n---\n")

    def test_render_then_split(self):
        """render_document output splits back into the same parts."""
        text = render_document({"task_id": "TSK-0001", "title": "T"}, "Hello")
        assert split_frontmatter(text) == ({"task_id": "TSK-0001", "title": "T"}, "Hello\n")


class TestParse:
    """Tests for parse_file() and parse_directory()."""

    def test_parse_file_infers_kind(self, tmp_path):
        """Without a kind, the most specific ID field decides."""
        path = tmp_path / "PR-0001.md"
        write_doc(path, {"pr_id": "PR-0001", "issue_id": "ISS-0001", "title": "T"})
        item = DocumentStore().parse_file(path)
        assert item.kind == ItemKind.PR
        assert item.file_path == path

    def test_parse_file_normalizes_yaml_dates(self, tmp_path):
        """Unquoted YAML timestamps are read back as ISO strings."""
        path = tmp_path / "ISS-0001.md"
        path.write_text("---\nissue_id: ISS-0001\ntitle: T\ncreated_date: 2025-01-02T03:04:05Z\n---\n")
        item = DocumentStore().parse_file(path, ItemKind.ISSUE)
        assert item.created_date == "2025-01-02T03:04:05Z"

    def test_parse_file_malformed_raises(self, tmp_path):
        """A file without frontmatter raises DocumentParseError."""
        path = tmp_path / "bad.md"
        path.write_text("no frontmatter")
        with pytest.raises(DocumentParseError):
            DocumentStore().parse_file(path, ItemKind.ISSUE)

    def test_parse_directory_recursive_and_skips_malformed(self, tmp_path, caplog):
        """Nested documents are found and broken ones skipped with a warning."""
        write_doc(tmp_path / "draft" / "PR-0001.md", {"pr_id": "PR-0001", "issue_id": "ISS-0001", "title": "A"})
        write_doc(tmp_path / "merged" / "PR-0002.md", {"pr_id": "PR-0002", "issue_id": "ISS-0001", "title": "B"})
        (tmp_path / "broken.md").write_text("---\ntitle: [oops\n---\n")

        items = DocumentStore().parse_directory(tmp_path, ItemKind.PR)
        assert sorted(i.id for i in items) == ["PR-0001", "PR-0002"]
        assert "Skipping malformed document" in caplog.text

    def test_parse_directory_missing(self, tmp_path):
        """A missing directory yields no items."""
        assert DocumentStore().parse_directory(tmp_path / "nope", "issue") == []


class TestPrefixes:
    """Tests for the configured ID prefix check."""

    def test_default_prefix_matches_quietly(self, tmp_path, caplog):
        """An ISS- issue under default prefixes logs nothing."""
        path = tmp_path / "ISS-0001.md"
        write_doc(path, {"issue_id": "ISS-0001", "title": "T"})
        DocumentStore().parse_file(path, ItemKind.ISSUE)
        assert "does not use prefix" not in caplog.text

    def test_configured_prefix_mismatch_warns(self, tmp_path, caplog):
        """An issue ID outside the configured prefix is still loaded, with a warning."""
        path = tmp_path / "ISS-0001.md"
        write_doc(path, {"issue_id": "ISS-0001", "title": "T"})
        item = DocumentStore({"issue": "BUG"}).parse_file(path, ItemKind.ISSUE)
        assert item.id == "ISS-0001"
        assert "issue ID 'ISS-0001' does not use prefix 'BUG'" in caplog.text

    def test_configured_prefix_accepted(self, tmp_path, caplog):
        """IDs using the configured prefix pass the check."""
        path = tmp_path / "BUG-0001.md"
        write_doc(path, {"issue_id": "BUG-0001", "title": "T"})
        store = DocumentStore({"issue": "BUG"})
        store.parse_file(path, ItemKind.ISSUE)
        assert store.expected_prefix(ItemKind.TASK) == "TSK"
        assert "does not use prefix" not in caplog.text


class TestWrite:
    """Tests for write_file(), update_file() and move_file()."""

    def test_write_file_validates(self, tmp_path):
        """Invalid frontmatter is never written."""
        with pytest.raises(SchemaValidationError):
            DocumentStore().write_file(tmp_path / "x.md", {"title": "no id"})
        assert not (tmp_path / "x.md").exists()

    def test_update_file_merges_and_refreshes_updated_date(self, tmp_path):
        """update_file keeps unknown keys and the body, and bumps updated_date."""
        path = tmp_path / "ISS-0001.md"
        write_doc(path, {
            "issue_id": "ISS-0001",
            "title": "T",
            "status": "active",
            "updated_date": "2020-01-01T00:00:00Z",
            "custom": "kept",
        }, "Body\n")

        item = DocumentStore().update_file(path, {"priority": "high"}, remove=("status",))
        assert item.priority == "high"
        assert item.status is None
        assert item.updated_date != "2020-01-01T00:00:00Z"
        assert item.extra == {"custom": "kept"}
        assert item.content == "Body\n"

        reread = DocumentStore().parse_file(path, ItemKind.ISSUE)
        assert reread.priority == "high"

    def test_update_file_rejects_invalid_state(self, tmp_path):
        """An unknown state value fails the schema check."""
        path = tmp_path / "ISS-0001.md"
        write_doc(path, {"issue_id": "ISS-0001", "title": "T"})
        with pytest.raises(SchemaValidationError):
            DocumentStore().update_file(path, {"state": "bogus"})

    def test_move_file(self, tmp_path):
        """move_file creates the target directory and removes the source."""
        src = tmp_path / "draft" / "PR-0001.md"
        write_doc(src, {"pr_id": "PR-0001", "issue_id": "ISS-0001", "title": "T"})
        dst = tmp_path / "active" / "open" / "PR-0001.md"

        assert DocumentStore().move_file(src, dst) == dst
        assert dst.exists()
        assert not src.exists()

    def test_move_file_refuses_overwrite(self, tmp_path):
        """An existing target is never overwritten."""
        src = tmp_path / "a.md"
        dst = tmp_path / "b.md"
        src.write_text("a")
        dst.write_text("b")
        with pytest.raises(FileExistsError):
            DocumentStore().move_file(src, dst)
        assert src.exists()

    def test_write_item_round_trip(self, tmp_path):
        """write_item persists edits without losing list fields."""
        path = tmp_path / "TSK-0001.md"
        write_doc(path, {"task_id": "TSK-0001", "issue_id": "ISS-0001", "title": "T", "tags": ["x"]}, "Body\n")
        store = DocumentStore()
        item = store.parse_file(path, ItemKind.TASK)
        store.write_item(item.copy(title="Renamed"))
        assert store.parse_file(path, ItemKind.TASK).title == "Renamed"
        assert store.parse_file(path, ItemKind.TASK).tags == ["x"]
