"""Tests for suffix removal and marker creation."""

import pytest
from conftest import add_pdf

from sisusync.store.base import DocumentStore, StoreError
from sisusync.store.memory import InMemoryDocumentStore
from sisusync.sync.maintenance import MarkerRoot, create_markers, parse_marker_root, remove_suffix


class TestRemoveSuffix:
    @pytest.fixture()
    def tree(self, store):
        store.add_folder("root", "Root")
        store.add_folder("a", "ClientA", parent_id="root")
        store.add_folder("sub", "Docs", parent_id="a")
        store.add_folder("b", "ClientB", parent_id="root")
        store.add_file("ma", "SISU_ID", parent_id="a", content="Jane@Example.com")
        store.add_file("mb", "SISU_ID", parent_id="b", content="bob@example.com")
        add_pdf(store, "a1", "one_UPLOADED.pdf", "a")
        add_pdf(store, "a2", "two.pdf", "a")
        add_pdf(store, "a3", "three_UPLOADED.pdf", "sub")
        add_pdf(store, "b1", "four_UPLOADED.pdf", "b")
        return store

    async def test_strips_suffix_for_matching_folder(self, tree):
        result = await remove_suffix(tree, "jane@example.com")

        assert result.identifier == "jane@example.com"
        assert result.folders_processed == 1
        assert result.files_renamed == 2
        assert tree.name_of("a1") == "one.pdf"
        assert tree.name_of("a3") == "three.pdf"
        assert tree.name_of("a2") == "two.pdf"
        assert tree.name_of("b1") == "four_UPLOADED.pdf"

    async def test_no_match(self, tree):
        result = await remove_suffix(tree, "nobody@example.com")
        assert result.folders_processed == 0
        assert tree.renames == []

    async def test_invalid_identifier(self, tree):
        with pytest.raises(ValueError):
            await remove_suffix(tree, "   ")

    async def test_rename_error_collected(self, tree):
        original = tree.rename

        async def flaky(file_id, new_name):
            if file_id == "a1":
                raise StoreError("locked")
            await original(file_id, new_name)

        tree.rename = flaky
        result = await remove_suffix(tree, "jane@example.com")
        assert result.files_renamed == 1
        assert len(result.errors) == 1
        assert "one_UPLOADED.pdf" in result.errors[0]


class TestParseMarkerRoot:
    def test_id_only(self):
        assert parse_marker_root("abc") == MarkerRoot("abc", 1, None)

    def test_depth_and_subfolder(self):
        assert parse_marker_root(" abc:1:*Active ") == MarkerRoot("abc", 1, "*Active")
        assert parse_marker_root("abc:2") == MarkerRoot("abc", 2, None)

    @pytest.mark.parametrize("entry", ["", ":2", "abc:0", "abc:x"])
    def test_invalid(self, entry):
        with pytest.raises(ValueError):
            parse_marker_root(entry)


class TestCreateMarkers:
    @pytest.fixture()
    def drive(self):
        store = InMemoryDocumentStore()
        store.add_folder("buyers", "*Buyers")
        store.add_folder("agent1", "Agent One", parent_id="buyers")
        store.add_folder("c1", "Client 1", parent_id="agent1")
        store.add_folder("c2", "Client 2", parent_id="agent1")
        store.add_file("existing", "SISU_ID", parent_id="c2", content="123")
        store.add_folder("listings", "*Listings")
        store.add_folder("active", "*Active", parent_id="listings")
        store.add_folder("sold", "*Sold", parent_id="listings")
        store.add_folder("p1", "1 Oak St", parent_id="active")
        store.add_folder("p2", "9 Old Rd", parent_id="sold")
        return store

    async def test_creates_in_leaf_folders(self, drive):
        result = await create_markers(
            drive, [MarkerRoot("buyers", depth=2), MarkerRoot("listings", depth=1, subfolder="*Active")]
        )

        assert result.folders_scanned == 3
        assert result.created == ["*Buyers > Agent One > Client 1", "*Listings > *Active > 1 Oak St"]
        assert result.skipped == ["*Buyers > Agent One > Client 2"]
        assert result.errors == []
        markers = [f for f in drive.files.values() if f.name == "SISU_ID"]
        assert sorted(m.parent_id for m in markers) == ["c1", "c2", "p1"]

    async def test_second_run_skips_everything(self, drive):
        roots = [MarkerRoot("buyers", depth=2)]
        await create_markers(drive, roots)
        result = await create_markers(drive, roots)
        assert result.created == []
        assert len(result.skipped) == 2

    async def test_missing_subfolder(self, drive):
        result = await create_markers(drive, [MarkerRoot("listings", subfolder="*Pending")])
        assert result.folders_scanned == 0
        assert result.created == []

    async def test_missing_root_is_error(self, drive):
        result = await create_markers(drive, [MarkerRoot("gone")])
        assert result.errors[0][0] == "gone"

    async def test_read_only_store(self):
        class ReadOnly(InMemoryDocumentStore):
            create_document = DocumentStore.create_document

        store = ReadOnly()
        store.add_folder("r", "Root")
        store.add_folder("x", "X", parent_id="r")
        result = await create_markers(store, [MarkerRoot("r")])
        assert result.created == []
        assert result.errors[0][0] == "Root > X"
