"""Tests for TextDocument and FileDocumentStore."""

import asyncio
import os

import pytest

from slice_sandbox.providers.base import TextEdit, TextRange
from slice_sandbox.providers import documents
from slice_sandbox.providers.documents import FileDocumentStore, TextDocument


class TestTextDocument:
    def test_line_addressing(self):
        doc = TextDocument("alpha\nbeta\ngamma")
        assert doc.line_count == 3
        assert doc.line_text(0) == "alpha"
        assert doc.line_text(2) == "gamma"
        assert doc.offset_of(1, 2) == 8

    def test_trailing_newline_adds_empty_line(self):
        doc = TextDocument("a\nb\n")
        assert doc.line_count == 3
        assert doc.line_text(2) == ""

    def test_empty_document_has_one_line(self):
        doc = TextDocument("")
        assert doc.line_count == 1
        assert doc.line_text(0) == ""

    def test_crlf_is_not_part_of_line_text(self):
        doc = TextDocument("one\r\ntwo\r\n")
        assert doc.line_text(0) == "one"
        assert doc.full_line_range(0, 1) == TextRange(0, 0, 1, 3)
        assert doc.get_text(doc.full_line_range(0, 1)) == "one\r\ntwo"

    def test_out_of_range_line_raises(self):
        with pytest.raises(IndexError):
            TextDocument("x").line_text(1)

    def test_with_edits_applies_all_ranges(self):
        doc = TextDocument("a\nb\nc\nd")
        updated = doc.with_edits([
            TextEdit(doc.full_line_range(0, 0), "A1\nA2"),
            TextEdit(doc.full_line_range(2, 3), "C"),
        ])
        assert updated.text == "A1\nA2\nb\nC"
        # original untouched
        assert doc.text == "a\nb\nc\nd"

    def test_with_edits_rejects_overlap(self):
        doc = TextDocument("a\nb\nc")
        with pytest.raises(ValueError):
            doc.with_edits([
                TextEdit(doc.full_line_range(0, 1), "x"),
                TextEdit(doc.full_line_range(1, 2), "y"),
            ])

    def test_with_edits_rejects_out_of_bounds(self):
        doc = TextDocument("a\nb")
        with pytest.raises(ValueError):
            doc.with_edits([TextEdit(TextRange(0, 0, 5, 0), "x")])


class TestFileDocumentStore:
    def test_apply_then_save_persists(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("one\ntwo\nthree\n", encoding="utf-8")
        store = FileDocumentStore()
        artifact = str(path)

        async def run():
            doc = await store.open(artifact)
            ok = await store.apply_ranges(artifact, [TextEdit(doc.full_line_range(1, 1), "TWO")])
            assert ok
            assert store.is_dirty(artifact)
            # not on disk until saved
            assert path.read_text(encoding="utf-8") == "one\ntwo\nthree\n"
            await store.save(artifact)

        asyncio.run(run())
        assert path.read_text(encoding="utf-8") == "one\nTWO\nthree\n"
        assert not store.is_dirty(artifact)

    def test_rejected_edit_returns_false_and_keeps_text(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("one\n", encoding="utf-8")
        store = FileDocumentStore()

        async def run():
            ok = await store.apply_ranges(str(path), [TextEdit(TextRange(9, 0, 9, 0), "x")])
            return ok, await store.read(str(path))

        ok, text = asyncio.run(run())
        assert ok is False
        assert text == "one\n"

    def test_crlf_preserved_on_save(self, tmp_path):
        path = tmp_path / "win.txt"
        path.write_bytes(b"a\r\nb\r\n")
        store = FileDocumentStore()

        async def run():
            doc = await store.open(str(path))
            await store.apply_ranges(str(path), [TextEdit(doc.full_line_range(0, 0), "A")])
            await store.save(str(path))

        asyncio.run(run())
        assert path.read_bytes() == b"A\r\nb\r\n"

    def test_forget_rereads_file(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("old", encoding="utf-8")
        stat = path.stat()
        store = FileDocumentStore()
        assert asyncio.run(store.read(str(path))) == "old"
        # same size and mtime: indistinguishable without forget()
        path.write_text("new", encoding="utf-8")
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns))
        assert asyncio.run(store.read(str(path))) == "old"
        store.forget(str(path))
        assert asyncio.run(store.read(str(path))) == "new"

    def test_outside_change_is_reread(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("a\nb\n", encoding="utf-8")
        store = FileDocumentStore()
        assert asyncio.run(store.open(str(path))).line_count == 3

        path.write_text("a\nb\nc\nd\n", encoding="utf-8")

        doc = asyncio.run(store.open(str(path)))
        assert doc.text == "a\nb\nc\nd\n"
        assert doc.line_count == 5

    def test_unsaved_edit_wins_until_save(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("one\ntwo\n", encoding="utf-8")
        store = FileDocumentStore()

        async def run():
            doc = await store.open(str(path))
            await store.apply_ranges(str(path), [TextEdit(doc.full_line_range(0, 0), "ONE")])
            path.write_text("something else entirely\n", encoding="utf-8")
            return await store.read(str(path))

        assert asyncio.run(run()) == "ONE\ntwo\n"
        assert store.is_dirty(str(path))

    def test_own_save_does_not_trigger_reread(self, tmp_path, monkeypatch):
        path = tmp_path / "f.txt"
        path.write_text("x\n", encoding="utf-8")
        store = FileDocumentStore()

        async def run():
            doc = await store.open(str(path))
            await store.apply_ranges(str(path), [TextEdit(doc.full_line_range(0, 0), "xyz")])
            await store.save(str(path))

        asyncio.run(run())
        reads = []
        monkeypatch.setattr(documents, "read_text", lambda p: reads.append(p) or "")
        assert asyncio.run(store.read(str(path))) == "xyz\n"
        assert reads == []

    def test_deleted_file_raises_on_open(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("x", encoding="utf-8")
        store = FileDocumentStore()
        asyncio.run(store.open(str(path)))
        path.unlink()
        with pytest.raises(OSError):
            asyncio.run(store.open(str(path)))
