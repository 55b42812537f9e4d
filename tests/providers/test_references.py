"""Tests for the word reference provider."""

import asyncio
import textwrap

from slice_sandbox.providers.documents import FileDocumentStore
from slice_sandbox.providers.references import WordReferenceProvider, identifier_at


SOURCE = textwrap.dedent("""\
    total = compute(1)

    def compute(x):
        return x + 1

    print(compute(2), recompute)
""")


class TestIdentifierAt:
    def test_cursor_inside_word(self):
        assert identifier_at("value = compute(1)", 10) == "compute"

    def test_cursor_at_word_end(self):
        assert identifier_at("compute", 7) == "compute"

    def test_cursor_on_punctuation(self):
        assert identifier_at("a = (  )", 5) is None


class TestResolve:
    def test_definitions_first_then_document_order(self, tmp_path):
        path = tmp_path / "m.py"
        path.write_text(SOURCE, encoding="utf-8")
        provider = WordReferenceProvider(FileDocumentStore())

        locations = asyncio.run(provider.resolve(str(path), 0, 9))

        assert [(loc.line, loc.column) for loc in locations] == [(2, 4), (0, 8), (5, 6)]
        assert locations[0].is_definition
        # "recompute" is not a whole-word match
        assert all(loc.line != 5 or loc.column == 6 for loc in locations)

    def test_parameter_sharing_the_name_is_a_reference(self, tmp_path):
        path = tmp_path / "shadow.py"
        path.write_text("def foo(foo):\n    return foo\n", encoding="utf-8")
        provider = WordReferenceProvider(FileDocumentStore())

        locations = asyncio.run(provider.resolve(str(path), 0, 4))

        assert [(loc.line, loc.column, loc.is_definition) for loc in locations] == [
            (0, 4, True), (0, 8, False), (1, 11, False),
        ]

    def test_extra_files_are_searched(self, tmp_path):
        main = tmp_path / "m.py"
        main.write_text(SOURCE, encoding="utf-8")
        other = tmp_path / "other.py"
        other.write_text("from m import compute\n", encoding="utf-8")
        provider = WordReferenceProvider(FileDocumentStore(), extra_files=[str(other)])

        locations = asyncio.run(provider.resolve(str(main), 2, 5))

        assert any(loc.artifact_id == str(other) and loc.line == 0 for loc in locations)

    def test_no_identifier_returns_empty(self, tmp_path):
        path = tmp_path / "m.py"
        path.write_text(SOURCE, encoding="utf-8")
        provider = WordReferenceProvider(FileDocumentStore())
        assert asyncio.run(provider.resolve(str(path), 1, 0)) == []

    def test_line_out_of_range_returns_empty(self, tmp_path):
        path = tmp_path / "m.py"
        path.write_text(SOURCE, encoding="utf-8")
        provider = WordReferenceProvider(FileDocumentStore())
        assert asyncio.run(provider.resolve(str(path), 99, 0)) == []
