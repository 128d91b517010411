"""Source readers and the polyglot scan over a whole root."""

import json

import pytest

from scanners import (
    ApiDocumentReader,
    InputKind,
    PolyglotScanner,
    SourceReadError,
    SourceTreeReader,
    UnsupportedInputKind,
    get_extractor,
    open_reader,
)
from scanners.polyglot import SourceCodeExtractor
from tests.conftest import write_tree


def paths(reader, root):
    return [str(f.location.file_path).replace(str(root) + "/", "") for f in reader]


class TestReaders:

    def test_walk_is_sorted_and_prunes_ignored(self, sample_tree):
        reader = open_reader(sample_tree, "source-tree", SourceCodeExtractor().extensions)
        assert isinstance(reader, SourceTreeReader)
        assert paths(reader, sample_tree) == ["app.py", "cmd/main.go", "web/server.js"]

    def test_reader_is_restartable(self, sample_tree):
        reader = open_reader(sample_tree, InputKind.SOURCE_TREE, {".py", ".js", ".go"})
        first = [f.text for f in reader]
        second = [f.text for f in reader]
        assert first == second
        assert reader.stats["files_read"] == 3

    def test_hidden_and_minified_files_skipped(self, tmp_path):
        write_tree(tmp_path, {
            "app.js": "app.get('/a', h);\n",
            "app.min.js": "app.get('/b', h);\n",
            ".hidden.js": "app.get('/c', h);\n",
        })
        reader = open_reader(tmp_path, "source-tree", {".js"})
        assert paths(reader, tmp_path) == ["app.js"]
        assert reader.stats["files_skipped"] == 2

    def test_test_suites_are_not_scanned(self, tmp_path):
        write_tree(tmp_path, {
            "app.js": "app.get('/a', h);\n",
            "tests/routes.test.js": "app.get('/fixture', h);\n",
            "test/fixtures/app.js": "app.get('/other-fixture', h);\n",
        })
        reader = open_reader(tmp_path, "source-tree", {".js"})
        assert paths(reader, tmp_path) == ["app.js"]

    def test_large_files_skipped(self, tmp_path):
        write_tree(tmp_path, {"big.py": "x = 1\n" * 1000, "small.py": "x = 1\n"})
        reader = open_reader(tmp_path, "source-tree", {".py"}, max_file_size_mb=0.001)
        assert paths(reader, tmp_path) == ["small.py"]

    def test_missing_root_is_fatal(self, tmp_path):
        with pytest.raises(SourceReadError):
            open_reader(tmp_path / "missing", "source-tree", {".py"})

    def test_source_read_error_is_an_os_error(self):
        assert issubclass(SourceReadError, OSError)

    def test_unknown_kind(self, tmp_path):
        with pytest.raises(UnsupportedInputKind) as exc:
            open_reader(tmp_path, "binary-blob", {".py"})
        assert "source-tree" in str(exc.value)
        with pytest.raises(UnsupportedInputKind):
            get_extractor("binary-blob")

    def test_api_document_single_file(self, tmp_path):
        doc = tmp_path / "openapi.yaml"
        doc.write_text("openapi: 3.0.0\npaths: {}\n")
        reader = open_reader(doc, "api-document", set())
        assert isinstance(reader, ApiDocumentReader)
        fragments = list(reader)
        assert len(fragments) == 1
        assert fragments[0].kind == InputKind.API_DOCUMENT


class TestPolyglotScanner:

    def test_scan_sample_tree(self, sample_tree):
        result = PolyglotScanner(sample_tree).scan()
        found = sorted((c.method.value, c.path_template) for c in result.candidates)
        assert found == [
            ("DELETE", "/users/{user_id}"),
            ("GET", "/api/users/{userId}"),
            ("GET", "/health"),
            ("GET", "/users/{user_id}"),
            ("GET", "/v1/orders/{id}"),
            ("POST", "/api/users"),
        ]
        assert result.issues == []
        assert result.stats["files_read"] == 3
        assert result.stats["by_language"] == {"Python": 3, "JavaScript": 2, "Go": 1}

    def test_progress_callback(self, sample_tree):
        seen = []
        PolyglotScanner(sample_tree).scan(progress_cb=lambda count, fp: seen.append(count))
        assert seen == [1, 2, 3]

    def test_malformed_document_is_recorded_not_fatal(self, tmp_path):
        write_tree(tmp_path, {
            "good.json": json.dumps({"openapi": "3.0.0", "paths": {"/ping": {"get": {}}}}),
            "bad.json": "{oops",
        })
        result = PolyglotScanner(tmp_path, kind="api-document").scan()
        assert [(c.method.value, c.path_template) for c in result.candidates] == [("GET", "/ping")]
        assert len(result.issues) == 1
        assert result.issues[0].location.file_path.endswith("bad.json")
        assert result.issues[0].to_dict()["file"].endswith("bad.json")

    def test_source_tree_ignores_documents(self, tmp_path):
        write_tree(tmp_path, {
            "openapi.json": json.dumps({"openapi": "3.0.0", "paths": {"/ping": {"get": {}}}}),
        })
        result = PolyglotScanner(tmp_path).scan()
        assert result.candidates == []
