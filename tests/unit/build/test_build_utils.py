"""
Unit tests for build filesystem utilities.
"""

import json
import os
import sys

import pytest

from build_helpers import read_tree, write_file
from tsprism.build.build_utils import (
    copy_declarations,
    copy_tree,
    is_declaration_file,
    prepare_out_dirs,
    relocate_source_map,
    validate_out_dirs,
    write_emitted_files,
)
from tsprism.build.compiler import EmittedFile
from tsprism.config.build_config import TargetConfig
from tsprism.config.target_options import ParsedTargetConfig
from tsprism.errors import ValidationError


def _parsed(name, root_dir, out_dir):
    return ParsedTargetConfig(
        target=TargetConfig(name, name, f"tsconfig.{name}.json"),
        options={},
        root_dir=root_dir,
        out_dir=out_dir,
        files=(),
    )


class TestWriteEmittedFiles:
    """Test suite for write_emitted_files()."""

    def test_writes_nested_paths(self, tmp_path):
        written = write_emitted_files(
            tmp_path / "dist",
            [EmittedFile("index.js", "a\n"), EmittedFile("lib/util.js", "b\n")],
        )
        assert len(written) == 2
        assert (tmp_path / "dist" / "lib" / "util.js").read_text() == "b\n"

    def test_preserves_line_endings(self, tmp_path):
        write_emitted_files(tmp_path, [EmittedFile("crlf.js", "a\r\nb\r\n")])
        assert (tmp_path / "crlf.js").read_bytes() == b"a\r\nb\r\n"

    def test_rejects_escaping_paths(self, tmp_path):
        """Test that emitted files cannot land outside out_dir."""
        with pytest.raises(ValueError, match="escapes"):
            write_emitted_files(tmp_path / "dist", [EmittedFile("../evil.js", "")])


class TestCopyTree:
    """Test suite for copy_tree()."""

    def test_copies_bytes(self, tmp_path):
        src = tmp_path / "a"
        write_file(src / "index.js", "x\n")
        write_file(src / "nested" / "deep.d.ts", "y\n")

        count = copy_tree(src, tmp_path / "b")

        assert count == 2
        assert read_tree(tmp_path / "b") == read_tree(src)

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_preserves_symlinks(self, tmp_path):
        src = tmp_path / "a"
        write_file(src / "index.js", "x\n")
        os.symlink("index.js", src / "alias.js")

        copy_tree(src, tmp_path / "b")

        link = tmp_path / "b" / "alias.js"
        assert link.is_symlink()
        # Relative links keep pointing at the original absolute target
        assert link.resolve() == (src / "index.js").resolve()


class TestCopyDeclarations:
    """Test suite for copy_declarations()."""

    def test_copies_only_declarations(self, tmp_path):
        src_out = tmp_path / "dist" / "esm"
        write_file(src_out / "index.js", "js\n")
        write_file(src_out / "index.d.ts", "dts\n")
        write_file(src_out / "index.d.ts.map", "map\n")
        write_file(src_out / "lib" / "util.d.mts", "mts\n")

        root = tmp_path / "src"
        count = copy_declarations(src_out, root, tmp_path / "dist" / "cjs", root)

        assert count == 3
        assert sorted(read_tree(tmp_path / "dist" / "cjs")) == [
            "index.d.ts",
            "index.d.ts.map",
            "lib/util.d.mts",
        ]

    def test_relocates_through_root_dirs(self, tmp_path):
        """Test that files land where the destination layout expects them."""
        src_out = tmp_path / "dist" / "esm"
        write_file(src_out / "index.d.ts", "dts\n")

        copy_declarations(src_out, tmp_path / "src", tmp_path / "dist" / "cjs", tmp_path)

        assert (tmp_path / "dist" / "cjs" / "src" / "index.d.ts").read_text() == "dts\n"

    def test_relocated_map_sources_rewritten(self, tmp_path):
        """Test that a moved declaration map still points at its source."""
        src_out = tmp_path / "dist" / "esm"
        write_file(src_out / "index.d.ts", "dts\n")
        write_file(
            src_out / "index.d.ts.map",
            '{"version":3,"file":"index.d.ts","sourceRoot":"","sources":["../../src/index.ts"],"names":[],"mappings":"AAAA"}',
        )

        copy_declarations(src_out, tmp_path / "src", tmp_path / "dist" / "cjs", tmp_path)

        moved = json.loads((tmp_path / "dist" / "cjs" / "src" / "index.d.ts.map").read_text())
        assert moved["sources"] == ["../../../src/index.ts"]
        assert moved["mappings"] == "AAAA"
        assert (tmp_path / "dist" / "cjs" / "src" / "index.d.ts").read_text() == "dts\n"

    def test_sibling_map_copied_unchanged(self, tmp_path):
        text = '{"version":3,"file":"index.d.ts","sourceRoot":"","sources":["../../src/index.ts"],"mappings":""}'
        write_file(tmp_path / "dist" / "esm" / "index.d.ts.map", text)
        root = tmp_path / "src"

        copy_declarations(tmp_path / "dist" / "esm", root, tmp_path / "dist" / "cjs", root)

        assert (tmp_path / "dist" / "cjs" / "index.d.ts.map").read_text() == text

    @pytest.mark.parametrize(
        "data",
        [
            {"sources": ["index.ts"], "sourceRoot": "https://example.com/src/"},
            {"sources": ["/abs/src/index.ts", "webpack://pkg/index.ts"]},
        ],
    )
    def test_relocate_source_map_leaves_rooted_sources(self, tmp_path, data):
        text = json.dumps(data)
        assert relocate_source_map(text, tmp_path / "a", tmp_path / "b" / "c") == text

    def test_relocate_source_map_invalid_json(self, tmp_path):
        assert relocate_source_map("not json", tmp_path / "a", tmp_path / "b") == "not json"

    def test_missing_source_dir(self, tmp_path):
        assert copy_declarations(tmp_path / "nope", tmp_path, tmp_path / "out", tmp_path) == 0

    def test_is_declaration_file(self):
        assert is_declaration_file("a.d.ts")
        assert is_declaration_file("a.d.cts.map")
        assert not is_declaration_file("a.js")
        assert not is_declaration_file("a.js.map")


class TestOutDirs:
    """Test suite for output directory validation and preparation."""

    def test_distinct_out_dirs_pass(self, tmp_path):
        validate_out_dirs(
            [
                _parsed("esm", tmp_path / "src", tmp_path / "dist" / "esm"),
                _parsed("cjs", tmp_path / "src", tmp_path / "dist" / "cjs"),
            ]
        )

    def test_shared_out_dir_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="share outDir"):
            validate_out_dirs(
                [
                    _parsed("esm", tmp_path / "src", tmp_path / "dist"),
                    _parsed("cjs", tmp_path / "src", tmp_path / "dist"),
                ]
            )

    def test_nested_out_dirs_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="nested outDirs"):
            validate_out_dirs(
                [
                    _parsed("esm", tmp_path / "src", tmp_path / "dist"),
                    _parsed("cjs", tmp_path / "src", tmp_path / "dist" / "cjs"),
                ]
            )

    def test_out_dir_containing_sources_rejected(self, tmp_path):
        """Test that cleaning can never delete sources."""
        with pytest.raises(ValidationError, match="contains its rootDir"):
            validate_out_dirs([_parsed("esm", tmp_path / "src", tmp_path)])

    def test_prepare_cleans_stale_output(self, tmp_path):
        out_dir = tmp_path / "dist" / "esm"
        write_file(out_dir / "stale.js", "old\n")

        prepare_out_dirs([_parsed("esm", tmp_path / "src", out_dir)])

        assert out_dir.is_dir()
        assert not (out_dir / "stale.js").exists()

    def test_prepare_without_clean_keeps_output(self, tmp_path):
        out_dir = tmp_path / "dist" / "esm"
        write_file(out_dir / "stale.js", "old\n")

        prepare_out_dirs([_parsed("esm", tmp_path / "src", out_dir)], clean=False)

        assert (out_dir / "stale.js").exists()
