"""
Unit tests for the signature engine.
"""

from tsprism.build.signature import options_signature, signature_options, source_identity

FILES = ["/pkg/src/index.ts", "/pkg/src/greeter.ts"]
OPTIONS = {"module": "nodenext", "target": "es2022", "declaration": True}


class TestSourceIdentity:
    """Test suite for source_identity()."""

    def test_file_order_is_irrelevant(self):
        """Test that the identity does not depend on file order."""
        assert source_identity(FILES) == source_identity(list(reversed(FILES)))

    def test_different_paths_change_identity(self):
        """Test that a different absolute path produces a different identity."""
        other = ["/other/src/index.ts", "/other/src/greeter.ts"]
        assert source_identity(FILES) != source_identity(other)

    def test_polyfill_suffix_discriminates(self):
        """Test that a suffix changes the identity even without override files."""
        assert source_identity(FILES) != source_identity(FILES, "-browser")
        assert source_identity(FILES, "-browser") != source_identity(FILES, "-worker")

    def test_empty_suffix_differs_from_absent(self):
        """Test that an empty suffix and no suffix are distinct."""
        assert source_identity(FILES, "") != source_identity(FILES, None)

    def test_is_deterministic(self):
        """Test that repeated calls agree."""
        assert source_identity(FILES, "-browser") == source_identity(FILES, "-browser")


class TestOptionsSignature:
    """Test suite for options_signature()."""

    def test_output_location_keys_are_ignored(self):
        """Test that outDir and tsBuildInfoFile do not affect the signature."""
        a = dict(OPTIONS, outDir="/pkg/dist/esm", tsBuildInfoFile="/pkg/a.tsbuildinfo")
        b = dict(OPTIONS, outDir="/pkg/dist/workerd")
        assert options_signature(a, FILES) == options_signature(b, FILES)

    def test_config_file_path_is_ignored(self):
        """Test that configFilePath is treated as non-semantic."""
        a = dict(OPTIONS, configFilePath="/pkg/tsconfig.esm.json")
        b = dict(OPTIONS, configFilePath="/pkg/tsconfig.workerd.json")
        assert options_signature(a, FILES) == options_signature(b, FILES)

    def test_module_option_changes_signature(self):
        """Test that a semantic option difference changes the signature."""
        cjs = dict(OPTIONS, module="commonjs")
        assert options_signature(OPTIONS, FILES) != options_signature(cjs, FILES)

    def test_unknown_options_participate(self):
        """Test that unfamiliar keys are never dropped."""
        extra = dict(OPTIONS, someFutureFlag=True)
        assert options_signature(OPTIONS, FILES) != options_signature(extra, FILES)

    def test_key_order_is_irrelevant(self):
        """Test that option insertion order does not matter."""
        reordered = dict(reversed(list(OPTIONS.items())))
        assert options_signature(OPTIONS, FILES) == options_signature(reordered, FILES)

    def test_polyfill_suffix_changes_signature(self):
        """Test that the suffix is part of the options signature."""
        assert options_signature(OPTIONS, FILES) != options_signature(OPTIONS, FILES, "-browser")

    def test_files_change_signature(self):
        """Test that the file set is part of the options signature."""
        assert options_signature(OPTIONS, FILES) != options_signature(OPTIONS, FILES[:1])

    def test_non_json_values_are_stringified(self):
        """Test that values json cannot encode still hash deterministically."""
        from pathlib import Path

        a = dict(OPTIONS, baseUrl=Path("/pkg"))
        assert options_signature(a, FILES) == options_signature(dict(a), FILES)


class TestSignatureOptions:
    """Test suite for signature_options()."""

    def test_strips_only_output_and_bookkeeping_keys(self):
        options = dict(OPTIONS, outDir="/x", tsBuildInfoFile="/y", configFilePath="/z", rootDir="/r")
        assert signature_options(options) == dict(OPTIONS, rootDir="/r")
