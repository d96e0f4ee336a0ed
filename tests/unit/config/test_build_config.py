"""
Unit tests for build configuration loading and validation.
"""

import json
from unittest.mock import Mock

import pytest
import yaml

from tsprism.config.build_config import (
    BuildConfig,
    TargetConfig,
    filter_targets,
    find_build_config,
    read_package_type,
    validate_config,
    validate_options_files,
)
from tsprism.errors import ConfigError, ValidationError

VALID = {
    "exports": {".": "./src/index.ts", "./package.json": "./package.json"},
    "targets": [
        {"name": "esm", "condition": "import", "tsconfig": "./tsconfig.esm.json"},
        {"name": "cjs", "condition": "require", "tsconfig": "./tsconfig.cjs.json", "moduleType": "commonjs"},
        {"name": "browser", "tsconfig": "./tsconfig.browser.json", "polyfillSuffix": True},
    ],
}


@pytest.fixture
def package(tmp_path):
    (tmp_path / "package.json").write_text(json.dumps({"name": "demo", "type": "module"}))
    return tmp_path


class TestValidateConfig:
    """Test suite for validate_config()."""

    def test_valid_config(self):
        config = validate_config(VALID, "test")

        assert isinstance(config, BuildConfig)
        assert [t.name for t in config.targets] == ["esm", "cjs", "browser"]
        assert config.get_target("cjs").module_type == "commonjs"
        assert config.get_target("esm").module_type is None

    def test_condition_defaults_to_name(self):
        config = validate_config(VALID, "test")
        assert config.get_target("browser").condition == "browser"

    def test_polyfill_suffix_true_uses_name(self):
        config = validate_config(VALID, "test")
        assert config.get_target("browser").polyfill_suffix == "-browser"

    @pytest.mark.parametrize(
        "raw, expected",
        [("-web", "-web"), (False, None), (None, None)],
    )
    def test_polyfill_suffix_values(self, raw, expected):
        data = {
            "exports": {".": "./src/index.ts"},
            "targets": [{"name": "a", "tsconfig": "a.json", "polyfillSuffix": raw}],
        }
        assert validate_config(data, "test").targets[0].polyfill_suffix == expected

    def test_module_type_alias(self):
        data = {
            "exports": {".": "./src/index.ts"},
            "targets": [{"name": "a", "tsconfig": "a.json", "moduleType": "module"}],
        }
        assert validate_config(data, "test").targets[0].module_type == "esm"

    @pytest.mark.parametrize(
        "data, message",
        [
            ([], "expected an object"),
            ({"targets": VALID["targets"]}, '"exports" must be a non-empty object'),
            ({"exports": {".": 1}, "targets": VALID["targets"]}, "must be a string"),
            ({"exports": VALID["exports"]}, '"targets" must be a non-empty array'),
            ({"exports": VALID["exports"], "targets": ["esm"]}, "targets[0] must be an object"),
            ({"exports": VALID["exports"], "targets": [{"name": "esm"}]}, "targets[0].tsconfig"),
            (
                {"exports": VALID["exports"], "targets": [{"name": "a", "tsconfig": "a.json", "moduleType": "amd"}]},
                "moduleType",
            ),
            (
                {"exports": VALID["exports"], "targets": [{"name": "a", "tsconfig": "a.json", "polyfillSuffix": 3}]},
                "polyfillSuffix",
            ),
        ],
    )
    def test_shape_errors(self, data, message):
        with pytest.raises(ConfigError) as exc_info:
            validate_config(data, "test")
        assert message in str(exc_info.value)
        assert exc_info.value.code == "CONFIG_INVALID"

    @pytest.mark.parametrize(
        "key, message",
        [
            ("lib", 'must be "." or start with "./"'),
            ("./lib/", 'must not end with "/"'),
            ("./*", "wildcard"),
        ],
    )
    def test_export_key_errors(self, key, message):
        data = {"exports": {key: "./src/index.ts"}, "targets": VALID["targets"]}
        with pytest.raises(ValidationError, match=message):
            validate_config(data, "test")

    def test_duplicate_names_rejected(self):
        data = {
            "exports": VALID["exports"],
            "targets": [
                {"name": "esm", "condition": "import", "tsconfig": "a.json"},
                {"name": "esm", "condition": "default", "tsconfig": "b.json"},
            ],
        }
        with pytest.raises(ValidationError, match='duplicate target name "esm"'):
            validate_config(data, "test")

    def test_duplicate_conditions_rejected(self):
        data = {
            "exports": VALID["exports"],
            "targets": [
                {"name": "a", "condition": "import", "tsconfig": "a.json"},
                {"name": "b", "condition": "import", "tsconfig": "b.json"},
            ],
        }
        with pytest.raises(ValidationError, match='duplicate target condition "import"'):
            validate_config(data, "test")


class TestFindBuildConfig:
    """Test suite for find_build_config()."""

    def test_yaml_config(self, package):
        (package / "tsprism.config.yml").write_text(yaml.safe_dump(VALID))

        resolved = find_build_config(package)

        assert resolved.source_type == "yaml"
        assert resolved.label == "tsprism.config.yml"
        assert len(resolved.config.targets) == 3

    def test_json_config(self, package):
        (package / "tsprism.config.json").write_text(json.dumps(VALID))

        resolved = find_build_config(package)

        assert resolved.source_type == "json"

    def test_package_json_key(self, package):
        (package / "package.json").write_text(json.dumps({"name": "demo", "tsprism": VALID}))

        resolved = find_build_config(package)

        assert resolved.source_type == "package.json"
        assert resolved.label == 'package.json "tsprism" key'

    def test_config_file_wins_over_package_json(self, package):
        """Test that a config file takes precedence and a warning is logged."""
        (package / "package.json").write_text(json.dumps({"name": "demo", "tsprism": VALID}))
        (package / "tsprism.config.yaml").write_text(yaml.safe_dump(VALID))
        logger = Mock()

        resolved = find_build_config(package, logger=logger)

        assert resolved.source_type == "yaml"
        logger.warn.assert_called_once()
        assert "Both" in logger.warn.call_args[0][0]

    def test_nothing_found(self, package):
        assert find_build_config(package) is None

    def test_explicit_path(self, package):
        (package / "configs").mkdir()
        (package / "configs" / "build.yml").write_text(yaml.safe_dump(VALID))

        resolved = find_build_config(package, "configs/build.yml")

        assert resolved.source_path == (package / "configs" / "build.yml").resolve()

    def test_explicit_path_missing(self, package):
        with pytest.raises(ConfigError) as exc_info:
            find_build_config(package, "missing.yml")
        assert exc_info.value.code == "CONFIG_NOT_FOUND"

    def test_invalid_yaml(self, package):
        (package / "tsprism.config.yml").write_text("exports: [unclosed\n")
        with pytest.raises(ConfigError, match="Failed to parse"):
            find_build_config(package)


class TestConfigHelpers:
    """Test suite for filtering and file checks."""

    def test_filter_keeps_declared_order(self):
        config = validate_config(VALID, "test")
        filtered = filter_targets(config, ["browser", "esm"])
        assert [t.name for t in filtered.targets] == ["esm", "browser"]
        assert filtered.exports == config.exports

    def test_filter_unknown(self):
        config = validate_config(VALID, "test")
        with pytest.raises(ValidationError, match="Unknown target\\(s\\): web"):
            filter_targets(config, ["web"])

    def test_validate_options_files(self, package):
        config = BuildConfig(
            exports={".": "./src/index.ts"},
            targets=(TargetConfig("esm", "import", "tsconfig.esm.json"),),
        )
        with pytest.raises(ConfigError) as exc_info:
            validate_options_files(config, package, "tsprism.config.yml")
        assert exc_info.value.code == "TSCONFIG_ERROR"

        (package / "tsconfig.esm.json").write_text("{}")
        validate_options_files(config, package, "tsprism.config.yml")

    @pytest.mark.parametrize(
        "pkg, expected",
        [({"type": "commonjs"}, "commonjs"), ({"type": "module"}, "esm"), ({}, "esm")],
    )
    def test_read_package_type(self, tmp_path, pkg, expected):
        (tmp_path / "package.json").write_text(json.dumps(pkg))
        assert read_package_type(tmp_path) == expected
