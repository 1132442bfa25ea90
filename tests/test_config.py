"""Tests for runner settings and the cucumber config cleanup."""

import json

import pytest
import yaml

from cucumber_runner.config import (
    DEFAULT_COMMAND,
    RunnerConfig,
    clean_and_copy_config,
    find_config_file,
    find_cucumber_config,
    load_config,
    load_cucumber_config,
    strip_path_overrides,
    write_cucumber_config,
)
from cucumber_runner.errors import ConfigError


class TestStripPathOverrides:
    """Tests for strip_path_overrides()."""

    def test_drops_paths_and_format(self):
        config = {
            "default": {"paths": ["features/"], "format": ["progress"], "require": ["steps/*.js"], "retry": 2},
            "ci": {"parallel": 4},
        }
        assert strip_path_overrides(config) == {"default": {"require": ["steps/*.js"], "retry": 2}}

    def test_does_not_mutate_input(self):
        config = {"default": {"paths": ["x"]}}
        strip_path_overrides(config)
        assert config == {"default": {"paths": ["x"]}}

    def test_without_default_profile(self):
        assert strip_path_overrides({"ci": {"paths": ["x"]}}) == {}
        assert strip_path_overrides(None) == {}


class TestCucumberConfigFiles:
    """Tests for locating, reading and writing cucumber configs."""

    def test_find_prefers_js(self, tmp_path):
        (tmp_path / "cucumber.json").write_text("{}")
        (tmp_path / "cucumber.js").write_text("module.exports = {}")
        assert find_cucumber_config(tmp_path).name == "cucumber.js"

    def test_find_none(self, tmp_path):
        assert find_cucumber_config(tmp_path) is None

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "cucumber.yaml"
        path.write_text("default:\n  paths:\n    - features/\n")
        assert load_cucumber_config(path) == {"default": {"paths": ["features/"]}}

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "cucumber.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            load_cucumber_config(path)

    @pytest.mark.parametrize(
        "ext, prefix",
        [
            (".js", "module.exports = "),
            (".cjs", "module.exports = "),
            (".mjs", "export default "),
        ],
    )
    def test_write_js_flavours(self, tmp_path, ext, prefix):
        path = write_cucumber_config(tmp_path, ext, {"default": {"retry": 1}})
        assert path.name == f"cucumber-test-runner{ext}"
        content = path.read_text()
        assert content.startswith(prefix)
        assert '"retry": 1' in content

    def test_write_yaml(self, tmp_path):
        path = write_cucumber_config(tmp_path, ".yml", {"default": {"retry": 1}})
        assert yaml.safe_load(path.read_text()) == {"default": {"retry": 1}}

    def test_write_with_custom_name(self, tmp_path):
        path = write_cucumber_config(tmp_path, ".json", {}, out_name="custom.json")
        assert path == tmp_path / "custom.json"

    def test_clean_and_copy_json(self, tmp_path):
        (tmp_path / "cucumber.json").write_text(
            json.dumps({"default": {"paths": ["features/"], "format": ["html:out.html"], "tags": "not @wip"}})
        )
        written = clean_and_copy_config(tmp_path)

        assert written == tmp_path / "cucumber-test-runner.json"
        assert json.loads(written.read_text()) == {"default": {"tags": "not @wip"}}

    def test_clean_and_copy_without_config(self, tmp_path):
        assert clean_and_copy_config(tmp_path) is None


class TestRunnerConfig:
    """Tests for runner settings."""

    def test_defaults(self):
        config = RunnerConfig()
        assert config.command == DEFAULT_COMMAND
        assert config.discovery == "pickles"
        assert config.report_path is None

    def test_command_string_is_split(self):
        assert RunnerConfig(command="yarn cucumber-js --profile ci").command == ["yarn", "cucumber-js", "--profile", "ci"]

    def test_empty_command_rejected(self):
        with pytest.raises(ConfigError):
            RunnerConfig(command="")

    def test_invalid_discovery_rejected(self):
        with pytest.raises(ConfigError, match="Invalid discovery"):
            RunnerConfig(discovery="guess")

    def test_from_yaml_resolves_root_relative_to_file(self, tmp_path):
        config_file = tmp_path / "cucumber-runner.yaml"
        config_file.write_text(
            yaml.safe_dump({"root": "web", "discovery": "documents", "log_level": "debug", "report_path": "out.json"})
        )
        config = RunnerConfig.from_yaml(config_file)

        assert config.root == tmp_path / "web"
        assert config.discovery == "documents"
        assert config.log_level == "DEBUG"
        assert config.report_path == "out.json"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            RunnerConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_requires_mapping(self, tmp_path):
        config_file = tmp_path / "cucumber-runner.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            RunnerConfig.from_yaml(config_file)

    def test_empty_yaml_uses_defaults(self, tmp_path):
        config_file = tmp_path / "cucumber-runner.yaml"
        config_file.write_text("")
        assert RunnerConfig.from_yaml(config_file).command == DEFAULT_COMMAND

    def test_find_config_file(self, tmp_path):
        (tmp_path / ".cucumber-runner.yml").write_text("{}")
        assert find_config_file(tmp_path).name == ".cucumber-runner.yml"

    def test_load_config_from_dict(self):
        assert load_config({"command": ["node", "cli.js"]}).command == ["node", "cli.js"]

    def test_load_config_defaults_when_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config().command == DEFAULT_COMMAND
