"""
Configuration handling for cucumber-runner.

Two concerns live here:

1. Runner settings, read from cucumber-runner.yaml:

    root: .
    command: npx cucumber-js
    discovery: pickles        # or: documents
    log_level: INFO
    report_path: reports/cucumber-runner.json

2. The cucumber config cleanup used when running a subset of scenarios.
   cucumber-js merges the `paths` of its default profile with paths given on
   the command line, so running one scenario would also run everything the
   profile lists. clean_and_copy_config() writes a sibling copy of the
   project's cucumber config without `paths` and `format`, and the runner
   passes it with `--config`.

Example usage:
    from cucumber_runner.config import clean_and_copy_config, load_config

    config = load_config("cucumber-runner.yaml")
    tmp_config = clean_and_copy_config(config.root)
"""

import json
import logging
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

# Searched in this order; the first one found is used.
CUCUMBER_CONFIG_FILENAMES = [
    "cucumber.js",
    "cucumber.cjs",
    "cucumber.mjs",
    "cucumber.json",
    "cucumber.yaml",
    "cucumber.yml",
]

STRIPPED_FIELDS = ("paths", "format")

TMP_CONFIG_STEM = "cucumber-test-runner"

RUNNER_CONFIG_FILENAMES = [
    "cucumber-runner.yaml",
    "cucumber-runner.yml",
    ".cucumber-runner.yaml",
    ".cucumber-runner.yml",
]

DEFAULT_COMMAND = ["npx", "cucumber-js"]

DISCOVERY_MODES = ("pickles", "documents")

# Prints the default export of a JS config module as JSON.
_NODE_EXPORT_SCRIPT = (
    "const { pathToFileURL } = require('node:url');"
    "import(pathToFileURL(process.argv[1]).href)"
    ".then((m) => process.stdout.write(JSON.stringify(m.default ?? m)))"
    ".catch((e) => { console.error(e && e.message ? e.message : e); process.exit(1); });"
)


# =============================================================================
# Cucumber config cleanup
# =============================================================================


def find_cucumber_config(root: Union[str, Path]) -> Optional[Path]:
    """Return the first cucumber config file present in `root`, if any."""
    root = Path(root)
    for filename in CUCUMBER_CONFIG_FILENAMES:
        candidate = root / filename
        if candidate.exists():
            return candidate
    return None


def _load_js_config(path: Path) -> Any:
    try:
        proc = subprocess.run(
            ["node", "-e", _NODE_EXPORT_SCRIPT, str(path.resolve())],
            capture_output=True,
            text=True,
            timeout=30,
            cwd=str(path.parent),
        )
    except FileNotFoundError as e:
        raise ConfigError(f"node is required to read {path}") from e
    except subprocess.TimeoutExpired as e:
        raise ConfigError(f"Timed out loading {path}") from e

    if proc.returncode != 0:
        raise ConfigError(f"Cannot load {path}: {proc.stderr.strip()}")
    try:
        return json.loads(proc.stdout or "{}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config exported by {path} is not JSON-serializable: {e}") from e


def load_cucumber_config(path: Union[str, Path]) -> Any:
    """
    Load a cucumber config file.

    JSON and YAML are parsed directly; .js/.cjs/.mjs modules are imported by
    node and their default export read back as JSON.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    path = Path(path)
    ext = path.suffix.lower()

    if ext in (".js", ".cjs", ".mjs"):
        return _load_js_config(path)

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if ext == ".json":
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Cannot parse {path} as JSON: {e}") from e
    if ext in (".yaml", ".yml"):
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path} as YAML: {e}") from e
    return {}


def strip_path_overrides(config: Any) -> Dict[str, Any]:
    """
    Keep only the default profile, without its `paths` and `format` fields.

    A config without a `default` profile yields an empty config.
    """
    if not isinstance(config, dict) or "default" not in config:
        return {}
    default = config["default"]
    profile = dict(default) if isinstance(default, dict) else {}
    for name in STRIPPED_FIELDS:
        profile.pop(name, None)
    return {"default": profile}


def write_cucumber_config(
    root: Union[str, Path],
    ext: str,
    config: Dict[str, Any],
    out_name: Optional[str] = None,
) -> Path:
    """
    Write a cucumber config in the format implied by `ext`.

    Args:
        root: Directory to write into
        ext: Extension of the original config (e.g. '.json', '.mjs')
        config: Config to serialize
        out_name: File name override (default: cucumber-test-runner<ext>)

    Returns:
        Path to the written file
    """
    out_path = Path(root) / (out_name or f"{TMP_CONFIG_STEM}{ext}")
    as_json = json.dumps(config, indent=2)

    if ext == ".json":
        content = as_json
    elif ext in (".js", ".cjs"):
        content = f"module.exports = {as_json};\n"
    elif ext == ".mjs":
        content = f"export default {as_json};\n"
    elif ext in (".yaml", ".yml"):
        content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
    else:
        content = ""

    out_path.write_text(content, encoding="utf-8")
    return out_path


def clean_and_copy_config(root: Union[str, Path], out_name: Optional[str] = None) -> Optional[Path]:
    """
    Write a stripped copy of the project's cucumber config.

    Returns:
        Path of the written copy, or None if the project has no cucumber config
    """
    found = find_cucumber_config(root)
    if found is None:
        logger.debug("No cucumber config found in %s", root)
        return None

    ext = found.suffix.lower()
    cleaned = strip_path_overrides(load_cucumber_config(found))
    written = write_cucumber_config(root, ext, cleaned, out_name)
    logger.debug("Wrote stripped copy of %s to %s", found, written)
    return written


# =============================================================================
# Runner settings
# =============================================================================


def _parse_command(value: Union[str, List[str], None]) -> List[str]:
    if value is None:
        return list(DEFAULT_COMMAND)
    if isinstance(value, str):
        command = shlex.split(value)
    else:
        command = [str(part) for part in value]
    if not command:
        raise ConfigError("command must not be empty")
    return command


class RunnerConfig:
    """
    Settings for one project.

    Attributes:
        root: Project directory cucumber-js runs in
        command: Executable plus leading arguments (default: npx cucumber-js)
        discovery: 'pickles' (default) or 'documents'
        log_level: Logging level name for the CLI
        report_path: Where to write the JSON report (None = don't write)
    """

    def __init__(
        self,
        root: Union[str, Path] = ".",
        command: Union[str, List[str], None] = None,
        discovery: str = "pickles",
        log_level: str = "WARNING",
        report_path: Optional[str] = None,
    ):
        if discovery not in DISCOVERY_MODES:
            raise ConfigError(
                f"Invalid discovery: {discovery}. Must be {' or '.join(DISCOVERY_MODES)}."
            )
        self.root = Path(root)
        self.command = _parse_command(command)
        self.discovery = discovery
        self.log_level = str(log_level).upper()
        self.report_path = report_path

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "RunnerConfig":
        """
        Create settings from a dictionary.

        Args:
            data: Settings dictionary
            base_dir: Directory a relative `root` is resolved against
        """
        root = Path(data.get("root", "."))
        if base_dir is not None and not root.is_absolute():
            root = base_dir / root

        return cls(
            root=root,
            command=data.get("command"),
            discovery=data.get("discovery", "pickles"),
            log_level=data.get("log_level", "WARNING"),
            report_path=data.get("report_path"),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RunnerConfig":
        """
        Load settings from a YAML file; a relative `root` is taken relative
        to the file's directory.

        Raises:
            ConfigError: If the file is missing or not a mapping
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        return cls.from_dict(data, base_dir=path.parent)


def find_config_file(start: Union[str, Path, None] = None) -> Optional[Path]:
    """Find a runner config file in `start` (default: current directory)."""
    base = Path(start) if start is not None else Path.cwd()
    for filename in RUNNER_CONFIG_FILENAMES:
        candidate = base / filename
        if candidate.exists():
            return candidate
    return None


def load_config(source: Union[str, Path, Dict[str, Any], None] = None) -> RunnerConfig:
    """
    Load runner settings from a YAML path, a dictionary, or (when None) the
    first runner config file found in the current directory, falling back to
    defaults.
    """
    if isinstance(source, dict):
        return RunnerConfig.from_dict(source)
    if source is None:
        found = find_config_file()
        if found is None:
            return RunnerConfig()
        return RunnerConfig.from_yaml(found)
    return RunnerConfig.from_yaml(source)
