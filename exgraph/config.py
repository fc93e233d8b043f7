"""
Extraction configuration and the provenance gate.

Full expression extraction runs only when ``include_expressions`` is enabled
AND the source unit is project code. Units under a ``deps/`` directory are
always extracted flag-only, whatever the configuration says.

Configuration is read from ``.exgraph/config.json``:

    {
      "extraction": {
        "base_iri": "https://myapp.org/code#",
        "include_expressions": true
      }
    }

Missing keys fall back to defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from exgraph.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BASE_IRI = "https://example.org/code#"
OUTPUT_FORMATS = ("turtle", "ntriples", "jsonld")
CONFIG_DIR = ".exgraph"
CONFIG_FILE = "config.json"
CONFIG_SECTION = "extraction"

_BOOLEAN_FIELDS = (
    "include_source_text",
    "include_git_info",
    "include_expressions",
    "structural_cache",
)


@dataclass(frozen=True, slots=True)
class ExtractionConfig:
    """Settings for one extraction run.

    Attributes:
        base_iri: Base IRI for every generated resource.
        include_source_text: Attach source text to resources.
        include_git_info: Attach version-control provenance.
        output_format: Serialization format (turtle, ntriples or jsonld).
        include_expressions: Enable full expression extraction for project code.
        structural_cache: Reuse identifiers for identical subtrees within a call.
    """

    base_iri: str = DEFAULT_BASE_IRI
    include_source_text: bool = False
    include_git_info: bool = True
    output_format: str = "turtle"
    include_expressions: bool = False
    structural_cache: bool = False

    @classmethod
    def default(cls) -> ExtractionConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractionConfig:
        return cls.default().merge(data)

    def merge(self, overrides: dict[str, Any]) -> ExtractionConfig:
        """Return a copy with ``overrides`` applied; unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return replace(self, **{k: val for k, val in overrides.items() if k in known})

    def validate(self) -> list[str]:
        """Return a list of validation errors (empty when valid)."""
        errors = []
        if not isinstance(self.base_iri, str) or not self.base_iri:
            errors.append("base_iri must be a non-empty string")
        for name in _BOOLEAN_FIELDS:
            if not isinstance(getattr(self, name), bool):
                errors.append(f"{name} must be a boolean")
        if self.output_format not in OUTPUT_FORMATS:
            errors.append(
                f"output_format must be one of {', '.join(OUTPUT_FORMATS)}, "
                f"got {self.output_format!r}"
            )
        return errors

    def validate_strict(self) -> ExtractionConfig:
        """Validate, raising ConfigError on the first invalid config."""
        errors = self.validate()
        if errors:
            raise ConfigError(errors)
        return self

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(project: str | Path) -> ExtractionConfig:
    """Load extraction settings for a project.

    Reads ``.exgraph/config.json`` under ``project`` and merges its
    ``extraction`` section over the defaults. Returns the defaults when the
    file is missing, unreadable, or invalid.
    """
    config_path = Path(project) / CONFIG_DIR / CONFIG_FILE
    default_config = ExtractionConfig.default()
    if not config_path.exists():
        return default_config

    try:
        data = json.loads(config_path.read_text())
    except Exception as e:
        logger.warning(f"Failed to load exgraph config: {e}")
        return default_config

    section = data.get(CONFIG_SECTION) if isinstance(data, dict) else None
    if not isinstance(section, dict):
        return default_config

    config = default_config.merge(section)
    errors = config.validate()
    if errors:
        logger.warning(f"Invalid exgraph config, using defaults: {'; '.join(errors)}")
        return default_config
    return config


def project_file(file_path: str | None) -> bool:
    """True when ``file_path`` is project code rather than a dependency.

    Returns False for None and for any path inside a ``deps`` directory.
    """
    if file_path is None:
        return False
    return not (
        "/deps/" in file_path
        or "\\deps\\" in file_path
        or file_path.startswith("deps/")
        or file_path.startswith("deps\\")
    )


def should_extract_full(file_path: str | None, config: ExtractionConfig) -> bool:
    """Full extraction needs both the config switch and a project file."""
    return config.include_expressions and project_file(file_path)
