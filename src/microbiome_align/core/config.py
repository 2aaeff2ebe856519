"""
Configuration classes for table loading and alignment.

Settings are passed explicitly to loaders and exporters; nothing here is
global state.
"""

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from microbiome_align.core.exceptions import UnsupportedFormat


class FilterMode(Enum):
    """How a filter predicate treats rows whose value is in its value set."""
    EXCLUDE = "exclude"
    KEEP = "keep"


class InputEncoding(Enum):
    """Supported abundance table encodings."""
    BIOM = "biom"
    TEXT = "text"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "InputEncoding":
        """Resolve the encoding of a table file from its extension.

        Raises:
            UnsupportedFormat: If the extension is not recognised
        """
        extension = Path(path).suffix.lower()
        if extension == ".biom":
            return cls.BIOM
        if extension in (".txt", ".tsv"):
            return cls.TEXT
        raise UnsupportedFormat(
            f"Unsupported table format: {extension or '<none>'}. "
            f"Input file must be either biom (.biom) or tab-delimited "
            f"(.txt, .tsv) format."
        )


class Config:
    """Configuration class that loads YAML files and provides dot notation access."""

    def __init__(self, source: Union[str, Path, Dict[str, Any]]):
        """
        Initialize configuration from a YAML file or a plain dictionary.

        Args:
            source: Path to YAML configuration file, or an already parsed mapping
        """
        if isinstance(source, dict):
            self.config_path = None
            data = source
        else:
            self.config_path = Path(source)
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {source}")
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )
        self._data = data

        # Nested dictionaries become Config objects for dot notation
        for key, value in self._data.items():
            setattr(self, key, Config(value) if isinstance(value, dict) else value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value with optional default."""
        return getattr(self, key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config back to dictionary."""
        return dict(self._data)

    def __getitem__(self, key: str) -> Any:
        return getattr(self, key)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"Config({self._data})"


@dataclass(frozen=True)
class LoaderSettings:
    """Parsing and export options shared by the loaders and the exporter.

    Attributes:
        separator: Field delimiter of text tables, metadata and matrices
        quote_char: Quote character for delimited reads (None disables quoting)
        header_marker: Leading text marking a table whose header is line one
        taxonomy_column: Name of the trailing taxonomy column in text tables
        taxonomy_separator: Separator used when joining ranks on export
        unclassified_label: Marker used for missing taxonomic ranks
        export_comment: Provenance line written at the top of exported tables
        symmetry_tolerance: Absolute tolerance for matrix symmetry/diagonal checks
    """

    separator: str = "\t"
    quote_char: Optional[str] = '"'
    header_marker: str = "#OTU"
    taxonomy_column: str = "taxonomy"
    taxonomy_separator: str = "; "
    unclassified_label: str = "unclassified"
    export_comment: str = "#Exported from microbiome_align"
    symmetry_tolerance: float = 1e-8

    @classmethod
    def from_config(
        cls, config: Union["Config", str, Path, Dict[str, Any]]
    ) -> "LoaderSettings":
        """Build settings from a Config, YAML path or mapping.

        Values are read from a ``loader`` section when present, otherwise
        from the top level.

        Raises:
            ValueError: If unknown setting names are supplied
        """
        if not isinstance(config, Config):
            config = Config(config)

        section = config.get("loader", config)
        values = section.to_dict() if isinstance(section, Config) else {}

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown loader settings: {unknown}")

        return cls(**values)
