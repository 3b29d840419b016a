"""
Configuration for the calibration stash tools.

A ``StashConfig`` can be built in code or loaded from YAML:

```yaml
file_selector: "UserFile1"
compression_level: 9
compress: true
default_slot: 0
progress: true
```

Unknown keys are preserved in ``extra``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict

import yaml

from .protocol import DEFAULT_COMPRESSION_LEVEL, DEFAULT_FILE_SELECTOR, MAX_SLOTS


@dataclass
class StashConfig:
    """Settings shared by the pack, stash and load commands."""

    file_selector: str = DEFAULT_FILE_SELECTOR
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    compress: bool = True
    default_slot: int = 0
    progress: bool = True

    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0 <= self.compression_level <= 9:
            raise ValueError(f"compression_level must be 0..9, got {self.compression_level}")
        if not 0 <= self.default_slot < MAX_SLOTS:
            raise ValueError(f"default_slot must be 0..{MAX_SLOTS - 1}, got {self.default_slot}")
        if not self.file_selector:
            raise ValueError("file_selector must not be empty")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any] | None) -> "StashConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)} - {"extra"}
        return cls(
            file_selector=str(data.get("file_selector", DEFAULT_FILE_SELECTOR)),
            compression_level=int(data.get("compression_level", DEFAULT_COMPRESSION_LEVEL)),
            compress=bool(data.get("compress", True)),
            default_slot=int(data.get("default_slot", 0)),
            progress=bool(data.get("progress", True)),
            extra={k: v for k, v in data.items() if k not in known},
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "StashConfig":
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: if the YAML file cannot be found.
            yaml.YAMLError: if the YAML file is invalid.
            ValueError: if a value is out of range or the document is not a mapping.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at top level")
        return cls.from_mapping(data)
