"""Loading resource manifests from YAML or JSON files."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .config_manager import parse_concurrency
from .errors import InvalidResourceError
from .models import ResourceDescriptor


@dataclass
class Manifest:
    """Resources declared in a manifest file, plus optional concurrency overrides."""

    resources: List[ResourceDescriptor] = field(default_factory=list)
    concurrency: Optional[Dict[str, int]] = None


def load_manifest(
    path: Union[str, Path],
    default_timeout: Optional[float] = None,
    default_retries: Optional[int] = None,
) -> Manifest:
    """Load a manifest file.

    The file holds either a list of resource entries or a mapping with a
    ``resources`` list and an optional ``concurrency`` mapping. Files ending in
    ``.json`` are parsed as JSON, everything else as YAML.

    Args:
        path: Manifest file path
        default_timeout: Timeout (seconds) for entries that omit one
        default_retries: Retry budget for entries that omit one

    Returns:
        Manifest instance

    Raises:
        InvalidResourceError: If the manifest structure or an entry is invalid
        FileNotFoundError: If the file does not exist
    """
    logger = logging.getLogger(__name__)
    file_path = Path(path)

    with open(file_path, "r", encoding="utf-8") as fp:
        try:
            if file_path.suffix.lower() == ".json":
                data = json.load(fp)
            else:
                data = yaml.safe_load(fp)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise InvalidResourceError(f"Invalid manifest {file_path}: {e}")

    manifest = parse_manifest(data, default_timeout, default_retries)
    logger.info(f"Loaded {len(manifest.resources)} resources from {file_path}")
    return manifest


def parse_manifest(
    data: Any,
    default_timeout: Optional[float] = None,
    default_retries: Optional[int] = None,
) -> Manifest:
    """Build a Manifest from already-parsed data."""
    concurrency = None
    if data is None:
        entries = []
    elif isinstance(data, list):
        entries = data
    elif isinstance(data, dict):
        entries = data.get("resources") or []
        if not isinstance(entries, list):
            raise InvalidResourceError("'resources' must be a list")
        if data.get("concurrency") is not None:
            try:
                concurrency = parse_concurrency(data["concurrency"])
            except ValueError as e:
                raise InvalidResourceError(f"Invalid concurrency in manifest: {e}")
    else:
        raise InvalidResourceError(
            f"Manifest must be a list or a mapping, got {type(data).__name__}"
        )

    resources = [
        ResourceDescriptor.from_dict(entry, default_timeout, default_retries)
        for entry in entries
    ]
    return Manifest(resources=resources, concurrency=concurrency)
