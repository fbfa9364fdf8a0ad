"""Cluster configuration loading.

The cluster file is YAML. It is checked structurally against a JSON schema
first, then turned into a typed :class:`ClusterConfig`. Any problem is
reported as a :class:`ConfigError` before a single node is contacted.

Example::

    cluster:
      master: jn00
      workers: [jn01, jn02]
    paths:
      tool_dir: /home/pathogen/arda
      database: /home/pathogen/arda_db
      results_dir: results
    reads:
      jn00: /data/sample_00.fastq
      jn01: [/data/s1_R1.fastq, /data/s1_R2.fastq]
    classification:
      kmer_size: 31
      batch_size: 32
    options:
      max_retries: 2
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Union

import yaml
from jsonschema import ValidationError as SchemaError
from jsonschema import validate
from pydantic import ValidationError

from ardactl.exceptions import ConfigError
from .models import ClusterConfig

logger = logging.getLogger("ardactl.loader")

_STRING_OR_LIST = {
    "oneOf": [
        {"type": "string"},
        {"type": "array", "items": {"type": "string"}},
    ]
}

CLUSTER_SCHEMA = {
    "type": "object",
    "properties": {
        "cluster": {
            "type": "object",
            "properties": {
                "master": {"type": "string"},
                "workers": _STRING_OR_LIST,
            },
            "required": ["master", "workers"],
            "additionalProperties": False,
        },
        "paths": {
            "type": "object",
            "properties": {
                "tool_dir": {"type": "string"},
                "database": {"type": "string"},
                "results_dir": {"type": "string"},
            },
            "required": ["tool_dir", "database"],
            "additionalProperties": False,
        },
        "reads": {
            "type": ["object", "null"],
            "additionalProperties": _STRING_OR_LIST,
        },
        "classification": {"type": ["object", "null"]},
        "options": {"type": ["object", "null"]},
        "logging": {"type": ["object", "null"]},
    },
    "required": ["cluster", "paths"],
    "additionalProperties": False,
}


def _stringify_keys(section: Any) -> Any:
    # YAML loads purely numeric hostnames as ints
    if isinstance(section, dict):
        return {str(k): v for k, v in section.items()}
    return section


def _format_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err["loc"]) or "config"
        lines.append(f"{where}: {err['msg']}")
    return "; ".join(lines)


def parse_config(data: Dict[str, Any], source: str = "<config>") -> ClusterConfig:
    """Validate an already parsed cluster document."""
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a mapping at top level, got {type(data).__name__}")

    data = dict(data)
    if isinstance(data.get("reads"), dict):
        data["reads"] = _stringify_keys(data["reads"])

    try:
        validate(instance=data, schema=CLUSTER_SCHEMA)
    except SchemaError as e:
        where = ".".join(str(p) for p in e.absolute_path) or "config"
        raise ConfigError(f"{source}: {where}: {e.message}") from e

    cluster = data["cluster"]
    paths = data["paths"]
    fields: Dict[str, Any] = {
        "master": cluster["master"],
        "workers": cluster["workers"],
        "tool_dir": paths["tool_dir"],
        "database": paths["database"],
        "reads": data.get("reads") or {},
        "classification": data.get("classification") or {},
        "options": data.get("options") or {},
        "log": data.get("logging") or {},
    }
    if "results_dir" in paths:
        fields["results_dir"] = paths["results_dir"]

    try:
        return ClusterConfig(**fields)
    except ValidationError as e:
        raise ConfigError(f"{source}: {_format_errors(e)}") from e


def load_config(path: Union[str, Path]) -> ClusterConfig:
    """Load and validate a cluster configuration file.

    Args:
        path: Path to the YAML cluster file

    Returns:
        The validated configuration

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    path = Path(path).expanduser()
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Cluster config not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read cluster config {path}: {e}") from e

    config = parse_config(data, source=str(path))
    logger.debug("Loaded cluster config from %s", path)
    return config


def write_node_file(nodes: Iterable[str], path: Union[str, Path]) -> Path:
    """Write the node list used to launch the parallel cohort.

    One node per line, in rank order; each node gets a single slot so that
    exactly one process runs per node.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for node in nodes:
            f.write(f"{node} slots=1\n")
    logger.debug("Wrote node list to %s", path)
    return path


def node_file_path(config: ClusterConfig) -> Path:
    return config.tool_dir / "config" / "mpi_hostfile.txt"
