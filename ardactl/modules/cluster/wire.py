"""Flat record formats exchanged between cluster processes.

Configuration record (coordinator -> every cohort member)::

    ARDACFG/1
    <one line per field in CONFIG_FIELDS order>
    <number of reads entries>
    <hostname>:<file1>[,<file2>]
    ...

Lists are comma separated, booleans are ``1``/``0`` and unset optional values
are empty lines. Delimiter characters are rejected by the configuration model
so no escaping is needed; the decoder re-validates and refuses anything the
model would refuse.

NodeResult record (cohort member -> coordinator): fields in RESULT_FIELDS
order joined by ``|``. String fields are percent-escaped (``%``, ``|`` and
newlines) because error messages are free text.
"""
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError

from ardactl.exceptions import DistributionError, ResultFormatError
from .models import ClusterConfig, NodeResult

CONFIG_MAGIC = "ARDACFG/1"

# (dotted attribute, kind)
CONFIG_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("master", "str"),
    ("workers", "list"),
    ("tool_dir", "str"),
    ("database", "str"),
    ("results_dir", "str"),
    ("classification.kmer_size", "int"),
    ("classification.batch_size", "int"),
    ("classification.min_freq_target", "opt_int"),
    ("classification.num_threads", "opt_int"),
    ("classification.num_devices", "opt_int"),
    ("classification.gap_iteration", "opt_int"),
    ("classification.sampling_factor", "opt_str"),
    ("classification.tsk", "bool"),
    ("classification.extended", "bool"),
    ("classification.gzipped", "bool"),
    ("classification.verbose", "bool"),
    ("classification.light", "bool"),
    ("options.master_processes_reads", "bool"),
    ("options.keep_local_results", "bool"),
    ("options.retry_failed_nodes", "bool"),
    ("options.max_retries", "int"),
    ("options.collect_results_to_master", "bool"),
    ("options.ssh_timeout", "int"),
    ("options.result_timeout", "int"),
    ("log.level", "str"),
    ("log.file", "str"),
    ("log.show_progress", "bool"),
)

RESULT_SEPARATOR = "|"
RESULT_FIELDS = (
    "hostname",
    "success",
    "result_file",
    "abundance_file",
    "elapsed_seconds",
    "attempts",
    "error_message",
)


def _get(config: ClusterConfig, dotted: str) -> Any:
    value: Any = config
    for part in dotted.split("."):
        value = getattr(value, part)
    return value


def _put(data: Dict[str, Any], dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    for part in parts[:-1]:
        data = data.setdefault(part, {})
    data[parts[-1]] = value


def _encode_value(value: Any, kind: str) -> str:
    if value is None:
        return ""
    if kind == "bool":
        return "1" if value else "0"
    if kind == "list":
        return ",".join(value)
    text = str(value)
    if "\n" in text or "\r" in text:
        raise DistributionError(f"value {text!r} cannot be placed in a single-line field")
    return text


def _decode_value(line: str, kind: str, name: str) -> Any:
    try:
        if kind == "bool":
            if line not in ("0", "1"):
                raise ValueError(f"expected 0 or 1, got {line!r}")
            return line == "1"
        if kind == "int":
            return int(line)
        if kind == "opt_int":
            return int(line) if line else None
        if kind == "opt_str":
            return line or None
        if kind == "list":
            return [item for item in line.split(",") if item]
        return line
    except ValueError as e:
        raise DistributionError(f"bad value for {name}: {e}") from e


def encode_config(config: ClusterConfig) -> bytes:
    """Serialize a configuration into the broadcast record."""
    lines = [CONFIG_MAGIC]
    for name, kind in CONFIG_FIELDS:
        lines.append(_encode_value(_get(config, name), kind))
    lines.append(str(len(config.reads)))
    for host, files in config.reads.items():
        lines.append(f"{host}:{','.join(files)}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def decode_config(payload: bytes) -> ClusterConfig:
    """Rebuild a configuration from a broadcast record.

    Raises:
        DistributionError: If the record is truncated, padded or invalid
    """
    try:
        text = payload.decode("utf-8")
    except (UnicodeDecodeError, AttributeError) as e:
        raise DistributionError(f"configuration record is not UTF-8 text: {e}") from e

    if not text.endswith("\n"):
        raise DistributionError("configuration record is truncated")
    lines = text[:-1].split("\n")
    expected_min = 1 + len(CONFIG_FIELDS) + 1
    if len(lines) < expected_min:
        raise DistributionError(
            f"configuration record is truncated ({len(lines)} of at least {expected_min} lines)"
        )
    if lines[0] != CONFIG_MAGIC:
        raise DistributionError(f"unknown configuration record header {lines[0]!r}")

    data: Dict[str, Any] = {}
    cursor = 1
    for name, kind in CONFIG_FIELDS:
        _put(data, name, _decode_value(lines[cursor], kind, name))
        cursor += 1

    try:
        count = int(lines[cursor])
    except ValueError as e:
        raise DistributionError(f"bad reads count {lines[cursor]!r}") from e
    cursor += 1

    entries = lines[cursor:]
    if len(entries) != count:
        raise DistributionError(
            f"configuration record announces {count} reads entries but carries {len(entries)}"
        )

    reads: Dict[str, List[str]] = {}
    for entry in entries:
        host, sep, files = entry.partition(":")
        if not sep or not host:
            raise DistributionError(f"malformed reads entry {entry!r}")
        reads[host] = [f for f in files.split(",") if f]
    data["reads"] = reads

    try:
        return ClusterConfig(**data)
    except ValidationError as e:
        raise DistributionError(f"received configuration is invalid: {e}") from e


def _escape(value: str) -> str:
    return (
        value.replace("%", "%25")
        .replace(RESULT_SEPARATOR, "%7C")
        .replace("\n", "%0A")
        .replace("\r", "%0D")
    )


def _unescape(value: str) -> str:
    return (
        value.replace("%0D", "\r")
        .replace("%0A", "\n")
        .replace("%7C", RESULT_SEPARATOR)
        .replace("%25", "%")
    )


def encode_result(result: NodeResult) -> str:
    """Serialize a NodeResult into a single-line record."""
    fields = [
        _escape(result.hostname),
        "1" if result.success else "0",
        _escape(result.result_file or ""),
        _escape(result.abundance_file or ""),
        repr(float(result.elapsed_seconds)),
        str(result.attempts),
        _escape(result.error_message),
    ]
    return RESULT_SEPARATOR.join(fields)


def decode_result(record: str) -> NodeResult:
    """Parse a NodeResult record. Empty numeric fields read as zero.

    Raises:
        ResultFormatError: If the record does not have the expected shape
    """
    if not isinstance(record, str):
        raise ResultFormatError(f"expected a text record, got {type(record).__name__}")
    parts = record.split(RESULT_SEPARATOR)
    if len(parts) != len(RESULT_FIELDS):
        raise ResultFormatError(
            f"expected {len(RESULT_FIELDS)} fields, got {len(parts)}: {record!r}"
        )
    hostname, success, result_file, abundance_file, elapsed, attempts, error = parts
    if success not in ("0", "1"):
        raise ResultFormatError(f"bad success flag {success!r}")
    try:
        return NodeResult(
            hostname=_unescape(hostname),
            success=success == "1",
            result_file=_unescape(result_file) or None,
            abundance_file=_unescape(abundance_file) or None,
            elapsed_seconds=float(elapsed or 0),
            attempts=int(attempts or 0),
            error_message=_unescape(error),
        )
    except ValueError as e:
        raise ResultFormatError(f"bad result record {record!r}: {e}") from e

