import pytest

from ardactl.exceptions import DistributionError, ResultFormatError
from ardactl.modules.cluster.models import NodeResult
from ardactl.modules.cluster.wire import CONFIG_MAGIC, decode_config, decode_result, encode_config, encode_result

from conftest import make_config


def test_config_survives_transfer():
    config = make_config(
        classification={"num_threads": 8, "sampling_factor": "2", "tsk": True, "light": False},
        max_retries=1,
        keep_local_results=False,
    )
    assert decode_config(encode_config(config)) == config


def test_config_with_empty_reads():
    config = make_config(reads={})
    decoded = decode_config(encode_config(config))
    assert decoded == config
    assert decoded.reads == {}


def test_config_record_layout():
    lines = encode_config(make_config()).decode().splitlines()
    assert lines[0] == CONFIG_MAGIC
    assert lines[1:3] == ["A", "B"]
    assert lines[-3:] == ["2", "A:/data/r1.fastq", "B:/data/p1.fastq,/data/p2.fastq"]


def test_truncated_config_rejected():
    payload = encode_config(make_config())
    with pytest.raises(DistributionError, match="truncated"):
        decode_config(payload[:-1])
    with pytest.raises(DistributionError):
        decode_config(payload[: len(payload) // 2] + b"\n")


def test_reads_count_mismatch_rejected():
    payload = encode_config(make_config()).replace(b"\n2\n", b"\n3\n")
    with pytest.raises(DistributionError, match="announces 3"):
        decode_config(payload)


def test_bad_header_rejected():
    payload = encode_config(make_config()).replace(CONFIG_MAGIC.encode(), b"OTHER/9")
    with pytest.raises(DistributionError, match="header"):
        decode_config(payload)


def test_invalid_config_rejected():
    payload = encode_config(make_config()).replace(b"A:/data/r1.fastq", b"Z:/data/r1.fastq")
    with pytest.raises(DistributionError, match="invalid"):
        decode_config(payload)


def test_result_record_escapes_separator():
    result = NodeResult(hostname="B", success=False, elapsed_seconds=1.25, attempts=4,
                        error_message="exit 1 | see log\n100%7C done")
    record = encode_result(result)
    assert "\n" not in record
    assert record.count("|") == 6
    assert decode_result(record) == result


def test_result_record_success():
    result = NodeResult(hostname="A", success=True, result_file="/r/A_r1.csv",
                        abundance_file="/r/A_r1_abundance.txt", elapsed_seconds=10.0)
    assert decode_result(encode_result(result)) == result


def test_empty_numeric_fields_read_as_zero():
    result = decode_result("B|0|||||boom")
    assert result.elapsed_seconds == 0.0
    assert result.attempts == 0
    assert result.error_message == "boom"
    assert result.result_file is None


@pytest.mark.parametrize("record", ["B|0|x", "B|yes|||1.0|1|", "B|1|||soon|1|", 42])
def test_malformed_result_rejected(record):
    with pytest.raises(ResultFormatError):
        decode_result(record)
