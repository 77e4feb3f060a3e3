# tests/unit/test_payload.py

import hashlib
import io

import pytest

from claimcheck_e2e.payload import (
    CHUNK_SIZE,
    MAX_PAYLOAD_BYTES,
    MIN_PAYLOAD_BYTES,
    compute_digest,
    generate_payload,
    generate_payload_of_size,
)


def test_compute_digest_is_md5_hex():
    assert compute_digest(b"claim check") == hashlib.md5(b"claim check").hexdigest()


def test_compute_digest_streams_file_objects():
    data = b"x" * (CHUNK_SIZE * 2 + 17)
    assert compute_digest(io.BytesIO(data)) == compute_digest(data)


def test_generate_payload_of_size(tmp_path):
    payload = generate_payload_of_size(4096, directory=tmp_path)

    assert payload.size == 4096
    assert payload.path.parent == tmp_path
    assert payload.path.read_bytes() == payload.data
    assert payload.digest == compute_digest(payload.data)


def test_open_streams_the_spilled_copy(tmp_path):
    payload = generate_payload_of_size(1024, directory=tmp_path)

    with payload.open() as f:
        assert compute_digest(f) == payload.digest


def test_discard_removes_temp_file(tmp_path):
    payload = generate_payload_of_size(10, directory=tmp_path)
    path = payload.path

    payload.discard()
    payload.discard()

    assert not path.exists()
    with pytest.raises(ValueError):
        payload.open()


@pytest.mark.parametrize("min_size, max_size", [(100, 100), (100, 200), (0, 1)])
def test_generate_payload_size_is_within_bounds(tmp_path, min_size, max_size):
    payload = generate_payload(min_size, max_size, directory=tmp_path)
    assert min_size <= payload.size <= max_size


def test_two_payloads_differ(tmp_path):
    first = generate_payload_of_size(256, directory=tmp_path)
    second = generate_payload_of_size(256, directory=tmp_path)
    assert first.digest != second.digest


def test_default_bounds_exceed_message_size_limits():
    # SNS/SQS messages top out at 256 KiB.
    assert MIN_PAYLOAD_BYTES == 15 * 1024 * 1024
    assert MAX_PAYLOAD_BYTES == 20 * 1024 * 1024


@pytest.mark.parametrize("min_size, max_size", [(10, 5), (-1, 5)])
def test_generate_payload_rejects_invalid_ranges(min_size, max_size):
    with pytest.raises(ValueError):
        generate_payload(min_size, max_size)


def test_generate_payload_of_size_rejects_negative():
    with pytest.raises(ValueError):
        generate_payload_of_size(-1)
