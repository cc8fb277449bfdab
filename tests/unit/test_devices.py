# tests/unit/test_devices.py

import re

import pytest
from clypse.utils.devices import device_label, format_file_size, generate_id, load_or_create_device_id


@pytest.mark.parametrize("user_agent, label", [
    ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148", "Mobile"),
    ("Mozilla/5.0 (Linux; Android 13; SM-X700) Tablet", "Tablet"),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", "Mac"),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "Windows"),
    ("Mozilla/5.0 (X11; Linux x86_64)", "Desktop"),
    ("", "Desktop"),
    (None, "Desktop"),
])
def test_device_label(user_agent, label):
    assert device_label(user_agent) == label


@pytest.mark.parametrize("size, expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (1048576, "1 MB"),
    (100_000_000, "95.37 MB"),
    (3 * 1024 ** 3, "3 GB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_generate_id_is_unique_and_lowercase():
    ids = {generate_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(re.fullmatch(r"[0-9a-z]+", i) for i in ids)


def test_device_id_is_saved_and_reused(tmp_path):
    path = tmp_path / "nested" / "device_id"
    first = load_or_create_device_id(str(path))
    assert path.read_text(encoding="utf-8") == first
    assert load_or_create_device_id(str(path)) == first


def test_empty_device_id_file_is_replaced(tmp_path):
    path = tmp_path / "device_id"
    path.write_text("  \n", encoding="utf-8")
    device_id = load_or_create_device_id(str(path))
    assert device_id
    assert path.read_text(encoding="utf-8") == device_id


def test_unwritable_location_gives_a_fresh_id(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    path = blocker / "device_id"
    a = load_or_create_device_id(str(path))
    b = load_or_create_device_id(str(path))
    assert a and b and a != b
