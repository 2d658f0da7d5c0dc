import pytest

from uploadx.config.helpers import parse_bytes


@pytest.mark.parametrize(
    "value,expected",
    [
        (4096, 4096),
        ("4096", 4096),
        ("10b", 10),
        ("2k", 2048),
        ("2KB", 2048),
        ("2kib", 2048),
        ("5m", 5 * 1024**2),
        ("8MiB", 8 * 1024**2),
        ("1g", 1024**3),
        (" 3 mb ", 3 * 1024**2),
    ],
)
def test_parse_bytes(value, expected):
    assert parse_bytes(value) == expected


@pytest.mark.parametrize("value", ["", "mb", "1.5m", "10tb", "-1k"])
def test_parse_bytes_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        parse_bytes(value)
