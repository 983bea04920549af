import pytest

from solgate.services.validation import (
    validate_reference_id,
    validate_session_id,
    validate_wallet_address,
)


@pytest.mark.parametrize(
    "value,valid",
    [
        ("a" * 64, True),
        ("  " + "AB" * 16 + " ", True),
        ("g" * 64, False),
        ("a" * 31, False),
        ("a" * 65, False),
        (None, False),
        (123, False),
    ],
)
def test_session_id(value, valid):
    assert validate_session_id(value).is_valid is valid


def test_session_id_is_normalized():
    assert validate_session_id(" " + "AB" * 16).sanitized == "ab" * 16


@pytest.mark.parametrize(
    "value,valid",
    [
        ("9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin", True),
        ("0xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin", False),
        ("short", False),
        ("", False),
    ],
)
def test_wallet_address(value, valid):
    assert validate_wallet_address(value).is_valid is valid


@pytest.mark.parametrize(
    "value,valid",
    [
        ("abcd1234-18c1f3a2b4d-0a1b2c", True),
        ("ref with spaces", False),
        ("x" * 51, False),
        ("", False),
    ],
)
def test_reference_id(value, valid):
    result = validate_reference_id(value)
    assert result.is_valid is valid
    if not valid:
        assert result.error
