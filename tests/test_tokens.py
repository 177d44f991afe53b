import base64
import string

import pytest

from liftsync.tokens import (
    DEFAULT_TOKEN_BYTES,
    generate_secure_token,
    generate_secure_token_with_size,
)

URL_SAFE_ALPHABET = set(string.ascii_letters + string.digits + "-_")


def _decode(token: str) -> bytes:
    padding = "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(token + padding)


def test_tokens_are_distinct():
    first = generate_secure_token()
    second = generate_secure_token()
    assert first != second
    assert len(first) >= 42


def test_custom_sizes_order_by_length():
    default = generate_secure_token()
    small = generate_secure_token_with_size(16)
    large = generate_secure_token_with_size(64)
    assert len(small) < len(default)
    assert len(large) > len(default)


def test_default_token_length_is_unpadded_base64_of_32_bytes():
    token = generate_secure_token()
    assert len(token) == 43
    assert "=" not in token


def test_token_uses_url_safe_alphabet_only():
    for _ in range(20):
        token = generate_secure_token()
        assert set(token) <= URL_SAFE_ALPHABET


@pytest.mark.parametrize("size", [1, 2, 3, 16, 32, 64])
def test_token_decodes_to_requested_byte_count(size):
    token = generate_secure_token_with_size(size)
    assert len(_decode(token)) == size


def test_default_token_decodes_to_default_size():
    assert len(_decode(generate_secure_token())) == DEFAULT_TOKEN_BYTES


def test_zero_size_gives_empty_token():
    assert generate_secure_token_with_size(0) == ""


def test_negative_size_is_rejected():
    with pytest.raises(ValueError):
        generate_secure_token_with_size(-1)