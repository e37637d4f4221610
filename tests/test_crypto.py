import hashlib

import pytest

from affiliate_hub.utils.crypto import (
    SHORT_CODE_ALPHABET,
    generate_api_key,
    generate_readable_short_code,
    generate_session_id,
    generate_short_code,
    hash_assignment,
    hash_percentile,
    hash_string,
    secure_compare,
)


def test_hash_percentile_matches_sha256_prefix():
    digest = hashlib.sha256(b"user-42:cta-button-text").hexdigest()
    assert hash_percentile("user-42", "cta-button-text") == int(digest[:8], 16) % 100


def test_hash_percentile_is_deterministic_and_bounded():
    values = [hash_percentile(f"user-{i}", "exp") for i in range(1000)]
    assert values == [hash_percentile(f"user-{i}", "exp") for i in range(1000)]
    assert all(0 <= v < 100 for v in values)


def test_hash_assignment_is_a_pure_function():
    options = [("a", 50), ("b", 50)]
    first = [hash_assignment(f"user-{i}", "exp", options) for i in range(200)]
    second = [hash_assignment(f"user-{i}", "exp", options) for i in range(200)]
    assert first == second


def test_hash_assignment_even_split():
    options = [("control", 50), ("treatment", 50)]
    total = 100_000
    control = sum(
        1 for i in range(total) if hash_assignment(f"user-{i}", "split", options) == "control"
    )
    assert 0.45 * total <= control <= 0.55 * total


def test_hash_assignment_uses_cumulative_weights():
    options = [("first", 10), ("second", 90)]
    for i in range(500):
        key = f"user-{i}"
        expected = "first" if hash_percentile(key, "ns") < 10 else "second"
        assert hash_assignment(key, "ns", options) == expected


def test_hash_assignment_falls_back_to_last_option():
    options = [("only", 0), ("last", 0)]
    assert hash_assignment("anyone", "ns", options) == "last"


def test_hash_assignment_rejects_empty_options():
    with pytest.raises(ValueError):
        hash_assignment("user", "ns", [])


def test_namespaces_draw_independently():
    options = [("a", 50), ("b", 50)]
    one = [hash_assignment(f"user-{i}", "one", options) for i in range(200)]
    two = [hash_assignment(f"user-{i}", "two", options) for i in range(200)]
    assert one != two


def test_short_code_alphabet_and_length():
    code = generate_short_code(12)
    assert len(code) == 12
    assert set(code) <= set(SHORT_CODE_ALPHABET)


def test_readable_short_code_layout():
    with_product = generate_readable_short_code("GenomicsCloud", "AlignerPro")
    prefix, partner, product, suffix = with_product.split("-")
    assert (prefix, partner, product) == ("bh", "geno", "alig")
    assert len(suffix) == 4

    without_product = generate_readable_short_code("Genomics")
    assert without_product.startswith("bh-geno-")
    assert len(without_product.split("-")) == 3


def test_hash_string_and_secure_compare():
    assert hash_string("abc") == hashlib.sha256(b"abc").hexdigest()
    assert hash_string("abc", "md5") == hashlib.md5(b"abc").hexdigest()
    assert secure_compare("token", "token")
    assert not secure_compare("token", "tokem")


def test_api_key_prefix():
    assert generate_api_key().startswith("ah_")
    assert generate_api_key() != generate_api_key()


def test_session_id_is_32_hex_chars():
    session_id = generate_session_id()
    assert len(session_id) == 32
    int(session_id, 16)
