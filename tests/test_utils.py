from __future__ import annotations

from catalogcache.utils import auth_fingerprint, compile_pattern, generate_key, parse_bearer_token


def test_generate_key_layout() -> None:
    key = generate_key("products", "detail", {"tenant": "anon", "id": 7})

    assert key == 'products:detail:{"id":7,"tenant":"anon"}'


def test_generate_key_without_params() -> None:
    assert generate_key("stats", "daily", None) == "stats:daily:{}"
    assert generate_key("stats", "daily", {}) == "stats:daily:{}"


def test_generate_key_sorts_nested_params() -> None:
    key_a = generate_key("products", "list", {"filters": {"brand": 1, "active": True}, "page": 1})
    key_b = generate_key("products", "list", {"page": 1, "filters": {"active": True, "brand": 1}})

    assert key_a == key_b


def test_generate_key_distinguishes_values() -> None:
    assert generate_key("products", "list", {"page": 1}) != generate_key("products", "list", {"page": 2})


def test_compile_pattern_is_unanchored() -> None:
    regex = compile_pattern("list:*")

    assert regex.search("products:list:{}")
    assert not regex.search("products:detail:{}")


def test_compile_pattern_escapes_metacharacters() -> None:
    regex = compile_pattern('detail:{"id":5,*')

    assert regex.search('products:detail:{"id":5,"tenant":"anon"}')
    assert not regex.search('products:detail:{"id":55,"tenant":"anon"}')


def test_parse_bearer_token_variants() -> None:
    assert parse_bearer_token(None) is None
    assert parse_bearer_token("   ") is None
    assert parse_bearer_token("Bearer abc") == "abc"
    assert parse_bearer_token("abc") == "abc"


def test_auth_fingerprint() -> None:
    assert auth_fingerprint(None) == "anon"
    assert auth_fingerprint("secret") == auth_fingerprint("secret")
    assert auth_fingerprint("secret") != auth_fingerprint("other")
    assert len(auth_fingerprint("secret")) == 12
