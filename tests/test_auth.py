import base64

import pytest

from uplite.services.auth import credentials_match, parse_basic_auth


def basic(value: str) -> str:
    return "Basic " + base64.b64encode(value.encode("utf-8")).decode("ascii")


def test_parse_valid_header():
    assert parse_basic_auth(basic("admin:s3cret")) == ("admin", "s3cret")


def test_parse_keeps_colons_in_password():
    assert parse_basic_auth(basic("admin:a:b:c")) == ("admin", "a:b:c")


def test_parse_scheme_is_case_insensitive():
    header = basic("admin:pw").replace("Basic", "bAsIc")
    assert parse_basic_auth(header) == ("admin", "pw")


@pytest.mark.parametrize("header", [
    None,
    "",
    "Basic",
    "Bearer abc.def",
    "Basic not-base64!!",
    basic("no-separator"),
])
def test_parse_rejects_malformed(header):
    assert parse_basic_auth(header) is None


def test_credentials_match():
    assert credentials_match(("admin", "pw"), "admin", "pw")
    assert not credentials_match(("admin", "PW"), "admin", "pw")
    assert not credentials_match(("Admin", "pw"), "admin", "pw")
    assert not credentials_match(None, "admin", "pw")


def test_credentials_match_non_ascii():
    assert credentials_match(("jürgen", "pässwörd"), "jürgen", "pässwörd")
