"""Tests for path, hash and URL validators."""

import pytest

from nsite_deploy.validators import (
    format_validation_error,
    validate_content_hash,
    validate_endpoint_url,
    validate_site_path,
)


def test_format_validation_error():
    assert format_validation_error("Path", "cannot be empty") == "Path cannot be empty"


class TestSitePath:
    @pytest.mark.parametrize("path", ["/index.html", "about/team.html", "//a/b.css"])
    def test_valid(self, path):
        assert validate_site_path(path) == (True, "")

    @pytest.mark.parametrize(
        "path,reason",
        [
            ("", "cannot be empty"),
            ("   ", "cannot be empty"),
            ("/a/../b", "'..'"),
            ("/a//b", "empty path segments"),
            ("/dir/", "empty path segments"),
        ],
    )
    def test_invalid(self, path, reason):
        ok, message = validate_site_path(path)
        assert not ok
        assert reason in message


class TestContentHash:
    def test_lowercase(self):
        assert validate_content_hash("a" * 64) == (True, "")

    def test_uppercase_accepted(self):
        assert validate_content_hash("ABCDEF" + "0" * 58)[0]

    @pytest.mark.parametrize("value", ["", "a" * 63, "g" * 64, "a" * 65])
    def test_invalid(self, value):
        assert not validate_content_hash(value)[0]


class TestEndpointUrl:
    def test_valid(self):
        assert validate_endpoint_url("wss://relay.test", ("ws", "wss")) == (True, "")

    def test_wrong_scheme(self):
        ok, message = validate_endpoint_url("ftp://b.test", ("http", "https"))
        assert not ok
        assert message == "URL 'ftp://b.test' must start with http:// or https://"

    def test_missing_host(self):
        ok, message = validate_endpoint_url("https://", ("http", "https"))
        assert not ok
        assert "must include a hostname" in message
