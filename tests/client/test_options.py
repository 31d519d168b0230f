"""
Tests for translating request descriptors into transport options.
"""

import json

import pytest
from pydantic import ValidationError

from resin_request.client.options import (
    DEFAULT_ACCEPT_ENCODING,
    append_query,
    check_options,
    encode_query_params,
    resolve_url,
    translate_options,
)
from resin_request.errors import InvalidOptionError, UnsupportedOptionError
from resin_request.types import RequestDescriptor


class TestRequestDescriptor:
    def test_defaults(self):
        descriptor = RequestDescriptor(url="/foo")

        assert descriptor.method == "GET"
        assert descriptor.json_ is True
        assert descriptor.headers == {}
        assert descriptor.refresh_token is True
        assert descriptor.retries is None
        assert descriptor.follow_redirect is True

    def test_accepts_camel_case_aliases(self):
        descriptor = RequestDescriptor(
            uri="/foo",
            baseUrl="https://api.example.com",
            apiKey="secret",
            refreshToken=False,
            queryParams={"a": "1"},
            json=False,
            timeout=5000,
        )

        assert descriptor.url == "/foo"
        assert descriptor.base_url == "https://api.example.com"
        assert descriptor.api_key == "secret"
        assert descriptor.refresh_token is False
        assert descriptor.query_params == {"a": "1"}
        assert descriptor.json_ is False
        assert descriptor.timeout_ms == 5000
        assert descriptor.extra_options == {}

    def test_method_is_upper_cased(self):
        assert RequestDescriptor(url="/foo", method="post").method == "POST"

    def test_negative_retries_are_rejected(self):
        with pytest.raises(ValidationError):
            RequestDescriptor(url="/foo", retries=-1)

    def test_is_immutable(self):
        descriptor = RequestDescriptor(url="/foo")
        with pytest.raises(ValidationError):
            descriptor.url = "/bar"

    def test_keeps_unknown_options(self):
        descriptor = RequestDescriptor(url="/foo", proxy="http://proxy:3128")
        assert descriptor.extra_options == {"proxy": "http://proxy:3128"}


class TestUrlResolution:
    def test_relative_url_is_resolved_against_base_url(self):
        assert resolve_url("/foo", "https://api.example.com") == "https://api.example.com/foo"

    def test_absolute_url_ignores_base_url(self):
        assert resolve_url("https://other.example.com/bar", "https://api.example.com") == (
            "https://other.example.com/bar"
        )

    def test_relative_url_without_base_url_is_invalid(self):
        with pytest.raises(InvalidOptionError):
            resolve_url("/foo")

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("/x", "/x?apikey=key"),
            ("/x?a=1", "/x?a=1&apikey=key"),
        ],
    )
    def test_append_query(self, url, expected):
        assert append_query(url, "apikey=key") == expected

    def test_append_empty_query_is_noop(self):
        assert append_query("/x", "") == "/x"


class TestQueryParams:
    def test_flat_params(self):
        assert encode_query_params({"a": 1, "b": "two"}) == "a=1&b=two"

    def test_sequences_repeat_the_key(self):
        assert encode_query_params({"tags": ["x", "y"]}) == "tags=x&tags=y"

    def test_nested_mappings_use_bracket_keys(self):
        assert encode_query_params({"filter": {"name": "foo"}}) == "filter%5Bname%5D=foo"

    def test_none_values_are_skipped(self):
        assert encode_query_params({"a": None, "b": "1"}) == "b=1"

    def test_query_params_merge_with_existing_query(self):
        descriptor = RequestDescriptor(url="https://api.example.com/foo?x=1", query_params={"y": "2"})
        url, _ = translate_options(descriptor)
        assert url == "https://api.example.com/foo?x=1&y=2"

    def test_query_params_start_a_query(self):
        descriptor = RequestDescriptor(url="/foo", base_url="https://api.example.com", qs={"y": "2"})
        url, _ = translate_options(descriptor)
        assert url == "https://api.example.com/foo?y=2"


class TestRejectedOptions:
    @pytest.mark.parametrize("param", ["proxy", "form", "multipart", "jar", "agent", "har"])
    def test_legacy_options_are_unsupported(self, param):
        descriptor = RequestDescriptor(url="https://api.example.com", **{param: "value"})

        with pytest.raises(UnsupportedOptionError) as exc_info:
            check_options(descriptor)

        assert exc_info.value.param == param
        assert exc_info.value.value == "value"
        assert f"The {param} param is not supported" in str(exc_info.value)

    def test_disabling_strict_ssl_is_invalid(self):
        descriptor = RequestDescriptor(url="https://api.example.com", strictSSL=False)
        with pytest.raises(InvalidOptionError):
            translate_options(descriptor)

    def test_strict_ssl_true_is_allowed(self):
        descriptor = RequestDescriptor(url="https://api.example.com", strict_ssl=True)
        check_options(descriptor)

    def test_unknown_options_are_ignored(self):
        descriptor = RequestDescriptor(url="https://api.example.com", somethingElse=1)
        check_options(descriptor)


class TestTranslateOptions:
    def test_json_body_is_serialized(self):
        descriptor = RequestDescriptor(
            url="https://api.example.com/foo",
            method="POST",
            body={"hello": "world"},
        )

        _, options = translate_options(descriptor)

        assert json.loads(options.content) == {"hello": "world"}
        assert options.headers["Content-Type"] == "application/json"

    def test_raw_body_is_passed_through(self):
        descriptor = RequestDescriptor(url="https://api.example.com/foo", body="raw", json=False)

        _, options = translate_options(descriptor)

        assert options.content == "raw"
        assert "Content-Type" not in options.headers

    def test_raw_body_must_be_text_or_bytes(self):
        descriptor = RequestDescriptor(url="https://api.example.com/foo", body={"a": 1}, json=False)
        with pytest.raises(InvalidOptionError):
            translate_options(descriptor)

    @pytest.mark.parametrize("body", [b"\x00\x01", {"when": object()}])
    def test_body_that_is_not_json_serializable(self, body):
        descriptor = RequestDescriptor(url="https://api.example.com/upload", method="POST", body=body)
        with pytest.raises(InvalidOptionError):
            translate_options(descriptor)

    def test_accept_encoding_defaults(self):
        _, options = translate_options(RequestDescriptor(url="https://api.example.com"))
        assert options.headers["Accept-Encoding"] == DEFAULT_ACCEPT_ENCODING

    def test_accept_encoding_is_not_overridden(self):
        descriptor = RequestDescriptor(url="https://api.example.com", headers={"accept-encoding": "identity"})
        _, options = translate_options(descriptor)
        assert options.headers["Accept-Encoding"] == "identity"

    def test_transport_flags_are_carried_over(self):
        descriptor = RequestDescriptor(
            url="https://api.example.com",
            method="delete",
            followRedirect=False,
            gzip=False,
            timeout_ms=2500,
            retries=3,
            headers={"X-Custom": "1"},
        )

        _, options = translate_options(descriptor)

        assert options.method == "DELETE"
        assert options.follow_redirects is False
        assert options.compress is False
        assert options.timeout == 2.5
        assert options.retries == 3
        assert options.headers["X-Custom"] == "1"

    def test_unset_retries_and_timeout(self):
        _, options = translate_options(RequestDescriptor(url="https://api.example.com"))

        assert options.retries == 0
        assert options.timeout is None
        assert options.compress is True
