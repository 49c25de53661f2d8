"""Tests for the runtime helpers shipped into generated projects."""

import json

import pytest
import requests
from requests.auth import HTTPBasicAuth

from workflow_converter.runtime.http import build_request, decode_response, send_request
from workflow_converter.runtime.node import (
    BranchOutput,
    CredentialError,
    credential,
    credential_env_name,
    env,
    parse_path,
    resolve_path,
    to_text,
)
from workflow_converter.runtime.transforms import (
    apply_assignments,
    evaluate_condition,
    evaluate_conditions,
    merge_inputs,
)


class TestPaths:

    def test_parse_path(self):
        assert parse_path('.a["b"][0].first()') == ["a", "b", 0, "first()"]
        assert parse_path("") == []

    @pytest.mark.parametrize(
        "value, path, expected",
        [
            ({"user": {"id": 7}}, ".user.id", 7),
            ({"user": {"id": 7}}, ".user.missing", None),
            ({"json": {"id": 1}}, ".json.id", 1),
            ({"id": 1}, ".json.id", 1),
            ([{"id": 1}, {"id": 2}], ".item.json.id", 1),
            ([{"id": 1}, {"id": 2}], ".last().id", 2),
            ({"tags": ["a", "b"]}, ".tags[1]", "b"),
            ({"tags": ["a"]}, ".tags[5]", None),
            ({"first name": "Ada"}, "['first name']", "Ada"),
            (None, ".anything", None),
        ],
    )
    def test_resolve_path(self, value, path, expected):
        assert resolve_path(value, path) == expected

    def test_branch_output_resolves_first_branch(self):
        assert resolve_path(BranchOutput({1: {"id": 3}}), ".id") == 3

    def test_private_attributes_not_followed(self):
        class Holder:
            _secret = "x"
            public = "y"

        assert resolve_path(Holder(), "._secret") is None
        assert resolve_path(Holder(), ".public") == "y"


class TestValues:

    @pytest.mark.parametrize(
        "value, text",
        [(None, ""), ("a", "a"), (True, "true"), (3, "3"), ({"a": 1}, '{"a": 1}'), ([1], "[1]")],
    )
    def test_to_text(self, value, text):
        assert to_text(value) == text

    def test_env(self, monkeypatch):
        monkeypatch.setenv("WF_TEST_VALUE", "abc")
        monkeypatch.delenv("WF_TEST_MISSING", raising=False)

        assert env("WF_TEST_VALUE") == "abc"
        assert env("WF_TEST_MISSING") is None
        assert env("WF_TEST_MISSING", "fallback") == "fallback"

    @pytest.mark.parametrize(
        "kind, name",
        [
            ("httpHeaderAuth", "CREDENTIAL_HTTP_HEADER_AUTH"),
            ("oAuth2Api", "CREDENTIAL_O_AUTH2_API"),
            ("slackApi", "CREDENTIAL_SLACK_API"),
        ],
    )
    def test_credential_env_name(self, kind, name):
        assert credential_env_name(kind) == name

    def test_credential_loaded_from_json(self, monkeypatch):
        monkeypatch.setenv("CREDENTIAL_HTTP_HEADER_AUTH", json.dumps({"name": "X-Key", "value": "s3cret"}))

        assert credential("httpHeaderAuth") == {"name": "X-Key", "value": "s3cret"}

    def test_credential_missing(self, monkeypatch):
        monkeypatch.delenv("CREDENTIAL_HTTP_BASIC_AUTH", raising=False)

        with pytest.raises(CredentialError, match="set CREDENTIAL_HTTP_BASIC_AUTH"):
            credential("httpBasicAuth")

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    def test_credential_malformed(self, monkeypatch, raw):
        monkeypatch.setenv("CREDENTIAL_HTTP_BASIC_AUTH", raw)

        with pytest.raises(CredentialError, match="must hold a JSON object"):
            credential("httpBasicAuth")


class TestTransforms:

    def test_assignments_copy_the_item(self):
        item = {"name": "Ada", "meta": {"a": 1}}

        result = apply_assignments(item, [{"name": "meta.b", "value": 2}, {"name": "greeting", "value": "hi"}])

        assert result == {"name": "Ada", "meta": {"a": 1, "b": 2}, "greeting": "hi"}
        assert item == {"name": "Ada", "meta": {"a": 1}}

    def test_keep_only_set_without_dot_notation(self):
        result = apply_assignments({"name": "Ada"}, [{"name": "a.b", "value": 1}], dot_notation=False, keep_only_set=True)

        assert result == {"a.b": 1}

    def test_invalid_assignment(self):
        with pytest.raises(ValueError, match="missing a field name"):
            apply_assignments({}, [{"value": 1}])

    @pytest.mark.parametrize(
        "condition, expected",
        [
            ({"value1": 80, "operation": "larger", "value2": 50}, True),
            ({"value1": "80", "operation": "smallerEqual", "value2": 50}, False),
            ({"value1": "abc", "operation": "contains", "value2": "b"}, True),
            ({"value1": "", "operation": "isEmpty"}, True),
            ({"value1": 1, "value2": 1}, True),
            ({"leftValue": "x", "operator": {"operation": "notEquals"}, "rightValue": "y"}, True),
        ],
    )
    def test_conditions(self, condition, expected):
        assert evaluate_condition(condition) is expected

    def test_unknown_operation(self):
        with pytest.raises(ValueError, match="Unsupported condition operation"):
            evaluate_condition({"value1": 1, "operation": "regexp", "value2": 1})

    def test_combine(self):
        conditions = [
            {"value1": 1, "operation": "equal", "value2": 1},
            {"value1": 1, "operation": "equal", "value2": 2},
        ]

        assert not evaluate_conditions(conditions, "all")
        assert evaluate_conditions(conditions, "any")

    @pytest.mark.parametrize(
        "input_data, mode, expected",
        [
            ([[1, 2], {"a": 1}, {}], "append", [1, 2, {"a": 1}]),
            ([{"a": 1}, {"b": 2}], "combine", {"a": 1, "b": 2}),
            ([{}, {"b": 2}], "chooseBranch", {"b": 2}),
            ({"a": 1}, "append", [{"a": 1}]),
        ],
    )
    def test_merge(self, input_data, mode, expected):
        assert merge_inputs(input_data, mode) == expected

    def test_merge_unknown_mode(self):
        with pytest.raises(ValueError, match="Unsupported merge mode"):
            merge_inputs([], "zip")


def json_response(payload, status_code=200):
    response = requests.Response()
    response.status_code = status_code
    response.headers["Content-Type"] = "application/json"
    response._content = json.dumps(payload).encode("utf-8")
    response.url = "https://x/users"
    return response


class FakeSession:
    """Stands in for requests.Session and records calls."""

    def __init__(self, response):
        self.response = response
        self.calls = []

    def request(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


class TestHttp:

    def test_build_request_defaults(self):
        kwargs = build_request({"url": "https://x", "timeout": 5000})

        assert kwargs == {
            "method": "GET",
            "url": "https://x",
            "headers": {},
            "params": None,
            "timeout": 5.0,
        }

    def test_build_request_pairs_and_body(self):
        kwargs = build_request(
            {
                "url": "https://x",
                "method": "post",
                "headers": {"A": 1},
                "headerParameters": {"parameters": [{"name": "B", "value": "2"}]},
                "queryParameters": [{"name": "q", "value": "ada"}],
                "jsonBody": '{"id": 1}',
            }
        )

        assert kwargs["method"] == "POST"
        assert kwargs["headers"] == {"A": "1", "B": "2"}
        assert kwargs["params"] == {"q": "ada"}
        assert kwargs["json"] == {"id": 1}
        assert kwargs["timeout"] == 30.0

    def test_build_request_requires_url(self):
        with pytest.raises(ValueError, match="non-empty url"):
            build_request({"url": ""})

    def test_header_credential(self, monkeypatch):
        monkeypatch.setenv("CREDENTIAL_HTTP_HEADER_AUTH", json.dumps({"name": "X-Key", "value": "k"}))

        kwargs = build_request({"url": "https://x"}, credential_kinds=["httpHeaderAuth"])

        assert kwargs["headers"] == {"X-Key": "k"}

    def test_basic_credential(self, monkeypatch):
        monkeypatch.setenv("CREDENTIAL_HTTP_BASIC_AUTH", json.dumps({"user": "u", "password": "p"}))

        kwargs = build_request({"url": "https://x"}, credential_kinds=["httpBasicAuth"])

        assert kwargs["auth"] == HTTPBasicAuth("u", "p")

    def test_send_request_decodes_json(self):
        session = FakeSession(json_response({"users": [1, 2]}))

        result = send_request({"url": "https://x/users", "method": "GET"}, session=session)

        assert result == {"users": [1, 2]}
        assert session.calls[0]["url"] == "https://x/users"

    def test_send_request_raises_for_status(self):
        session = FakeSession(json_response({"error": "nope"}, status_code=404))

        with pytest.raises(requests.HTTPError):
            send_request({"url": "https://x/users"}, session=session)

    def test_non_json_response_summarized(self):
        response = requests.Response()
        response.status_code = 200
        response.headers["Content-Type"] = "text/plain"
        response._content = b"hello"

        decoded = decode_response(response)

        assert decoded["status_code"] == 200
        assert decoded["body"] == "hello"
