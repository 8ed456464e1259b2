"""
Tests for inbound payload validation.
"""

import pytest

from GroupChat.core.server.exceptions import ValidationError
from GroupChat.core.server.utils.validation import (
    ALL_FIELDS_REQUIRED,
    clean_message_text,
    parse_join_request,
)


class TestJoinRequest:

    def test_trims_name_and_username(self):
        request = parse_join_request({"groupName": " team ", "password": " pw ", "username": " alice "})

        assert request.group_name == "team"
        assert request.username == "alice"
        assert request.password == " pw "

    @pytest.mark.parametrize("data", [
        {"password": "pw", "username": "alice"},
        {"groupName": "team", "username": "alice"},
        {"groupName": "team", "password": "pw"},
        {"groupName": "   ", "password": "pw", "username": "alice"},
        {"groupName": "team", "password": "   ", "username": "alice"},
        {"groupName": "team", "password": "pw", "username": ""},
        {"groupName": "team", "password": 1234, "username": "alice"},
        None,
        "team",
    ])
    def test_missing_fields(self, data):
        with pytest.raises(ValidationError) as excinfo:
            parse_join_request(data)

        assert excinfo.value.message == ALL_FIELDS_REQUIRED

    def test_username_too_long(self):
        with pytest.raises(ValidationError):
            parse_join_request({"groupName": "team", "password": "pw", "username": "a" * 11},
                               max_username_length=10)


class TestMessageText:

    def test_trims(self):
        assert clean_message_text({"message": "  hello  "}) == "hello"

    def test_blank_is_empty(self):
        assert clean_message_text({"message": "   "}) == ""
        assert clean_message_text({}) == ""
        assert clean_message_text(None) == ""

    def test_limit_counts_trimmed_text(self):
        assert clean_message_text({"message": " " + "x" * 5 + " "}, max_length=5) == "xxxxx"

    def test_too_long(self):
        with pytest.raises(ValidationError):
            clean_message_text({"message": "x" * 6}, max_length=5)


def test_zero_limit_is_respected():
    with pytest.raises(ValidationError):
        clean_message_text({"message": "x"}, max_length=0)
