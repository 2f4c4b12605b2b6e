"""Tests for utility functions."""

import pytest

from ngrok_wrapper.common.utils import (
    mask_sensitive_data,
    sanitize_args,
    sanitize_log_data,
    validate_non_empty_string,
)


class TestValidateNonEmptyString:
    """Test non-empty string validation function."""

    def test_valid_strings(self):
        """Test validation of valid strings."""
        assert validate_non_empty_string("test", "Field") == "test"
        assert validate_non_empty_string("  test  ", "Field") == "test"
        assert validate_non_empty_string("hello world", "Field") == "hello world"

    def test_invalid_strings(self):
        """Test validation of invalid strings."""
        with pytest.raises(ValueError, match="Field cannot be empty"):
            validate_non_empty_string("", "Field")

        with pytest.raises(ValueError, match="Field cannot be empty"):
            validate_non_empty_string("   ", "Field")


class TestMaskSensitiveData:
    """Test sensitive data masking function."""

    def test_mask_normal_data(self):
        """Test masking of normal sensitive data."""
        assert mask_sensitive_data("secret123456") == "********3456"
        assert mask_sensitive_data("token_abcdef", show_chars=6) == "******abcdef"
        assert mask_sensitive_data("key") == "***"

    def test_mask_none_data(self):
        """Test masking of None data."""
        assert mask_sensitive_data(None) == "<None>"
        assert mask_sensitive_data("") == "<None>"

    def test_custom_mask_char(self):
        """Test custom mask character."""
        assert mask_sensitive_data("secret123456", mask_char="X") == "XXXXXXXX3456"


class TestSanitizeLogData:
    """Test log data sanitization function."""

    def test_sanitize_sensitive_fields(self):
        """Test sanitization of sensitive fields."""
        data = {
            "authtoken": "2abc123456",
            "auth_token": "secret123456",
            "password": "mypassword",
            "api_key": "key_abcdef",
            "name": "web",
        }

        sanitized = sanitize_log_data(data)

        assert sanitized["authtoken"] == "******3456"
        assert sanitized["auth_token"] == "********3456"
        assert sanitized["password"] == "******word"
        assert sanitized["api_key"] == "******cdef"
        assert sanitized["name"] == "web"

    def test_case_insensitive_detection(self):
        """Test case-insensitive sensitive field detection."""
        sanitized = sanitize_log_data({"AUTHTOKEN": "secret123456", "Secret": "mypassword"})

        assert sanitized["AUTHTOKEN"] == "********3456"
        assert sanitized["Secret"] == "******word"

    def test_no_sensitive_fields(self):
        data = {"pid": 1234, "api_url": "http://127.0.0.1:4040"}
        assert sanitize_log_data(data) == data

    def test_empty_secret(self):
        assert sanitize_log_data({"auth_token": None}) == {"auth_token": "<None>"}


class TestSanitizeArgs:
    """Test masking of auth tokens on ngrok command lines."""

    def test_v3_start(self):
        args = ["ngrok", "start", "--none", "--authtoken", "secret123456", "--region", "eu"]

        assert sanitize_args(args) == [
            "ngrok",
            "start",
            "--none",
            "--authtoken",
            "********3456",
            "--region",
            "eu",
        ]

    def test_v2_start(self):
        assert sanitize_args(["ngrok", "-authtoken=secret123456", "-config=/x.yml"]) == [
            "ngrok",
            "-authtoken=********3456",
            "-config=/x.yml",
        ]

    def test_authtoken_commands(self):
        assert sanitize_args(["ngrok", "config", "add-authtoken", "secret123456"]) == [
            "ngrok",
            "config",
            "add-authtoken",
            "********3456",
        ]
        assert sanitize_args(["ngrok", "authtoken", "secret123456"]) == [
            "ngrok",
            "authtoken",
            "********3456",
        ]

    def test_input_not_modified(self):
        args = ["--authtoken", "secret123456"]
        sanitize_args(args)
        assert args == ["--authtoken", "secret123456"]
