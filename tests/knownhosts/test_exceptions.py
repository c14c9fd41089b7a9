"""Tests for the exception hierarchy."""

import pytest

from src.knownhosts.exceptions import (
    InstallFailure,
    KeyFormatError,
    KnownHostsError,
    ScanError,
    SourceError,
    ValidationFailure,
)


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            KeyFormatError("bad"),
            SourceError("bad"),
            ScanError("bad"),
            ValidationFailure(["bad"]),
            InstallFailure("bad"),
        ],
    )
    def test_all_derive_from_base(self, exc):
        assert isinstance(exc, KnownHostsError)

    def test_source_error_carries_source(self):
        e = SourceError("Cannot read /x", source="/x")
        assert e.source == "/x"
        assert str(e) == "Cannot read /x"

    def test_validation_failure_lists_violations(self):
        e = ValidationFailure(["one", "two"])
        assert e.violations == ["one", "two"]
        assert str(e) == "2 validation violation(s): one; two"

    def test_install_failure_fields(self):
        e = InstallFailure("disk full", destination="/etc/ssh/ssh_known_hosts")
        assert e.reason == "disk full"
        assert e.destination == "/etc/ssh/ssh_known_hosts"
