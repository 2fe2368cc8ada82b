"""Tests for credentialStatus validation."""

import pytest

from conftest import contract_address, make_legacy_vc, make_vc
from vc_status_manager import (
    RevocationListStatus,
    StatusListEntry,
    ValidationError,
    parse_credential_status,
    validate_revocation_list_status,
    validate_status_list_entry,
)
from vc_status_manager.validator import is_contract_address, parse_index

ADDRESS = contract_address()
MANAGER_ID = f"slist://{ADDRESS}"
LEGACY_ID = f"rlist://{ADDRESS}"


def rule_of(vc, validate=validate_status_list_entry) -> str:
    with pytest.raises(ValidationError) as exc_info:
        validate(vc)
    return exc_info.value.rule


class TestContractAddress:
    """Tests for KT1 address validation."""

    def test_valid(self):
        """Test a well-formed KT1 address."""
        assert is_contract_address(ADDRESS)

    def test_bad_checksum(self):
        """Test a corrupted address is rejected."""
        corrupted = ADDRESS[:-1] + ("a" if ADDRESS[-1] != "a" else "b")
        assert not is_contract_address(corrupted)

    def test_implicit_account(self):
        """Test tz1 addresses are not contract addresses."""
        assert not is_contract_address("tz1VSUr8wwNhLAzempoch5d6hLRiTh8Cjcjb")

    @pytest.mark.parametrize("value", ["", "KT1", "KT10OIl", None, 42])
    def test_garbage(self, value):
        """Test non-address values."""
        assert not is_contract_address(value)


class TestParseIndex:
    """Tests for status list index parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("0", 0), ("42", 42), ("+7", 7), ("-0", 0), ("0042", 42), ("131071", 131071)],
    )
    def test_valid(self, value, expected):
        assert parse_index(value) == expected

    @pytest.mark.parametrize(
        "value",
        [
            "-1", "Infinity", "-Infinity", "+Infinity", "1.5", "1e3", " 1", "", "abc", 3,
            "42\n",
            "\u0664\u0662",
            "\uff11",
        ],
    )
    def test_invalid(self, value):
        assert parse_index(value) is None


class TestStatusListEntry:
    """Tests for StatusList2021Entry validation."""

    def test_valid(self):
        """Test a valid entry yields address, index and purpose."""
        entry = validate_status_list_entry(make_vc(MANAGER_ID, 42, "suspension"))
        assert entry == StatusListEntry(address=ADDRESS, index=42, purpose="suspension")
        assert entry.manager_id == MANAGER_ID

    def test_not_an_object(self):
        """Test non-object credentials."""
        assert rule_of(["not", "a", "vc"]) == "credential"

    def test_missing_status(self):
        """Test credentials without credentialStatus."""
        assert rule_of({"id": "urn:uuid:1"}) == "credential_status"

    def test_extra_key(self):
        """Test the key set must match exactly."""
        vc = make_vc(MANAGER_ID, 1)
        vc["credentialStatus"]["extra"] = "x"
        assert rule_of(vc) == "keys"

    def test_missing_key(self):
        """Test a missing statusPurpose."""
        vc = make_vc(MANAGER_ID, 1)
        del vc["credentialStatus"]["statusPurpose"]
        assert rule_of(vc) == "keys"

    def test_id_must_be_composite(self):
        """Test id must equal statusListCredential#statusListIndex."""
        vc = make_vc(MANAGER_ID, 1)
        vc["credentialStatus"]["id"] = f"{MANAGER_ID}#2"
        assert rule_of(vc) == "id"

    def test_wrong_type(self):
        """Test the entry type literal."""
        vc = make_vc(MANAGER_ID, 1)
        vc["credentialStatus"]["type"] = "BitstringStatusListEntry"
        assert rule_of(vc) == "type"

    def test_unknown_purpose(self):
        """Test statusPurpose outside the allowed values."""
        vc = make_vc(MANAGER_ID, 1, purpose="message")
        assert rule_of(vc) == "purpose"

    def test_negative_index(self):
        """Test a negative index is rejected."""
        assert rule_of(make_vc(MANAGER_ID, -1)) == "index"

    def test_infinite_index(self):
        """Test an infinite index is rejected."""
        assert rule_of(make_vc(MANAGER_ID, "Infinity")) == "index"

    @pytest.mark.parametrize("index", ["42\n", "\u0664\u0662"])
    def test_non_ascii_index(self, index):
        """Test only ASCII digits spanning the whole string form an index."""
        assert rule_of(make_vc(MANAGER_ID, index)) == "index"

    def test_numeric_index(self):
        """Test the index must be string-encoded."""
        vc = make_vc(MANAGER_ID, 1)
        vc["credentialStatus"]["statusListIndex"] = 1
        assert rule_of(vc) == "index"

    def test_wrong_scheme(self):
        """Test statusListCredential must use slist://."""
        assert rule_of(make_vc(f"https://{ADDRESS}", 1)) == "scheme"
        assert rule_of(make_vc(LEGACY_ID, 1)) == "scheme"

    def test_bad_address(self):
        """Test the scheme must be followed by a contract address."""
        assert rule_of(make_vc("slist://KT1notAnAddress", 1)) == "address"

    def test_first_failure_wins(self):
        """Test the earliest violated rule is reported."""
        vc = make_vc("https://example.com", -1, purpose="message")
        vc["credentialStatus"]["type"] = "Other"
        assert rule_of(vc) == "type"


class TestRevocationListStatus:
    """Tests for RevocationList2020Status validation."""

    def test_valid(self):
        """Test a valid legacy entry."""
        entry = validate_revocation_list_status(make_legacy_vc(LEGACY_ID, 9))
        assert entry == RevocationListStatus(address=ADDRESS, index=9)
        assert entry.purpose == "revocation"

    def test_id_must_be_url(self):
        """Test the id must be an absolute URL."""
        vc = make_legacy_vc(LEGACY_ID, 9)
        vc["credentialStatus"]["id"] = "urn:uuid:1234"
        assert rule_of(vc, validate_revocation_list_status) == "id"

    def test_id_trailing_newline(self):
        """Test the id URL must span the whole string."""
        vc = make_legacy_vc(LEGACY_ID, 3)
        vc["credentialStatus"]["id"] = "https://example.com/status/3\n"
        assert rule_of(vc, validate_revocation_list_status) == "id"

    def test_wrong_type(self):
        vc = make_legacy_vc(LEGACY_ID, 9)
        vc["credentialStatus"]["type"] = "StatusList2021Entry"
        assert rule_of(vc, validate_revocation_list_status) == "type"

    def test_wrong_scheme(self):
        """Test revocationListCredential must use rlist://."""
        vc = make_legacy_vc(MANAGER_ID, 9)
        assert rule_of(vc, validate_revocation_list_status) == "scheme"

    def test_keys(self):
        """Test 2021 entries are not legacy entries."""
        assert rule_of(make_vc(MANAGER_ID, 1), validate_revocation_list_status) == "keys"


class TestParseCredentialStatus:
    """Tests for variant selection."""

    def test_selects_status_list(self):
        assert isinstance(parse_credential_status(make_vc(MANAGER_ID, 3)), StatusListEntry)

    def test_selects_revocation_list(self):
        entry = parse_credential_status(make_legacy_vc(LEGACY_ID, 3))
        assert isinstance(entry, RevocationListStatus)

    def test_invalid_falls_through_to_validation(self):
        with pytest.raises(ValidationError):
            parse_credential_status({"credentialStatus": {}})
