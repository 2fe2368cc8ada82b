"""
credentialStatus validation.

Turns an untrusted Verifiable Credential into a typed status entry:

- StatusList2021Entry (``slist://`` managers) -> StatusListEntry
- RevocationList2020Status (``rlist://`` managers) -> RevocationListStatus

Rules are checked in order and the first violated rule raises a
ValidationError naming it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

import base58

from vc_status_manager.errors import ValidationError

STATUS_LIST_SCHEME = "slist"
REVOCATION_LIST_SCHEME = "rlist"

STATUS_LIST_ENTRY_TYPE = "StatusList2021Entry"
REVOCATION_LIST_STATUS_TYPE = "RevocationList2020Status"

PURPOSE_REVOCATION = "revocation"
PURPOSE_SUSPENSION = "suspension"
PURPOSES = (PURPOSE_REVOCATION, PURPOSE_SUSPENSION)

STATUS_LIST_KEYS = frozenset(
    {"id", "type", "statusPurpose", "statusListIndex", "statusListCredential"}
)
REVOCATION_LIST_KEYS = frozenset(
    {"id", "type", "revocationListIndex", "revocationListCredential"}
)

# Base58check prefix of originated contract addresses (KT1)
CONTRACT_ADDRESS_PREFIX = bytes([2, 90, 121])
CONTRACT_HASH_LENGTH = 20

INDEX_PATTERN = re.compile(r"[-+]?(\d+|Infinity)", re.ASCII)
URL_PATTERN = re.compile(
    r"https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)",
    re.ASCII,
)


@dataclass(frozen=True)
class StatusListEntry:
    """Validated StatusList2021Entry."""

    address: str
    index: int
    purpose: str

    @property
    def manager_id(self) -> str:
        return f"{STATUS_LIST_SCHEME}://{self.address}"


@dataclass(frozen=True)
class RevocationListStatus:
    """Validated RevocationList2020Status."""

    address: str
    index: int
    purpose: str = PURPOSE_REVOCATION

    @property
    def manager_id(self) -> str:
        return f"{REVOCATION_LIST_SCHEME}://{self.address}"


CredentialStatusEntry = Union[StatusListEntry, RevocationListStatus]


def is_contract_address(value: str) -> bool:
    """Check that ``value`` is a well-formed KT1 contract address."""
    if not isinstance(value, str) or not value.startswith("KT1"):
        return False
    try:
        decoded = base58.b58decode_check(value)
    except ValueError:
        return False
    return (
        decoded[: len(CONTRACT_ADDRESS_PREFIX)] == CONTRACT_ADDRESS_PREFIX
        and len(decoded) == len(CONTRACT_ADDRESS_PREFIX) + CONTRACT_HASH_LENGTH
    )


def parse_index(value: str) -> int | None:
    """Parse a status list index, returning None unless finite and >= 0."""
    if not isinstance(value, str) or not INDEX_PATTERN.fullmatch(value):
        return None
    if value.lstrip("+-") == "Infinity":
        return None
    n = int(value)
    return n if n >= 0 else None


def split_manager_uri(uri: str, scheme: str) -> str | None:
    """Return the address part of ``{scheme}://{address}`` if it is valid."""
    prefix = f"{scheme}://"
    if not isinstance(uri, str) or not uri.startswith(prefix):
        return None
    address = uri[len(prefix):]
    return address if is_contract_address(address) else None


def _credential_status(vc: Any, keys: frozenset[str]) -> dict[str, Any]:
    if not isinstance(vc, dict):
        raise ValidationError("credential", "Credential must be a JSON object")
    if "credentialStatus" not in vc:
        raise ValidationError("credential_status", "Credential has no credentialStatus")

    status = vc["credentialStatus"]
    if not isinstance(status, dict):
        raise ValidationError("credential_status", "credentialStatus must be a JSON object")
    if set(status) != keys:
        missing = sorted(keys - set(status))
        extra = sorted(set(status) - keys)
        raise ValidationError(
            "keys",
            f"credentialStatus must have exactly the keys {sorted(keys)} "
            f"(missing: {missing}, unexpected: {extra})",
        )
    return status


def _require_string(status: dict[str, Any], field: str, rule: str) -> str:
    value = status[field]
    if not isinstance(value, str):
        raise ValidationError.invalid_field(rule, f"{field} must be a string")
    return value


def validate_status_list_entry(vc: Any) -> StatusListEntry:
    """Validate a credential carrying a StatusList2021Entry.

    Args:
        vc: Untrusted credential (parsed JSON).

    Returns:
        StatusListEntry with the manager address, bit index and purpose.

    Raises:
        ValidationError: On the first violated rule.
    """
    status = _credential_status(vc, STATUS_LIST_KEYS)

    status_id = _require_string(status, "id", "id")
    index_str = _require_string(status, "statusListIndex", "index")
    credential = _require_string(status, "statusListCredential", "scheme")
    if status_id != f"{credential}#{index_str}":
        raise ValidationError.invalid_field(
            "id", "id must equal statusListCredential#statusListIndex"
        )

    if status["type"] != STATUS_LIST_ENTRY_TYPE:
        raise ValidationError.invalid_field(
            "type", f"type must be '{STATUS_LIST_ENTRY_TYPE}'"
        )

    purpose = status["statusPurpose"]
    if purpose not in PURPOSES:
        raise ValidationError.invalid_field(
            "purpose", f"statusPurpose must be one of {list(PURPOSES)}"
        )

    index = parse_index(index_str)
    if index is None:
        raise ValidationError.invalid_field(
            "index", f"statusListIndex '{index_str}' is not a non-negative integer"
        )

    if not credential.startswith(f"{STATUS_LIST_SCHEME}://"):
        raise ValidationError.unauthorized_scheme(
            STATUS_LIST_SCHEME, credential.partition("://")[0]
        )
    address = split_manager_uri(credential, STATUS_LIST_SCHEME)
    if address is None:
        raise ValidationError.invalid_field(
            "address", f"'{credential}' does not reference a contract address"
        )

    return StatusListEntry(address=address, index=index, purpose=purpose)


def validate_revocation_list_status(vc: Any) -> RevocationListStatus:
    """Validate a credential carrying a RevocationList2020Status.

    Raises:
        ValidationError: On the first violated rule.
    """
    status = _credential_status(vc, REVOCATION_LIST_KEYS)

    status_id = _require_string(status, "id", "id")
    if not URL_PATTERN.fullmatch(status_id):
        raise ValidationError.invalid_field("id", "id must be an absolute URL")

    if status["type"] != REVOCATION_LIST_STATUS_TYPE:
        raise ValidationError.invalid_field(
            "type", f"type must be '{REVOCATION_LIST_STATUS_TYPE}'"
        )

    index_str = _require_string(status, "revocationListIndex", "index")
    index = parse_index(index_str)
    if index is None:
        raise ValidationError.invalid_field(
            "index", f"revocationListIndex '{index_str}' is not a non-negative integer"
        )

    credential = _require_string(status, "revocationListCredential", "scheme")
    if not credential.startswith(f"{REVOCATION_LIST_SCHEME}://"):
        raise ValidationError.unauthorized_scheme(
            REVOCATION_LIST_SCHEME, credential.partition("://")[0]
        )
    address = split_manager_uri(credential, REVOCATION_LIST_SCHEME)
    if address is None:
        raise ValidationError.invalid_field(
            "address", f"'{credential}' does not reference a contract address"
        )

    return RevocationListStatus(address=address, index=index)


def parse_credential_status(vc: Any) -> CredentialStatusEntry:
    """Validate a credential of either supported variant.

    The variant is selected from the credentialStatus ``type``, falling
    back to its key set.
    """
    status = vc.get("credentialStatus") if isinstance(vc, dict) else None
    if isinstance(status, dict):
        if status.get("type") == REVOCATION_LIST_STATUS_TYPE or (
            "revocationListCredential" in status and "statusListCredential" not in status
        ):
            return validate_revocation_list_status(vc)
    return validate_status_list_entry(vc)
