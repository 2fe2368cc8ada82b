"""Shared fixtures for status manager tests."""

import hashlib

import base58
import pytest

from vc_status_manager import InMemoryLedger, RevocationListManager, StatusListManager
from vc_status_manager.validator import CONTRACT_ADDRESS_PREFIX

SIGNER = "tz1VSUr8wwNhLAzempoch5d6hLRiTh8Cjcjb"
OTHER_SIGNER = "tz1aSkwEot3L2kmUvcoxzjMomb9mvBNuzFK6"


def contract_address(seed: str = "manager") -> str:
    """Build a well-formed KT1 address from a seed."""
    digest = hashlib.blake2b(seed.encode(), digest_size=20).digest()
    return base58.b58encode_check(CONTRACT_ADDRESS_PREFIX + digest).decode()


def make_vc(manager_id: str, index, purpose: str = "revocation") -> dict:
    """Create a credential carrying a StatusList2021Entry."""
    return {
        "@context": [
            "https://www.w3.org/2018/credentials/v1",
            "https://w3id.org/vc/status-list/2021/v1",
        ],
        "id": f"urn:uuid:test-{index}",
        "type": ["VerifiableCredential"],
        "issuer": f"did:pkh:tz:{SIGNER}",
        "credentialSubject": {"id": "did:example:holder"},
        "credentialStatus": {
            "id": f"{manager_id}#{index}",
            "type": "StatusList2021Entry",
            "statusPurpose": purpose,
            "statusListIndex": str(index),
            "statusListCredential": manager_id,
        },
    }


def make_legacy_vc(manager_id: str, index) -> dict:
    """Create a credential carrying a RevocationList2020Status."""
    return {
        "@context": [
            "https://www.w3.org/2018/credentials/v1",
            "https://w3id.org/vc-revocation-list-2020/v1",
        ],
        "id": f"urn:uuid:legacy-{index}",
        "type": ["VerifiableCredential"],
        "issuer": f"did:pkh:tz:{SIGNER}",
        "credentialSubject": {"id": "did:example:holder"},
        "credentialStatus": {
            "id": f"https://example.com/credentials/status/{index}",
            "type": "RevocationList2020Status",
            "revocationListIndex": str(index),
            "revocationListCredential": manager_id,
        },
    }


class UnreachableLedger:
    """Ledger that fails the test when touched."""

    def __getattr__(self, name):
        raise AssertionError(f"Ledger accessed: {name}")


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def status_manager(ledger):
    return StatusListManager(ledger, confirmations=3)


@pytest.fixture
def revocation_manager(ledger):
    return RevocationListManager(ledger, confirmations=3)
