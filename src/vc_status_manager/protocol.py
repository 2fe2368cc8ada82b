"""
Status list protocol.

Implements the Status Manager operations on top of a Ledger:

- StatusListManager: W3C StatusList2021 lists (``slist://``), one purpose
  ("revocation" or "suspension") per Manager, batched mutations.
- RevocationListManager: legacy RevocationList2020 lists (``rlist://``)
  stored as a single integer, one credential per mutation.

Every mutation is one read-modify-write cycle: validate, read the current
list, flip bits, write the new list back and wait for confirmation. The
only suspension points are the ledger calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from vc_status_manager import config
from vc_status_manager.bitstring import Bitstring
from vc_status_manager.codec import (
    MIN_BITS,
    MIN_LENGTH,
    bitstring_to_number,
    decode_list,
    encode_list,
    number_to_encoded_list,
)
from vc_status_manager.errors import ConsistencyError, LedgerError, ValidationError
from vc_status_manager.ledger import Ledger, ListValue, OperationResult, OperationStatus
from vc_status_manager.validator import (
    PURPOSE_REVOCATION,
    PURPOSE_SUSPENSION,
    PURPOSES,
    REVOCATION_LIST_SCHEME,
    STATUS_LIST_SCHEME,
    RevocationListStatus,
    StatusListEntry,
    is_contract_address,
    validate_revocation_list_status,
    validate_status_list_entry,
)

logger = logging.getLogger(__name__)

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
STATUS_LIST_CONTEXT = [CREDENTIALS_CONTEXT, "https://w3id.org/vc/status-list/2021/v1"]
STATUS_LIST_TYPE = ["VerifiableCredential", "StatusList2021Credential"]
REVOCATION_LIST_CONTEXT = [CREDENTIALS_CONTEXT, "https://w3id.org/vc-revocation-list-2020/v1"]
REVOCATION_LIST_TYPE = ["VerifiableCredential", "RevocationList2020Credential"]


def issuer_did(owner: str) -> str:
    """DID of the Manager owner."""
    return f"did:pkh:tz:{owner}"


def metadata_storage(url: str) -> dict[str, str]:
    """TZIP-16 metadata map pointing at ``url``."""
    return {"": url.encode("utf-8").hex()}


def split_manager_id(manager_id: str, scheme: str) -> str:
    """Return the address of ``{scheme}://{address}``.

    Raises:
        ValidationError: If the scheme differs or the address is malformed.
    """
    actual, sep, address = manager_id.partition("://")
    if not sep or actual != scheme:
        raise ValidationError.unauthorized_scheme(scheme, actual if sep else manager_id)
    if not is_contract_address(address):
        raise ValidationError.invalid_field(
            "address", f"'{address}' is not a contract address"
        )
    return address


@dataclass
class Origination:
    """A deployed Manager."""

    id: str
    issuer: str
    operation: OperationResult


class _Manager:
    """Shared plumbing of both Manager flavours."""

    scheme: str

    def __init__(self, ledger: Ledger, confirmations: int | None = None) -> None:
        """Initialize the manager.

        Args:
            ledger: Ledger accessor used for every view and state change.
            confirmations: Blocks to wait for before reporting success.
        """
        self.ledger = ledger
        self.confirmations = config.CONFIRMATIONS if confirmations is None else confirmations

    async def _confirm(self, operation: Any) -> OperationResult:
        logger.info(
            "Operation %s submitted, awaiting %d confirmation(s)",
            operation.hash,
            self.confirmations,
        )
        result = await operation.confirmation(self.confirmations)
        if result.status != OperationStatus.APPLIED:
            raise LedgerError.operation_failed(result.hash, result.error)
        logger.info("Operation %s confirmed at level %s", result.hash, result.level)
        return result

    async def _submit(self, signer: str, address: str, new_list: ListValue) -> OperationResult:
        operation = await self.ledger.submit(signer, address, new_list)
        return await self._confirm(operation)

    async def _deploy(self, signer: str, storage: dict[str, Any]) -> Origination:
        operation = await self.ledger.deploy(signer, storage)
        result = await self._confirm(operation)
        address = result.contract_address or operation.contract_address
        if not address:
            raise LedgerError("Contract not deployed")
        manager_id = f"{self.scheme}://{address}"
        logger.info("Manager %s deployed for %s", manager_id, signer)
        return Origination(id=manager_id, issuer=issuer_did(signer), operation=result)


class StatusListManager(_Manager):
    """StatusList2021 Status Manager operations."""

    scheme = STATUS_LIST_SCHEME

    async def resolve(self, manager_id: str) -> dict[str, Any]:
        """Build the StatusList2021Credential of a Manager.

        Args:
            manager_id: Manager id (``slist://KT1...``).

        Returns:
            StatusList2021Credential document (unsigned).

        Raises:
            ValidationError: If the id is not an ``slist`` URI.
            LedgerError: If a view cannot be read.
        """
        address = split_manager_id(manager_id, self.scheme)

        owner = await self.ledger.get_owner(address)
        purpose = await self.ledger.get_purpose(address)
        encoded_list = await self.ledger.get_list(address)
        logger.debug("Resolved %s (owner=%s, purpose=%s)", manager_id, owner, purpose)

        return {
            "@context": list(STATUS_LIST_CONTEXT),
            "id": manager_id,
            "type": list(STATUS_LIST_TYPE),
            "issuer": issuer_did(owner),
            "credentialSubject": {
                "id": f"{manager_id}#list",
                "type": "StatusList2021",
                "statusPurpose": purpose,
                "encodedList": encoded_list,
            },
        }

    def build_storage(self, owner: str, purpose: str, size: int = MIN_BITS) -> dict[str, Any]:
        """Initial storage of a new Manager with an all-zero list.

        Raises:
            ValueError: If ``purpose`` is unknown or ``size`` below MIN_BITS.
        """
        if purpose not in PURPOSES:
            raise ValueError(f"Purpose must be one of {list(PURPOSES)}, got {purpose!r}")
        if size < MIN_BITS:
            raise ValueError(f"List must be at least {MIN_BITS} bits ({MIN_LENGTH} bytes) long")
        return {
            "owner": owner,
            "metadata": metadata_storage(config.STATUS_MANAGER_METADATA_URL),
            "list": encode_list(Bitstring.zeros(size)),
            "purpose": purpose,
        }

    async def originate(self, signer: str, purpose: str, size: int = MIN_BITS) -> Origination:
        """Deploy a Manager owned by ``signer`` with an all-zero list of ``size`` bits."""
        storage = self.build_storage(signer, purpose, size)
        return await self._deploy(signer, storage)

    def prepare(
        self, vcs: Iterable[Any], purpose: str
    ) -> tuple[str, list[StatusListEntry]]:
        """Validate a batch and check it targets one Manager with ``purpose``.

        Returns:
            The shared Manager address and the validated entries.

        Raises:
            ValidationError: On an empty batch, an invalid credential or a
                credential whose purpose is not ``purpose``.
            ConsistencyError: If the batch spans several lists or purposes.
        """
        entries = [validate_status_list_entry(vc) for vc in vcs]
        if not entries:
            raise ValidationError.empty_batch()

        address = entries[0].address
        if any(entry.address != address for entry in entries):
            raise ConsistencyError()
        if any(entry.purpose != entries[0].purpose for entry in entries):
            raise ConsistencyError("Status purposes must be the same")
        if entries[0].purpose != purpose:
            raise ValidationError.purpose_mismatch(purpose, entries[0].purpose)

        return address, entries

    async def _mutate(
        self, signer: str, vcs: Iterable[Any], purpose: str, turn_on: bool
    ) -> OperationResult:
        address, entries = self.prepare(vcs, purpose)

        document = await self.resolve(f"{self.scheme}://{address}")
        subject = document["credentialSubject"]
        if subject["statusPurpose"] != purpose:
            raise ValidationError.purpose_mismatch(purpose, subject["statusPurpose"])

        bitstring = decode_list(subject["encodedList"])
        for entry in entries:
            if turn_on:
                bitstring.set_bit(entry.index)
            else:
                bitstring.clear_bit(entry.index)
        logger.debug(
            "%s %d bit(s) on %s",
            "Setting" if turn_on else "Clearing",
            len(entries),
            address,
        )

        return await self._submit(signer, address, encode_list(bitstring))

    async def revoke(self, signer: str, vcs: Iterable[Any]) -> OperationResult:
        """Revoke credentials sharing one revocation Manager."""
        return await self._mutate(signer, vcs, PURPOSE_REVOCATION, turn_on=True)

    async def suspend(self, signer: str, vcs: Iterable[Any]) -> OperationResult:
        """Suspend credentials sharing one suspension Manager."""
        return await self._mutate(signer, vcs, PURPOSE_SUSPENSION, turn_on=True)

    async def unsuspend(self, signer: str, vcs: Iterable[Any]) -> OperationResult:
        """Lift the suspension of credentials sharing one suspension Manager."""
        return await self._mutate(signer, vcs, PURPOSE_SUSPENSION, turn_on=False)

    async def _query(self, vc: Any, purpose: str) -> bool:
        entry = validate_status_list_entry(vc)
        if entry.purpose != purpose:
            raise ValidationError.purpose_mismatch(purpose, entry.purpose)

        document = await self.resolve(entry.manager_id)
        subject = document["credentialSubject"]
        if subject["statusPurpose"] != entry.purpose:
            raise ValidationError.purpose_mismatch(entry.purpose, subject["statusPurpose"])

        return decode_list(subject["encodedList"]).test_bit(entry.index)

    async def is_revoked(self, vc: Any) -> bool:
        """Check whether a credential is revoked."""
        return await self._query(vc, PURPOSE_REVOCATION)

    async def is_suspended(self, vc: Any) -> bool:
        """Check whether a credential is suspended."""
        return await self._query(vc, PURPOSE_SUSPENSION)


class RevocationListManager(_Manager):
    """Legacy RevocationList2020 Manager operations."""

    scheme = REVOCATION_LIST_SCHEME

    async def resolve(self, manager_id: str) -> dict[str, Any]:
        """Build the RevocationList2020Credential of a Manager.

        The numeric list held by the Manager is converted to an encoded
        list of at least MIN_LENGTH bytes.
        """
        address = split_manager_id(manager_id, self.scheme)

        owner = await self.ledger.get_owner(address)
        value = await self.ledger.get_list(address)
        try:
            encoded_list = number_to_encoded_list(int(value))
        except (TypeError, ValueError) as e:
            raise LedgerError(f"Invalid list value for {address}: {value!r}") from e
        logger.debug("Resolved %s (owner=%s)", manager_id, owner)

        return {
            "@context": list(REVOCATION_LIST_CONTEXT),
            "id": manager_id,
            "type": list(REVOCATION_LIST_TYPE),
            "issuer": issuer_did(owner),
            "credentialSubject": {
                "id": f"{manager_id}#list",
                "type": "RevocationList2020",
                "encodedList": encoded_list,
            },
        }

    def build_storage(self, owner: str) -> dict[str, Any]:
        return {
            "owner": owner,
            "metadata": metadata_storage(config.REVOCATION_MANAGER_METADATA_URL),
            "list": 0,
        }

    async def originate(self, signer: str) -> Origination:
        """Deploy a legacy Manager owned by ``signer`` with an empty list."""
        return await self._deploy(signer, self.build_storage(signer))

    async def _read_list(self, entry: RevocationListStatus) -> Bitstring:
        document = await self.resolve(entry.manager_id)
        return decode_list(document["credentialSubject"]["encodedList"])

    async def _mutate(self, signer: str, vc: Any, turn_on: bool) -> OperationResult:
        """Rewrite the whole numeric list through the ``default`` entrypoint.

        Index ``p`` addresses the big-endian bytes of the padded list, so
        the stored integer does not line up with Managers updated through
        the contract's ``on``/``off`` entrypoints and read through its
        ``getValue`` view. Lists written one way should not be mutated the
        other way.
        """
        entry = validate_revocation_list_status(vc)

        bitstring = await self._read_list(entry)
        if turn_on:
            bitstring.set_bit(entry.index)
        else:
            bitstring.clear_bit(entry.index)

        return await self._submit(signer, entry.address, bitstring_to_number(bitstring))

    async def revoke(self, signer: str, vc: Any) -> OperationResult:
        """Revoke one credential."""
        return await self._mutate(signer, vc, turn_on=True)

    async def unrevoke(self, signer: str, vc: Any) -> OperationResult:
        """Reinstate one revoked credential."""
        return await self._mutate(signer, vc, turn_on=False)

    async def is_revoked(self, vc: Any) -> bool:
        """Check whether a credential is revoked."""
        entry = validate_revocation_list_status(vc)
        bitstring = await self._read_list(entry)
        return bitstring.test_bit(entry.index)
