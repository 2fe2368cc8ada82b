"""
Ledger accessor interface.

The status list core never talks to a network itself. It is handed a
Ledger that can read a Manager's views and submit state changes, and it
only reports success once a submitted operation is confirmed.

InMemoryLedger is a sandbox implementation that mimics the Manager
contract: only the owner may replace the list, the purpose is fixed at
origination, and a submitted operation takes effect when it is confirmed.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Union, runtime_checkable

import base58

from vc_status_manager.errors import LedgerError
from vc_status_manager.validator import CONTRACT_ADDRESS_PREFIX

logger = logging.getLogger(__name__)

# Encoded list (StatusList2021) or numeric list (RevocationList2020)
ListValue = Union[str, int]

# Base58check prefix of operation hashes (o...)
OPERATION_HASH_PREFIX = bytes([5, 116])


class OperationStatus(Enum):
    """Lifecycle of a submitted operation."""

    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class OperationResult:
    """Outcome of a confirmed (or failed) operation."""

    hash: str
    status: OperationStatus
    level: int | None = None
    confirmations: int = 0
    contract_address: str | None = None
    error: str | None = None

    @property
    def applied(self) -> bool:
        return self.status == OperationStatus.APPLIED


@runtime_checkable
class PendingOperation(Protocol):
    """An operation that has been submitted but not necessarily confirmed."""

    hash: str
    contract_address: str | None

    @property
    def status(self) -> OperationStatus: ...

    async def confirmation(self, depth: int = 1) -> OperationResult: ...


@runtime_checkable
class Ledger(Protocol):
    """Access to Manager objects held on a ledger."""

    async def get_owner(self, address: str) -> str: ...

    async def get_purpose(self, address: str) -> str | None: ...

    async def get_list(self, address: str) -> ListValue: ...

    async def submit(
        self, signer: str, address: str, new_list: ListValue
    ) -> PendingOperation: ...

    async def deploy(self, signer: str, storage: dict[str, Any]) -> PendingOperation: ...


def _blake2b(data: bytes, size: int) -> bytes:
    return hashlib.blake2b(data, digest_size=size).digest()


@dataclass
class ManagerRecord:
    """Storage of one sandbox Manager."""

    owner: str
    list: ListValue
    purpose: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class SandboxOperation:
    """Pending operation against an InMemoryLedger."""

    def __init__(
        self,
        ledger: InMemoryLedger,
        op_hash: str,
        apply: Any,
        contract_address: str | None = None,
    ) -> None:
        self.hash = op_hash
        self.contract_address = contract_address
        self._ledger = ledger
        self._apply = apply
        self._result: OperationResult | None = None

    @property
    def status(self) -> OperationStatus:
        if self._result is None:
            return OperationStatus.PENDING
        return self._result.status

    async def confirmation(self, depth: int = 1) -> OperationResult:
        """Include the operation in a block and bake ``depth`` blocks on top."""
        if self._result is None:
            self._result = self._ledger._include(self)
        if self._result.status == OperationStatus.APPLIED:
            self._ledger.level = max(self._ledger.level, self._result.level + depth - 1)
            self._result.confirmations = self._ledger.level - self._result.level + 1
        return self._result


class InMemoryLedger:
    """Sandbox ledger holding Manager records in memory."""

    def __init__(self) -> None:
        self.managers: dict[str, ManagerRecord] = {}
        self.level = 0
        self.submitted: list[SandboxOperation] = []
        self._counter = itertools.count()

    def _record(self, address: str) -> ManagerRecord:
        try:
            return self.managers[address]
        except KeyError:
            raise LedgerError.not_found(address) from None

    def _next_hash(self) -> str:
        payload = _blake2b(f"op-{next(self._counter)}".encode(), 32)
        return base58.b58encode_check(OPERATION_HASH_PREFIX + payload).decode("ascii")

    def _next_address(self) -> str:
        payload = _blake2b(f"contract-{len(self.managers)}-{next(self._counter)}".encode(), 20)
        return base58.b58encode_check(CONTRACT_ADDRESS_PREFIX + payload).decode("ascii")

    def _include(self, operation: SandboxOperation) -> OperationResult:
        self.level += 1
        try:
            operation._apply()
        except LedgerError as e:
            logger.debug("Sandbox operation %s failed: %s", operation.hash, e)
            return OperationResult(
                hash=operation.hash,
                status=OperationStatus.FAILED,
                level=self.level,
                contract_address=operation.contract_address,
                error=e.message,
            )
        return OperationResult(
            hash=operation.hash,
            status=OperationStatus.APPLIED,
            level=self.level,
            confirmations=1,
            contract_address=operation.contract_address,
        )

    async def get_owner(self, address: str) -> str:
        return self._record(address).owner

    async def get_purpose(self, address: str) -> str | None:
        return self._record(address).purpose

    async def get_list(self, address: str) -> ListValue:
        return self._record(address).list

    async def submit(
        self, signer: str, address: str, new_list: ListValue
    ) -> SandboxOperation:
        self._record(address)

        def apply() -> None:
            record = self._record(address)
            if signer != record.owner:
                raise LedgerError(f"Unauthorized: {signer} is not the owner of {address}")
            if type(new_list) is not type(record.list):
                raise LedgerError(
                    f"Invalid list type {type(new_list).__name__} for {address}"
                )
            record.list = new_list

        operation = SandboxOperation(self, self._next_hash(), apply)
        self.submitted.append(operation)
        return operation

    async def deploy(self, signer: str, storage: dict[str, Any]) -> SandboxOperation:
        address = self._next_address()

        def apply() -> None:
            self.managers[address] = ManagerRecord(
                owner=storage["owner"],
                list=storage["list"],
                purpose=storage.get("purpose"),
                metadata=dict(storage.get("metadata", {})),
            )

        operation = SandboxOperation(self, self._next_hash(), apply, contract_address=address)
        self.submitted.append(operation)
        return operation
