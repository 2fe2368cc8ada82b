"""
Tezos RPC ledger accessor.

Reads Manager views from a Tezos node and tracks operation confirmation.
Manager storage is read from the contract script: the storage type's field
annotations (``%owner``, ``%purpose``, ``%list``) are matched against the
storage value.

Signing and broadcasting are not done here. State changes are handed to
an Injector, e.g. HttpInjector which posts them to an external signing
gateway, and the returned operation hash is then tracked through the RPC.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

import httpx

from vc_status_manager import config
from vc_status_manager.errors import LedgerError
from vc_status_manager.ledger import ListValue, OperationResult, OperationStatus

logger = logging.getLogger(__name__)

# Validation pass holding manager (transaction, origination) operations
MANAGER_PASS = 3


def _comb(args: list[Any], prim: str) -> list[Any]:
    """Fold a flat n-ary pair into its right comb ``[a, Pair(b, ...)]``."""
    if len(args) <= 2:
        return args
    return [args[0], {"prim": prim, "args": args[1:]}]


def _pair_args(value: Any) -> list[Any]:
    if isinstance(value, list):
        return _comb(value, "Pair")
    if isinstance(value, dict) and value.get("prim") == "Pair":
        return _comb(value.get("args", []), "Pair")
    raise LedgerError(f"Storage value does not match pair type: {value!r}")


def _field_name(node: dict[str, Any]) -> str | None:
    for annot in node.get("annots", []):
        if annot.startswith("%"):
            return annot[1:]
    return None


def _literal(value: Any) -> Any:
    if isinstance(value, dict):
        if "string" in value:
            return value["string"]
        if "int" in value:
            return int(value["int"])
        if "bytes" in value:
            return value["bytes"]
    return value


def bind_storage(storage_type: dict[str, Any], value: Any) -> dict[str, Any]:
    """Map annotated storage fields to their (literal) values.

    Args:
        storage_type: Micheline type of the contract storage.
        value: Micheline storage value.

    Returns:
        Field name -> value for every annotated leaf.
    """
    fields: dict[str, Any] = {}

    def walk(node: dict[str, Any], node_value: Any) -> None:
        if node.get("prim") == "pair":
            type_args = _comb(node.get("args", []), "pair")
            value_args = _pair_args(node_value)
            if len(type_args) != len(value_args):
                raise LedgerError("Storage value does not match its type")
            for child_type, child_value in zip(type_args, value_args):
                walk(child_type, child_value)
            return
        name = _field_name(node)
        if name:
            fields[name] = _literal(node_value)

    walk(storage_type, value)
    return fields


def to_micheline(value: ListValue) -> dict[str, str]:
    """Michelson parameter for a new list value."""
    if isinstance(value, int):
        return {"int": str(value)}
    return {"string": value}


class Injector(Protocol):
    """Signs and broadcasts operations on behalf of a signer."""

    async def inject_transaction(
        self, source: str, destination: str, entrypoint: str, parameters: dict[str, Any]
    ) -> str: ...

    async def inject_origination(
        self, source: str, storage: dict[str, Any]
    ) -> tuple[str, str | None]: ...


class HttpInjector:
    """Injector backed by an external signing gateway."""

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the injector.

        Args:
            url: Base URL of the signing gateway.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.url = url.rstrip("/")
        self.timeout = config.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self.verify_ssl = verify_ssl

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise LedgerError(
                f"HTTP error injecting operation via {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise LedgerError(f"Network error injecting operation: {e}") from e
        except ValueError as e:
            raise LedgerError(f"Invalid JSON from injector {url}") from e

        if not isinstance(data, dict) or not data.get("hash"):
            raise LedgerError(f"Injector {url} returned no operation hash")
        return data

    async def inject_transaction(
        self, source: str, destination: str, entrypoint: str, parameters: dict[str, Any]
    ) -> str:
        data = await self._post(
            "/transactions",
            {
                "source": source,
                "destination": destination,
                "entrypoint": entrypoint,
                "parameters": parameters,
            },
        )
        return data["hash"]

    async def inject_origination(
        self, source: str, storage: dict[str, Any]
    ) -> tuple[str, str | None]:
        data = await self._post("/originations", {"source": source, "storage": storage})
        return data["hash"], data.get("contract_address")


class RpcOperation:
    """Operation tracked through the node RPC until confirmed."""

    def __init__(
        self,
        ledger: TezosRpcLedger,
        op_hash: str,
        submitted_level: int,
        contract_address: str | None = None,
    ) -> None:
        self.hash = op_hash
        self.contract_address = contract_address
        self._ledger = ledger
        self._checked_level = submitted_level
        self._included_level: int | None = None
        self._result: OperationResult | None = None

    @property
    def status(self) -> OperationStatus:
        if self._result is None:
            return OperationStatus.PENDING
        return self._result.status

    async def _find_inclusion(self, head_level: int) -> None:
        for level in range(self._checked_level + 1, head_level + 1):
            groups = await self._ledger._get(f"/blocks/{level}/operation_hashes")
            try:
                included = any(self.hash in group for group in groups)
            except TypeError as e:
                raise LedgerError(f"Malformed operation hashes at level {level}") from e
            if included:
                self._included_level = level
                await self._read_receipt(level)
                return
            self._checked_level = level

    async def _read_receipt(self, level: int) -> None:
        operations = await self._ledger._get(f"/blocks/{level}/operations/{MANAGER_PASS}")
        try:
            receipt = next((op for op in operations if op.get("hash") == self.hash), None)
            results = [
                content.get("metadata", {}).get("operation_result", {})
                for content in (receipt or {}).get("contents", [])
            ]
            failed = [r for r in results if r.get("status") != "applied"]
            originated = [c for r in results for c in r.get("originated_contracts") or []]
        except (AttributeError, TypeError) as e:
            raise LedgerError(f"Malformed receipt for {self.hash} at level {level}") from e

        if originated and not self.contract_address:
            self.contract_address = originated[0]

        self._result = OperationResult(
            hash=self.hash,
            status=OperationStatus.FAILED if failed or not results else OperationStatus.APPLIED,
            level=level,
            contract_address=self.contract_address,
            error=", ".join(str(r.get("errors", r.get("status"))) for r in failed) or None,
        )

    async def confirmation(self, depth: int = 1) -> OperationResult:
        """Wait until the operation is ``depth`` blocks deep.

        Raises:
            LedgerError: If the operation is not confirmed before the
                ledger's confirmation timeout.
        """
        deadline = time.monotonic() + self._ledger.confirmation_timeout
        while True:
            head_level = await self._ledger.head_level()
            if self._included_level is None:
                await self._find_inclusion(head_level)

            if self._result is not None:
                if self._result.status == OperationStatus.FAILED:
                    return self._result
                confirmations = head_level - self._included_level + 1
                if confirmations >= depth:
                    self._result.confirmations = confirmations
                    return self._result

            if time.monotonic() >= deadline:
                raise LedgerError.confirmation_timeout(
                    self.hash, self._ledger.confirmation_timeout
                )
            await asyncio.sleep(self._ledger.poll_interval)


class TezosRpcLedger:
    """Ledger accessor talking to a Tezos node."""

    def __init__(
        self,
        rpc_url: str | None = None,
        injector: Injector | None = None,
        chain: str | None = None,
        timeout: float | None = None,
        verify_ssl: bool = True,
        poll_interval: float | None = None,
        confirmation_timeout: float | None = None,
    ) -> None:
        """Initialize the RPC ledger.

        Args:
            rpc_url: Base URL of the Tezos node RPC.
            injector: Signs and broadcasts state changes. Views work without one.
            chain: Chain id or alias used in RPC paths.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            poll_interval: Seconds between confirmation polls.
            confirmation_timeout: Seconds to wait for a confirmation.
        """
        rpc_url = rpc_url or config.TEZOS_RPC
        if "://" not in rpc_url:
            rpc_url = f"http://{rpc_url}"
        self.rpc_url = rpc_url.rstrip("/")
        self.injector = injector
        self.chain = chain or config.CHAIN
        self.timeout = config.HTTP_TIMEOUT_SECONDS if timeout is None else timeout
        self.verify_ssl = verify_ssl
        self.poll_interval = (
            config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )
        self.confirmation_timeout = (
            config.CONFIRMATION_TIMEOUT_SECONDS
            if confirmation_timeout is None
            else confirmation_timeout
        )

    async def _get(self, path: str) -> Any:
        """GET a chain-relative RPC path and return its JSON body."""
        url = f"{self.rpc_url}/chains/{self.chain}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise LedgerError(
                f"HTTP error fetching {url}: {e.response.status_code}",
                code=f"HTTP_{e.response.status_code}",
            ) from e
        except httpx.RequestError as e:
            raise LedgerError(f"Network error fetching {url}: {e}") from e
        except ValueError as e:
            raise LedgerError(f"Invalid JSON from {url}") from e

    async def head_level(self) -> int:
        header = await self._get("/blocks/head/header")
        try:
            return int(header["level"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"Malformed block header: {header!r}") from e

    async def _storage(self, address: str) -> dict[str, Any]:
        try:
            script = await self._get(f"/blocks/head/context/contracts/{address}/script")
        except LedgerError as e:
            if e.code == "HTTP_404":
                raise LedgerError.not_found(address) from e
            raise

        try:
            storage_type = next(
                (
                    section["args"][0]
                    for section in script.get("code", [])
                    if isinstance(section, dict) and section.get("prim") == "storage"
                ),
                None,
            )
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise LedgerError(f"Malformed script for contract {address}") from e
        if storage_type is None:
            raise LedgerError(f"Contract {address} has no storage section")
        return bind_storage(storage_type, script.get("storage"))

    async def _field(self, address: str, name: str) -> Any:
        fields = await self._storage(address)
        if name not in fields:
            raise LedgerError(f"Contract {address} has no '{name}' field")
        return fields[name]

    async def get_owner(self, address: str) -> str:
        return await self._field(address, "owner")

    async def get_purpose(self, address: str) -> str | None:
        return (await self._storage(address)).get("purpose")

    async def get_list(self, address: str) -> ListValue:
        return await self._field(address, "list")

    def _require_injector(self) -> Injector:
        if self.injector is None:
            raise LedgerError("No injector configured: state changes need a signing gateway")
        return self.injector

    async def submit(self, signer: str, address: str, new_list: ListValue) -> RpcOperation:
        injector = self._require_injector()
        level = await self.head_level()
        op_hash = await injector.inject_transaction(
            signer, address, "default", to_micheline(new_list)
        )
        logger.debug("Injected %s at level %d", op_hash, level)
        return RpcOperation(self, op_hash, level)

    async def deploy(self, signer: str, storage: dict[str, Any]) -> RpcOperation:
        injector = self._require_injector()
        level = await self.head_level()
        op_hash, contract_address = await injector.inject_origination(signer, storage)
        logger.debug("Injected origination %s at level %d", op_hash, level)
        return RpcOperation(self, op_hash, level, contract_address=contract_address)
