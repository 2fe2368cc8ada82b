"""Tests for the Tezos RPC ledger accessor."""

import json

import httpx
import pytest
import respx
from httpx import Response

from conftest import SIGNER, contract_address, make_vc
from vc_status_manager import (
    MIN_BITS,
    Bitstring,
    HttpInjector,
    LedgerError,
    OperationStatus,
    StatusListManager,
    TezosRpcLedger,
    encode_list,
)
from vc_status_manager.rpc import bind_storage, to_micheline

RPC = "http://tezos.test"
SIGNER_URL = "http://signer.test"
ADDRESS = contract_address("rpc")
MANAGER_ID = f"slist://{ADDRESS}"
CHAIN = f"{RPC}/chains/main"
OP_HASH = "ooYnFTK2SK8DKHtmXGQ7D8cqVKT8RUUUcUNcNTM4ZvyFFbmyCWg"

STORAGE_TYPE = {
    "prim": "pair",
    "args": [
        {"prim": "string", "annots": ["%list"]},
        {
            "prim": "big_map",
            "args": [{"prim": "string"}, {"prim": "bytes"}],
            "annots": ["%metadata"],
        },
        {"prim": "address", "annots": ["%owner"]},
        {"prim": "string", "annots": ["%purpose"]},
    ],
}


def script(encoded_list: str, purpose: str = "revocation") -> dict:
    """Contract script as returned by the node."""
    return {
        "code": [
            {"prim": "parameter", "args": [{"prim": "string", "annots": ["%default"]}]},
            {"prim": "storage", "args": [STORAGE_TYPE]},
            {"prim": "code", "args": [[]]},
        ],
        "storage": {
            "prim": "Pair",
            "args": [
                {"string": encoded_list},
                {"int": "4012"},
                {"string": SIGNER},
                {"string": purpose},
            ],
        },
    }


def receipt(status: str = "applied", **result) -> list:
    return [
        {
            "hash": OP_HASH,
            "contents": [
                {
                    "kind": "transaction",
                    "metadata": {"operation_result": {"status": status, **result}},
                }
            ],
        }
    ]


def levels(*values: int) -> list:
    return [Response(200, json={"level": level}) for level in values]


class TestBindStorage:
    """Tests for Micheline storage decoding."""

    def test_flat_comb(self):
        """Test a flattened n-ary pair."""
        fields = bind_storage(STORAGE_TYPE, script("abc")["storage"])
        assert fields == {"list": "abc", "metadata": 4012, "owner": SIGNER, "purpose": "revocation"}

    def test_nested_pairs(self):
        """Test explicitly nested pairs and sequence notation."""
        storage_type = {
            "prim": "pair",
            "args": [
                {"prim": "pair", "args": [
                    {"prim": "nat", "annots": ["%list"]},
                    {"prim": "big_map", "args": [], "annots": ["%metadata"]},
                ]},
                {"prim": "address", "annots": ["%owner"]},
            ],
        }
        value = [[{"int": "5"}, {"int": "1"}], {"string": SIGNER}]
        assert bind_storage(storage_type, value) == {"list": 5, "metadata": 1, "owner": SIGNER}

    def test_mismatch(self):
        """Test a storage value that does not fit its type."""
        with pytest.raises(LedgerError):
            bind_storage(STORAGE_TYPE, {"string": "oops"})

    def test_to_micheline(self):
        assert to_micheline("abc") == {"string": "abc"}
        assert to_micheline(12) == {"int": "12"}


class TestViews:
    """Tests for reading Manager views."""

    @pytest.mark.asyncio
    async def test_resolve(self):
        """Test resolving a Manager through the RPC."""
        encoded = encode_list(Bitstring.zeros(MIN_BITS))
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/context/contracts/{ADDRESS}/script").mock(
                return_value=Response(200, json=script(encoded))
            )
            manager = StatusListManager(TezosRpcLedger(RPC))
            document = await manager.resolve(MANAGER_ID)

        assert document["issuer"] == f"did:pkh:tz:{SIGNER}"
        assert document["credentialSubject"]["statusPurpose"] == "revocation"
        assert document["credentialSubject"]["encodedList"] == encoded

    @pytest.mark.asyncio
    async def test_is_revoked(self):
        """Test querying a revoked credential through the RPC."""
        encoded = encode_list(Bitstring.zeros(MIN_BITS).set_bit(42))
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/context/contracts/{ADDRESS}/script").mock(
                return_value=Response(200, json=script(encoded))
            )
            manager = StatusListManager(TezosRpcLedger(RPC))
            assert await manager.is_revoked(make_vc(MANAGER_ID, 42)) is True
            assert await manager.is_revoked(make_vc(MANAGER_ID, 43)) is False

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test an unknown contract."""
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/context/contracts/{ADDRESS}/script").mock(
                return_value=Response(404, json=[])
            )
            with pytest.raises(LedgerError) as exc_info:
                await TezosRpcLedger(RPC).get_owner(ADDRESS)
        assert exc_info.value.code == "CONTRACT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test transport failures surface as LedgerError."""
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/context/contracts/{ADDRESS}/script").mock(
                side_effect=httpx.ConnectError("connection refused")
            )
            with pytest.raises(LedgerError, match="Network error"):
                await TezosRpcLedger(RPC).get_list(ADDRESS)

    def test_rpc_without_scheme(self):
        """Test host:port RPC values get an http scheme."""
        assert TezosRpcLedger("localhost:8080").rpc_url == "http://localhost:8080"


class TestSubmission:
    """Tests for injection and confirmation tracking."""

    def ledger(self, **kwargs) -> TezosRpcLedger:
        return TezosRpcLedger(
            RPC,
            injector=HttpInjector(SIGNER_URL),
            poll_interval=0,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_submit_without_injector(self):
        """Test state changes need an injector."""
        with pytest.raises(LedgerError, match="No injector"):
            await TezosRpcLedger(RPC).submit(SIGNER, ADDRESS, "abc")

    @pytest.mark.asyncio
    async def test_confirmation(self):
        """Test an operation is confirmed once deep enough."""
        with respx.mock:
            inject = respx.post(f"{SIGNER_URL}/transactions").mock(
                return_value=Response(200, json={"hash": OP_HASH})
            )
            respx.get(f"{CHAIN}/blocks/head/header").mock(side_effect=levels(10, 11, 12, 13))
            respx.get(f"{CHAIN}/blocks/11/operation_hashes").mock(
                return_value=Response(200, json=[[], [], [], [OP_HASH]])
            )
            respx.get(f"{CHAIN}/blocks/11/operations/3").mock(
                return_value=Response(200, json=receipt())
            )

            operation = await self.ledger().submit(SIGNER, ADDRESS, "H4sI")
            assert operation.status == OperationStatus.PENDING
            result = await operation.confirmation(3)

        assert result.status == OperationStatus.APPLIED
        assert result.level == 11
        assert result.confirmations == 3
        payload = json.loads(inject.calls.last.request.content)
        assert payload["destination"] == ADDRESS
        assert payload["parameters"] == {"string": "H4sI"}

    @pytest.mark.asyncio
    async def test_failed_operation(self):
        """Test a backtracked operation is reported as failed."""
        with respx.mock:
            respx.post(f"{SIGNER_URL}/transactions").mock(
                return_value=Response(200, json={"hash": OP_HASH})
            )
            respx.get(f"{CHAIN}/blocks/head/header").mock(side_effect=levels(10, 11))
            respx.get(f"{CHAIN}/blocks/11/operation_hashes").mock(
                return_value=Response(200, json=[[], [], [], [OP_HASH]])
            )
            respx.get(f"{CHAIN}/blocks/11/operations/3").mock(
                return_value=Response(200, json=receipt("backtracked"))
            )

            operation = await self.ledger().submit(SIGNER, ADDRESS, "H4sI")
            result = await operation.confirmation(3)

        assert result.status == OperationStatus.FAILED

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self):
        """Test waiting gives up after the confirmation timeout."""
        with respx.mock:
            respx.post(f"{SIGNER_URL}/transactions").mock(
                return_value=Response(200, json={"hash": OP_HASH})
            )
            respx.get(f"{CHAIN}/blocks/head/header").mock(
                return_value=Response(200, json={"level": 10})
            )

            operation = await self.ledger(confirmation_timeout=0).submit(SIGNER, ADDRESS, "H4sI")
            with pytest.raises(LedgerError) as exc_info:
                await operation.confirmation(1)

        assert exc_info.value.code == "CONFIRMATION_TIMEOUT"

    @pytest.mark.asyncio
    async def test_injector_error(self):
        """Test gateway failures surface as LedgerError."""
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/header").mock(
                return_value=Response(200, json={"level": 10})
            )
            respx.post(f"{SIGNER_URL}/transactions").mock(return_value=Response(500))
            with pytest.raises(LedgerError, match="500"):
                await self.ledger().submit(SIGNER, ADDRESS, "H4sI")

    @pytest.mark.asyncio
    async def test_originate(self):
        """Test origination picks up the originated contract address."""
        with respx.mock:
            respx.post(f"{SIGNER_URL}/originations").mock(
                return_value=Response(200, json={"hash": OP_HASH})
            )
            respx.get(f"{CHAIN}/blocks/head/header").mock(side_effect=levels(20, 21))
            respx.get(f"{CHAIN}/blocks/21/operation_hashes").mock(
                return_value=Response(200, json=[[], [], [], [OP_HASH]])
            )
            respx.get(f"{CHAIN}/blocks/21/operations/3").mock(
                return_value=Response(200, json=receipt(originated_contracts=[ADDRESS]))
            )

            manager = StatusListManager(self.ledger(), confirmations=1)
            origination = await manager.originate(SIGNER, "suspension")

        assert origination.id == MANAGER_ID
        assert origination.operation.level == 21

    @pytest.mark.asyncio
    async def test_malformed_header(self):
        """Test a block header without a level surfaces as LedgerError."""
        with respx.mock:
            respx.get(f"{CHAIN}/blocks/head/header").mock(
                return_value=Response(200, json={"hash": "BLockGenesis"})
            )
            with pytest.raises(LedgerError, match="Malformed block header"):
                await TezosRpcLedger(RPC).head_level()

    @pytest.mark.asyncio
    async def test_malformed_receipt(self):
        """Test an unreadable receipt surfaces as LedgerError."""
        with respx.mock:
            respx.post(f"{SIGNER_URL}/transactions").mock(
                return_value=Response(200, json={"hash": OP_HASH})
            )
            respx.get(f"{CHAIN}/blocks/head/header").mock(side_effect=levels(10, 11))
            respx.get(f"{CHAIN}/blocks/11/operation_hashes").mock(
                return_value=Response(200, json=[[], [], [], [OP_HASH]])
            )
            respx.get(f"{CHAIN}/blocks/11/operations/3").mock(
                return_value=Response(200, json=["not an operation"])
            )

            operation = await self.ledger().submit(SIGNER, ADDRESS, "H4sI")
            with pytest.raises(LedgerError, match="Malformed receipt"):
                await operation.confirmation(1)
