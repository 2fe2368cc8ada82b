"""
VC Status Manager - status lists for Verifiable Credentials on Tezos.

Supports:
- W3C StatusList2021 revocation and suspension lists (slist://)
- RevocationList2020 revocation lists (rlist://)
- Batched revoke/suspend/unsuspend with confirmation tracking
- Tezos RPC views and an in-memory sandbox ledger
"""

__version__ = "0.1.0"

from vc_status_manager.bitstring import Bitstring
from vc_status_manager.codec import (
    MIN_BITS,
    MIN_LENGTH,
    decode_list,
    encode_list,
    encoded_list_to_number,
    number_to_encoded_list,
)
from vc_status_manager.errors import (
    ConsistencyError,
    DecodeError,
    LedgerError,
    RangeError,
    StatusManagerError,
    ValidationError,
)
from vc_status_manager.ledger import (
    InMemoryLedger,
    Ledger,
    OperationResult,
    OperationStatus,
    PendingOperation,
)
from vc_status_manager.protocol import (
    Origination,
    RevocationListManager,
    StatusListManager,
)
from vc_status_manager.rpc import HttpInjector, TezosRpcLedger
from vc_status_manager.validator import (
    RevocationListStatus,
    StatusListEntry,
    parse_credential_status,
    validate_revocation_list_status,
    validate_status_list_entry,
)

__all__ = [
    "Bitstring",
    "MIN_BITS",
    "MIN_LENGTH",
    "encode_list",
    "decode_list",
    "number_to_encoded_list",
    "encoded_list_to_number",
    "StatusManagerError",
    "RangeError",
    "DecodeError",
    "ValidationError",
    "ConsistencyError",
    "LedgerError",
    "Ledger",
    "PendingOperation",
    "OperationResult",
    "OperationStatus",
    "InMemoryLedger",
    "TezosRpcLedger",
    "HttpInjector",
    "StatusListManager",
    "RevocationListManager",
    "Origination",
    "StatusListEntry",
    "RevocationListStatus",
    "parse_credential_status",
    "validate_status_list_entry",
    "validate_revocation_list_status",
]
