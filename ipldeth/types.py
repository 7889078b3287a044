"""Data types served by the eth IPLD server and call-argument handling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ipldeth.nodes import NodeType

logger = logging.getLogger(__name__)

HASH_LENGTH = 32
ADDRESS_LENGTH = 20
BLOOM_LENGTH = 256
MAX_UINT64 = 2**64 - 1

ZERO_ADDRESS = bytes(ADDRESS_LENGTH)
ZERO_HASH = bytes(HASH_LENGTH)


@dataclass
class BlockModel:
    """Raw IPLD block data together with its CID."""

    cid: str = ""
    data: bytes = b""


@dataclass
class AccessTuple:
    """An address and the storage keys a transaction plans to touch."""

    address: bytes = ZERO_ADDRESS
    storage_keys: List[bytes] = field(default_factory=list)


@dataclass
class Log:
    """A contract log event as emitted in a receipt."""

    address: bytes = ZERO_ADDRESS
    topics: List[bytes] = field(default_factory=list)
    data: bytes = b""
    block_number: int = 0
    tx_hash: bytes = ZERO_HASH
    tx_index: int = 0
    block_hash: bytes = ZERO_HASH
    index: int = 0
    removed: bool = False


@dataclass
class RPCTransaction:
    """A transaction in the shape of its RPC representation."""

    block_hash: Optional[bytes] = None
    block_number: Optional[int] = None
    from_address: bytes = ZERO_ADDRESS
    gas: int = 0
    gas_price: Optional[int] = None
    gas_fee_cap: Optional[int] = None
    gas_tip_cap: Optional[int] = None
    hash: bytes = ZERO_HASH
    input: bytes = b""
    nonce: int = 0
    to: Optional[bytes] = None
    transaction_index: Optional[int] = None
    value: Optional[int] = None
    type: int = 0
    accesses: Optional[List[AccessTuple]] = None
    chain_id: Optional[int] = None
    v: Optional[int] = None
    r: Optional[int] = None
    s: Optional[int] = None


@dataclass
class RPCReceipt:
    """A receipt in the shape of its RPC representation."""

    block_hash: Optional[bytes] = None
    block_number: Optional[int] = None
    transaction_hash: Optional[bytes] = None
    transaction_index: Optional[int] = None
    from_address: bytes = ZERO_ADDRESS
    to: Optional[bytes] = None
    gas_used: int = 0
    cumulative_gas_used: int = 0
    contract_address: Optional[bytes] = None
    logs: List[Log] = field(default_factory=list)
    bloom: bytes = bytes(BLOOM_LENGTH)
    root: bytes = b""
    status: int = 0


@dataclass
class StorageResult:
    """A storage slot proof returned by a proof query."""

    key: str = ""
    value: Optional[int] = None
    proof: List[str] = field(default_factory=list)


@dataclass
class AccountResult:
    """An account proof returned by a proof query."""

    address: bytes = ZERO_ADDRESS
    account_proof: List[str] = field(default_factory=list)
    balance: Optional[int] = None
    code_hash: bytes = ZERO_HASH
    nonce: int = 0
    storage_hash: bytes = ZERO_HASH
    storage_proof: List[StorageResult] = field(default_factory=list)


@dataclass(frozen=True)
class Message:
    """A message for EVM execution that does not need a live transaction."""

    from_address: bytes
    to: Optional[bytes]
    nonce: int
    amount: int
    gas_limit: int
    gas_price: int
    gas_fee_cap: int
    gas_tip_cap: int
    data: Optional[bytes]
    access_list: List[AccessTuple]
    check_nonce: bool


@dataclass
class CallArgs:
    """Arguments of an eth_call request."""

    from_address: Optional[bytes] = None
    to: Optional[bytes] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    value: Optional[int] = None
    data: Optional[bytes] = None
    access_list: Optional[List[AccessTuple]] = None
    input: Optional[bytes] = None

    def sender(self) -> bytes:
        """Return the sender address, or the zero address when none is given."""
        return ZERO_ADDRESS if self.from_address is None else self.from_address

    def call_data(self) -> Optional[bytes]:
        """Return the call data, preferring ``input`` over ``data``."""
        if self.input is not None:
            return self.input
        return self.data

    def to_message(self, global_gas_cap: int, base_fee: Optional[int]) -> Message:
        """Convert the arguments into a message for EVM execution.

        Raises ValueError when legacy and EIP-1559 fee fields are mixed.
        """
        if self.gas_price is not None and (
            self.max_fee_per_gas is not None or self.max_priority_fee_per_gas is not None
        ):
            raise ValueError(
                "both gasPrice and (maxFeePerGas or maxPriorityFeePerGas) specified"
            )

        gas = global_gas_cap if global_gas_cap else MAX_UINT64 // 2
        if self.gas is not None:
            gas = self.gas
        if global_gas_cap and global_gas_cap < gas:
            logger.warning(
                "Caller gas above allowance, capping: requested=%d cap=%d",
                gas,
                global_gas_cap,
            )
            gas = global_gas_cap

        if base_fee is None:
            gas_price = self.gas_price or 0
            gas_fee_cap = gas_tip_cap = gas_price
        elif self.gas_price is not None:
            gas_price = gas_fee_cap = gas_tip_cap = self.gas_price
        else:
            gas_fee_cap = self.max_fee_per_gas or 0
            gas_tip_cap = self.max_priority_fee_per_gas or 0
            gas_price = 0
            if gas_fee_cap or gas_tip_cap:
                gas_price = min(gas_tip_cap + base_fee, gas_fee_cap)

        return Message(
            from_address=self.sender(),
            to=self.to,
            nonce=0,
            amount=self.value or 0,
            gas_limit=gas,
            gas_price=gas_price,
            gas_fee_cap=gas_fee_cap,
            gas_tip_cap=gas_tip_cap,
            data=self.call_data(),
            access_list=list(self.access_list) if self.access_list is not None else [],
            check_nonce=False,
        )


@dataclass
class StateNode:
    """A state trie node with its IPLD block."""

    type: NodeType = NodeType.UNKNOWN
    state_leaf_key: bytes = ZERO_HASH
    path: bytes = b""
    ipld: BlockModel = field(default_factory=BlockModel)


@dataclass
class StorageNode:
    """A storage trie node with its IPLD block."""

    type: NodeType = NodeType.UNKNOWN
    state_leaf_key: bytes = ZERO_HASH
    storage_leaf_key: bytes = ZERO_HASH
    path: bytes = b""
    ipld: BlockModel = field(default_factory=BlockModel)


@dataclass
class IPLDs:
    """Raw IPLD block data for one block, as fetched and returned by the server."""

    block_number: Optional[int] = None
    total_difficulty: Optional[int] = None
    header: BlockModel = field(default_factory=BlockModel)
    uncles: List[BlockModel] = field(default_factory=list)
    transactions: List[BlockModel] = field(default_factory=list)
    receipts: List[BlockModel] = field(default_factory=list)
    state_nodes: List[StateNode] = field(default_factory=list)
    storage_nodes: List[StorageNode] = field(default_factory=list)


@dataclass
class LogResult:
    """A log row joined with its receipt, transaction and header."""

    leaf_cid: str = ""
    receipt_id: int = 0
    address: str = ""
    index: int = 0
    data: bytes = b""
    topic0: str = ""
    topic1: str = ""
    topic2: str = ""
    topic3: str = ""
    log_leaf_data: bytes = b""
    rct_cid: str = ""
    rct_status: int = 0
    block_number: str = ""
    block_hash: str = ""
    txn_index: int = 0
    tx_hash: str = ""