"""Retrieval of raw IPLD data (headers, uncles, transactions, receipts, state and storage) from Postgres."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional, Tuple, Union

from ipldeth.nodes import NodeType, RLPError, decode_leaf_node, keccak256, rlp_decode
from ipldeth.types import HASH_LENGTH, BlockModel

HashLike = Union[bytes, bytearray, str]

EMPTY_NODE_VALUE = bytes(HASH_LENGTH)
REMOVED_NODE = NodeType.REMOVED

RETRIEVE_HEADERS_BY_HASHES = """SELECT cid, data
    FROM eth.header_cids
        INNER JOIN public.blocks ON (header_cids.mh_key = blocks.key)
    WHERE block_hash = ANY($1::VARCHAR(66)[])"""
RETRIEVE_HEADERS_BY_BLOCK_NUMBER = """SELECT cid, data
    FROM eth.header_cids
        INNER JOIN public.blocks ON (header_cids.mh_key = blocks.key)
    WHERE block_number = $1"""
RETRIEVE_HEADER_BY_HASH = """SELECT cid, data
    FROM eth.header_cids
        INNER JOIN public.blocks ON (header_cids.mh_key = blocks.key)
    WHERE block_hash = $1"""
RETRIEVE_UNCLES_BY_HASHES = """SELECT cid, data
    FROM eth.uncle_cids
        INNER JOIN public.blocks ON (uncle_cids.mh_key = blocks.key)
    WHERE block_hash = ANY($1::VARCHAR(66)[])"""
RETRIEVE_UNCLES_BY_BLOCK_HASH = """SELECT uncle_cids.cid, data
    FROM eth.uncle_cids
        INNER JOIN eth.header_cids ON (uncle_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (uncle_cids.mh_key = blocks.key)
    WHERE block_hash = $1"""
RETRIEVE_UNCLES_BY_BLOCK_NUMBER = """SELECT uncle_cids.cid, data
    FROM eth.uncle_cids
        INNER JOIN eth.header_cids ON (uncle_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (uncle_cids.mh_key = blocks.key)
    WHERE block_number = $1"""
RETRIEVE_UNCLE_BY_HASH = """SELECT cid, data
    FROM eth.uncle_cids
        INNER JOIN public.blocks ON (uncle_cids.mh_key = blocks.key)
    WHERE block_hash = $1"""
RETRIEVE_TRANSACTIONS_BY_HASHES = """SELECT cid, data
    FROM eth.transaction_cids
        INNER JOIN public.blocks ON (transaction_cids.mh_key = blocks.key)
    WHERE tx_hash = ANY($1::VARCHAR(66)[])"""
RETRIEVE_TRANSACTIONS_BY_BLOCK_HASH = """SELECT transaction_cids.cid, data
    FROM eth.transaction_cids
        INNER JOIN eth.header_cids ON (transaction_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (transaction_cids.mh_key = blocks.key)
    WHERE block_hash = $1
    ORDER BY eth.transaction_cids.index ASC"""
RETRIEVE_TRANSACTIONS_BY_BLOCK_NUMBER = """SELECT transaction_cids.cid, data
    FROM eth.transaction_cids
        INNER JOIN eth.header_cids ON (transaction_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (transaction_cids.mh_key = blocks.key)
    WHERE block_number = $1
    ORDER BY eth.transaction_cids.index ASC"""
RETRIEVE_TRANSACTION_BY_HASH = """SELECT cid, data
    FROM eth.transaction_cids
        INNER JOIN public.blocks ON (transaction_cids.mh_key = blocks.key)
    WHERE tx_hash = $1"""
RETRIEVE_RECEIPTS_BY_TX_HASHES = """SELECT receipt_cids.leaf_cid, data
    FROM eth.receipt_cids
        INNER JOIN eth.transaction_cids ON (receipt_cids.tx_id = transaction_cids.id)
        INNER JOIN public.blocks ON (receipt_cids.leaf_mh_key = blocks.key)
    WHERE tx_hash = ANY($1::VARCHAR(66)[])"""
RETRIEVE_RECEIPTS_BY_BLOCK_HASH = """SELECT receipt_cids.leaf_cid, data, eth.transaction_cids.tx_hash
    FROM eth.receipt_cids
        INNER JOIN eth.transaction_cids ON (receipt_cids.tx_id = transaction_cids.id)
        INNER JOIN eth.header_cids ON (transaction_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (receipt_cids.leaf_mh_key = blocks.key)
    WHERE block_hash = $1
    ORDER BY eth.transaction_cids.index ASC"""
RETRIEVE_RECEIPTS_BY_BLOCK_NUMBER = """SELECT receipt_cids.leaf_cid, data
    FROM eth.receipt_cids
        INNER JOIN eth.transaction_cids ON (receipt_cids.tx_id = transaction_cids.id)
        INNER JOIN eth.header_cids ON (transaction_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (receipt_cids.leaf_mh_key = blocks.key)
    WHERE block_number = $1
    ORDER BY eth.transaction_cids.index ASC"""
RETRIEVE_RECEIPT_BY_TX_HASH = """SELECT receipt_cids.leaf_cid, data
    FROM eth.receipt_cids
        INNER JOIN eth.transaction_cids ON (receipt_cids.tx_id = transaction_cids.id)
        INNER JOIN public.blocks ON (receipt_cids.leaf_mh_key = blocks.key)
    WHERE tx_hash = $1"""
RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_HASH = """SELECT state_cids.cid, data, state_cids.node_type
    FROM eth.state_cids
        INNER JOIN eth.header_cids ON (state_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (state_cids.mh_key = blocks.key)
    WHERE state_leaf_key = $1
    AND block_number <= (SELECT block_number
                        FROM eth.header_cids
                        WHERE block_hash = $2)
    AND header_cids.id = (SELECT canonical_header_id(block_number))
    ORDER BY block_number DESC
    LIMIT 1"""
RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_NUMBER = """SELECT state_cids.cid, data, state_cids.node_type
    FROM eth.state_cids
        INNER JOIN eth.header_cids ON (state_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (state_cids.mh_key = blocks.key)
    WHERE state_leaf_key = $1
    AND block_number <= $2
    ORDER BY block_number DESC
    LIMIT 1"""
RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_NUMBER = """SELECT storage_cids.cid, data, storage_cids.node_type, was_state_leaf_removed($1, $3) AS state_leaf_removed
    FROM eth.storage_cids
        INNER JOIN eth.state_cids ON (storage_cids.state_id = state_cids.id)
        INNER JOIN eth.header_cids ON (state_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (storage_cids.mh_key = blocks.key)
    WHERE state_leaf_key = $1
    AND storage_leaf_key = $2
    AND block_number <= $3
    ORDER BY block_number DESC
    LIMIT 1"""
RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_HASH = """SELECT storage_cids.cid, data, storage_cids.node_type, was_state_leaf_removed($1, $3) AS state_leaf_removed
    FROM eth.storage_cids
        INNER JOIN eth.state_cids ON (storage_cids.state_id = state_cids.id)
        INNER JOIN eth.header_cids ON (state_cids.header_id = header_cids.id)
        INNER JOIN public.blocks ON (storage_cids.mh_key = blocks.key)
    WHERE state_leaf_key = $1
    AND storage_leaf_key = $2
    AND block_number <= (SELECT block_number
                        FROM eth.header_cids
                        WHERE block_hash = $3)
    AND header_cids.id = (SELECT canonical_header_id(block_number))
    ORDER BY block_number DESC
    LIMIT 1"""

_PLACEHOLDER = re.compile(r"\$(\d+)")
_PARAMSTYLES = ("qmark", "format", "pyformat", "numeric")


class NotFoundError(LookupError):
    """Raised when a query that must return a row returns none."""


class RetrievalError(ValueError):
    """Raised when retrieved node data does not have the expected shape."""


class Database:
    """Runs Postgres-style ``$n`` queries on a DB-API connection, returning rows as dicts."""

    def __init__(self, connection, paramstyle: str = "format") -> None:
        if paramstyle not in _PARAMSTYLES:
            raise ValueError(f"unsupported paramstyle {paramstyle!r}")
        self._connection = connection
        self._paramstyle = paramstyle

    def _prepare(self, query: str, args: Sequence[Any]) -> Tuple[str, tuple]:
        def check(number: int) -> None:
            if not 1 <= number <= len(args):
                raise ValueError(f"no argument for placeholder ${number}")

        if self._paramstyle == "numeric":
            def numeric(match: re.Match) -> str:
                check(int(match.group(1)))
                return ":" + match.group(1)

            return _PLACEHOLDER.sub(numeric, query), tuple(args)

        marker = "?" if self._paramstyle == "qmark" else "%s"
        if marker == "%s":
            query = query.replace("%", "%%")
        ordered: List[Any] = []

        def positional(match: re.Match) -> str:
            number = int(match.group(1))
            check(number)
            ordered.append(args[number - 1])
            return marker

        return _PLACEHOLDER.sub(positional, query), tuple(ordered)

    def _run(self, query: str, args: Sequence[Any], single: bool):
        sql, params = self._prepare(query, args)
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql, params)
            columns = [column[0] for column in cursor.description or ()]
            if single:
                row = cursor.fetchone()
                return None if row is None else dict(zip(columns, row))
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def select(self, query: str, *args) -> List[Dict[str, Any]]:
        """Return every row the query yields."""
        return self._run(query, args, single=False)

    def get(self, query: str, *args) -> Dict[str, Any]:
        """Return the first row the query yields; raise NotFoundError if there is none."""
        row = self._run(query, args, single=True)
        if row is None:
            raise NotFoundError("sql: no rows in result set")
        return row


def _hex_to_hash(value: str) -> bytes:
    text = value[2:] if value[:2].lower() == "0x" else value
    if len(text) % 2:
        text = "0" + text
    raw = bytes.fromhex(text)[-HASH_LENGTH:]
    return raw.rjust(HASH_LENGTH, b"\x00")


def _hex(value: HashLike) -> str:
    raw = _hex_to_hash(value) if isinstance(value, str) else bytes(value)
    return "0x" + raw.hex()


def _address_bytes(address: HashLike) -> bytes:
    if isinstance(address, str):
        text = address[2:] if address[:2].lower() == "0x" else address
        return bytes.fromhex(text.rjust(40, "0"))[-20:]
    return bytes(address)


def _block(row: Mapping, cid_column: str = "cid") -> BlockModel:
    return BlockModel(cid=row[cid_column], data=bytes(row["data"]))


def _receipt_block(row: Mapping) -> BlockModel:
    return BlockModel(cid=row["leaf_cid"], data=decode_leaf_node(bytes(row["data"])))


def _leaf_value(data: bytes, kind: str) -> bytes:
    try:
        elements = rlp_decode(data)
    except RLPError as exc:
        raise RetrievalError(f"error decoding {kind} leaf node rlp: {exc}") from exc
    if not isinstance(elements, list):
        raise RetrievalError(f"error decoding {kind} leaf node rlp: expected input list")
    if len(elements) != 2:
        raise RetrievalError(
            f"eth IPLDRetriever expected {kind} leaf node rlp to decode into two elements"
        )
    value = elements[1]
    if not isinstance(value, bytes):
        raise RetrievalError(f"{kind} leaf node value is not a byte string")
    return value


def _is_removed(row: Mapping) -> bool:
    return bool(row.get("state_leaf_removed", False)) or row.get("node_type") == REMOVED_NODE


class IPLDRetriever:
    """Fetches IPLD blocks for eth data from the database."""

    def __init__(self, db) -> None:
        self.db = db

    def _select_blocks(self, query: str, *args) -> List[BlockModel]:
        return [_block(row) for row in self.db.select(query, *args)]

    def retrieve_headers_by_hashes(self, hashes) -> List[BlockModel]:
        """Headers for the given block hashes."""
        return self._select_blocks(RETRIEVE_HEADERS_BY_HASHES, [_hex(h) for h in hashes])

    def retrieve_headers_by_block_number(self, number: int) -> List[BlockModel]:
        """All headers at a height, canonical or not."""
        return self._select_blocks(RETRIEVE_HEADERS_BY_BLOCK_NUMBER, number)

    def retrieve_header_by_hash(self, block_hash: HashLike) -> BlockModel:
        """The header with the given block hash."""
        return _block(self.db.get(RETRIEVE_HEADER_BY_HASH, _hex(block_hash)))

    def retrieve_uncles_by_hashes(self, hashes) -> List[BlockModel]:
        """Uncles with the given uncle hashes."""
        return self._select_blocks(RETRIEVE_UNCLES_BY_HASHES, [_hex(h) for h in hashes])

    def retrieve_uncles_by_block_hash(self, block_hash: HashLike) -> List[BlockModel]:
        """Uncles of the block with the given hash."""
        return self._select_blocks(RETRIEVE_UNCLES_BY_BLOCK_HASH, _hex(block_hash))

    def retrieve_uncles_by_block_number(self, number: int) -> List[BlockModel]:
        """Uncles of the blocks at the given height."""
        return self._select_blocks(RETRIEVE_UNCLES_BY_BLOCK_NUMBER, number)

    def retrieve_uncle_by_hash(self, uncle_hash: HashLike) -> BlockModel:
        """The uncle with the given hash."""
        return _block(self.db.get(RETRIEVE_UNCLE_BY_HASH, _hex(uncle_hash)))

    def retrieve_transactions_by_hashes(self, hashes) -> List[BlockModel]:
        """Transactions with the given hashes."""
        return self._select_blocks(
            RETRIEVE_TRANSACTIONS_BY_HASHES, [_hex(h) for h in hashes]
        )

    def retrieve_transactions_by_block_hash(self, block_hash: HashLike) -> List[BlockModel]:
        """Transactions of a block, in index order."""
        return self._select_blocks(RETRIEVE_TRANSACTIONS_BY_BLOCK_HASH, _hex(block_hash))

    def retrieve_transactions_by_block_number(self, number: int) -> List[BlockModel]:
        """Transactions of the blocks at a height, in index order."""
        return self._select_blocks(RETRIEVE_TRANSACTIONS_BY_BLOCK_NUMBER, number)

    def retrieve_transaction_by_tx_hash(self, tx_hash: HashLike) -> BlockModel:
        """The transaction with the given hash."""
        return _block(self.db.get(RETRIEVE_TRANSACTION_BY_HASH, _hex(tx_hash)))

    def retrieve_receipts_by_tx_hashes(self, hashes) -> List[BlockModel]:
        """Receipts of the given transactions; the CID is that of the leaf node."""
        rows = self.db.select(RETRIEVE_RECEIPTS_BY_TX_HASHES, [_hex(h) for h in hashes])
        return [_receipt_block(row) for row in rows]

    def retrieve_receipts_by_block_hash(
        self, block_hash: HashLike
    ) -> List[Tuple[BlockModel, bytes]]:
        """Receipts of a block, each paired with its transaction hash."""
        rows = self.db.select(RETRIEVE_RECEIPTS_BY_BLOCK_HASH, _hex(block_hash))
        return [(_receipt_block(row), _hex_to_hash(row["tx_hash"])) for row in rows]

    def retrieve_receipts_by_block_number(self, number: int) -> List[BlockModel]:
        """Receipts of the blocks at a height, in index order."""
        rows = self.db.select(RETRIEVE_RECEIPTS_BY_BLOCK_NUMBER, number)
        return [_receipt_block(row) for row in rows]

    def retrieve_receipt_by_hash(self, tx_hash: HashLike) -> BlockModel:
        """The receipt of the transaction with the given hash."""
        return _receipt_block(self.db.get(RETRIEVE_RECEIPT_BY_TX_HASH, _hex(tx_hash)))

    def _account(self, query: str, *args) -> BlockModel:
        row = self.db.get(query, *args)
        if row.get("node_type") == REMOVED_NODE:
            return BlockModel(cid="", data=EMPTY_NODE_VALUE)
        return BlockModel(cid=row["cid"], data=_leaf_value(bytes(row["data"]), "state"))

    def retrieve_account_by_address_and_block_hash(
        self, address: HashLike, block_hash: HashLike
    ) -> BlockModel:
        """The account leaf value for an address as of a canonical block hash."""
        leaf_key = _hex(keccak256(_address_bytes(address)))
        return self._account(
            RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_HASH, leaf_key, _hex(block_hash)
        )

    def retrieve_account_by_address_and_block_number(
        self, address: HashLike, number: int
    ) -> BlockModel:
        """The account leaf value for an address as of a height; may be non-canonical."""
        leaf_key = _hex(keccak256(_address_bytes(address)))
        return self._account(RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_NUMBER, leaf_key, number)

    def retrieve_storage_at_by_address_and_storage_slot_and_block_hash(
        self, address: HashLike, key: HashLike, block_hash: HashLike
    ) -> Tuple[BlockModel, bytes]:
        """The storage leaf node and its value for a slot as of a canonical block hash."""
        state_leaf_key = _hex(keccak256(_address_bytes(address)))
        slot = _hex_to_hash(key) if isinstance(key, str) else bytes(key)
        storage_hash = _hex(keccak256(slot))
        row = self.db.get(
            RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_HASH,
            state_leaf_key,
            storage_hash,
            _hex(block_hash),
        )
        if _is_removed(row):
            return BlockModel(cid="", data=EMPTY_NODE_VALUE), EMPTY_NODE_VALUE
        data = bytes(row["data"])
        return BlockModel(cid=row["cid"], data=data), _leaf_value(data, "storage")

    def retrieve_storage_at_by_address_and_storage_key_and_block_number(
        self, address: HashLike, storage_leaf_key: HashLike, number: int
    ) -> BlockModel:
        """The storage leaf value for a hashed storage key as of a height; may be non-canonical."""
        state_leaf_key = _hex(keccak256(_address_bytes(address)))
        row = self.db.get(
            RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_NUMBER,
            state_leaf_key,
            _hex(storage_leaf_key),
            number,
        )
        if _is_removed(row):
            return BlockModel(cid="", data=EMPTY_NODE_VALUE)
        return BlockModel(cid=row["cid"], data=_leaf_value(bytes(row["data"]), "storage"))