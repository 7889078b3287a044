import sqlite3

import pytest

from ipldeth.nodes import NodeType, UnexpectedNodeError, keccak256, rlp_encode
from ipldeth.retriever import (
    EMPTY_NODE_VALUE,
    RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_NUMBER,
    RETRIEVE_HEADERS_BY_BLOCK_NUMBER,
    RETRIEVE_HEADERS_BY_HASHES,
    RETRIEVE_RECEIPTS_BY_BLOCK_HASH,
    RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_NUMBER,
    Database,
    IPLDRetriever,
    NotFoundError,
    RetrievalError,
)
from ipldeth.types import BlockModel

HASH_A = bytes([0x11]) * 32
HASH_B = bytes([0x22]) * 32
ADDRESS = bytes([0xAB]) * 20


class FakeDB:
    def __init__(self, rows=None, row=None):
        self.rows = rows or []
        self.row = row
        self.calls = []

    def select(self, query, *args):
        self.calls.append((query, args))
        return list(self.rows)

    def get(self, query, *args):
        self.calls.append((query, args))
        if self.row is None:
            raise NotFoundError("sql: no rows in result set")
        return self.row


def leaf(value, path=b"\x20\x01"):
    return rlp_encode([path, value])


def test_headers_by_hashes_returns_blocks_and_passes_hex_array():
    db = FakeDB(rows=[{"cid": "c1", "data": b"h1"}, {"cid": "c2", "data": b"h2"}])
    result = IPLDRetriever(db).retrieve_headers_by_hashes([HASH_A, HASH_B])
    assert result == [BlockModel("c1", b"h1"), BlockModel("c2", b"h2")]
    query, args = db.calls[0]
    assert query == RETRIEVE_HEADERS_BY_HASHES
    assert args == (["0x" + "11" * 32, "0x" + "22" * 32],)


def test_headers_by_block_number_passes_number():
    db = FakeDB(rows=[{"cid": "c", "data": memoryview(b"raw")}])
    result = IPLDRetriever(db).retrieve_headers_by_block_number(7)
    assert result == [BlockModel("c", b"raw")]
    assert db.calls == [(RETRIEVE_HEADERS_BY_BLOCK_NUMBER, (7,))]


def test_single_lookups_raise_not_found():
    retriever = IPLDRetriever(FakeDB())
    with pytest.raises(NotFoundError):
        retriever.retrieve_header_by_hash(HASH_A)
    with pytest.raises(NotFoundError):
        retriever.retrieve_uncle_by_hash(HASH_A)
    with pytest.raises(NotFoundError):
        retriever.retrieve_transaction_by_tx_hash(HASH_A)


def test_transaction_by_hash_accepts_hex_string():
    db = FakeDB(row={"cid": "tx", "data": b"rlp"})
    result = IPLDRetriever(db).retrieve_transaction_by_tx_hash("0x11" * 1 + "11" * 31)
    assert result == BlockModel("tx", b"rlp")
    assert db.calls[0][1] == ("0x" + "11" * 32,)


def test_receipts_decode_leaf_values():
    db = FakeDB(rows=[{"leaf_cid": "r1", "data": leaf(b"receipt-one")}])
    result = IPLDRetriever(db).retrieve_receipts_by_tx_hashes([HASH_A])
    assert result == [BlockModel("r1", b"receipt-one")]


def test_receipts_reject_non_leaf_nodes():
    db = FakeDB(rows=[{"leaf_cid": "r1", "data": rlp_encode([b"\x00\x01", b"x"])}])
    with pytest.raises(UnexpectedNodeError):
        IPLDRetriever(db).retrieve_receipts_by_block_number(1)


def test_receipts_by_block_hash_pairs_tx_hashes():
    db = FakeDB(rows=[{"leaf_cid": "r", "data": leaf(b"v"), "tx_hash": "0x01"}])
    result = IPLDRetriever(db).retrieve_receipts_by_block_hash(HASH_A)
    assert result == [(BlockModel("r", b"v"), bytes(31) + b"\x01")]
    assert db.calls[0][0] == RETRIEVE_RECEIPTS_BY_BLOCK_HASH


def test_receipt_by_hash_decodes_value():
    db = FakeDB(row={"leaf_cid": "r", "data": leaf(b"single")})
    assert IPLDRetriever(db).retrieve_receipt_by_hash(HASH_A) == BlockModel("r", b"single")


def test_account_by_number_uses_hashed_address():
    db = FakeDB(row={"cid": "acct", "data": leaf(b"account"), "node_type": 2})
    result = IPLDRetriever(db).retrieve_account_by_address_and_block_number(ADDRESS, 5)
    assert result == BlockModel("acct", b"account")
    query, args = db.calls[0]
    assert query == RETRIEVE_ACCOUNT_BY_LEAF_KEY_AND_BLOCK_NUMBER
    assert args == ("0x" + keccak256(ADDRESS).hex(), 5)


def test_removed_account_returns_empty_value():
    db = FakeDB(row={"cid": "acct", "data": b"", "node_type": int(NodeType.REMOVED)})
    result = IPLDRetriever(db).retrieve_account_by_address_and_block_hash(ADDRESS, HASH_A)
    assert result == BlockModel("", EMPTY_NODE_VALUE)
    assert EMPTY_NODE_VALUE == bytes(32)


def test_account_with_wrong_element_count_raises():
    db = FakeDB(row={"cid": "a", "data": rlp_encode([b"a", b"b", b"c"]), "node_type": 2})
    with pytest.raises(RetrievalError, match="two elements"):
        IPLDRetriever(db).retrieve_account_by_address_and_block_number(ADDRESS, 1)


def test_account_with_bad_rlp_raises():
    db = FakeDB(row={"cid": "a", "data": b"\xc5\x01", "node_type": 2})
    with pytest.raises(RetrievalError, match="error decoding state leaf node rlp"):
        IPLDRetriever(db).retrieve_account_by_address_and_block_hash(ADDRESS, HASH_A)


def test_storage_by_slot_and_hash_returns_node_and_value():
    node = leaf(b"\x09")
    db = FakeDB(row={"cid": "s", "data": node, "node_type": 2, "state_leaf_removed": False})
    block, value = IPLDRetriever(
        db
    ).retrieve_storage_at_by_address_and_storage_slot_and_block_hash(ADDRESS, HASH_B, HASH_A)
    assert block == BlockModel("s", node)
    assert value == b"\x09"
    assert db.calls[0][1] == (
        "0x" + keccak256(ADDRESS).hex(),
        "0x" + keccak256(HASH_B).hex(),
        "0x" + HASH_A.hex(),
    )


def test_storage_after_state_leaf_removed_is_empty():
    db = FakeDB(row={"cid": "s", "data": leaf(b"\x01"), "node_type": 2, "state_leaf_removed": True})
    block, value = IPLDRetriever(
        db
    ).retrieve_storage_at_by_address_and_storage_slot_and_block_hash(ADDRESS, HASH_B, HASH_A)
    assert block == BlockModel("", EMPTY_NODE_VALUE)
    assert value == EMPTY_NODE_VALUE


def test_storage_by_key_and_number_passes_key_unhashed():
    db = FakeDB(row={"cid": "s", "data": leaf(b"\x03"), "node_type": 2, "state_leaf_removed": False})
    result = IPLDRetriever(
        db
    ).retrieve_storage_at_by_address_and_storage_key_and_block_number(ADDRESS, HASH_B, 4)
    assert result == BlockModel("s", b"\x03")
    query, args = db.calls[0]
    assert query == RETRIEVE_STORAGE_LEAF_BY_ADDRESS_HASH_AND_LEAF_KEY_AND_BLOCK_NUMBER
    assert args == ("0x" + keccak256(ADDRESS).hex(), "0x" + HASH_B.hex(), 4)


def test_removed_storage_node_by_number_is_empty():
    db = FakeDB(row={"cid": "s", "data": b"", "node_type": 3, "state_leaf_removed": False})
    result = IPLDRetriever(
        db
    ).retrieve_storage_at_by_address_and_storage_key_and_block_number(ADDRESS, HASH_B, 4)
    assert result.data == EMPTY_NODE_VALUE
    assert result.cid == ""


@pytest.fixture
def sqlite_db():
    connection = sqlite3.connect(":memory:")
    connection.execute("CREATE TABLE t (cid TEXT, data BLOB, n INTEGER)")
    connection.executemany(
        "INSERT INTO t VALUES (?, ?, ?)", [("a", b"\x01", 1), ("b", b"\x02", 2)]
    )
    yield Database(connection, paramstyle="qmark")
    connection.close()


def test_database_select_returns_dict_rows(sqlite_db):
    rows = sqlite_db.select("SELECT cid, data FROM t WHERE n >= $1 ORDER BY n", 1)
    assert rows == [{"cid": "a", "data": b"\x01"}, {"cid": "b", "data": b"\x02"}]


def test_database_reorders_repeated_placeholders(sqlite_db):
    row = sqlite_db.get("SELECT $2 AS a, $1 AS b, $2 AS c", "x", "y")
    assert row == {"a": "y", "b": "x", "c": "y"}


def test_database_get_without_rows_raises(sqlite_db):
    with pytest.raises(NotFoundError):
        sqlite_db.get("SELECT cid FROM t WHERE n = $1", 99)


def test_database_missing_argument_raises(sqlite_db):
    with pytest.raises(ValueError, match=r"\$2"):
        sqlite_db.select("SELECT cid FROM t WHERE n = $2", 1)


def test_database_rejects_unknown_paramstyle():
    with pytest.raises(ValueError):
        Database(sqlite3.connect(":memory:"), paramstyle="named")


class RecordingCursor:
    def __init__(self, log):
        self.log = log
        self.description = [("cid",)]

    def execute(self, sql, params):
        self.log.append((sql, params))

    def fetchall(self):
        return [("z",)]

    def fetchone(self):
        return ("z",)

    def close(self):
        self.log.append("closed")


class RecordingConnection:
    def __init__(self):
        self.log = []

    def cursor(self):
        return RecordingCursor(self.log)


def test_database_format_style_escapes_percent():
    connection = RecordingConnection()
    rows = Database(connection).select("SELECT cid FROM t WHERE a LIKE '%x' AND b = $1", 5)
    assert rows == [{"cid": "z"}]
    assert connection.log[0] == ("SELECT cid FROM t WHERE a LIKE '%%x' AND b = %s", (5,))
    assert connection.log[1] == "closed"


def test_database_numeric_style_keeps_order():
    connection = RecordingConnection()
    Database(connection, paramstyle="numeric").get("SELECT $2, $1", "p", "q")
    assert connection.log[0] == ("SELECT :2, :1", ("p", "q"))