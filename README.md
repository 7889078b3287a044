# ipldeth

Read Ethereum block data that an indexer has stored as IPLD blocks in a
Postgres database: headers, uncles, transactions, receipts, account state
and contract storage.

## Installation

```
pip install ipldeth
```

To run the tests:

```
pip install "ipldeth[test]"
pytest
```

## Modules

### `ipldeth.nodes`

- `rlp_encode(item)` encodes bytes, strings (as UTF-8), non-negative integers
  and nested lists or tuples.
- `rlp_decode(data)` decodes one canonical RLP value. Byte strings come back
  as `bytes` and lists come back as `list`. Malformed, non-canonical or
  trailing input raises `RLPError`.
- `keccak256(data)` returns the 32-byte Keccak-256 digest.
- `check_key_type(elements)` classifies a decoded trie node as
  `NodeType.BRANCH`, `NodeType.EXTENSION` or `NodeType.LEAF`. A node that is
  too short or has an unknown hex prefix raises `UnexpectedNodeError`.
- `decode_leaf_node(node)` returns the value held by an RLP-encoded leaf
  node. Any other kind of node raises `UnexpectedNodeError`.

`NodeType` also has `UNKNOWN` (-1) and `REMOVED` (3). Its values are the
ones stored in the database's `node_type` column.

### `ipldeth.subscription_config`

`new_eth_subscription_config(settings)` builds a `SubscriptionSettings`
(holding `HeaderFilter`, `TxFilter`, `ReceiptFilter`, `StateFilter` and
`StorageFilter`) from a mapping. Keys sit under
`watcher.ethSubscription`. They may be nested mappings or dotted names, and
case does not matter. For example, `"watcher.ethSubscription.historicalData"`
and `"watcher.ethSubscription.txFilter.src"` are both accepted.

Values are read as follows:

- Booleans accept `true`/`false`-style strings.
- Integers accept numeric strings.
- String lists accept either a list or a whitespace-separated string.

Keys that are missing fall back to the defaults: no backfill, start and end
at 0 (an end of 0 or less means no end), and every filter matching
everything, with no uncles and no intermediate nodes. Receipt topics are
always four lists, `topic0s` to `topic3s`.

### `ipldeth.types`

- RPC-shaped records: `RPCTransaction`, `RPCReceipt`, `AccountResult`,
  `StorageResult`, `Log` and `AccessTuple`.
- IPLD containers: `BlockModel` (`cid`, `data`), `StateNode`, `StorageNode`,
  `IPLDs` and `LogResult`.
- `CallArgs` describes an eth_call request:
  - `sender()` returns the zero address when no sender is set.
  - `call_data()` prefers `input` over `data`.
  - `to_message(global_gas_cap, base_fee)` returns a frozen `Message`. It
    caps gas at `global_gas_cap` and logs a warning when it does. With a gas
    cap of 0 and no gas given, gas defaults to half of the uint64 range.
  - `to_message` applies the legacy fee rules when `base_fee` is `None` and
    the EIP-1559 fee rules otherwise. Giving `gas_price` together with
    `max_fee_per_gas` or `max_priority_fee_per_gas` raises `ValueError`.

### `ipldeth.retriever`

`Database` wraps a DB-API connection and runs the Postgres-style `$n`
queries. Choose its `paramstyle` to suit the driver: `"format"` (the
default), `"pyformat"`, `"qmark"` or `"numeric"`.

- `select` returns all rows as dicts.
- `get` returns the first row, or raises `NotFoundError` when there are no
  rows.

`IPLDRetriever(db)` accepts any object that has these `select` and `get`
methods. It returns `BlockModel` values. Hashes and addresses may be given
as bytes or hex strings.

```python
from ipldeth.retriever import Database, IPLDRetriever

retriever = IPLDRetriever(Database(connection))
for header in retriever.retrieve_headers_by_block_number(1):
    print(header.cid, len(header.data))
```

Receipts are returned as the value of their receipt-trie leaf node, with the
leaf's CID. `retrieve_receipts_by_block_hash` pairs each receipt with its
32-byte transaction hash.

The account and storage lookups return the decoded leaf value.
`retrieve_storage_at_by_address_and_storage_slot_and_block_hash` returns
the whole leaf node together with the value. When a state or storage leaf
was removed, these lookups return an empty CID and 32 zero bytes
(`EMPTY_NODE_VALUE`). A stored node that cannot be decoded raises
`RetrievalError`.

```python
from ipldeth.nodes import rlp_encode, decode_leaf_node

leaf = rlp_encode([bytes.fromhex("20aa"), b"value"])
assert decode_leaf_node(leaf) == b"value"
```

## What the package does not do

The package only reads data that is already indexed. It does not:

- provide a JSON-RPC or GraphQL server;
- provide a command-line program;
- write or index blocks;
- create the database schema or the SQL functions its queries call
  (`canonical_header_id`, `was_state_leaf_removed`);
- execute EVM calls. `CallArgs.to_message` only prepares the message.