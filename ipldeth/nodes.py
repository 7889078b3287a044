"""RLP coding, hashing and trie node helpers for IPLD node data."""

from __future__ import annotations

from enum import IntEnum
from typing import List, Tuple, Union

from Crypto.Hash import keccak

RLPItem = Union[bytes, List["RLPItem"]]

_SHORT_STRING = 0x80
_LONG_STRING = 0xB7
_SHORT_LIST = 0xC0
_LONG_LIST = 0xF7
_SHORT_LIMIT = 56


class RLPError(ValueError):
    """Raised when data cannot be RLP encoded or decoded."""


class UnexpectedNodeError(ValueError):
    """Raised when a trie node does not have the expected shape."""


class NodeType(IntEnum):
    """Trie node types, valued as they are stored in the database."""

    UNKNOWN = -1
    BRANCH = 0
    EXTENSION = 1
    LEAF = 2
    REMOVED = 3

    def __str__(self) -> str:
        return self.name.capitalize()


def keccak256(data: bytes) -> bytes:
    """Return the Keccak-256 digest of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def _length_prefix(length: int, offset: int) -> bytes:
    if length < _SHORT_LIMIT:
        return bytes([offset + length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([offset + _SHORT_LIMIT - 1 + len(encoded)]) + encoded


def rlp_encode(item) -> bytes:
    """RLP-encode bytes, strings, non-negative integers and nested sequences."""
    if isinstance(item, (bytes, bytearray, memoryview)):
        data = bytes(item)
        if len(data) == 1 and data[0] < _SHORT_STRING:
            return data
        return _length_prefix(len(data), _SHORT_STRING) + data
    if isinstance(item, bool):
        raise RLPError("cannot encode a boolean")
    if isinstance(item, int):
        if item < 0:
            raise RLPError("cannot encode a negative integer")
        return rlp_encode(item.to_bytes((item.bit_length() + 7) // 8, "big"))
    if isinstance(item, str):
        return rlp_encode(item.encode("utf-8"))
    if isinstance(item, (list, tuple)):
        payload = b"".join(rlp_encode(element) for element in item)
        return _length_prefix(len(payload), _SHORT_LIST) + payload
    raise RLPError(f"cannot encode value of type {type(item).__name__}")


def _check_end(end: int, limit: int) -> None:
    if end > limit:
        raise RLPError("value size exceeds available input length")


def _long_length(data: bytes, pos: int, size_len: int, limit: int) -> Tuple[int, int]:
    start = pos + 1
    end = start + size_len
    _check_end(end, limit)
    encoded = data[start:end]
    if encoded[0] == 0:
        raise RLPError("non-canonical size information")
    length = int.from_bytes(encoded, "big")
    if length < _SHORT_LIMIT:
        raise RLPError("non-canonical size information")
    return length, end


def _decode_item(data: bytes, pos: int, limit: int) -> Tuple[RLPItem, int]:
    if pos >= limit:
        raise RLPError("unexpected end of input")
    prefix = data[pos]
    if prefix < _SHORT_STRING:
        return data[pos:pos + 1], pos + 1
    if prefix <= _LONG_STRING:
        start = pos + 1
        length = prefix - _SHORT_STRING
        end = start + length
        _check_end(end, limit)
        if length == 1 and data[start] < _SHORT_STRING:
            raise RLPError("non-canonical size information")
        return data[start:end], end
    if prefix < _SHORT_LIST:
        length, start = _long_length(data, pos, prefix - _LONG_STRING, limit)
        end = start + length
        _check_end(end, limit)
        return data[start:end], end
    if prefix <= _LONG_LIST:
        start = pos + 1
        length = prefix - _SHORT_LIST
    else:
        length, start = _long_length(data, pos, prefix - _LONG_LIST, limit)
    end = start + length
    _check_end(end, limit)
    items: List[RLPItem] = []
    cursor = start
    while cursor < end:
        element, cursor = _decode_item(data, cursor, end)
        items.append(element)
    return items, end


def rlp_decode(data: bytes) -> RLPItem:
    """Decode one canonical RLP value; byte strings become bytes, lists become lists."""
    raw = bytes(data)
    item, end = _decode_item(raw, 0, len(raw))
    if end != len(raw):
        raise RLPError("input contains more than one value")
    return item


def check_key_type(elements) -> NodeType:
    """Classify a decoded trie node by its element count and hex prefix."""
    if len(elements) > 2:
        return NodeType.BRANCH
    if len(elements) < 2:
        raise UnexpectedNodeError("node cannot be less than two elements in length")
    first = elements[0]
    if not isinstance(first, (bytes, bytearray)) or not first:
        raise UnexpectedNodeError("unknown hex prefix")
    nibble = first[0] >> 4
    if nibble in (0, 1):
        return NodeType.EXTENSION
    if nibble in (2, 3):
        return NodeType.LEAF
    raise UnexpectedNodeError("unknown hex prefix")


def decode_leaf_node(node: bytes) -> bytes:
    """Return the value held by an RLP-encoded leaf node."""
    elements = rlp_decode(node)
    if not isinstance(elements, list):
        raise RLPError("expected input list")
    node_type = check_key_type(elements)
    if node_type is not NodeType.LEAF:
        raise UnexpectedNodeError(f"expected leaf node but found {node_type!s}")
    value = elements[1]
    if not isinstance(value, bytes):
        raise UnexpectedNodeError("leaf node value is not a byte string")
    return value