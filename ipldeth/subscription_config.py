"""Subscription settings describing which eth data a subscriber wants streamed."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

_PREFIX = "watcher.ethSubscription."
_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class HeaderFilter:
    """Filter settings for headers."""

    off: bool = False
    uncles: bool = False


@dataclass
class TxFilter:
    """Filter settings for transactions."""

    off: bool = False
    src: List[str] = field(default_factory=list)
    dst: List[str] = field(default_factory=list)


@dataclass
class ReceiptFilter:
    """Filter settings for receipts."""

    off: bool = False
    match_txs: bool = False
    log_addresses: List[str] = field(default_factory=list)
    topics: List[List[str]] = field(default_factory=lambda: [[] for _ in range(4)])


@dataclass
class StateFilter:
    """Filter settings for state nodes."""

    off: bool = False
    addresses: List[str] = field(default_factory=list)
    intermediate_nodes: bool = False


@dataclass
class StorageFilter:
    """Filter settings for storage nodes."""

    off: bool = False
    addresses: List[str] = field(default_factory=list)
    storage_keys: List[str] = field(default_factory=list)
    intermediate_nodes: bool = False


@dataclass
class SubscriptionSettings:
    """What a subscriber asks the watcher to stream; an end of 0 or less means no end."""

    back_fill: bool = False
    back_fill_only: bool = False
    start: int = 0
    end: int = 0
    header_filter: HeaderFilter = field(default_factory=HeaderFilter)
    tx_filter: TxFilter = field(default_factory=TxFilter)
    receipt_filter: ReceiptFilter = field(default_factory=ReceiptFilter)
    state_filter: StateFilter = field(default_factory=StateFilter)
    storage_filter: StorageFilter = field(default_factory=StorageFilter)


def _flatten(settings: Mapping, prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in settings.items():
        name = f"{prefix}{str(key).lower()}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, name + "."))
        else:
            flat[name] = value
    return flat


class _Lookup:
    """Case-insensitive access to nested or dotted configuration keys."""

    def __init__(self, settings: Optional[Mapping]) -> None:
        self._values = _flatten(settings or {})

    def _raw(self, key: str) -> Any:
        return self._values.get((_PREFIX + key).lower())

    def bool(self, key: str) -> bool:
        value = self._raw(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value in _TRUE_WORDS
        return False

    def int(self, key: str) -> int:
        value = self._raw(key)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip(), 0)
            except ValueError:
                return 0
        return 0

    def strings(self, key: str) -> List[str]:
        value = self._raw(key)
        if isinstance(value, str):
            return value.split()
        if isinstance(value, (list, tuple)):
            return [str(element) for element in value]
        return []


def new_eth_subscription_config(settings: Optional[Mapping] = None) -> SubscriptionSettings:
    """Build subscription settings from a configuration mapping.

    Keys live under ``watcher.ethSubscription`` and may be given nested or as
    dotted names; missing keys fall back to the defaults (stream everything,
    no backfill, no intermediate nodes, no uncles).
    """
    lookup = _Lookup(settings)
    return SubscriptionSettings(
        back_fill=lookup.bool("historicalData"),
        back_fill_only=lookup.bool("historicalDataOnly"),
        start=lookup.int("startingBlock"),
        end=lookup.int("endingBlock"),
        header_filter=HeaderFilter(
            off=lookup.bool("headerFilter.off"),
            uncles=lookup.bool("headerFilter.uncles"),
        ),
        tx_filter=TxFilter(
            off=lookup.bool("txFilter.off"),
            src=lookup.strings("txFilter.src"),
            dst=lookup.strings("txFilter.dst"),
        ),
        receipt_filter=ReceiptFilter(
            off=lookup.bool("receiptFilter.off"),
            match_txs=lookup.bool("receiptFilter.matchTxs"),
            log_addresses=lookup.strings("receiptFilter.contracts"),
            topics=[lookup.strings(f"receiptFilter.topic{n}s") for n in range(4)],
        ),
        state_filter=StateFilter(
            off=lookup.bool("stateFilter.off"),
            addresses=lookup.strings("stateFilter.addresses"),
            intermediate_nodes=lookup.bool("stateFilter.intermediateNodes"),
        ),
        storage_filter=StorageFilter(
            off=lookup.bool("storageFilter.off"),
            addresses=lookup.strings("storageFilter.addresses"),
            storage_keys=lookup.strings("storageFilter.storageKeys"),
            intermediate_nodes=lookup.bool("storageFilter.intermediateNodes"),
        ),
    )