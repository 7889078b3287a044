import logging

import pytest

from ipldeth.nodes import NodeType
from ipldeth.types import (
    AccessTuple,
    CallArgs,
    IPLDs,
    StateNode,
)

SENDER = bytes.fromhex("71562b71999873db5b286df957af199ec94617f7")
RECIPIENT = bytes.fromhex("703c4b2bd70c169f5717101caee543299fc946c7")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"gas_price": 1, "max_fee_per_gas": 2},
        {"gas_price": 1, "max_priority_fee_per_gas": 2},
        {"gas_price": 1, "max_fee_per_gas": 2, "max_priority_fee_per_gas": 3},
    ],
)
def test_mixed_fee_styles_rejected(kwargs):
    with pytest.raises(ValueError, match="both gasPrice"):
        CallArgs(**kwargs).to_message(0, None)


def test_defaults_without_cap_or_base_fee():
    msg = CallArgs().to_message(0, None)
    assert msg.gas_limit == 9223372036854775807
    assert msg.from_address == bytes(20)
    assert msg.gas_price == 0
    assert msg.gas_fee_cap == 0
    assert msg.gas_tip_cap == 0
    assert msg.amount == 0
    assert msg.nonce == 0
    assert msg.check_nonce is False
    assert msg.access_list == []
    assert msg.to is None


def test_global_cap_is_default_gas():
    msg = CallArgs().to_message(10000000000, None)
    assert msg.gas_limit == 10000000000


def test_requested_gas_capped(caplog):
    with caplog.at_level(logging.WARNING):
        msg = CallArgs(gas=1000).to_message(500, None)
    assert msg.gas_limit == 500
    assert "capping" in caplog.text


def test_requested_gas_below_cap_kept():
    msg = CallArgs(gas=300).to_message(500, None)
    assert msg.gas_limit == 300


def test_requested_gas_without_cap_kept():
    msg = CallArgs(gas=12345).to_message(0, None)
    assert msg.gas_limit == 12345


def test_legacy_price_without_base_fee():
    msg = CallArgs(gas_price=77).to_message(0, None)
    assert msg.gas_price == msg.gas_fee_cap == msg.gas_tip_cap == 77


def test_legacy_price_with_base_fee():
    msg = CallArgs(gas_price=77).to_message(0, 1000)
    assert msg.gas_price == msg.gas_fee_cap == msg.gas_tip_cap == 77


def test_1559_fee_cap_limits_price():
    msg = CallArgs(max_fee_per_gas=100, max_priority_fee_per_gas=50).to_message(0, 1000)
    assert msg.gas_fee_cap == 100
    assert msg.gas_tip_cap == 50
    assert msg.gas_price == 100


def test_1559_tip_wins_when_base_fee_zero():
    msg = CallArgs(max_fee_per_gas=10**6, max_priority_fee_per_gas=7).to_message(0, 0)
    assert msg.gas_price == 7


def test_1559_price_never_exceeds_fee_cap():
    for tip in (0, 5, 50, 500):
        msg = CallArgs(max_fee_per_gas=60, max_priority_fee_per_gas=tip).to_message(0, 20)
        assert msg.gas_price <= msg.gas_fee_cap


def test_1559_all_zero_leaves_price_zero():
    msg = CallArgs().to_message(0, 1000)
    assert msg.gas_price == 0
    assert msg.gas_fee_cap == 0
    assert msg.gas_tip_cap == 0


def test_sender_and_target_carried():
    args = CallArgs(from_address=SENDER, to=RECIPIENT, value=10000)
    msg = args.to_message(0, None)
    assert args.sender() == SENDER
    assert msg.from_address == SENDER
    assert msg.to == RECIPIENT
    assert msg.amount == 10000


def test_sender_defaults_to_zero_address():
    assert CallArgs().sender() == bytes(20)


def test_call_data_prefers_input():
    args = CallArgs(data=b"\x73\xd4\xa1\x3a", input=b"\x65\xf3\xc3\x1a")
    assert args.call_data() == b"\x65\xf3\xc3\x1a"
    assert args.to_message(0, None).data == b"\x65\xf3\xc3\x1a"


def test_call_data_falls_back_to_data():
    args = CallArgs(data=b"\x18\x16\x0d\xdd")
    assert args.call_data() == b"\x18\x16\x0d\xdd"


def test_call_data_none_when_absent():
    assert CallArgs().call_data() is None


def test_access_list_passed_through():
    tuples = [AccessTuple(address=RECIPIENT, storage_keys=[bytes(32)])]
    msg = CallArgs(access_list=tuples).to_message(0, None)
    assert msg.access_list == tuples


def test_ipld_containers_are_independent():
    first, second = IPLDs(), IPLDs()
    first.state_nodes.append(StateNode(type=NodeType.LEAF, path=b"\x06"))
    assert second.state_nodes == []
    assert first.state_nodes[0].type is NodeType.LEAF
    assert first.state_nodes[0].ipld.data == b""