import pytest

from orderlb.messages import (
    ExecutionReport,
    Order,
    decode_order,
    decode_report,
    encode_order,
    encode_report,
)


def test_order_round_trip():
    order = Order(order_id="17", price=100.0, quantity=3, exchange_id="Kraken")
    assert decode_order(encode_order(order)) == order


def test_order_defaults_round_trip():
    assert decode_order(encode_order(Order())) == Order()


def test_report_round_trip():
    report = ExecutionReport(order_id="dummy")
    assert decode_report(encode_report(report)) == report


def test_report_wire_form():
    assert encode_report(ExecutionReport(order_id="42")) == b'{"order_id":"42"}'


def test_report_decodes_wire_form():
    assert decode_report(b'{"order_id":"42"}') == ExecutionReport(order_id="42")


def test_missing_fields_take_defaults():
    order = decode_order(b'{"order_id":"5"}')
    assert order == Order(order_id="5")


@pytest.mark.parametrize("data", [b"not json", b"[1, 2]", b"\xff\xfe"])
def test_invalid_order_bytes(data):
    with pytest.raises(ValueError):
        decode_order(data)


def test_invalid_field_type():
    with pytest.raises(ValueError):
        decode_order(b'{"price": null}')


def test_invalid_report_bytes():
    with pytest.raises(ValueError):
        decode_report(b'"text"')