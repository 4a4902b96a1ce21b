"""Payload parsing tests (request layer)."""

import pytest

from salonpos.validation import (
    AdHocItem,
    CatalogItem,
    ValidationError,
    parse_refund_items,
    parse_sale_request,
)


def _payload(**overrides):
    payload = {
        'items': [{'type': 'service', 'item_id': 1}],
        'payment_method': 'card',
    }
    payload.update(overrides)
    return payload


class TestParseSaleRequest:
    def test_catalog_and_ad_hoc_items(self):
        req = parse_sale_request(_payload(items=[
            {'type': 'product', 'item_id': '4', 'quantity': 2, 'price': 9.5, 'discount': 5},
            {'name': 'Custom colour mix', 'price': '12.50'},
        ]))

        assert req.items[0] == CatalogItem(kind='product', item_id=4, quantity=2, price=9.5, discount=5.0)
        assert req.items[1] == AdHocItem(name='Custom colour mix', unit_price=12.5)

    def test_defaults(self):
        req = parse_sale_request(_payload())
        assert req.global_discount == 0
        assert req.tip == 0
        assert req.payments is None
        assert req.client is None

    def test_client_id_at_top_level(self):
        req = parse_sale_request(_payload(client_id=7))
        assert req.client.client_id == 7

    def test_mixed_legs(self):
        req = parse_sale_request(_payload(
            payment_method='mixed',
            payments=[{'method': 'cash', 'amount': 10}, {'method': 'card', 'amount': '15.5', 'reference': 'A1'}],
        ))
        assert [leg.amount for leg in req.payments] == [10.0, 15.5]
        assert req.payments[1].reference == 'A1'

    @pytest.mark.parametrize('overrides', [
        {'items': []},
        {'items': 'haircut'},
        {'items': [{'type': 'service'}]},
        {'items': [{'type': 'massage', 'item_id': 1}]},
        {'items': [{'item_id': 1, 'quantity': 1.5}]},
        {'items': [{'item_id': 1, 'quantity': True}]},
        {'items': [{'item_id': 1, 'discount': 120}]},
        {'items': [{'name': 'Free text'}]},
        {'payment_method': 'cheque'},
        {'tip': -1},
        {'global_discount': 150},
        {'payments': [{'method': 'mixed', 'amount': 5}]},
        {'payments': [{'method': 'cash', 'amount': 'lots'}]},
        {'appointment_id': 0},
    ])
    def test_rejects(self, overrides):
        with pytest.raises(ValidationError):
            parse_sale_request(_payload(**overrides))

    def test_rejects_non_object_body(self):
        with pytest.raises(ValidationError):
            parse_sale_request(None)


class TestParseRefundItems:
    def test_none_means_full_refund(self):
        assert parse_refund_items(None) is None

    def test_items(self):
        items = parse_refund_items([{'item_index': 0, 'quantity': 2}])
        assert items[0].item_index == 0
        assert items[0].quantity == 2

    @pytest.mark.parametrize('raw', [[], [{'item_index': 0, 'quantity': 0}], [{'item_index': 'x', 'quantity': 1}], 'all'])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_refund_items(raw)
