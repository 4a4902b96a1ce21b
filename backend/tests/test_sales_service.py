"""
Sale processor tests.

- Catalog + ad-hoc lines, price override, discounts, tip
- Register rule for cash (and cash legs of mixed)
- Mixed payment validation
- All-or-nothing stock reservation across items
- Appointment settlement
- Idempotency, quick sale, lookup and listing
"""

import pytest

from salonpos.extensions import db
from salonpos.models import Appointment, Product, Transaction
from salonpos.services import sales_service
from salonpos.services.errors import (
    AppointmentNotFoundError,
    InsufficientStockError,
    InvalidAmountError,
    ItemNotFoundError,
    PaymentMismatchError,
    RegisterClosedError,
    SaleNotFoundError,
)
from salonpos.validation import AdHocItem, CatalogItem, ClientInfo, PaymentLeg, ValidationError

from conftest import ACTOR_ID, BUSINESS_ID, OTHER_BUSINESS_ID


def _stock(product_id):
    return db.session.query(Product.stock).filter_by(id=product_id).scalar()


def _sale_count():
    return db.session.query(Transaction).filter_by(kind="sale").count()


class TestCreateSale:
    def test_card_sale_with_catalog_lines(self, db_session, products, services):
        sale = sales_service.create_sale(
            BUSINESS_ID,
            ACTOR_ID,
            [
                CatalogItem(kind="service", item_id=services["haircut"], discount=10, staff_id=7),
                CatalogItem(kind="product", item_id=products["shampoo"], quantity=2),
            ],
            "card",
            tip=5,
            client=ClientInfo(client_id=3, name="Ana"),
        )

        assert sale.kind == "sale"
        assert sale.status == "completed"
        assert sale.source == "pos"
        assert sale.subtotal == pytest.approx(52.5)
        assert sale.final_total == pytest.approx(57.5)
        assert [line.name for line in sale.lines] == ["Haircut", "Shampoo"]
        assert sale.lines[0].total == pytest.approx(22.5)
        assert sale.lines[0].staff_id == 7
        assert sale.lines[1].unit_price == 15.0
        assert sale.client_name == "Ana"
        assert len(sale.payments) == 1
        assert sale.payments[0].method == "card"
        assert sale.payments[0].amount == pytest.approx(57.5)
        assert _stock(products["shampoo"]) == 8

    def test_line_totals_sum_to_subtotal(self, db_session, products, services):
        sale = sales_service.create_sale(
            BUSINESS_ID,
            ACTOR_ID,
            [
                CatalogItem(kind="service", item_id=services["colour"], discount=15),
                CatalogItem(kind="product", item_id=products["shampoo"], quantity=3, discount=5),
                AdHocItem(name="Fringe touch-up", unit_price=7.5),
            ],
            "transfer",
            global_discount=10,
        )
        assert sum(line.total for line in sale.lines) == pytest.approx(sale.subtotal)
        assert sale.final_total == pytest.approx(sale.subtotal - sale.global_discount_amount + sale.tip)

    def test_price_override(self, db_session, services):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["haircut"], price=20.0)],
            "card",
        )
        assert sale.lines[0].unit_price == 20.0
        assert sale.final_total == pytest.approx(20.0)

    def test_ad_hoc_line_has_no_catalog_reference(self, db_session, products):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [AdHocItem(name="Gift wrap", unit_price=3.0, quantity=2, kind="product")],
            "card",
        )
        assert sale.lines[0].item_id is None
        assert sale.final_total == pytest.approx(6.0)
        assert _stock(products["shampoo"]) == 10

    def test_inactive_service_not_found(self, db_session, services):
        with pytest.raises(ItemNotFoundError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="service", item_id=services["perm"])],
                "card",
            )
        assert _sale_count() == 0

    def test_other_business_item_not_found(self, db_session, other_business_product):
        with pytest.raises(ItemNotFoundError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="product", item_id=other_business_product)],
                "card",
            )

    def test_invalid_item_rejected_before_any_write(self, db_session, products):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="product", item_id=products["shampoo"], quantity=0)],
                "card",
            )
        assert _stock(products["shampoo"]) == 10

    def test_empty_sale_rejected(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.create_sale(BUSINESS_ID, ACTOR_ID, [], "card")


class TestStockAtomicity:
    def test_later_item_failure_rolls_back_earlier_reservations(self, db_session, products):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [
                    CatalogItem(kind="product", item_id=products["shampoo"], quantity=4),
                    CatalogItem(kind="product", item_id=products["wax"], quantity=2),
                ],
                "card",
            )

        assert exc.value.details["available"] == 1
        assert _stock(products["shampoo"]) == 10
        assert _stock(products["wax"]) == 1
        assert _sale_count() == 0

    def test_later_missing_item_rolls_back(self, db_session, products):
        with pytest.raises(ItemNotFoundError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [
                    CatalogItem(kind="product", item_id=products["shampoo"], quantity=1),
                    CatalogItem(kind="service", item_id=99999),
                ],
                "card",
            )
        assert _stock(products["shampoo"]) == 10

    def test_payment_mismatch_rolls_back_reservation(self, db_session, products):
        with pytest.raises(PaymentMismatchError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="product", item_id=products["shampoo"], quantity=2)],
                "mixed",
                [PaymentLeg("card", 10.0), PaymentLeg("transfer", 10.0)],
            )
        assert _stock(products["shampoo"]) == 10


class TestCashRegisterRule:
    def test_cash_without_open_register(self, db_session, services):
        with pytest.raises(RegisterClosedError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="service", item_id=services["haircut"])],
                "cash",
            )
        assert _sale_count() == 0

    def test_cash_leg_of_mixed_without_open_register(self, db_session, services):
        with pytest.raises(RegisterClosedError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="service", item_id=services["haircut"])],
                "mixed",
                [PaymentLeg("cash", 10.0), PaymentLeg("card", 15.0)],
            )

    def test_cash_with_open_register(self, db_session, services, open_register):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["haircut"])],
            "cash",
        )
        assert [(p.method, p.amount) for p in sale.payments] == [("cash", 25.0)]

    def test_other_business_register_does_not_count(self, db_session, services):
        from salonpos.services import cash_register_service
        cash_register_service.open_session(OTHER_BUSINESS_ID, ACTOR_ID, 100.0)

        with pytest.raises(RegisterClosedError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="service", item_id=services["haircut"])],
                "cash",
            )


class TestMixedPayments:
    def test_legs_sum_to_total(self, db_session, services, open_register):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["colour"])],
            "mixed",
            [PaymentLeg("cash", 20.0), PaymentLeg("card", 40.0, reference="AUTH-1")],
        )
        assert [p.method for p in sale.payments] == ["cash", "card"]
        assert sale.payments[1].reference == "AUTH-1"
        assert sale.payments[0].amount == pytest.approx(20.0)

    def test_within_tolerance(self, db_session, services):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["colour"])],
            "mixed",
            [PaymentLeg("card", 30.0), PaymentLeg("transfer", 29.995)],
        )
        assert sale.status == "completed"

    def test_short_payment_rejected(self, db_session):
        with pytest.raises(PaymentMismatchError) as exc:
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [AdHocItem(name="Treatment", unit_price=100.0)],
                "mixed",
                [PaymentLeg("card", 50.0), PaymentLeg("transfer", 40.0)],
            )
        assert exc.value.details["payments_total"] == 90.0
        assert exc.value.details["sale_total"] == 100.0
        assert _sale_count() == 0

    def test_single_leg_rejected(self, db_session):
        with pytest.raises(PaymentMismatchError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [AdHocItem(name="Treatment", unit_price=100.0)],
                "mixed",
                [PaymentLeg("card", 100.0)],
            )

    def test_mixed_leg_method_rejected(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [AdHocItem(name="Treatment", unit_price=100.0)],
                "mixed",
                [PaymentLeg("mixed", 50.0), PaymentLeg("card", 50.0)],
            )


class TestAppointmentSettlement:
    def test_marks_appointment_paid(self, db_session, services, appointment):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["haircut"])],
            "card",
            appointment_id=appointment,
        )

        appt = db_session.get(Appointment, appointment)
        assert sale.source == "appointment"
        assert sale.appointment_id == appointment
        assert appt.payment_status == "paid"
        assert appt.transaction_id == sale.id
        assert appt.paid_amount == pytest.approx(25.0)
        assert "25.00" in appt.payment_notes

    def test_unknown_appointment(self, db_session, products):
        with pytest.raises(AppointmentNotFoundError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="product", item_id=products["shampoo"])],
                "card",
                appointment_id=98765,
            )
        assert _stock(products["shampoo"]) == 10
        assert _sale_count() == 0

    def test_already_paid_appointment(self, db_session, services, appointment):
        sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID,
            [CatalogItem(kind="service", item_id=services["haircut"])],
            "card",
            appointment_id=appointment,
        )
        with pytest.raises(AppointmentNotFoundError):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID,
                [CatalogItem(kind="service", item_id=services["haircut"])],
                "card",
                appointment_id=appointment,
            )


class TestIdempotency:
    def test_same_key_returns_first_sale(self, db_session, products):
        items = [CatalogItem(kind="product", item_id=products["shampoo"], quantity=1)]
        first = sales_service.create_sale(BUSINESS_ID, ACTOR_ID, items, "card", idempotency_key="chk-1")
        second = sales_service.create_sale(BUSINESS_ID, ACTOR_ID, items, "card", idempotency_key="chk-1")

        assert first.id == second.id
        assert _sale_count() == 1
        assert _stock(products["shampoo"]) == 9

    def test_key_is_scoped_to_business(self, db_session):
        items = [AdHocItem(name="Service", unit_price=10.0)]
        a = sales_service.create_sale(BUSINESS_ID, ACTOR_ID, items, "card", idempotency_key="k")
        b = sales_service.create_sale(OTHER_BUSINESS_ID, ACTOR_ID, items, "card", idempotency_key="k")
        assert a.id != b.id


class TestQuickSale:
    def test_quick_sale_cash(self, db_session, open_register):
        sale = sales_service.quick_sale(BUSINESS_ID, ACTOR_ID, 18.0, "Kids cut")

        assert sale.final_total == pytest.approx(18.0)
        assert len(sale.lines) == 1
        assert sale.lines[0].name == "Kids cut"
        assert sale.lines[0].item_id is None
        assert sale.payment_method == "cash"

    def test_quick_sale_needs_register_for_cash(self, db_session):
        with pytest.raises(RegisterClosedError):
            sales_service.quick_sale(BUSINESS_ID, ACTOR_ID, 18.0)

    def test_quick_sale_card_without_register(self, db_session):
        sale = sales_service.quick_sale(BUSINESS_ID, ACTOR_ID, 18.0, payment_method="card")
        assert sale.lines[0].name == "Quick sale"

    @pytest.mark.parametrize("amount", [0, -5])
    def test_quick_sale_amount_must_be_positive(self, db_session, amount):
        with pytest.raises(InvalidAmountError):
            sales_service.quick_sale(BUSINESS_ID, ACTOR_ID, amount, payment_method="card")


class TestLookupAndListing:
    def test_get_sale_is_tenant_scoped(self, db_session):
        sale = sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID, [AdHocItem(name="Blow dry", unit_price=15.0)], "card",
        )
        assert sales_service.get_sale(BUSINESS_ID, sale.id).id == sale.id
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale(OTHER_BUSINESS_ID, sale.id)

    def test_list_sales_summary_and_pagination(self, db_session):
        for price in (10.0, 20.0, 30.0):
            sales_service.create_sale(
                BUSINESS_ID, ACTOR_ID, [AdHocItem(name="Service", unit_price=price)], "card", tip=1,
            )
        sales_service.create_sale(
            BUSINESS_ID, ACTOR_ID, [AdHocItem(name="Service", unit_price=50.0)], "transfer",
        )

        result = sales_service.list_sales(BUSINESS_ID, page=1, limit=2)
        assert len(result["sales"]) == 2
        assert result["sales"][0].final_total == pytest.approx(50.0)  # newest first
        assert result["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}
        assert result["summary"]["count"] == 4
        assert result["summary"]["total_sales"] == pytest.approx(113.0)
        assert result["summary"]["total_tips"] == pytest.approx(3.0)

        card_only = sales_service.list_sales(BUSINESS_ID, payment_method="card")
        assert card_only["summary"]["count"] == 3

    def test_list_sales_caps_limit(self, db_session):
        result = sales_service.list_sales(BUSINESS_ID, limit=500, max_limit=50)
        assert result["pagination"]["limit"] == 50
