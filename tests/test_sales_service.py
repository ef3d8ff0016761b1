"""
Sales ledger tests: commit, atomic failure, lifecycle transitions, history.
"""

import re
from datetime import datetime, timedelta

import pytest

from posledger.errors import (
    DuplicateIdentifier,
    ErrorKind,
    InsufficientStock,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from posledger.extensions import db
from posledger.models import Product, Sale, StockMovement
from posledger.services import sales_service
from posledger.services.sale_request import CreateSaleLine, CreateSaleRequest
from posledger.services.sales_service import SaleFilter
from posledger.time_utils import utcnow
from posledger.validation import MAX_QUANTITY
from tests.conftest import stock_of


def _request(*lines, **overrides):
    fields = {
        "payment_method": "Cash",
        "lines": tuple(CreateSaleLine(product_id=pid, quantity=qty, discount_cents=disc) for pid, qty, disc in lines),
    }
    fields.update(overrides)
    return CreateSaleRequest(**fields)


def _sale_count():
    return db.session.query(Sale).count()


def _movement_count():
    return db.session.query(StockMovement).count()


class TestCreateSale:
    def test_commit_debits_stock_and_prices_from_product(self, make_product):
        tea = make_product(name="Green Tea", unit_price_cents=1000, tax_rate_bps=500, stock_quantity=10)
        mug = make_product(name="Mug", unit_price_cents=500, stock_quantity=3)

        sale = sales_service.create_sale(_request(
            (tea.id, 2, 100),
            (mug.id, 1, 0),
            customer_name="Asha",
            discount_cents=200,
        ))

        assert sale.status == "COMPLETED"
        assert sale.subtotal_cents == 2500
        assert sale.discount_cents == 200
        assert sale.tax_cents == 95  # 5% of (2000 - 100)
        assert sale.total_cents == 2500 - 200 + 95
        assert [line.position for line in sale.lines] == [1, 2]

        first = sale.lines[0]
        assert first.product_name == "Green Tea"
        assert first.unit_price_cents == 1000
        assert first.tax_rate_bps == 500
        assert first.line_subtotal_cents == 2000
        assert first.discount_cents == 100
        assert first.tax_cents == 95
        assert first.line_total_cents == 1995

        assert stock_of(tea.id) == 8
        assert stock_of(mug.id) == 2

        movements = db.session.query(StockMovement).filter_by(sale_id=sale.id).all()
        assert sorted(m.quantity_delta for m in movements) == [-2, -1]
        assert {m.movement_type for m in movements} == {"SALE"}
        assert {m.ref for m in movements} == {sale.sale_number}

    def test_lines_keep_snapshot_after_product_edit(self, make_product):
        product = make_product(unit_price_cents=1000, tax_rate_bps=500)
        sale = sales_service.create_sale(_request((product.id, 1, 0)))

        product.unit_price_cents = 4000
        product.tax_rate_bps = 0
        db.session.commit()

        db.session.expire_all()
        line = db.session.get(Sale, sale.id).lines[0]
        assert line.unit_price_cents == 1000
        assert line.tax_rate_bps == 500
        assert line.line_total_cents == 1050

    def test_order_discount_clamped_to_subtotal(self, make_product):
        product = make_product(unit_price_cents=300)
        sale = sales_service.create_sale(_request((product.id, 1, 0), discount_cents=10_000))
        assert sale.discount_cents == 300
        assert sale.total_cents == 0

    def test_repeated_product_lines_are_checked_together(self, make_product):
        product = make_product(stock_quantity=3)
        with pytest.raises(InsufficientStock) as excinfo:
            sales_service.create_sale(_request((product.id, 2, 0), (product.id, 2, 0)))

        item = excinfo.value.details["items"][0]
        assert item["requested_quantity"] == 4
        assert item["stock_quantity"] == 3
        assert stock_of(product.id) == 3

    def test_allocated_sale_numbers_are_sequential(self, make_product):
        product = make_product()
        first = sales_service.create_sale(_request((product.id, 1, 0)))
        second = sales_service.create_sale(_request((product.id, 1, 0)))

        assert re.fullmatch(r"INV-\d{8}-0001", first.sale_number)
        assert re.fullmatch(r"INV-\d{8}-0002", second.sale_number)

    def test_allocation_skips_numbers_taken_by_hand(self, make_product):
        product = make_product()
        first = sales_service.create_sale(_request((product.id, 1, 0)))
        business_date = first.sale_number.split("-")[1]

        sales_service.create_sale(_request((product.id, 1, 0), sale_number=f"INV-{business_date}-0002"))
        third = sales_service.create_sale(_request((product.id, 1, 0)))
        assert third.sale_number == f"INV-{business_date}-0003"

    def test_allocated_number_uses_created_at_date(self, make_product, monkeypatch):
        late = datetime(2026, 1, 31, 23, 59, 59)
        monkeypatch.setattr(sales_service, "utcnow", lambda: late)
        product = make_product()

        sale = sales_service.create_sale(_request((product.id, 1, 0)))
        assert sale.sale_number == "INV-20260131-0001"
        assert sale.created_at == late


class TestCreateSaleFailures:
    def test_no_positive_lines_is_validation_error(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            sales_service.create_sale(_request((product.id, 0, 0)))
        with pytest.raises(ValidationError):
            sales_service.create_sale(_request())

        assert stock_of(product.id) == 10
        assert _sale_count() == 0

    def test_unknown_payment_method(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            sales_service.create_sale(_request((product.id, 1, 0), payment_method="IOU"))

    def test_duplicate_sale_number(self, make_product):
        product = make_product()
        sales_service.create_sale(_request((product.id, 1, 0), sale_number="INV-MANUAL-1"))

        with pytest.raises(DuplicateIdentifier) as excinfo:
            sales_service.create_sale(_request((product.id, 1, 0), sale_number="INV-MANUAL-1"))

        assert excinfo.value.kind is ErrorKind.DUPLICATE_IDENTIFIER
        assert excinfo.value.details == {"sale_number": "INV-MANUAL-1"}
        assert stock_of(product.id) == 9
        assert _sale_count() == 1

    def test_unknown_product_changes_nothing(self, make_product):
        product = make_product()
        with pytest.raises(NotFound):
            sales_service.create_sale(_request((product.id, 1, 0), (99999, 1, 0)))

        assert stock_of(product.id) == 10
        assert _sale_count() == 0
        assert _movement_count() == 0

    def test_insufficient_stock_is_all_or_nothing(self, make_product):
        plenty = make_product(stock_quantity=5)
        scarce = make_product(stock_quantity=1)

        with pytest.raises(InsufficientStock) as excinfo:
            sales_service.create_sale(_request((plenty.id, 2, 0), (scarce.id, 3, 0)))

        assert [i["product_id"] for i in excinfo.value.details["items"]] == [scarce.id]
        assert stock_of(plenty.id) == 5
        assert stock_of(scarce.id) == 1
        assert _sale_count() == 0
        assert _movement_count() == 0

    def test_inactive_product_cannot_be_sold(self, make_product):
        product = make_product(is_active=False)
        with pytest.raises(ValidationError) as excinfo:
            sales_service.create_sale(_request((product.id, 1, 0)))
        assert excinfo.value.details == {"product_ids": [product.id]}
        assert stock_of(product.id) == 10

    def test_quantity_above_limit_is_rejected(self, make_product):
        product = make_product(unit_price_cents=100_000, stock_quantity=10**15)
        with pytest.raises(ValidationError) as excinfo:
            sales_service.create_sale(_request((product.id, MAX_QUANTITY + 1, 0)))
        assert excinfo.value.details["max"] == MAX_QUANTITY
        assert stock_of(product.id) == 10**15
        assert _sale_count() == 0

    def test_failure_at_commit_rolls_back_debits(self, make_product, monkeypatch):
        product = make_product(stock_quantity=5)
        product_id = product.id
        seen_before_commit = []

        def failing_commit():
            seen_before_commit.append(db.session.get(Product, product_id).stock_quantity)
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            sales_service.create_sale(_request((product_id, 2, 0)))
        monkeypatch.undo()

        # the debit had been applied in the session when commit failed
        assert seen_before_commit == [3]
        assert stock_of(product_id) == 5
        assert _sale_count() == 0
        assert _movement_count() == 0

    def test_allocated_number_collision_names_the_number(self, make_product, monkeypatch):
        monkeypatch.setattr(sales_service, "utcnow", lambda: datetime(2026, 1, 31, 23, 59, 30))
        product = make_product()
        sales_service.create_sale(_request((product.id, 1, 0), sale_number="INV-20260131-0001"))

        # another till inserted the same number between the check and the insert
        monkeypatch.setattr(sales_service, "_sale_number_taken", lambda sale_number: False)
        with pytest.raises(DuplicateIdentifier) as excinfo:
            sales_service.create_sale(_request((product.id, 1, 0)))

        assert excinfo.value.details == {"sale_number": "INV-20260131-0001"}
        assert "INV-20260131-0001" in excinfo.value.message
        assert stock_of(product.id) == 9


class TestLifecycle:
    def test_refund_restores_stock_once(self, make_product):
        product = make_product(stock_quantity=5)
        sale = sales_service.create_sale(_request((product.id, 2, 0)))
        assert stock_of(product.id) == 3

        refunded = sales_service.refund_sale(sale.id)
        assert refunded.status == "REFUNDED"
        assert refunded.refunded_at is not None
        assert stock_of(product.id) == 5

        with pytest.raises(InvalidStateTransition) as excinfo:
            sales_service.refund_sale(sale.id)
        assert excinfo.value.details["current_status"] == "REFUNDED"
        assert stock_of(product.id) == 5

        refund_moves = db.session.query(StockMovement).filter_by(sale_id=sale.id, movement_type="REFUND").all()
        assert [m.quantity_delta for m in refund_moves] == [2]

    def test_void_restores_stock_by_default(self, make_product):
        product = make_product(stock_quantity=5)
        sale = sales_service.create_sale(_request((product.id, 4, 0)))

        voided = sales_service.void_sale(sale.id, "  wrong customer  ")
        assert voided.status == "VOIDED"
        assert voided.voided_at is not None
        assert voided.note == "wrong customer"
        assert stock_of(product.id) == 5

    def test_void_can_keep_stock_out(self, make_product):
        product = make_product(stock_quantity=5)
        sale = sales_service.create_sale(_request((product.id, 4, 0)))

        sales_service.void_sale(sale.id, restore_stock=False)
        assert stock_of(product.id) == 1
        assert db.session.query(StockMovement).filter_by(movement_type="VOID").count() == 0

    def test_void_follows_config_switch(self, app, make_product, monkeypatch):
        monkeypatch.setitem(app.config, "VOID_RESTORES_STOCK", False)
        product = make_product(stock_quantity=5)
        sale = sales_service.create_sale(_request((product.id, 2, 0)))

        sales_service.void_sale(sale.id)
        assert stock_of(product.id) == 3

    def test_terminal_states_reject_further_transitions(self, make_product):
        product = make_product()
        refunded = sales_service.create_sale(_request((product.id, 1, 0)))
        voided = sales_service.create_sale(_request((product.id, 1, 0)))
        sales_service.refund_sale(refunded.id)
        sales_service.void_sale(voided.id)

        with pytest.raises(InvalidStateTransition):
            sales_service.void_sale(refunded.id)
        with pytest.raises(InvalidStateTransition):
            sales_service.refund_sale(voided.id)
        with pytest.raises(InvalidStateTransition):
            sales_service.void_sale(voided.id)

        assert stock_of(product.id) == 10

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFound):
            sales_service.fetch_sale(12345)
        with pytest.raises(NotFound):
            sales_service.refund_sale(12345)
        with pytest.raises(NotFound):
            sales_service.void_sale(12345)


class TestListSales:
    @pytest.fixture
    def history(self, make_product):
        product = make_product(stock_quantity=50)
        cash = sales_service.create_sale(_request((product.id, 1, 0), customer_name="Asha Rao"))
        card = sales_service.create_sale(_request((product.id, 1, 0), payment_method="Card", customer_name="Ben"))
        wallet = sales_service.create_sale(_request((product.id, 1, 0), payment_method="Wallet/UPI"))
        sales_service.refund_sale(card.id)
        return {"cash": cash.id, "card": card.id, "wallet": wallet.id}

    def test_newest_first(self, history):
        ids = [s.id for s in sales_service.list_sales()]
        assert ids == [history["wallet"], history["card"], history["cash"]]

    def test_filter_by_payment_method_and_status(self, history):
        by_method = sales_service.list_sales(SaleFilter(payment_methods={"Cash", "Wallet/UPI"}))
        assert {s.id for s in by_method} == {history["cash"], history["wallet"]}

        refunded = sales_service.list_sales(SaleFilter(statuses={"REFUNDED"}))
        assert [s.id for s in refunded] == [history["card"]]

    def test_customer_query_is_case_insensitive(self, history):
        found = sales_service.list_sales(SaleFilter(customer_query="  asha "))
        assert [s.id for s in found] == [history["cash"]]

    def test_query_matches_sale_number(self, history):
        number = db.session.get(Sale, history["wallet"]).sale_number
        found = sales_service.list_sales(SaleFilter(customer_query=number.lower()))
        assert [s.id for s in found] == [history["wallet"]]

    def test_date_window(self, history):
        past = utcnow() - timedelta(days=2)
        assert sales_service.list_sales(SaleFilter(date_to=past)) == []

        window = SaleFilter(date_from=utcnow() - timedelta(hours=1), date_to=utcnow() + timedelta(hours=1))
        assert len(sales_service.list_sales(window)) == 3

    def test_limit_and_offset(self, history):
        page = sales_service.list_sales(SaleFilter(limit=1, offset=1))
        assert [s.id for s in page] == [history["card"]]
