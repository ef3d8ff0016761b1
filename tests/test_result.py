import pytest

from posledger.errors import ErrorKind, InsufficientStock, NotFound, ValidationError
from posledger.models.sales import STATUS_COMPLETED, STATUS_REFUNDED, STATUS_VOIDED
from posledger.result import Result, capture
from posledger.services.lifecycle_service import TERMINAL_STATUSES, VALID_STATUSES, can_transition


def _lookup(product_id):
    if product_id != 1:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return {"id": 1}


def test_capture_success():
    result = capture(_lookup, 1)
    assert result.ok
    assert result.unwrap() == {"id": 1}
    assert result.to_dict(lambda v: v["id"]) == {"ok": True, "data": 1}


def test_capture_folds_ledger_errors():
    result = capture(_lookup, 7)
    assert not result.ok
    assert result.error_kind is ErrorKind.NOT_FOUND
    assert result.to_dict() == {
        "ok": False,
        "error": {"kind": "not_found", "message": "Product 7 not found", "details": {"product_id": 7}},
    }
    with pytest.raises(ValueError):
        result.unwrap()


def test_capture_lets_other_exceptions_through():
    def boom():
        raise RuntimeError("disk on fire")

    with pytest.raises(RuntimeError):
        capture(boom)


def test_error_statuses():
    assert ValidationError("x").http_status == 400
    assert NotFound("x").http_status == 404
    err = InsufficientStock("short", {"sku": "A"})
    assert err.http_status == 409
    assert err.to_dict() == {"kind": "insufficient_stock", "message": "short", "details": {"sku": "A"}}


def test_result_failure_defaults():
    result = Result.failure(ErrorKind.VALIDATION, "bad")
    assert result.details == {}
    assert result.to_dict()["error"]["kind"] == "validation_error"


def test_transitions():
    assert can_transition(STATUS_COMPLETED, STATUS_REFUNDED)
    assert can_transition(STATUS_COMPLETED, STATUS_VOIDED)
    for terminal in TERMINAL_STATUSES:
        for target in VALID_STATUSES:
            assert not can_transition(terminal, target)
    assert not can_transition(STATUS_COMPLETED, STATUS_COMPLETED)
