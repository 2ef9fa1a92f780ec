"""Tests for the sales log."""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from marketplace.models.user import User, UserRole
from marketplace.services.exceptions import ForbiddenError, NotFoundError, StorageError, ValidationError
from marketplace.services.transaction_log import TransactionLog
from marketplace.utils.dates import utcnow


@pytest.fixture
def log(db_session):
    return TransactionLog(db_session)


def test_record_sale_is_not_committed(log, db_session, make_product, shopper):
    product = make_product()

    sale = log.record_sale(product.id, shopper.id, 2.5)
    assert sale.id is not None
    assert sale.date_of_sale is not None

    db_session.rollback()
    assert log.history(product.id, product.owner_id) == []


def test_record_sale_on_busy_database_is_retryable(log, db_session, make_product, shopper):
    product = make_product()
    busy = OperationalError("INSERT", {}, Exception("database is locked"))

    with patch.object(db_session, "flush", side_effect=busy):
        with pytest.raises(StorageError) as exc_info:
            log.record_sale(product.id, shopper.id, 1)

    assert exc_info.value.retryable is True


def test_record_sale_integrity_failure_is_not_retryable(log, db_session, make_product, shopper):
    product = make_product()
    broken = IntegrityError("INSERT", {}, Exception("CHECK constraint failed"))

    with patch.object(db_session, "flush", side_effect=broken):
        with pytest.raises(StorageError) as exc_info:
            log.record_sale(product.id, shopper.id, 1)

    assert exc_info.value.retryable is False


def test_history_newest_first(log, db_session, make_product, shopper):
    product = make_product()
    now = utcnow()
    log.record_sale(product.id, shopper.id, 1, now - timedelta(hours=2))
    log.record_sale(product.id, shopper.id, 2, now)
    log.record_sale(product.id, shopper.id, 3, now - timedelta(hours=1))
    db_session.commit()

    sales = log.history(product.id, product.owner_id)

    assert [s.quantity_sold for s in sales] == [2, 3, 1]
    assert all(s.buyer_email == "shopper@example.com" for s in sales)


def test_history_same_timestamp_newest_id_first(log, db_session, make_product, shopper):
    product = make_product()
    now = utcnow()
    first = log.record_sale(product.id, shopper.id, 1, now)
    second = log.record_sale(product.id, shopper.id, 2, now)
    db_session.commit()

    sales = log.history(product.id, product.owner_id)

    assert [s.id for s in sales] == [second.id, first.id]


def test_history_days_filter(log, db_session, make_product, shopper):
    product = make_product()
    now = utcnow()
    log.record_sale(product.id, shopper.id, 1, now - timedelta(days=10))
    log.record_sale(product.id, shopper.id, 2, now - timedelta(days=3))
    log.record_sale(product.id, shopper.id, 3, now - timedelta(hours=1))
    db_session.commit()

    assert [s.quantity_sold for s in log.history(product.id, product.owner_id, since_days=7)] == [3, 2]
    assert [s.quantity_sold for s in log.history(product.id, product.owner_id, since_days=0.5)] == [3]
    assert len(log.history(product.id, product.owner_id)) == 3


def test_history_only_for_product(log, db_session, make_product, shopper):
    mango = make_product(name="Mango")
    lime = make_product(name="Lime")
    log.record_sale(mango.id, shopper.id, 1)
    log.record_sale(lime.id, shopper.id, 2)
    db_session.commit()

    sales = log.history(lime.id, lime.owner_id)

    assert [s.product_id for s in sales] == [lime.id]


def test_history_not_owner(log, db_session, make_product):
    product = make_product()
    other = User(email="other@example.com", password_hash="x", role=UserRole.VILLAGER)
    db_session.add(other)
    db_session.commit()

    with pytest.raises(ForbiddenError):
        log.history(product.id, other.id)


def test_history_not_found(log, seller):
    with pytest.raises(NotFoundError):
        log.history(9999, seller.id)


@pytest.mark.parametrize("days", [-1, float("nan"), float("inf")])
def test_history_invalid_days(log, make_product, days):
    product = make_product()

    with pytest.raises(ValidationError):
        log.history(product.id, product.owner_id, since_days=days)
