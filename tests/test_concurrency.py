"""Concurrent purchases against a file-backed database."""
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from marketplace.database import build_engine
from marketplace.migrations import run_migrations
from marketplace.models.product import Product
from marketplace.models.transaction import Transaction
from marketplace.models.user import User, UserRole
from marketplace.services.exceptions import InsufficientStockError
from marketplace.services.inventory_service import InventoryService


@pytest.fixture
def ledger(tmp_path):
    """Sessionmaker on a fresh SQLite file, seeded with one product of stock 10."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    run_migrations(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as db:
        seller = User(email="farmer@example.com", password_hash="x", role=UserRole.VILLAGER)
        buyers = [
            User(email=f"buyer{i}@example.com", password_hash="x", role=UserRole.USER)
            for i in range(4)
        ]
        db.add_all([seller, *buyers])
        db.flush()
        product = Product(
            owner_id=seller.id,
            name="Durian",
            price=10.0,
            stock=10.0,
            low_stock_threshold=2.0,
        )
        db.add(product)
        db.commit()
        ids = {"product": product.id, "buyers": [b.id for b in buyers]}

    yield Session, ids

    engine.dispose()


def _race(Session, notifier, product_id, buyer_ids, quantity):
    barrier = threading.Barrier(len(buyer_ids))
    outcomes = []
    lock = threading.Lock()

    def buy(buyer_id):
        with Session() as db:
            service = InventoryService(db, notifier)
            barrier.wait()
            try:
                service.purchase(product_id, buyer_id, quantity, buyer_role=UserRole.USER)
                outcome = "ok"
            except InsufficientStockError:
                outcome = "insufficient"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=buy, args=(buyer_id,)) for buyer_id in buyer_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    return outcomes


def test_two_buyers_race_for_last_stock(ledger, notifier):
    """Test only one of two purchases of 6 kg out of 10 kg succeeds."""
    Session, ids = ledger

    outcomes = _race(Session, notifier, ids["product"], ids["buyers"][:2], 6)

    assert sorted(outcomes) == ["insufficient", "ok"]
    with Session() as db:
        assert db.get(Product, ids["product"]).stock == 4
        assert db.query(Transaction).count() == 1


def test_many_buyers_never_oversell(ledger, notifier):
    """Test stock never goes negative and sold quantity matches the decrement."""
    Session, ids = ledger

    outcomes = _race(Session, notifier, ids["product"], ids["buyers"], 3)

    assert outcomes.count("ok") == 3
    assert outcomes.count("insufficient") == 1
    with Session() as db:
        product = db.get(Product, ids["product"])
        sold = sum(t.quantity_sold for t in db.query(Transaction).all())
        assert product.stock == 1
        assert sold == 9
        assert product.low_stock_since_date is not None

    # Crossing the threshold of 2 kg happens once
    assert len(notifier.notices) == 1
