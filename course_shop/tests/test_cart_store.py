import json
import random
from decimal import Decimal

import pytest

from course_shop.cart_store import CartStore
from course_shop.exceptions import NotFoundError, ValidationError
from course_shop.projector import badge_count, quantity_for
from course_shop.storage import MemoryStorage

KEY = "estia_learning_cart"


def _stored(storage):
    return json.loads(storage.data[KEY])


def _store(storage=None, notifications=None):
    storage = storage if storage is not None else MemoryStorage()
    notify = notifications.append if notifications is not None else None
    return CartStore(storage, key=KEY, notify=notify), storage


def test_add_new_item_with_catalog_metadata():
    notes = []
    store, storage = _store(notifications=notes)
    item = store.add("python-debutant", "Python pour débutants", "29.99", author="Marie Curie")
    assert item.quantity == 1
    assert item.category.icon == "🐍"
    stored = _stored(storage)
    assert stored["schema_version"] == 2
    assert stored["items"][0]["unit_price"] == "29.99"
    assert stored["items"][0]["author"] == "Marie Curie"
    assert notes == ['"Python pour débutants" ajouté au panier !']


def test_add_unknown_id_uses_generic_metadata():
    store, _ = _store()
    item = store.add("atelier-photo", "Atelier photo", 19)
    assert item.category.name == "Formation"
    assert item.category.rating == "4.5"
    assert item.category.level == "debutant"


def test_add_existing_increments_quantity():
    store, storage = _store()
    store.add("react-js", "React", "49.99")
    store.add("react-js", "React", "49.99")
    assert [(i["id"], i["quantity"]) for i in _stored(storage)["items"]] == [("react-js", 2)]


@pytest.mark.parametrize("price", ["0", 0, -5, "abc", None, True, float("nan"), "inf", ""])
def test_add_rejects_bad_price(price):
    notes = []
    store, storage = _store(notifications=notes)
    with pytest.raises(ValidationError):
        store.add("react-js", "React", price)
    assert storage.data == {}
    assert notes == []


def test_add_rejects_empty_id():
    store, storage = _store()
    with pytest.raises(ValidationError):
        store.add("  ", "Nothing", "10")
    assert storage.data == {}


def test_insertion_order_is_preserved():
    store, _ = _store()
    for pid in ["c", "a", "b"]:
        store.add(pid, pid.upper(), "1")
    store.increment("a")
    store.decrement("c")
    store.add("c", "C", "1")
    assert [item.id for item in store.items()] == ["a", "b", "c"]


def test_increment_and_decrement():
    store, _ = _store()
    store.add("a", "A", "10")
    assert store.increment("a") is True
    assert store.get_item("a").quantity == 2
    assert store.decrement("a") is True
    assert store.get_item("a").quantity == 1


def test_unknown_ids_are_silent_noops():
    store, storage = _store()
    assert store.increment("ghost") is False
    assert store.decrement("ghost") is False
    assert store.remove("ghost") is False
    assert store.remove("ghost", remove_all=True) is False
    assert storage.data == {}


def test_decrement_at_one_equals_remove_all():
    left, left_storage = _store()
    right, right_storage = _store()
    for store in (left, right):
        store.add("a", "A", "10")
        store.add("b", "B", "5")
    left.decrement("a")
    right.remove("a", remove_all=True)
    assert left_storage.data == right_storage.data
    assert [item.id for item in left.items()] == ["b"]


def test_remove_single_unit_then_item():
    store, _ = _store()
    store.add("a", "A", "10")
    store.add("a", "A", "10")
    store.remove("a")
    assert store.get_item("a").quantity == 1
    store.remove("a")
    with pytest.raises(NotFoundError):
        store.get_item("a")


def test_clear_persists_empty_sequence():
    store, storage = _store()
    store.add("a", "A", "10")
    store.clear()
    assert _stored(storage) == {"schema_version": 2, "items": []}
    assert store.items() == []


def test_totals():
    store, _ = _store()
    store.add("a", "A", "10.00")
    store.add("a", "A", "10.00")
    store.add("b", "B", "5.50")
    totals = store.totals()
    assert totals.subtotal == Decimal("25.50")
    assert totals.tax == Decimal("5.10")
    assert totals.total == Decimal("30.60")


def test_totals_keep_full_precision():
    store, _ = _store()
    store.add("a", "A", "0.333")
    totals = store.totals()
    assert totals.tax == Decimal("0.0666")


def test_random_sequences_keep_quantities_positive():
    rng = random.Random(7)
    ids = ["a", "b", "c", "d"]
    for _ in range(20):
        store, storage = _store()
        expected = {}
        for _ in range(60):
            pid = rng.choice(ids)
            op = rng.choice(["add", "increment", "decrement", "remove", "remove_all"])
            if op == "add":
                store.add(pid, pid.upper(), "3.5")
                expected[pid] = expected.get(pid, 0) + 1
            elif op == "increment":
                store.increment(pid)
                if pid in expected:
                    expected[pid] += 1
            elif op in ("decrement", "remove"):
                if op == "decrement":
                    store.decrement(pid)
                else:
                    store.remove(pid)
                if pid in expected:
                    expected[pid] -= 1
                    if expected[pid] == 0:
                        del expected[pid]
            else:
                store.remove(pid, remove_all=True)
                expected.pop(pid, None)

            items = store.items()
            assert badge_count(items) == sum(expected.values())
            for item_id, quantity in expected.items():
                assert quantity_for(items, item_id) == quantity
            if KEY in storage.data:
                assert all(i["quantity"] >= 1 for i in _stored(storage)["items"])


def test_round_trip_through_storage():
    store, storage = _store()
    store.add("python-debutant", "Python", "29.99")
    store.add("atelier", "Atelier", "12.5")
    store.increment("atelier")
    reloaded = CartStore(storage, key=KEY)
    assert reloaded.items() == store.items()


def test_load_migrates_legacy_record_and_persists_once():
    storage = MemoryStorage(data={KEY: json.dumps([
        {"id": "react-js", "name": "React", "price": 49.99, "image": "", "author": "Jean", "quantity": 2},
    ])})
    store = CartStore(storage, key=KEY)
    seen = []
    store.subscribe(seen.append)

    items = store.load()
    assert items[0].unit_price == Decimal("49.99")
    assert items[0].category.icon == "⚛️"
    upgraded = storage.data[KEY]
    assert json.loads(upgraded)["schema_version"] == 2
    assert len(seen) == 1

    store.load()
    assert storage.data[KEY] == upgraded


def test_unreadable_record_starts_empty_and_is_left_alone():
    storage = MemoryStorage(data={KEY: json.dumps({"schema_version": 99, "items": []})})
    store = CartStore(storage, key=KEY)
    assert store.load() == []
    assert json.loads(storage.data[KEY])["schema_version"] == 99


def test_failed_write_degrades_to_memory_and_retries_next_mutation():
    storage = MemoryStorage(quota_bytes=10)
    store = CartStore(storage, key=KEY)
    store.add("a", "A", "10")
    assert KEY not in storage.data
    assert store.get_item("a").quantity == 1

    storage.quota_bytes = None
    store.increment("a")
    assert _stored(storage)["items"][0]["quantity"] == 2


def test_subscribers_receive_snapshots():
    store, _ = _store()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.add("a", "A", "10")
    seen[0][0].quantity = 99
    assert store.get_item("a").quantity == 1
    unsubscribe()
    store.increment("a")
    assert len(seen) == 1
