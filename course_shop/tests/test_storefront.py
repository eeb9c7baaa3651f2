import copy
import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from course_shop.exceptions import NotFoundError
from course_shop.scheduling import ManualScheduler
from course_shop.storage import MemoryStorage
from course_shop.storefront import Storefront, StorefrontRegistry

START = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def _storefront(storage=None):
    scheduler = ManualScheduler(START)
    storefront = Storefront(storage or MemoryStorage(), scheduler, rng=random.Random(5))
    return storefront, scheduler


def test_cart_page_empty_state():
    storefront, _ = _storefront()
    result = storefront.on_load("cart")
    assert result.redirect is None
    assert result.elements["cart-empty-message"]["visible"] is True
    assert result.elements["cart-summary-section"]["visible"] is False
    assert result.elements["header-cart-badge"]["visible"] is False


def test_add_updates_every_mounted_view():
    storefront, scheduler = _storefront()
    storefront.on_load("cart")
    storefront.cart.add("react-js", "React.js", "49.99")

    surface = storefront.surface
    assert 'data-id="react-js"' in surface.get("cart-items-container").inner_html
    assert surface.get("cart-summary-section").visible
    assert surface.get("header-cart-badge").inner_html == "1"
    assert surface.get("mobile-cart-badge").inner_html == "1"
    assert surface.get("cart-total").inner_html == "59.99 €"

    notification = surface.get("cart-notification")
    assert notification.visible
    assert "React.js" in notification.inner_html
    scheduler.advance(3000)
    assert not notification.visible


def test_new_notification_replaces_previous():
    storefront, scheduler = _storefront()
    storefront.on_load("home")
    storefront.cart.add("a", "Premier", "1")
    scheduler.advance(2000)
    storefront.cart.add("b", "Second", "1")
    scheduler.advance(1500)
    notification = storefront.surface.get("cart-notification")
    assert notification.visible
    assert "Second" in notification.inner_html


def test_courses_page_counters():
    storefront, _ = _storefront()
    storefront.on_load("courses")
    storefront.cart.add("python-debutant", "Python", "29.99")
    storefront.cart.add("python-debutant", "Python", "29.99")
    assert storefront.surface.get("qty-python-debutant").inner_html == "2"
    storefront.cart.decrement("python-debutant")
    assert storefront.surface.get("qty-python-debutant").inner_html == "1"
    assert storefront.surface.get("qty-react-js").inner_html == "0"


def test_reload_is_byte_identical():
    storefront, _ = _storefront()
    storefront.on_load("cart")
    storefront.cart.add("react-js", "React.js", "49.99")
    first = copy.deepcopy(storefront.on_load("cart").elements)
    second = storefront.on_load("cart").elements
    assert first == second


def test_chat_requires_login():
    storefront, _ = _storefront()
    result = storefront.on_load("chat")
    assert result.redirect == "login"
    assert result.elements == {}


def test_chat_page_welcome_and_reply():
    storefront, scheduler = _storefront()
    storefront.session.login("123", "123")
    result = storefront.on_load("chat")
    assert "empty-chat" in result.elements["messages"]["html"]

    scheduler.advance(500)
    messages = storefront.surface.get("messages")
    assert "bienvenue sur ESTIA Learning" in messages.inner_html
    assert "Aujourd&#x27;hui" in messages.inner_html

    sent = storefront.chat.send("Bonjour")
    assert sent.author.display_name == "Étudiant ESTIA"
    scheduler.advance(3000)
    assert len(storefront.chat.messages()) == 3
    assert messages.scroll_anchor == storefront.chat.messages()[-1].id


def test_profile_page_and_header_link():
    storefront, _ = _storefront()
    result = storefront.on_load("home")
    assert result.elements["profile-link"]["attributes"]["href"] == "login.html"

    storefront.session.login("123", "123")
    result = storefront.on_load("profile")
    assert result.elements["profile-link"]["attributes"]["href"] == "profile.html"
    assert result.elements["user-email"]["html"] == "etudiant@estia.fr"
    assert result.elements["user-login-date"]["html"] == "15 janvier 2024 à 10:00"


def test_leaving_chat_cancels_pending_reply():
    storefront, scheduler = _storefront()
    storefront.session.login("123", "123")
    storefront.on_load("chat")
    storefront.chat.send("Bonjour")
    storefront.on_load("cart")
    scheduler.advance(5000)
    assert [m.content for m in storefront.chat.messages()] == ["Bonjour"]


def test_unknown_page():
    storefront, _ = _storefront()
    with pytest.raises(NotFoundError):
        storefront.on_load("admin")


def test_registry_isolates_clients():
    storage = MemoryStorage()
    registry = StorefrontRegistry(storage, lambda: ManualScheduler(START))
    alice = registry.get("alice")
    bob = registry.get("bob")
    assert registry.get("alice") is alice

    alice.cart.add("react-js", "React.js", "49.99")
    assert bob.cart.items() == []
    assert "storage:alice:estia_learning_cart" in storage.data
    registry.close()


def test_rendered_total_uses_store_tax_rate():
    storefront, _ = _storefront()
    storefront.cart.tax_rate = Decimal("0.10")
    storefront.on_load("cart")
    storefront.cart.add("a", "Atelier", "10.00")
    assert storefront.surface.get("cart-tva").inner_html == "1.00 €"
    assert storefront.surface.get("cart-total").inner_html == "11.00 €"
    assert storefront.cart.totals().total == Decimal("11.00")


def test_registry_evicts_least_recently_used_and_cancels_its_tasks():
    storage = MemoryStorage()
    registry = StorefrontRegistry(storage, lambda: ManualScheduler(START), max_clients=2, idle_seconds=None)
    alice = registry.get("alice")
    alice.chat.send("Bonjour")
    assert alice.scheduler.pending()

    registry.get("bob")
    registry.get("alice")
    registry.get("carol")
    assert len(registry) == 2
    # bob was least recently used
    assert registry.get("alice") is alice

    registry.get("carol")
    registry.get("dave")
    assert len(registry) == 2
    assert alice.scheduler.pending() == []
    assert alice.chat.pending_tasks() == []

    rebuilt = registry.get("alice")
    assert rebuilt is not alice
    assert [m.content for m in rebuilt.chat.messages()] == ["Bonjour"]
    registry.close()


def test_registry_evicts_idle_clients():
    now = [0.0]
    registry = StorefrontRegistry(
        MemoryStorage(), lambda: ManualScheduler(START), idle_seconds=60, clock=lambda: now[0]
    )
    alice = registry.get("alice")
    alice.chat.send("Bonjour")

    now[0] = 30.0
    registry.get("bob")
    assert len(registry) == 2

    now[0] = 61.0
    registry.get("bob")
    assert len(registry) == 1
    assert alice.chat.pending_tasks() == []
    assert registry.get("alice") is not alice
    registry.close()
