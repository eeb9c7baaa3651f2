"""
Storefront: wires the stores of one client to the page it has loaded.
"""
import logging
import random
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from course_shop.catalog import CATALOG
from course_shop.cart_store import CartStore
from course_shop.chat_store import ChatStore
from course_shop.config import Config
from course_shop.exceptions import NotFoundError
from course_shop.notifications import NotificationCenter
from course_shop.projector import project_cart, project_chat, project_profile
from course_shop.reconciler import CartReconciler, ChatReconciler, NotificationReconciler, SessionReconciler
from course_shop.responder import BotResponder
from course_shop.scheduling import Scheduler
from course_shop.session_store import SessionStore
from course_shop.storage import StorageAdapter
from course_shop.surface import Element, Surface

logger = logging.getLogger(__name__)


def _header() -> List[Element]:
    return [
        Element("header-cart-badge", classes=("cart-badge",)),
        Element("mobile-cart-badge", classes=("cart-badge",)),
        Element("profile-link", classes=("icon-profile",)),
        Element("cart-notification", classes=("cart-notification",), visible=False),
    ]


def _courses() -> List[Element]:
    return [
        Element(f"qty-{product_id}", classes=("course-qty",), attributes={"data-product-id": product_id})
        for product_id in CATALOG
    ]


def _cart() -> List[Element]:
    return [
        Element("cart-items-container"),
        Element("cart-empty-message", visible=False),
        Element("cart-summary-section", classes=("cart-summary-section",), visible=False),
        Element("cart-subtotal"),
        Element("cart-tva"),
        Element("cart-total"),
    ]


def _chat() -> List[Element]:
    return [Element("messages")]


def _profile() -> List[Element]:
    return [Element("user-fullname"), Element("user-email"), Element("user-login-date")]


# page -> (elements besides the header, requires login)
PAGE_LAYOUTS: Dict[str, tuple] = {
    "home": (lambda: [], False),
    "courses": (_courses, False),
    "cart": (_cart, False),
    "login": (lambda: [], False),
    "chat": (_chat, True),
    "profile": (_profile, True),
}


def build_surface(page: str) -> Surface:
    if page not in PAGE_LAYOUTS:
        raise NotFoundError("pages", page)
    layout, _ = PAGE_LAYOUTS[page]
    return Surface(_header() + layout())


class PageLoad(BaseModel):
    """Result of on_load: the rendered page or where to go instead"""
    page: str
    redirect: Optional[str] = None
    elements: Dict[str, Dict] = {}


class Storefront:
    """All stores of one client, bound to the page it currently shows"""

    def __init__(
        self,
        storage: StorageAdapter,
        scheduler: Scheduler,
        rng: Optional[random.Random] = None
    ):
        self.storage = storage
        self.scheduler = scheduler
        self.surface = Surface()
        self.page: Optional[str] = None

        self.notifications = NotificationCenter(scheduler)
        self.session = SessionStore(storage, scheduler, key=Config.SESSION_KEY)
        self.cart = CartStore(storage, key=Config.CART_KEY, notify=self.notifications.show)
        self.chat = ChatStore(
            storage,
            scheduler,
            responder=BotResponder(rng),
            author_provider=self.session.author,
            key=Config.CHAT_KEY,
        )

        self._cart_reconciler = CartReconciler()
        self._chat_reconciler = ChatReconciler()
        self._session_reconciler = SessionReconciler()
        self._notification_reconciler = NotificationReconciler()

        self.cart.subscribe(
            lambda items: self._cart_reconciler.reconcile(
                project_cart(items, self.cart.catalog, self.cart.tax_rate), self.surface
            )
        )
        self.chat.subscribe(
            lambda messages: self._chat_reconciler.reconcile(
                project_chat(messages, self.scheduler.now()), self.surface
            )
        )
        self.session.subscribe(lambda session: self._session_reconciler.reconcile(project_profile(session), self.surface))
        self.notifications.subscribe(lambda message: self._notification_reconciler.reconcile(message, self.surface))

    def on_load(self, page: str) -> PageLoad:
        """Mount a page, then load, migrate and render every store into it"""
        surface = build_surface(page)
        _, requires_login = PAGE_LAYOUTS[page]
        if requires_login and not self.session.is_authenticated():
            logger.info("Redirecting guest to login", extra={"page": page})
            return PageLoad(page=page, redirect="login")

        if self.page == "chat" and page != "chat":
            self.chat.close()
        self.surface = surface
        self.page = page

        self.session.load()
        self.cart.load()
        if page == "chat":
            self.chat.initialize()
        return PageLoad(page=page, elements=self.surface.snapshot())

    def snapshot(self) -> Dict[str, Dict]:
        return self.surface.snapshot()

    def close(self) -> None:
        self.chat.close()
        self.notifications.close()


class StorefrontRegistry:
    """
    One Storefront per client id, each on its own storage namespace.

    Storefronts are dropped (and closed) once idle for idle_seconds, and the
    least recently used one goes when more than max_clients are held. State
    lives in storage, so an evicted client is rebuilt on its next request.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        scheduler_factory: Callable[[], Scheduler],
        max_clients: int = Config.STOREFRONT_MAX_CLIENTS,
        idle_seconds: Optional[float] = Config.STOREFRONT_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.storage = storage
        self.scheduler_factory = scheduler_factory
        self.max_clients = max_clients
        self.idle_seconds = idle_seconds
        self.clock = clock
        # client id -> (storefront, last access), least recently used first
        self._storefronts: "OrderedDict[str, Tuple[Storefront, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._storefronts)

    def get(self, client_id: str) -> Storefront:
        now = self.clock()
        self._evict_idle(now)

        entry = self._storefronts.pop(client_id, None)
        if entry is None:
            scoped = self.storage.scoped(f"{Config.STORAGE_KEY_PREFIX}:{client_id}:")
            storefront = Storefront(scoped, self.scheduler_factory())
        else:
            storefront = entry[0]
        self._storefronts[client_id] = (storefront, now)

        while len(self._storefronts) > self.max_clients:
            _, (oldest, _) = self._storefronts.popitem(last=False)
            self._evict(oldest, "capacity")
        return storefront

    def _evict_idle(self, now: float) -> None:
        if self.idle_seconds is None:
            return
        while self._storefronts:
            client_id, (storefront, last_seen) = next(iter(self._storefronts.items()))
            if now - last_seen < self.idle_seconds:
                break
            del self._storefronts[client_id]
            self._evict(storefront, "idle")

    def _evict(self, storefront: Storefront, reason: str) -> None:
        storefront.close()
        logger.info("Storefront evicted", extra={"reason": reason, "clients": len(self._storefronts)})

    def close(self) -> None:
        for storefront, _ in self._storefronts.values():
            storefront.close()
        self._storefronts.clear()
