"""
Pure projections from store snapshots to aggregates and view models.

Nothing here touches storage or the page; the reconciler consumes the
view models produced here.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from course_shop.catalog import CATALOG, FALLBACK_METADATA
from course_shop.config import Config
from course_shop.models import (
    CartItem,
    CartTotals,
    CategoryMetadata,
    ChatMessage,
    Direction,
    Session,
)

PLACEHOLDER_COLORS = ["#3498db", "#2ecc71", "#e74c3c", "#9b59b6", "#f39c12", "#1abc9c", "#e67e22"]

FRENCH_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]

CENT = Decimal("0.01")


class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---- Cart ----

def badge_count(items: Sequence[CartItem]) -> int:
    return sum(item.quantity for item in items)


def quantity_for(items: Sequence[CartItem], product_id: str) -> int:
    for item in items:
        if item.id == product_id:
            return item.quantity
    return 0


def display_metadata_for(item: CartItem, catalog: Optional[Dict[str, CategoryMetadata]] = None) -> CategoryMetadata:
    """Item metadata, else catalog entry, else the generic fallback"""
    if item.category is not None:
        return item.category
    source = CATALOG if catalog is None else catalog
    return source.get(item.id) or FALLBACK_METADATA


def compute_totals(items: Sequence[CartItem], tax_rate: Decimal = Config.TAX_RATE) -> CartTotals:
    subtotal = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
    tax = subtotal * tax_rate
    return CartTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def format_money(amount: Decimal) -> str:
    return f"{amount.quantize(CENT, rounding=ROUND_HALF_UP)} {Config.CURRENCY_SYMBOL}"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def placeholder_color(product_id: str) -> str:
    """Stable palette colour for a product id, same pick as the storefront pages"""
    raw = product_id.encode("utf-16-le")
    value = 0
    for i in range(0, len(raw), 2):
        code_unit = raw[i] | (raw[i + 1] << 8)
        # Only the shift operand wraps to 32 bits; the running value does not
        value = code_unit + _to_int32(_to_int32(value) << 5) - value
    return PLACEHOLDER_COLORS[abs(value) % len(PLACEHOLDER_COLORS)]


class CartLineView(_View):
    product_id: str
    name: str
    initials: str
    author_label: str
    color: str
    icon: str
    category_name: str
    level_label: str
    rating: str
    quantity: int
    line_total: str
    unit_price: str


class CartView(_View):
    lines: List[CartLineView]
    quantities: Dict[str, int]
    badge_count: int
    subtotal: str
    tax: str
    total: str

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def badge_visible(self) -> bool:
        return self.badge_count > 0


def project_cart(
    items: Sequence[CartItem],
    catalog: Optional[Dict[str, CategoryMetadata]] = None,
    tax_rate: Decimal = Config.TAX_RATE
) -> CartView:
    lines = []
    for item in items:
        meta = display_metadata_for(item, catalog)
        lines.append(CartLineView(
            product_id=item.id,
            name=item.name,
            initials=item.name[:2].upper(),
            author_label=item.author or "ESTIA Learning",
            color=meta.color_token or placeholder_color(item.id),
            icon=meta.icon,
            category_name=meta.name,
            level_label=meta.level_label,
            rating=meta.rating,
            quantity=item.quantity,
            line_total=format_money(item.unit_price * item.quantity),
            unit_price=format_money(item.unit_price),
        ))
    totals = compute_totals(items, tax_rate)
    return CartView(
        lines=lines,
        quantities={item.id: item.quantity for item in items},
        badge_count=badge_count(items),
        subtotal=format_money(totals.subtotal),
        tax=format_money(totals.tax),
        total=format_money(totals.total),
    )


# ---- Chat ----

def format_day(day: date) -> str:
    return f"{day.day} {FRENCH_MONTHS[day.month - 1]}"


def day_label(day: date, today: date) -> str:
    if day == today:
        return "Aujourd'hui"
    if day == today - timedelta(days=1):
        return "Hier"
    return format_day(day)


class BubbleView(_View):
    message_id: int
    side: str
    avatar: str
    display_name: str
    time: str
    content: str


class DayGroupView(_View):
    label: str
    bubbles: List[BubbleView]


class ChatView(_View):
    groups: List[DayGroupView]
    newest_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.groups


def project_chat(messages: Sequence[ChatMessage], now: datetime, tz_name: str = Config.DISPLAY_TIMEZONE) -> ChatView:
    """Group messages by calendar day in the display timezone"""
    tz = ZoneInfo(tz_name)
    today = now.astimezone(tz).date()

    groups: List[DayGroupView] = []
    current_day: Optional[date] = None
    bubbles: List[BubbleView] = []
    for message in messages:
        local = message.timestamp.astimezone(tz)
        if local.date() != current_day:
            if current_day is not None:
                groups.append(DayGroupView(label=day_label(current_day, today), bubbles=bubbles))
            current_day = local.date()
            bubbles = []
        bubbles.append(BubbleView(
            message_id=message.id,
            side="bubble-right" if message.direction == Direction.OUTBOUND else "bubble-left",
            avatar=message.author.avatar_token,
            display_name=message.author.display_name,
            time=local.strftime("%H:%M"),
            content=message.content,
        ))
    if current_day is not None:
        groups.append(DayGroupView(label=day_label(current_day, today), bubbles=bubbles))

    return ChatView(groups=groups, newest_id=messages[-1].id if messages else None)


# ---- Session ----

class ProfileView(_View):
    authenticated: bool
    display_name: str = ""
    email: str = ""
    login_date: str = ""


def project_profile(session: Optional[Session], tz_name: str = Config.DISPLAY_TIMEZONE) -> ProfileView:
    if session is None:
        return ProfileView(authenticated=False)
    local = session.login_instant.astimezone(ZoneInfo(tz_name))
    return ProfileView(
        authenticated=True,
        display_name=session.display_name,
        email=session.email,
        login_date=f"{format_day(local.date())} {local.year} à {local:%H:%M}",
    )
