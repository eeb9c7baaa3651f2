"""
Render reconcilers: write view models into whatever elements are mounted.

Rendering is a pure function of the view model, so reconciling the same
state twice leaves the surface byte-identical. Containers that the current
page does not mount are skipped.
"""
from html import escape
from typing import Optional

from course_shop.projector import BubbleView, CartLineView, CartView, ChatView, ProfileView
from course_shop.surface import Surface

EMPTY_CHAT_HTML = (
    '<div class="empty-chat">'
    '<div class="empty-icon">💬</div>'
    "<h3>Bienvenue sur le chat ESTIA Learning !</h3>"
    "<p>Commencez la conversation en envoyant un message.</p>"
    "</div>"
)


def render_cart_line(line: CartLineView) -> str:
    pid = escape(line.product_id)
    return (
        f'<article class="cart-item" data-id="{pid}">'
        f'<div class="item-image">'
        f'<div class="img-placeholder" style="background-color: {escape(line.color)};">{escape(line.initials)}</div>'
        f"</div>"
        f'<div class="item-details">'
        f"<h3>{escape(line.name)}</h3>"
        f'<p class="author">{escape(line.author_label)}</p>'
        f'<p class="category">{escape(line.icon)} {escape(line.category_name)}'
        f' · {escape(line.level_label)} · ★ {escape(line.rating)}</p>'
        f"</div>"
        f'<div class="item-quantity">'
        f'<button class="qty-btn" data-action="decrement" data-id="{pid}">−</button>'
        f'<span class="qty-value">{line.quantity}</span>'
        f'<button class="qty-btn" data-action="increment" data-id="{pid}">+</button>'
        f"</div>"
        f'<div class="item-price">'
        f'<span class="current-price">{escape(line.line_total)}</span>'
        f'<span class="unit-price">{escape(line.unit_price)} / unité</span>'
        f"</div>"
        f'<div class="item-actions">'
        f'<button class="btn-remove" data-action="remove" data-id="{pid}" title="Supprimer">🗑️</button>'
        f"</div>"
        f"</article>"
    )


def render_bubble(bubble: BubbleView) -> str:
    return (
        f'<div class="message {bubble.side}" data-id="{bubble.message_id}">'
        f'<div class="avatar">{escape(bubble.avatar)}</div>'
        f'<div class="message-content">'
        f'<div class="message-header">'
        f'<span class="username">{escape(bubble.display_name)}</span>'
        f'<span class="timestamp">{escape(bubble.time)}</span>'
        f"</div>"
        f'<div class="message-text">{escape(bubble.content)}</div>'
        f"</div>"
        f"</div>"
    )


class CartReconciler:
    """Keeps badges, course counters and the cart page in sync with the cart"""

    def reconcile(self, view: CartView, surface: Surface) -> None:
        for badge in surface.select("cart-badge"):
            badge.set_text(str(view.badge_count) if view.badge_visible else "")
            badge.visible = view.badge_visible

        for counter in surface.select("course-qty"):
            product_id = counter.attributes.get("data-product-id", "")
            counter.set_text(str(view.quantities.get(product_id, 0)))

        container = surface.get("cart-items-container")
        if container is None:
            return

        empty_message = surface.get("cart-empty-message")
        summary = surface.get("cart-summary-section")

        if view.is_empty:
            container.inner_html = ""
            if empty_message:
                empty_message.visible = True
            if summary:
                summary.visible = False
            return

        if empty_message:
            empty_message.visible = False
        if summary:
            summary.visible = True
        container.inner_html = "".join(render_cart_line(line) for line in view.lines)

        for element_id, value in (
            ("cart-subtotal", view.subtotal),
            ("cart-tva", view.tax),
            ("cart-total", view.total),
        ):
            element = surface.get(element_id)
            if element:
                element.set_text(value)


class ChatReconciler:
    """Renders the transcript grouped by day and scrolls to the newest message"""

    def reconcile(self, view: ChatView, surface: Surface) -> None:
        container = surface.get("messages")
        if container is None:
            return

        if view.is_empty:
            container.inner_html = EMPTY_CHAT_HTML
            container.scroll_anchor = None
            return

        parts = []
        for group in view.groups:
            parts.append(f'<div class="date-separator">{escape(group.label)}</div>')
            parts.extend(render_bubble(bubble) for bubble in group.bubbles)
        container.inner_html = "".join(parts)
        container.scroll_anchor = view.newest_id


class SessionReconciler:
    """Header profile link and the profile page fields"""

    def reconcile(self, view: ProfileView, surface: Surface) -> None:
        link = surface.get("profile-link")
        if link:
            if view.authenticated:
                link.attributes["href"] = "profile.html"
                link.attributes["title"] = "Mon Profil"
            else:
                link.attributes["href"] = "login.html"
                link.attributes["title"] = "Se connecter"

        if not view.authenticated:
            return
        for element_id, value in (
            ("user-fullname", view.display_name),
            ("user-email", view.email),
            ("user-login-date", view.login_date),
        ):
            element = surface.get(element_id)
            if element:
                element.set_text(value)


class NotificationReconciler:
    """Shows or hides the transient cart notification"""

    def reconcile(self, message: Optional[str], surface: Surface) -> None:
        slot = surface.get("cart-notification")
        if slot is None:
            return
        if message is None:
            slot.inner_html = ""
            slot.visible = False
            return
        slot.inner_html = f"<span>✓</span> {escape(message)}"
        slot.visible = True
