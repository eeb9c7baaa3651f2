"""
Simulated support bot: picks a canned reply for a user message.
"""
import random
from typing import List, Optional, Tuple

from course_shop.config import Config

# Tested in order against the lower-cased message; first match wins
REPLY_RULES: List[Tuple[str, Tuple[str, ...], str]] = [
    (
        "greeting",
        ("bonjour", "salut", "hello"),
        "Bonjour ! Comment puis-je vous aider aujourd'hui ? 😊",
    ),
    (
        "courses",
        ("cours", "formation"),
        "Nous proposons 6 formations exceptionnelles ! Consultez notre catalogue pour "
        "découvrir Python, UX/UI Design, JavaScript, Agile, IA et React.js. 📚",
    ),
    (
        "pricing",
        ("prix", "tarif"),
        "Nos cours sont à partir de 29,99 €. Consultez la page Cours pour voir tous les tarifs ! 💰",
    ),
    (
        "cart",
        ("panier", "acheter"),
        "Vous pouvez ajouter des cours à votre panier directement depuis la page Cours "
        "avec les boutons +/- ! 🛒",
    ),
    (
        "help",
        ("aide", "help", "?"),
        "Je suis là pour vous aider ! Posez-moi des questions sur nos cours, les tarifs, "
        "ou la navigation sur le site. 🎓",
    ),
    (
        "thanks",
        ("merci",),
        "Avec plaisir ! N'hésitez pas si vous avez d'autres questions. 😊",
    ),
]

FALLBACK_REPLIES: List[str] = [
    "Merci pour votre message ! Un conseiller vous répondra bientôt. 📩",
    "Message bien reçu ! Comment puis-je vous aider ? 💬",
    "Intéressant ! Pouvez-vous m'en dire plus ? 🤔",
    "Je prends note de votre demande. Besoin d'autres informations ? 📝",
    "Excellente question ! Notre équipe va vous répondre rapidement. ⚡",
]

WELCOME_MESSAGE = (
    "Bonjour et bienvenue sur ESTIA Learning ! 👋 Je suis votre assistant virtuel. "
    "N'hésitez pas à me poser des questions sur nos formations, nos tarifs ou notre plateforme."
)


def classify(content: str) -> Optional[str]:
    """Return the first matching reply category, or None"""
    lowered = content.lower()
    for category, keywords, _ in REPLY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


class BotResponder:
    """Keyword reply policy plus the randomized reply delay"""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        min_delay_ms: int = Config.BOT_REPLY_MIN_MS,
        max_delay_ms: int = Config.BOT_REPLY_MAX_MS
    ):
        self.rng = rng or random.Random()
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms

    def reply_for(self, content: str) -> str:
        category = classify(content)
        for name, _, reply in REPLY_RULES:
            if name == category:
                return reply
        return self.rng.choice(FALLBACK_REPLIES)

    def reply_delay_ms(self) -> float:
        # random() is in [0, 1), so the upper bound is never reached
        return self.min_delay_ms + self.rng.random() * (self.max_delay_ms - self.min_delay_ms)
