"""
Session store: the logged-in user, or nothing for guests.
"""
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError as SchemaValidationError

from course_shop.config import Config
from course_shop.exceptions import MigrationError, ValidationError
from course_shop.migrations import migrate_session
from course_shop.models import GUEST_AUTHOR, Author, Session
from course_shop.scheduling import Scheduler
from course_shop.storage import StorageAdapter

logger = logging.getLogger(__name__)

# Demo account accepted without an e-mail address
TEST_ACCOUNT = ("123", "123")
TEST_ACCOUNT_EMAIL = "etudiant@estia.fr"
TEST_ACCOUNT_USERNAME = "etudiant"
TEST_ACCOUNT_NAME = "Étudiant ESTIA"

MIN_PASSWORD_LENGTH = 4


class SessionStore:
    """Reads the session for the cart/chat core; login/logout write it"""

    def __init__(self, storage: StorageAdapter, scheduler: Scheduler, key: str = Config.SESSION_KEY):
        self.storage = storage
        self.scheduler = scheduler
        self.key = key
        self._listeners: List[Callable[[Optional[Session]], None]] = []

    def subscribe(self, listener: Callable[[Optional[Session]], None]) -> None:
        self._listeners.append(listener)

    def _publish(self, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            listener(session)

    def current(self) -> Optional[Session]:
        raw = self.storage.read_json(self.key)
        if raw is None:
            return None
        try:
            return Session.model_validate(migrate_session(raw))
        except (MigrationError, SchemaValidationError) as e:
            logger.warning("Unreadable session record, treating as guest", extra={"key": self.key, "error": str(e)})
            return None

    def load(self) -> Optional[Session]:
        raw = self.storage.read_json(self.key)
        session = self.current()
        if session is not None and raw != session.model_dump(mode="json"):
            self.storage.write_json(self.key, session.model_dump(mode="json"))
        self._publish(session)
        return session

    def is_authenticated(self) -> bool:
        return self.current() is not None

    def author(self) -> Author:
        session = self.current()
        if session is None:
            return GUEST_AUTHOR
        return Author(
            display_name=session.display_name,
            avatar_token=session.username[:1].upper() or "👤",
            author_id=session.email,
        )

    def login(self, email: str, password: str) -> Session:
        """
        Open a session.

        Raises:
            ValidationError: missing fields, malformed e-mail or short password
        """
        email = (email or "").strip()
        if not email or not (password or "").strip():
            raise ValidationError("Veuillez remplir tous les champs")

        if (email, password) == TEST_ACCOUNT:
            username, display_name, email = TEST_ACCOUNT_USERNAME, TEST_ACCOUNT_NAME, TEST_ACCOUNT_EMAIL
        else:
            if "@" not in email:
                raise ValidationError("Email invalide. Utilisez 123/123 pour tester.")
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LENGTH} caractères"
                )
            username = email.split("@")[0]
            display_name = username[:1].upper() + username[1:]

        session = Session(
            email=email,
            username=username,
            display_name=display_name,
            login_instant=self.scheduler.now(),
        )
        if not self.storage.write_json(self.key, session.model_dump(mode="json")):
            logger.warning("Session could not be persisted", extra={"key": self.key})
        logger.info("User logged in", extra={"username": username})
        self._publish(session)
        return session

    def logout(self) -> None:
        self.storage.remove(self.key)
        logger.info("User logged out", extra={"key": self.key})
        self._publish(None)
