"""
Chat store: append-only transcript with a simulated support bot.
"""
import logging
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError

from course_shop.config import Config
from course_shop.exceptions import MigrationError, ValidationError
from course_shop.migrations import migrate_chat
from course_shop.models import BOT_AUTHOR, GUEST_AUTHOR, Author, ChatMessage, ChatRecord, Direction
from course_shop.responder import WELCOME_MESSAGE, BotResponder
from course_shop.scheduling import ScheduledTask, Scheduler
from course_shop.storage import StorageAdapter

logger = logging.getLogger(__name__)

Listener = Callable[[Tuple[ChatMessage, ...]], None]


class ChatStore:
    """
    Chat history over one persisted key.

    Messages are only ever appended; the only other mutation is clear().
    Bot replies and the first-visit welcome are scheduled tasks that do
    their own read-append-write when they fire.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        scheduler: Scheduler,
        responder: Optional[BotResponder] = None,
        author_provider: Optional[Callable[[], Author]] = None,
        key: str = Config.CHAT_KEY,
        welcome_delay_ms: int = Config.WELCOME_DELAY_MS
    ):
        self.storage = storage
        self.scheduler = scheduler
        self.responder = responder or BotResponder()
        self.author_provider = author_provider or (lambda: GUEST_AUTHOR)
        self.key = key
        self.welcome_delay_ms = welcome_delay_ms
        self._listeners: List[Listener] = []
        self._unsynced: Optional[List[ChatMessage]] = None
        self._tasks: List[ScheduledTask] = []
        self._welcome_task: Optional[ScheduledTask] = None

    def _read_record(self) -> Tuple[List[ChatMessage], bool]:
        if self._unsynced is not None:
            return list(self._unsynced), False

        raw = self.storage.read_json(self.key)
        if raw is None:
            return [], False
        try:
            record = migrate_chat(raw)
            messages = ChatRecord.model_validate(record).messages
        except (MigrationError, SchemaValidationError) as e:
            logger.warning("Unreadable chat record, starting empty", extra={"key": self.key, "error": str(e)})
            return [], False
        return messages, record != raw

    def _write(self, messages: List[ChatMessage]) -> bool:
        record = ChatRecord(messages=messages).model_dump(mode="json")
        if self.storage.write_json(self.key, record):
            self._unsynced = None
            return True
        logger.warning("Chat kept in memory until next write", extra={"key": self.key, "messages": len(messages)})
        self._unsynced = list(messages)
        return False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, messages: List[ChatMessage]) -> None:
        snapshot = tuple(messages)
        for listener in list(self._listeners):
            listener(snapshot)

    def _next_id(self, messages: List[ChatMessage]) -> int:
        now_ms = int(self.scheduler.now().timestamp() * 1000)
        if messages:
            return max(now_ms, messages[-1].id + 1)
        return now_ms

    def _append(self, messages: List[ChatMessage], content: str, author: Author, direction: Direction) -> ChatMessage:
        message = ChatMessage(
            id=self._next_id(messages),
            content=content,
            timestamp=self.scheduler.now(),
            author=author,
            direction=direction,
        )
        messages.append(message)
        self._write(messages)
        self._publish(messages)
        return message

    def _track(self, task: ScheduledTask) -> ScheduledTask:
        self._tasks = [t for t in self._tasks if t.pending]
        self._tasks.append(task)
        return task

    # ---- queries ----

    def load(self) -> List[ChatMessage]:
        messages, migrated = self._read_record()
        if migrated:
            logger.info("Chat record upgraded", extra={"key": self.key, "messages": len(messages)})
            self._write(messages)
        self._publish(messages)
        return messages

    def messages(self) -> List[ChatMessage]:
        return self._read_record()[0]

    def pending_tasks(self) -> List[ScheduledTask]:
        return [t for t in self._tasks if t.pending]

    # ---- operations ----

    def initialize(self) -> List[ChatMessage]:
        """Load the transcript and greet first-time visitors"""
        messages = self.load()
        welcome_pending = self._welcome_task is not None and self._welcome_task.pending
        if not messages and not welcome_pending:
            self._welcome_task = self._track(
                self.scheduler.call_later(self.welcome_delay_ms, self._post_welcome, name="chat.welcome")
            )
        return messages

    def _post_welcome(self) -> None:
        messages, _ = self._read_record()
        if messages:
            logger.info("Welcome message suppressed, history no longer empty", extra={"key": self.key})
            return
        self._append(messages, WELCOME_MESSAGE, BOT_AUTHOR, Direction.INBOUND)

    def send(self, content: str) -> ChatMessage:
        """
        Append a user message and schedule one bot reply.

        Raises:
            ValidationError: content is empty after trimming
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty")

        messages, _ = self._read_record()
        message = self._append(messages, text, self.author_provider(), Direction.OUTBOUND)
        logger.info("Chat message sent", extra={"message_id": message.id})
        self.schedule_reply(text)
        return message

    def schedule_reply(self, original_content: str) -> ScheduledTask:
        delay_ms = self.responder.reply_delay_ms()

        def reply():
            messages, _ = self._read_record()
            self._append(messages, self.responder.reply_for(original_content), BOT_AUTHOR, Direction.INBOUND)

        return self._track(self.scheduler.call_later(delay_ms, reply, name="chat.reply"))

    def clear(self) -> None:
        """Erase the whole history; callers must have confirmed with the user"""
        messages: List[ChatMessage] = []
        self._write(messages)
        self._publish(messages)
        logger.info("Chat history cleared", extra={"key": self.key})

    def close(self) -> None:
        """Cancel pending replies and the welcome (page teardown)"""
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self._welcome_task = None
