"""
Background notification dispatcher using APScheduler.

Emails and push events are queued as one-shot jobs on an AsyncIOScheduler
so request handlers return without waiting for SMTP or websockets. A
delivery failure is logged and, for email, retried a few times. Nothing
here touches booking state.
"""

from datetime import timedelta
from typing import Any, Dict, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from config import Settings
from utils.datetime_utils import utc_now
from utils.exceptions import DependencyUnavailableError
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="notifications.log", log_dir="logs"
)

# Jobs that miss their run time by less than this still run
_MISFIRE_GRACE_SECONDS = 300


class EmailBackend(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> bool:
        ...


class PushBackend(Protocol):
    async def publish(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        ...


class NotificationDispatcher:
    """Queues email and push deliveries on a background scheduler."""

    def __init__(
        self,
        sender: EmailBackend,
        push_hub: Optional[PushBackend] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        max_retries: int = 2,
        retry_delay_seconds: int = 30,
    ):
        self.sender = sender
        self.push_hub = push_hub
        self.scheduler = scheduler or AsyncIOScheduler()
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sender: EmailBackend,
        push_hub: Optional[PushBackend] = None,
    ) -> "NotificationDispatcher":
        return cls(
            sender,
            push_hub=push_hub,
            max_retries=settings.notification_max_retries,
            retry_delay_seconds=settings.notification_retry_delay_seconds,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Notification dispatcher started")

    def shutdown(self) -> None:
        """Shutdown the scheduler, dropping queued deliveries."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Notification dispatcher stopped")

    def send_email(self, to: Optional[str], subject: str, html_body: str) -> None:
        """Queue an email. Returns immediately."""
        if not to:
            logger.warning(f"Not queueing email '{subject}': customer has no email")
            return
        self._schedule(self._deliver_email, to, subject, html_body, 0)

    def push(self, channel: str, event: str, data: Dict[str, Any]) -> None:
        """Queue a real-time event for every socket on ``channel``."""
        if self.push_hub is None:
            logger.debug(f"No push hub configured, dropping {event} for {channel}")
            return
        self._schedule(self._deliver_push, channel, event, data)

    def _schedule(self, func, *args: Any, delay_seconds: int = 0) -> None:
        self.scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=utc_now() + timedelta(seconds=delay_seconds)),
            args=list(args),
            misfire_grace_time=_MISFIRE_GRACE_SECONDS,
        )

    async def _deliver_email(
        self, to: str, subject: str, html_body: str, attempt: int
    ) -> bool:
        try:
            sent = await self.sender.send(to, subject, html_body)
        except DependencyUnavailableError as e:
            logger.warning(str(e))
            sent = False
        except Exception as e:
            logger.error(f"Email backend error sending '{subject}' to {to}: {e}", exc_info=True)
            sent = False

        if sent:
            return True

        if attempt < self.max_retries:
            logger.warning(
                f"Email '{subject}' to {to} failed (attempt {attempt + 1}/"
                f"{self.max_retries + 1}). Retrying in {self.retry_delay_seconds}s..."
            )
            self._schedule(
                self._deliver_email,
                to,
                subject,
                html_body,
                attempt + 1,
                delay_seconds=self.retry_delay_seconds,
            )
        else:
            logger.error(
                f"Giving up on email '{subject}' to {to} after {attempt + 1} attempts"
            )
        return False

    async def _deliver_push(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        try:
            delivered = await self.push_hub.publish(channel, event, data)
        except Exception as e:
            logger.error(f"Failed to push {event} to {channel}: {e}", exc_info=True)
            return 0
        logger.debug(f"Pushed {event} to {delivered} socket(s) on {channel}")
        return delivered
