import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from email.mime.text import MIMEText

import aiosmtplib

from taskflow.core.config import Settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str


Sender = Callable[[EmailMessage], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[None]]


def smtp_sender(settings: Settings) -> Sender:
    async def send(message: EmailMessage) -> None:
        msg = MIMEText(message.body, "plain")
        msg["From"] = settings.smtp_from
        msg["To"] = message.to
        msg["Subject"] = message.subject
        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            timeout=10,
        )

    return send


class EmailDispatcher:
    """Bounded background pool that delivers emails off the request path.

    ``submit`` is fire-and-forget and safe to call from the event loop or from
    the worker threads sync routes run in. A full queue rejects the email.
    """

    def __init__(
        self,
        settings: Settings,
        sender: Sender | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.enabled = settings.email_enabled or sender is not None
        self.workers = settings.email_workers
        self.queue_capacity = settings.email_queue_capacity
        self.max_attempts = settings.email_max_attempts
        self.retry_delay = settings.email_retry_delay_seconds
        self._sender = sender or smtp_sender(settings)
        self._sleep = sleep
        self._queue: asyncio.Queue[EmailMessage] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.queue_capacity)
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info("Email dispatcher started workers=%d capacity=%d", self.workers, self.queue_capacity)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        self._loop = None
        logger.info("Email dispatcher stopped")

    def submit(self, message: EmailMessage) -> bool:
        if not self.enabled:
            logger.debug("Email skipped (SMTP not configured): %s", message.subject[:50])
            return False
        if not self.running or self._loop is None:
            logger.warning("Email dispatcher not running; dropping email to %s", message.to)
            return False

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            return self._enqueue(message)
        self._loop.call_soon_threadsafe(self._enqueue, message)
        return True

    def _enqueue(self, message: EmailMessage) -> bool:
        if self._queue is None:
            logger.warning("Email dispatcher stopped; dropping email to %s", message.to)
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Email queue full (%d); rejected email to %s", self.queue_capacity, message.to)
            return False
        logger.debug("Enqueued email to %s: %s", message.to, message.subject[:30])
        return True

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def send_with_retry(self, message: EmailMessage) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._sender(message)
            except Exception as exc:
                logger.warning(
                    "Failed to send email to %s (attempt %d/%d): %s",
                    message.to,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.retry_delay)
            else:
                logger.info("Email sent successfully to %s", message.to)
                return True

        logger.error("Failed to send email to %s after %d attempts", message.to, self.max_attempts)
        return False

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            message = await queue.get()
            try:
                await self.send_with_retry(message)
            except Exception:
                logger.exception("Email worker %d crashed on message to %s", index, message.to)
            finally:
                queue.task_done()
