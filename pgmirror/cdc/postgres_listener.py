"""PostgreSQL LISTEN/NOTIFY listener feeding the mirror pipeline"""

import select
import threading
from typing import Any, Callable, Dict, Optional, Set

import psycopg2
from loguru import logger
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

from ..config.tables import TableRegistry
from ..exceptions import ListenerConnectionError, NotificationError
from .base import ChangeNotification, DecodedChange
from .retry import RetryScheduler
from .stats import StatsTracker


class PostgreSQLNotificationListener:
    """
    Owns one dedicated subscription connection

    Every channel in the registry is LISTENed on. Notifications are decoded
    and handed to ``on_change``, which must not block (normally
    ``WorkQueue.submit``). Unknown channels and malformed payloads are
    logged and discarded.

    When the connection is lost the error is counted and, if ``reconnect``
    is enabled, the listener reconnects with exponential backoff and
    subscribes again. Changes committed while disconnected are not
    replayed; a bulk sync repairs them.
    """

    def __init__(
        self,
        connection_params: Dict[str, Any],
        registry: TableRegistry,
        on_change: Callable[[DecodedChange], Any],
        stats: StatsTracker,
        poll_timeout: float = 1.0,
        reconnect: bool = True,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        join_timeout: float = 5.0
    ):
        """
        Initialize the listener

        Args:
            connection_params: Keyword arguments for psycopg2.connect
            registry: Tables whose channels are subscribed
            on_change: Receives each decoded change
            stats: Connection failures are counted here
            poll_timeout: Seconds to wait on the socket per loop
            reconnect: Reconnect and resubscribe after connection loss
            reconnect_base_delay: First reconnect delay in seconds
            reconnect_max_delay: Cap on the reconnect delay
            join_timeout: Seconds to wait for the receive thread to exit
        """
        self.connection_params = connection_params
        self.registry = registry
        self.on_change = on_change
        self.stats = stats
        self.poll_timeout = poll_timeout
        self.reconnect = reconnect
        self.backoff = RetryScheduler(base_delay=reconnect_base_delay, max_delay=reconnect_max_delay)
        self.join_timeout = join_timeout

        self.connection = None
        self.subscribed: Set[str] = set()
        self.is_running = False
        self.reconnects = 0
        self.notifications_received = 0
        self.last_error: Optional[str] = None
        self.stop_event = threading.Event()
        self.listen_thread: Optional[threading.Thread] = None

    @property
    def connected(self) -> bool:
        return self.connection is not None and not self.connection.closed

    def connect(self) -> None:
        """
        Open the subscription connection and LISTEN on every channel

        Raises:
            ListenerConnectionError: Connection or LISTEN failed
        """
        self.close()
        try:
            self.connection = psycopg2.connect(**self.connection_params)
            self.connection.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            self.subscribe()
        except (psycopg2.Error, OSError) as e:
            self.close()
            raise ListenerConnectionError(f"Failed to set up PostgreSQL LISTEN: {e}") from e

    def subscribe(self) -> None:
        """LISTEN on every registry channel not subscribed yet"""
        with self.connection.cursor() as cursor:
            for config in self.registry:
                if config.channel in self.subscribed:
                    continue
                cursor.execute(sql.SQL("LISTEN {}").format(sql.Identifier(config.channel)))
                self.subscribed.add(config.channel)
                logger.info(f"Listening to channel: {config.channel} (table: {config.table_name})")

    def close(self) -> None:
        if self.connection is not None:
            try:
                self.connection.close()
            except psycopg2.Error as e:
                logger.debug(f"Error closing listen connection: {e}")
        self.connection = None
        self.subscribed = set()

    def start(self) -> None:
        """
        Connect and start the receive loop; connection errors propagate

        Raises:
            ListenerConnectionError: Connection failed, or the previous
                receive thread is still running
        """
        if self.is_running:
            logger.warning("Notification listener already running")
            return

        if self.listen_thread is not None:
            self.listen_thread.join(timeout=self.join_timeout)
            if self.listen_thread.is_alive():
                raise ListenerConnectionError("Previous listener thread has not exited yet")
            self.listen_thread = None

        self.stop_event.clear()
        self.connect()
        self.is_running = True
        self.listen_thread = threading.Thread(
            target=self._listen,
            name="pg-notify-listener",
            daemon=True
        )
        self.listen_thread.start()
        logger.info(f"Started PostgreSQL notification listener on {len(self.subscribed)} channels")

    def stop(self, timeout: Optional[float] = None) -> None:
        if not self.is_running and self.listen_thread is None:
            return

        logger.info("Stopping PostgreSQL notification listener")
        self.stop_event.set()
        thread = self.listen_thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=self.join_timeout if timeout is None else timeout)
            if thread.is_alive():
                # kept so start() can wait for it
                logger.warning("Listener thread did not exit in time")
            else:
                self.listen_thread = None
        else:
            self.listen_thread = None
        self.is_running = False
        self.close()

    def poll_once(self, timeout: Optional[float] = None) -> int:
        """
        Wait for the socket, then drain pending notifications

        Returns:
            Number of notifications handled
        """
        wait = self.poll_timeout if timeout is None else timeout
        if select.select([self.connection], [], [], wait) == ([], [], []):
            return 0

        self.connection.poll()
        handled = 0
        while self.connection.notifies:
            notify = self.connection.notifies.pop(0)
            self.handle_notification(notify.channel, notify.payload)
            handled += 1
        return handled

    def handle_notification(self, channel: str, payload: str) -> Optional[DecodedChange]:
        """Decode one raw notification and dispatch it; bad input is discarded"""
        self.notifications_received += 1
        try:
            change = ChangeNotification(channel, payload).decode(self.registry)
        except NotificationError as e:
            logger.warning(f"Discarding notification: {e}")
            return None

        logger.info(f"Sync notification received: {change.table_name} ({payload})")
        try:
            self.on_change(change)
        except Exception as e:
            self.stats.record_error()
            logger.error(f"Error dispatching notification for {change}: {e}")
            return None
        return change

    def get_status(self) -> Dict[str, Any]:
        return {
            'is_running': self.is_running,
            'connected': self.connected,
            'channels': sorted(self.subscribed),
            'notifications_received': self.notifications_received,
            'reconnects': self.reconnects,
            'last_error': self.last_error
        }

    def _listen(self) -> None:
        """Receive loop (runs in its own thread)"""
        failures = 0
        while not self.stop_event.is_set():
            try:
                if not self.connected:
                    self.connect()
                    self.reconnects += 1
                    logger.info(f"Reconnected PostgreSQL listener (attempt {failures})")
                self.poll_once()
                failures = 0
            except (psycopg2.Error, OSError, ListenerConnectionError) as e:
                if self.stop_event.is_set():
                    break
                self.last_error = str(e)
                if failures == 0:
                    # one loss, however many reconnect attempts follow
                    self.stats.record_error()
                logger.error(f"PostgreSQL LISTEN connection error: {e}")
                self.close()

                if not self.reconnect:
                    logger.error("Listener reconnect disabled; notifications stopped until restart")
                    self.is_running = False
                    return

                delay = self.backoff.delay_for(failures)
                failures += 1
                logger.warning(f"Reconnecting PostgreSQL listener in {delay:.1f}s")
                self.stop_event.wait(delay)

        self.close()
