"""Change notifiers - tell the runner that a pending job may exist.

Notifiers are hints. A dropped websocket or a missed event must never leave
jobs stranded, so the agent always runs a PollingNotifier next to the
realtime feed.
"""

import json
import logging
import threading
from collections.abc import Callable
from urllib.parse import urlparse

import websocket

logger = logging.getLogger(__name__)

Trigger = Callable[[], object]


class PollingNotifier:
    """Calls the trigger every ``interval`` seconds on a background thread."""

    def __init__(self, trigger: Trigger, interval: float = 30):
        """Initialize the poller.

        Args:
            trigger: Runner entry point.
            interval: Seconds between triggers.
        """
        self.trigger = trigger
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="queueprint-poll")
        self._thread.start()
        logger.info(f"Polling for print jobs every {self.interval}s")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.trigger()
            except Exception as e:
                logger.exception(f"Error in poll trigger: {e}")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None


def realtime_url(supabase_url: str, api_key: str) -> str:
    """Build the realtime websocket URL for a Supabase project.

    Args:
        supabase_url: Project URL (https://<ref>.supabase.co).
        api_key: API key.

    Returns:
        str: wss URL of the realtime endpoint.
    """
    parsed = urlparse(supabase_url.rstrip("/"))
    scheme = "ws" if parsed.scheme == "http" else "wss"
    return f"{scheme}://{parsed.netloc}{parsed.path}/realtime/v1/websocket?apikey={api_key}&vsn=1.0.0"


class RealtimeNotifier:
    """Subscribes to INSERTs of pending rows through Supabase realtime.

    Speaks the Phoenix channel protocol: join a ``realtime:`` topic with a
    ``postgres_changes`` filter, send a heartbeat every 30 seconds, and call
    the trigger for every ``postgres_changes`` message. Subscription errors
    are logged; the connection is re-opened after a fixed delay until
    ``stop()`` is called.
    """

    HEARTBEAT_INTERVAL = 30
    RECONNECT_DELAY = 5

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        trigger: Trigger,
        table: str = "print_jobs",
        schema: str = "public",
        channel: str = "print-jobs",
    ):
        """Initialize the realtime notifier.

        Args:
            supabase_url: Project URL.
            api_key: API key used for the socket and channel join.
            trigger: Runner entry point.
            table: Watched table.
            schema: Table schema.
            channel: Channel name.
        """
        self.url = realtime_url(supabase_url, api_key)
        self.api_key = api_key
        self.trigger = trigger
        self.table = table
        self.schema = schema
        self.topic = f"realtime:{channel}"

        self.subscribed = False
        self._ref = 0
        self._ref_lock = threading.Lock()
        self._join_ref: str | None = None
        self._stop = threading.Event()
        self._app: websocket.WebSocketApp | None = None
        self._thread: threading.Thread | None = None

    def _next_ref(self) -> str:
        with self._ref_lock:
            self._ref += 1
            return str(self._ref)

    def join_message(self) -> dict:
        """Channel join frame with the pending-insert filter."""
        self._join_ref = self._next_ref()
        return {
            "topic": self.topic,
            "event": "phx_join",
            "payload": {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [
                        {
                            "event": "INSERT",
                            "schema": self.schema,
                            "table": self.table,
                            "filter": "status=eq.pending",
                        }
                    ],
                },
                "access_token": self.api_key,
            },
            "ref": self._join_ref,
        }

    def heartbeat_message(self) -> dict:
        return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()}

    def handle_message(self, raw: str) -> None:
        """Dispatch one frame received from the server.

        Args:
            raw: JSON frame.
        """
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed realtime frame: {raw[:100]}")
            return

        event = message.get("event")
        payload = message.get("payload") or {}

        if event == "phx_reply" and message.get("ref") == self._join_ref:
            if payload.get("status") == "ok":
                self.subscribed = True
                logger.info("Subscribed to print jobs")
            else:
                self.subscribed = False
                logger.error(f"Error setting up print job subscription: {payload.get('response')}")
        elif event == "postgres_changes" and message.get("topic") == self.topic:
            record = (payload.get("data") or {}).get("record") or {}
            logger.debug(f"New print job received: {record.get('id')}")
            try:
                self.trigger()
            except Exception as e:
                logger.exception(f"Error handling print job notification: {e}")
        elif event in ("phx_error", "phx_close") and message.get("topic") == self.topic:
            self.subscribed = False
            logger.warning(f"Realtime channel {event}: {payload}")
        elif event == "system" and payload.get("status") == "error":
            logger.error(f"Realtime system error: {payload.get('message')}")

    def _on_open(self, app: websocket.WebSocketApp) -> None:
        app.send(json.dumps(self.join_message()))
        threading.Thread(
            target=self._heartbeat_loop, args=(app,), daemon=True, name="queueprint-heartbeat"
        ).start()

    def _heartbeat_loop(self, app: websocket.WebSocketApp) -> None:
        while not self._stop.wait(self.HEARTBEAT_INTERVAL):
            if app.sock is None or not app.sock.connected:
                return
            try:
                app.send(json.dumps(self.heartbeat_message()))
            except websocket.WebSocketException as e:
                logger.warning(f"Realtime heartbeat failed: {e}")
                return

    def _on_message(self, app: websocket.WebSocketApp, raw: str) -> None:
        self.handle_message(raw)

    def _on_error(self, app: websocket.WebSocketApp, error: Exception) -> None:
        logger.error(f"Realtime connection error: {error}")

    def _on_close(self, app: websocket.WebSocketApp, status_code, reason) -> None:
        self.subscribed = False
        logger.info(f"Realtime connection closed ({status_code} {reason or ''})")

    def _run(self) -> None:
        while not self._stop.is_set():
            self._app = websocket.WebSocketApp(
                self.url,
                on_open=self._on_open,
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close,
            )
            self._app.run_forever()
            if self._stop.wait(self.RECONNECT_DELAY):
                break
            logger.info("Reconnecting to realtime...")
            # Inserts may have been missed while disconnected
            try:
                self.trigger()
            except Exception as e:
                logger.exception(f"Error in reconnect trigger: {e}")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="queueprint-realtime")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._app is not None:
            self._app.close()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
