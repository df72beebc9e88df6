import logging
from typing import Callable, Hashable

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Keyed, cancellable delayed actions run as Socket.IO background tasks.

    - ``arm(key, delay, action)`` replaces any task already armed for ``key``
    - ``cancel(key)`` takes effect immediately: a sleeping task wakes up,
      sees its token is no longer current and exits without running
    - actions run inside an app context
    """

    def __init__(self, app, socketio) -> None:
        self.app = app
        self.socketio = socketio
        self._tokens: dict[Hashable, object] = {}

    def arm(self, key: Hashable, delay: float, action: Callable[[], None]) -> None:
        token = object()
        self._tokens[key] = token
        logger.info(f"[timer-set] key={key} delay={delay}s")
        self.socketio.start_background_task(self._worker, key, token, delay, action)

    def cancel(self, key: Hashable) -> bool:
        cancelled = self._tokens.pop(key, None) is not None
        if cancelled:
            logger.info(f"[timer-cancel] key={key}")
        return cancelled

    def _worker(self, key, token, delay, action) -> None:
        self.socketio.sleep(delay)
        if self._tokens.get(key) is not token:
            logger.info(f"[timer-abort] key={key} superseded or cancelled")
            return
        # cancel() may pop the key concurrently in threading mode
        self._tokens.pop(key, None)
        logger.info(f"[timer-fire] key={key}")
        with self.app.app_context():
            try:
                action()
            except Exception:
                logger.exception(f"[timer-error] key={key}")


def run_waiting_sweep(app, socketio, lobby, interval: float) -> None:
    """Expire stale WAITING games every ``interval`` seconds for the life of the process."""
    while True:
        socketio.sleep(interval)
        with app.app_context():
            try:
                lobby.expire_stale()
            except Exception:
                # A failed pass must not stop the loop
                logger.exception("[sweep-error] waiting game sweep failed")


def start_waiting_sweep(app, socketio, lobby) -> None:
    if app.config.get('TESTING') and not app.config.get('ENABLE_SWEEP_IN_TESTS'):
        return
    interval = float(app.config.get('WAITING_SWEEP_INTERVAL_SEC', 5))
    logger.info(f"[sweep-start] interval={interval}s")
    socketio.start_background_task(run_waiting_sweep, app, socketio, lobby, interval)
