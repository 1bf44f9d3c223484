import threading
import time
from typing import Optional, Tuple

from config import POLL_SECONDS
from logger import get_logger

log = get_logger("order_poller")


def poll_once(registry) -> int:
    """Background refresh of every open dashboard. Returns how many were polled."""
    dashboards = registry.all()
    for dash in dashboards:
        try:
            dash.background_refresh()
        except Exception as e:
            # one farmer's broken dashboard must not stop the others
            log.warning(f"[Poller] Refresh failed for {dash.identity.actor}: {e}")
    return len(dashboards)


def poll_forever(registry, stop: threading.Event, interval: float = POLL_SECONDS) -> None:
    log.info(f"Order poller started (polling every {interval} sec).")

    while not stop.is_set():
        started = time.monotonic()
        count = poll_once(registry)
        if count:
            log.debug(f"[Poller] Refreshed {count} dashboard(s) in {time.monotonic() - started:.2f}s")
        stop.wait(interval)

    log.info("Order poller stopped.")


def start_poller(
    registry, interval: float = POLL_SECONDS, stop: Optional[threading.Event] = None
) -> Tuple[threading.Thread, threading.Event]:
    """Run poll_forever on a daemon thread. Set the returned event, then join the thread, to shut down."""
    stop = stop or threading.Event()
    t = threading.Thread(target=poll_forever, args=(registry, stop, interval), name="order-poller", daemon=True)
    t.start()
    return t, stop
