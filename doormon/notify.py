from __future__ import annotations

import threading
import time
from concurrent.futures import Future, wait
from typing import Callable, Dict, Optional, Tuple

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import WebhookConfig
from .constants import (
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_RETRY_COUNT,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    INITIAL_BACKOFF_S,
    SCOPE_NETWORK,
    SIGNATURE_PREFIX,
)
from .errors import DeliveryError
from .logging import JsonLogger
from .signing import compact_json, sign_payload
from .state import DoorState
from .util import utc_timestamp


def payload_for(state) -> dict:
    """Webhook payload for a door state: ``{"open": bool}``."""
    return {"open": DoorState(state).is_open}


class WebhookNotifier:
    """Signed webhook delivery with exponential-backoff retries.

    notify() never blocks the caller: each call gets its own daemon thread and
    its own retry state, and returns a Future that resolves to None on success
    or raises DeliveryError once every attempt has failed. Deliveries from
    concurrent calls are not ordered with respect to each other.
    """
    def __init__(
        self,
        url: str,
        sign_key: str,
        logger: JsonLogger,
        retries: int = DEFAULT_RETRY_COUNT,
        timeout_s: float = DEFAULT_HTTP_TIMEOUT_S,
        initial_backoff_s: float = INITIAL_BACKOFF_S,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.url = url
        self.logger = logger
        self.retries = int(retries)
        self._key = sign_key
        self._timeout = timeout_s
        self._initial_backoff_s = initial_backoff_s
        self._sleep = sleep
        self._clock = clock or utc_timestamp
        self._inflight = set()
        self._inflight_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: WebhookConfig, logger: JsonLogger, **kwargs) -> "WebhookNotifier":
        return cls(cfg.url, cfg.sign_key, logger, retries=cfg.retry_count, **kwargs)

    def build_request(self, payload: dict, timestamp: str) -> Tuple[bytes, Dict[str, str]]:
        """Return (body, headers) for one delivery.

        The timestamp is signed together with the payload but only travels in
        the X-Timestamp header; the body carries the bare payload."""
        signature = sign_payload(payload, timestamp, self._key)
        headers = {
            "Content-Type": "application/json",
            HEADER_SIGNATURE: f"{SIGNATURE_PREFIX}{signature}",
            HEADER_TIMESTAMP: timestamp,
        }
        return compact_json(payload).encode("utf-8"), headers

    def notify(self, state) -> Future:
        """Deliver ``state`` in the background and return a Future for the outcome."""
        fut: Future = Future()
        fut.set_running_or_notify_cancel()
        with self._inflight_lock:
            self._inflight.add(fut)

        def run():
            try:
                self.deliver(state)
            except Exception as e:
                fut.set_exception(e)
            else:
                fut.set_result(None)
            finally:
                with self._inflight_lock:
                    self._inflight.discard(fut)

        threading.Thread(target=run, name="webhook-delivery", daemon=True).start()
        return fut

    def deliver(self, state, timestamp: Optional[str] = None) -> None:
        """Blocking delivery with retries. Raises DeliveryError after the last failed attempt.

        ``timestamp`` is signed and sent as X-Timestamp; the clock is used when omitted."""
        payload = payload_for(state)
        if timestamp is None:
            timestamp = self._clock()
        body, headers = self.build_request(payload, timestamp)
        self.logger.emit("webhook_send", scope=SCOPE_NETWORK, url=self.url, payload=compact_json(payload))

        attempts = 0

        def attempt():
            nonlocal attempts
            attempts += 1
            self._post(body, headers)

        retrying = Retrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self._initial_backoff_s, exp_base=2),
            retry=retry_if_exception_type(DeliveryError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            retrying(attempt)
        except DeliveryError as e:
            self.logger.emit(
                "webhook_failed",
                level="error",
                scope=SCOPE_NETWORK,
                url=self.url,
                attempts=attempts,
                error=str(e),
            )
            raise DeliveryError(
                f"webhook delivery failed after {attempts} attempts: {e}",
                status_code=e.status_code,
                attempts=attempts,
            ) from e

        self.logger.emit("webhook_delivered", scope=SCOPE_NETWORK, url=self.url, attempts=attempts)

    def pending(self) -> int:
        with self._inflight_lock:
            return len(self._inflight)

    def drain(self, timeout_s: float) -> bool:
        """Wait up to ``timeout_s`` for in-flight deliveries. Returns True if none remain."""
        with self._inflight_lock:
            futs = list(self._inflight)
        if not futs:
            return True
        _, not_done = wait(futs, timeout=timeout_s)
        if not_done:
            self.logger.emit("webhook_drain_timeout", level="warning", scope=SCOPE_NETWORK, pending=len(not_done))
        return not not_done

    def _post(self, body: bytes, headers: Dict[str, str]) -> None:
        try:
            res = requests.post(self.url, data=body, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e
        if not 200 <= res.status_code < 300:
            raise DeliveryError(f"HTTP {res.status_code}", status_code=res.status_code)

    def _log_retry(self, retry_state):
        exc = retry_state.outcome.exception()
        self.logger.emit(
            "webhook_retry",
            level="warning",
            scope=SCOPE_NETWORK,
            attempt=retry_state.attempt_number,
            delay_s=retry_state.next_action.sleep,
            error=str(exc),
        )
