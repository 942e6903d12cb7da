"""
amtsbote.fonws.transport
~~~~~~~~~~~~~~~~~~~~~~~~
SOAP 1.1 transport for the FinanzOnline webservices.

One ``SoapTransport`` wraps one ``requests.Session``; its connection pool
is safe to share between dashboard worker threads. Sessions (the portal
login tokens) are *not* shared, see ``amtsbote.fonws.session``.

Retry policy
------------
attempts ≤ max_retries + 1, waiting ``retry_backoff * 2**(attempt-1)``
before attempt ``attempt``. Only network failures and HTTP 429/5xx are
retried; every other HTTP status and every protocol result code is
terminal on first sight. Timeouts apply per attempt.

Cancellation
------------
A ``cancel`` event is checked before every attempt, during backoff and
every ``CANCEL_POLL_INTERVAL`` seconds while a request is in flight. Any
of these raises ``CancelledError``; a failure that races with the event
is reported as cancelled too.
"""

from __future__ import annotations

import logging
import threading
import time
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Mapping

import requests

from ..config import cfg
from ..exceptions import (
    CancelledError,
    CodecError,
    HTTPStatusError,
    TransportError,
    is_retryable,
    protocol_error_for,
)
from .. import xmlutil

logger = logging.getLogger(__name__)

SOAP_ENV_NS     = "http://schemas.xmlsoap.org/soap/envelope/"
SESSION_NS      = "https://finanzonline.bmf.gv.at/fonws/ws/sessionService"
DATABOX_NS      = "https://finanzonline.bmf.gv.at/fonws/ws/databoxService"
FILE_UPLOAD_NS  = "https://finanzonline.bmf.gv.at/fonws/ws/fileUploadService"
UID_NS          = "http://finanzonline.bmf.gv.at/fonuid"

SESSION_SERVICE     = "sessionService"
DATABOX_SERVICE     = "databoxService"
FILE_UPLOAD_SERVICE = "fileUploadService"
UID_SERVICE         = "uidAbfrageService"

CONTENT_TYPE = "text/xml; charset=utf-8"

# seconds between cancel checks while a request is in flight
CANCEL_POLL_INTERVAL = 0.05


def build_envelope(body: ET.Element, header: ET.Element | None = None) -> bytes:
    """Wrap *body* (and an optional header block) in a SOAP 1.1 envelope."""
    env = ET.Element("soap:Envelope", {"xmlns:soap": SOAP_ENV_NS})
    if header is not None:
        xmlutil.sub(env, "soap:Header").append(header)
    xmlutil.sub(env, "soap:Body").append(body)
    return xmlutil.to_bytes(env)


def parse_envelope(data: bytes) -> ET.Element:
    """Return the first element inside ``soap:Body``."""
    root = xmlutil.parse(data, "SOAP envelope")
    body = xmlutil.child(root, "Body")
    if body is None:
        raise CodecError("SOAP response has no Body")
    fault = xmlutil.child(body, "Fault")
    if fault is not None:
        raise CodecError(f"SOAP fault: {xmlutil.text(fault, 'faultstring') or 'unknown'}")
    payload = next(iter(body), None)
    if payload is None:
        raise CodecError("SOAP Body is empty")
    return payload


def check_response(rc: int, msg: str = "") -> None:
    """Lift a non-zero result code into the error taxonomy."""
    if rc != 0:
        raise protocol_error_for(rc, msg)


def result_code(payload: ET.Element) -> tuple[int, str]:
    return xmlutil.int_text(payload, "rc"), xmlutil.text(payload, "msg")


def request_element(name: str, namespace: str, **fields: object) -> ET.Element:
    """
    Build a flat request element; ``None`` fields are omitted.

    ``request_element("Login", SESSION_NS, tid="1", benid="x")`` →
    ``<Login xmlns="..."><tid>1</tid><benid>x</benid></Login>``
    """
    el = ET.Element(name, {"xmlns": namespace})
    for key, value in fields.items():
        if value is not None:
            xmlutil.sub(el, key, value)
    return el


class SoapTransport:
    """Shared HTTP + SOAP plumbing with bounded exponential-backoff retries."""

    def __init__(
        self,
        base_url:      str | None = None,
        *,
        timeout:       float | None = None,
        max_retries:   int | None = None,
        retry_backoff: float | None = None,
        http:          requests.Session | None = None,
        sleep:         Callable[[float], None] = time.sleep,
    ) -> None:
        tc = cfg.get_transport_config()
        self.base_url      = (base_url or tc.base_url).rstrip("/")
        self.timeout       = tc.timeout if timeout is None else timeout
        self.max_retries   = tc.max_retries if max_retries is None else max_retries
        self.retry_backoff = tc.retry_backoff if retry_backoff is None else retry_backoff
        self.http          = http or requests.Session()
        self._sleep        = sleep

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "SoapTransport":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        self.http.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def endpoint(self, service: str) -> str:
        return f"{self.base_url}/{service}"

    def call(
        self,
        url:     str,
        body:    ET.Element,
        *,
        header:  ET.Element | None = None,
        headers: Mapping[str, str] | None = None,
        cancel:  threading.Event | None = None,
    ) -> ET.Element:
        """POST *body* in an envelope to *url* and return the decoded payload element."""
        raw = self.post(url, build_envelope(body, header), headers=headers, cancel=cancel)
        return parse_envelope(raw)

    def post(
        self,
        url:      str,
        envelope: bytes,
        *,
        headers:  Mapping[str, str] | None = None,
        cancel:   threading.Event | None = None,
    ) -> bytes:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            if cancel is not None and cancel.is_set():
                raise CancelledError("operation cancelled")
            try:
                return self._attempt(url, envelope, headers, cancel)
            except (TransportError, HTTPStatusError) as exc:
                if cancel is not None and cancel.is_set():
                    raise CancelledError("operation cancelled during request", cause=exc) from exc
                if not is_retryable(exc):
                    raise
                if attempt == attempts:
                    logger.error("Giving up on %s after %d retries: %s", url, self.max_retries, exc)
                    raise
                delay = self.retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Attempt %d/%d to %s failed (%s); retrying in %.1fs",
                    attempt, attempts, url, exc, delay,
                )
                self._wait(delay, cancel)
        raise TransportError(f"no attempt made to {url}: max_retries is {self.max_retries}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _wait(self, delay: float, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(delay)
        elif cancel.wait(delay):
            raise CancelledError("operation cancelled during backoff")

    def _attempt(
        self,
        url:      str,
        envelope: bytes,
        headers:  Mapping[str, str] | None,
        cancel:   threading.Event | None,
    ) -> bytes:
        """One POST; with a cancel event it runs on a helper thread so cancelling cuts it short."""
        if cancel is None:
            return self._post_once(url, envelope, headers)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="soap-post")
        try:
            future = pool.submit(self._post_once, url, envelope, headers)
            while True:
                try:
                    return future.result(timeout=CANCEL_POLL_INTERVAL)
                except FutureTimeoutError:
                    if cancel.is_set():
                        logger.info("Abandoning in-flight request to %s", url)
                        raise CancelledError("operation cancelled during request") from None
        finally:
            # an abandoned request finishes (or times out) in the background
            pool.shutdown(wait=False)

    def _post_once(self, url: str, envelope: bytes, headers: Mapping[str, str] | None) -> bytes:
        hdrs = {"Content-Type": CONTENT_TYPE, "Accept": "text/xml"}
        if headers:
            hdrs.update(headers)
        try:
            resp = self.http.post(url, data=envelope, headers=hdrs, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"request to {url} failed", cause=exc) from exc
        if resp.status_code != 200:
            raise HTTPStatusError(resp.status_code, resp.text)
        logger.debug("POST %s → %d (%d bytes)", url, resp.status_code, len(resp.content))
        return resp.content


__all__ = [
    "CONTENT_TYPE",
    "DATABOX_NS",
    "DATABOX_SERVICE",
    "FILE_UPLOAD_NS",
    "FILE_UPLOAD_SERVICE",
    "SESSION_NS",
    "SESSION_SERVICE",
    "SOAP_ENV_NS",
    "UID_NS",
    "UID_SERVICE",
    "SoapTransport",
    "build_envelope",
    "check_response",
    "parse_envelope",
    "request_element",
    "result_code",
]
