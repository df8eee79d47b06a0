"""HTTP health checks with concurrent fan-out."""

import logging
import time
import urllib.error
import urllib.request
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from threading import Thread

from . import __version__
from .models import CheckOutcome, Status

logger = logging.getLogger(__name__)


class _RedirectHandler(urllib.request.HTTPRedirectHandler):
    """Custom redirect handler that follows 307 and 308 redirects."""

    def http_error_307(self, req, fp, code, msg, headers):
        """Handle 307 Temporary Redirect."""
        return self._do_redirect(req, fp, code, msg, headers)

    def http_error_308(self, req, fp, code, msg, headers):
        """Handle 308 Permanent Redirect."""
        return self._do_redirect(req, fp, code, msg, headers)

    def _do_redirect(self, req, fp, code, msg, headers):
        """Follow redirect preserving the original method."""
        new_url = headers.get("Location")
        if new_url:
            new_req = urllib.request.Request(
                new_url,
                method=req.get_method(),
                headers=dict(req.headers),
            )
            return self.parent.open(new_req, timeout=req.timeout)
        return None


_opener = urllib.request.build_opener(_RedirectHandler())

USER_AGENT = f"SiteWatch/{__version__}"

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_SLOW_THRESHOLD_MS = 2_000

TIMEOUT_REASON = "Timeout"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _is_timeout(error: BaseException) -> bool:
    if isinstance(error, TimeoutError):
        return True
    return isinstance(error, urllib.error.URLError) and isinstance(error.reason, TimeoutError)


def _fetch(url: str, timeout_ms: int, start: float, result: dict) -> None:
    """Issue the GET request and store status code or error plus latency in ``result``."""
    try:
        request = urllib.request.Request(url, method="GET", headers={"User-Agent": USER_AGENT})
        with _opener.open(request, timeout=timeout_ms / 1000) as response:
            result["latency_ms"] = _elapsed_ms(start)
            result["status_code"] = response.status
    except Exception as e:
        result["latency_ms"] = _elapsed_ms(start)
        result["error"] = e


def _classify_error(url: str, error: Exception, latency_ms: int) -> CheckOutcome:
    if isinstance(error, urllib.error.HTTPError):
        # Non-2xx responses that urllib did not follow
        return CheckOutcome(url=url, status=Status.DOWN, reason=f"HTTP {error.code}", latency_ms=latency_ms)
    if _is_timeout(error):
        return CheckOutcome(url=url, status=Status.DOWN, reason=TIMEOUT_REASON, latency_ms=latency_ms)
    reason = error.reason if isinstance(error, urllib.error.URLError) else error
    return CheckOutcome(url=url, status=Status.DOWN, reason=str(reason) or type(error).__name__, latency_ms=latency_ms)


def check_url(
    url: str,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    slow_threshold_ms: int = DEFAULT_SLOW_THRESHOLD_MS,
) -> CheckOutcome:
    """Perform a single HTTP GET health check on a URL.

    The request runs on a daemon thread that is abandoned once ``timeout_ms``
    has passed, so a server trickling its response can neither delay this
    call nor keep the process alive at exit. Never raises: timeouts, HTTP
    errors and transport failures are all reported as a DOWN outcome.

    Args:
        url: URL to check.
        timeout_ms: Time after which the attempt is abandoned as "Timeout".
        slow_threshold_ms: Successful responses slower than this are SLOW.

    Returns:
        CheckOutcome with status, reason and latency.
    """
    start = time.monotonic()
    result: dict = {}

    fetcher = Thread(target=_fetch, args=(url, timeout_ms, start, result), daemon=True, name="check-fetch")
    fetcher.start()
    fetcher.join(timeout_ms / 1000)

    if fetcher.is_alive():
        logger.debug("Abandoned check for %s after %dms", url, timeout_ms)
        return CheckOutcome(url=url, status=Status.DOWN, reason=TIMEOUT_REASON, latency_ms=timeout_ms)

    latency_ms = result["latency_ms"]
    if "error" in result:
        return _classify_error(url, result["error"], latency_ms)

    status_code = result["status_code"]
    if not 200 <= status_code < 300:
        return CheckOutcome(url=url, status=Status.DOWN, reason=f"HTTP {status_code}", latency_ms=latency_ms)

    if latency_ms > timeout_ms:
        return CheckOutcome(url=url, status=Status.DOWN, reason=TIMEOUT_REASON, latency_ms=latency_ms)

    if latency_ms > slow_threshold_ms:
        return CheckOutcome(url=url, status=Status.SLOW, reason=f"Slow ({latency_ms}ms)", latency_ms=latency_ms)

    return CheckOutcome(url=url, status=Status.UP, reason=None, latency_ms=latency_ms)


def check_all(
    urls: Sequence[str],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    slow_threshold_ms: int = DEFAULT_SLOW_THRESHOLD_MS,
    max_workers: int | None = None,
) -> list[CheckOutcome]:
    """Check all URLs concurrently and return outcomes in input order.

    Every check is bounded by its own ``timeout_ms``, so a slow URL only
    delays the checks queued behind it when ``max_workers`` is smaller than
    the number of URLs, and never turns them into timeouts. A failure in one
    check never affects the others.

    Args:
        urls: URLs to check.
        timeout_ms: Per-check timeout in milliseconds.
        slow_threshold_ms: Slow threshold in milliseconds.
        max_workers: Thread pool size, defaults to one thread per URL.

    Returns:
        One CheckOutcome per URL, in the same order as ``urls``.
    """
    if not urls:
        return []

    start = time.monotonic()
    outcomes: list[CheckOutcome] = []

    with ThreadPoolExecutor(max_workers=max_workers or len(urls), thread_name_prefix="check") as executor:
        futures = [executor.submit(check_url, url, timeout_ms, slow_threshold_ms) for url in urls]

        for url, future in zip(urls, futures):
            try:
                outcome = future.result()
            except Exception as e:
                logger.error("Failed to check %s: %s", url, e)
                outcome = CheckOutcome(url=url, status=Status.DOWN, reason=str(e), latency_ms=0)
            logger.debug("%s: %s (%dms)", outcome.url, outcome.status.value.upper(), outcome.latency_ms)
            outcomes.append(outcome)

    logger.info("Checked %d URL(s) in %dms", len(outcomes), _elapsed_ms(start))
    return outcomes
