"""Tests for the prober module."""

import os
import socket
import subprocess
import sys
import threading
import time
import urllib.error
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sitewatch import __version__
from sitewatch.models import CheckOutcome, Status
from sitewatch.prober import check_all, check_url

URL = "https://example.com/health"

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _mock_response(status: int = 200) -> MagicMock:
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.__enter__ = MagicMock(return_value=mock_response)
    mock_response.__exit__ = MagicMock(return_value=False)
    return mock_response


class TestCheckUrl:
    """Tests for check_url function."""

    def test_successful_check_is_up(self) -> None:
        """Fast 2xx response marks URL as up."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(200)

            result = check_url(URL)

            assert isinstance(result, CheckOutcome)
            assert result.url == URL
            assert result.status is Status.UP
            assert result.reason is None
            assert result.latency_ms >= 0

    def test_sends_get_with_user_agent(self) -> None:
        """The request is a GET carrying the SiteWatch User-Agent."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(200)

            check_url(URL, timeout_ms=5000)

            request = mock_urlopen.call_args.args[0]
            assert request.get_method() == "GET"
            assert request.get_header("User-agent") == f"SiteWatch/{__version__}"
            assert mock_urlopen.call_args.kwargs["timeout"] == 5.0

    def test_slow_response_is_slow(self) -> None:
        """Responses slower than the threshold are slow."""
        with (
            patch("sitewatch.prober._opener.open") as mock_urlopen,
            patch("sitewatch.prober._elapsed_ms", return_value=2500),
        ):
            mock_urlopen.return_value = _mock_response(200)

            result = check_url(URL, timeout_ms=10_000, slow_threshold_ms=2000)

            assert result.status is Status.SLOW
            assert result.reason == "Slow (2500ms)"
            assert result.latency_ms == 2500

    def test_latency_equal_to_threshold_is_up(self) -> None:
        """Only latency strictly above the threshold counts as slow."""
        with (
            patch("sitewatch.prober._opener.open") as mock_urlopen,
            patch("sitewatch.prober._elapsed_ms", return_value=2000),
        ):
            mock_urlopen.return_value = _mock_response(200)

            result = check_url(URL, slow_threshold_ms=2000)

            assert result.status is Status.UP

    def test_response_past_timeout_is_timeout(self) -> None:
        """A response arriving after the timeout is reported as a timeout."""
        with (
            patch("sitewatch.prober._opener.open") as mock_urlopen,
            patch("sitewatch.prober._elapsed_ms", return_value=11_000),
        ):
            mock_urlopen.return_value = _mock_response(200)

            result = check_url(URL, timeout_ms=10_000)

            assert result.status is Status.DOWN
            assert result.reason == "Timeout"

    @pytest.mark.parametrize("code", [404, 500, 503])
    def test_http_error_is_down(self, code: int) -> None:
        """Error status codes are down with an HTTP reason."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.side_effect = urllib.error.HTTPError(URL, code, "Error", {}, None)

            result = check_url(URL)

            assert result.status is Status.DOWN
            assert result.reason == f"HTTP {code}"

    def test_non_2xx_response_is_down(self) -> None:
        """A non-2xx status returned without an exception is still down."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(304)

            result = check_url(URL)

            assert result.status is Status.DOWN
            assert result.reason == "HTTP 304"

    def test_timeout_is_down(self) -> None:
        """Socket timeouts are reported as Timeout."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.side_effect = TimeoutError("timed out")

            result = check_url(URL)

            assert result.status is Status.DOWN
            assert result.reason == "Timeout"

    def test_connect_timeout_wrapped_in_urlerror(self) -> None:
        """Connect timeouts wrapped by urllib are reported as Timeout."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.side_effect = urllib.error.URLError(TimeoutError("timed out"))

            result = check_url(URL)

            assert result.reason == "Timeout"

    def test_connection_error_uses_error_description(self) -> None:
        """Transport errors carry the underlying error text."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.side_effect = urllib.error.URLError("Connection refused")

            result = check_url(URL)

            assert result.status is Status.DOWN
            assert result.reason == "Connection refused"

    def test_unexpected_error_is_down(self) -> None:
        """Any other exception is classified, not raised."""
        with patch("sitewatch.prober._opener.open") as mock_urlopen:
            mock_urlopen.side_effect = ValueError("unknown url type")

            result = check_url(URL)

            assert result.status is Status.DOWN
            assert result.reason == "unknown url type"


class TestCheckAll:
    """Tests for check_all function."""

    def test_empty_list(self) -> None:
        """No URLs means no outcomes."""
        assert check_all([]) == []

    def test_preserves_input_order(self) -> None:
        """Outcomes come back in the order the URLs were given."""
        urls = [f"https://site{i}.example.com" for i in range(5)]

        def fake_check(url: str, timeout_ms: int, slow_threshold_ms: int) -> CheckOutcome:
            # Later URLs finish first
            time.sleep(0.01 * (5 - urls.index(url)))
            return CheckOutcome(url=url, status=Status.UP, reason=None, latency_ms=1)

        with patch("sitewatch.prober.check_url", side_effect=fake_check):
            outcomes = check_all(urls)

        assert [o.url for o in outcomes] == urls

    def test_runs_concurrently(self) -> None:
        """All checks are in flight at the same time."""
        urls = [f"https://site{i}.example.com" for i in range(4)]
        barrier = threading.Barrier(len(urls), timeout=5)

        def fake_check(url: str, timeout_ms: int, slow_threshold_ms: int) -> CheckOutcome:
            barrier.wait()
            return CheckOutcome(url=url, status=Status.UP, reason=None, latency_ms=1)

        with patch("sitewatch.prober.check_url", side_effect=fake_check):
            outcomes = check_all(urls)

        assert all(o.status is Status.UP for o in outcomes)

    def test_passes_thresholds(self) -> None:
        """Timeout and slow threshold are forwarded to each check."""
        with patch("sitewatch.prober.check_url") as mock_check:
            mock_check.return_value = CheckOutcome(url=URL, status=Status.UP, reason=None, latency_ms=1)

            check_all([URL], timeout_ms=3000, slow_threshold_ms=500)

            mock_check.assert_called_once_with(URL, 3000, 500)

    def test_failure_is_isolated(self) -> None:
        """An exception in one check does not affect the others."""
        other = "https://other.example.com"

        def fake_check(url: str, timeout_ms: int, slow_threshold_ms: int) -> CheckOutcome:
            if url == URL:
                raise RuntimeError("boom")
            return CheckOutcome(url=url, status=Status.UP, reason=None, latency_ms=1)

        with patch("sitewatch.prober.check_url", side_effect=fake_check):
            outcomes = check_all([URL, other])

        assert outcomes[0].status is Status.DOWN
        assert outcomes[0].reason == "boom"
        assert outcomes[1].status is Status.UP


class _OkHandler(BaseHTTPRequestHandler):
    """Answers every GET with 200 OK."""

    def do_GET(self) -> None:
        body = b"ok"
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def healthy_url() -> Iterator[str]:
    """Serve a local endpoint that responds immediately."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _OkHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/"
    server.shutdown()
    server.server_close()


@pytest.fixture
def trickle_url() -> Iterator[str]:
    """Serve a local endpoint that sends its headers one byte every 100ms.

    Each byte arrives well within the socket timeout, so only an overall
    deadline can stop the request.
    """
    stop = threading.Event()
    payload = b"HTTP/1.1 200 OK\r\nX-Pad: " + b"a" * 300
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    listener.bind(("127.0.0.1", 0))
    listener.listen()
    listener.settimeout(0.1)

    def trickle(conn: socket.socket) -> None:
        with conn:
            try:
                conn.recv(4096)
                for i in range(len(payload)):
                    if stop.wait(0.1):
                        return
                    conn.sendall(payload[i : i + 1])
            except OSError:
                return

    def accept_loop() -> None:
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except TimeoutError:
                continue
            except OSError:
                return
            threading.Thread(target=trickle, args=(conn,), daemon=True).start()

    thread = threading.Thread(target=accept_loop, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{listener.getsockname()[1]}/"
    stop.set()
    thread.join(timeout=2)
    listener.close()


class TestDeadline:
    """Checks against local servers that respond slowly byte by byte."""

    def test_trickling_response_times_out_on_time(self, trickle_url: str) -> None:
        """A check returns Timeout once its own timeout has passed."""
        start = time.monotonic()
        result = check_url(trickle_url, timeout_ms=500, slow_threshold_ms=200)
        elapsed = time.monotonic() - start

        assert result.status is Status.DOWN
        assert result.reason == "Timeout"
        assert elapsed < 1.5

    def test_healthy_url_queued_behind_slow_one_is_up(self, trickle_url: str, healthy_url: str) -> None:
        """With a single worker, a check waiting behind a timeout is still checked."""
        start = time.monotonic()
        outcomes = check_all([trickle_url, healthy_url], timeout_ms=500, slow_threshold_ms=400, max_workers=1)
        elapsed = time.monotonic() - start

        assert outcomes[0].status is Status.DOWN
        assert outcomes[0].reason == "Timeout"
        assert outcomes[1].status is Status.UP
        assert outcomes[1].reason is None
        assert elapsed < 2.5

    def test_process_exits_after_timeout(self, trickle_url: str) -> None:
        """A pending request does not keep the interpreter alive at exit."""
        code = (
            "import sys\n"
            "from sitewatch.prober import check_all\n"
            f"outcome = check_all([{trickle_url!r}], timeout_ms=500, slow_threshold_ms=200)[0]\n"
            "print(outcome.reason)\n"
            "sys.exit(1)\n"
        )
        env = {**os.environ, "PYTHONPATH": str(PROJECT_ROOT)}

        start = time.monotonic()
        completed = subprocess.run(
            [sys.executable, "-c", code],
            cwd=PROJECT_ROOT,
            env=env,
            capture_output=True,
            text=True,
            timeout=20,
        )
        elapsed = time.monotonic() - start

        assert completed.returncode == 1
        assert completed.stdout.strip() == "Timeout"
        assert elapsed < 8
