"""
Endpoint Reachability Probe
Diagnostic helper for checking which gateway URLs answer, and how
"""

import time
import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests

logger = logging.getLogger(__name__)

ESEWA_KNOWN_URLS = [
    "https://rc-epay.esewa.com.np/api/epay/main/v2/form",
    "https://uat.esewa.com.np/api/epay/main/v2/form",
    "https://epay.esewa.com.np/api/epay/main/v2/form",
    "https://rc.esewa.com.np/api/epay/transaction/status/",
]


@dataclass
class ProbeResult:
    url: str
    method: str
    status_code: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: Optional[float] = None

    @property
    def reachable(self) -> bool:
        # Any HTTP answer, even a 404, means the host is up
        return self.status_code is not None

    @property
    def verdict(self) -> str:
        code = self.status_code
        if code is None:
            return "unreachable"
        if 200 <= code < 400:
            return "ok"
        if code in (400, 422):
            return "bad_request"
        if code == 404:
            return "not_found"
        if code == 405:
            return "method_not_allowed"
        if code >= 500:
            return "server_error"
        return "other"

    def to_dict(self):
        data = asdict(self)
        data["reachable"] = self.reachable
        data["verdict"] = self.verdict
        return data


def build_urls(base_url, paths):
    """Join a base URL with each path"""
    base = base_url.rstrip("/")
    return [f"{base}/{path.lstrip('/')}" for path in paths]


def probe_url(url, method="GET", timeout=5.0, session=None) -> ProbeResult:
    """Send one request and record how the endpoint answered"""
    method = method.upper()
    http = session or requests
    started = time.monotonic()
    try:
        kwargs = {"timeout": timeout, "allow_redirects": False}
        if method == "POST":
            # Empty body: endpoints that exist usually answer 400 rather than 404
            kwargs["json"] = {}
        response = http.request(method, url, **kwargs)
    except requests.RequestException as e:
        logger.debug("probe %s %s failed: %s", method, url, e)
        return ProbeResult(
            url=url,
            method=method,
            error=str(e),
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )

    result = ProbeResult(
        url=url,
        method=method,
        status_code=response.status_code,
        reason=response.reason,
        elapsed_ms=round((time.monotonic() - started) * 1000, 1),
    )
    logger.debug("probe %s %s -> %s", method, url, result.status_code)
    return result


def probe_urls(urls, method="GET", timeout=5.0, session=None):
    """Probe each URL in turn"""
    return [probe_url(url, method=method, timeout=timeout, session=session) for url in urls]
