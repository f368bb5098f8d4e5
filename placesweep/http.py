"""HTTP client with retry/backoff and request budgeting."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class BudgetExceededError(RuntimeError):
    pass


@dataclass
class RequestMetrics:
    network_requests: int = 0
    pages_fetched: int = 0
    failed_requests: int = 0
    budget_skips: int = 0

    @property
    def requests_count(self) -> int:
        return self.network_requests

    def inc_network(self) -> None:
        self.network_requests += 1

    def inc_page(self) -> None:
        self.pages_fetched += 1

    def inc_failure(self) -> None:
        self.failed_requests += 1

    def inc_budget_skip(self) -> None:
        self.budget_skips += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "network_requests": self.network_requests,
            "pages_fetched": self.pages_fetched,
            "failed_requests": self.failed_requests,
            "budget_skips": self.budget_skips,
        }


class RequestBudget:
    def __init__(
        self,
        max_requests: Optional[int] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.max_requests = max_requests
        self.metrics = metrics
        self._count = 0

    @property
    def requests_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_requests)
        return self._count

    def remaining(self) -> Optional[int]:
        if self.max_requests is None:
            return None
        return max(0, self.max_requests - self.requests_count)

    def consume(self) -> None:
        if self.max_requests is not None and self.requests_count >= self.max_requests:
            if self.metrics is not None:
                self.metrics.inc_budget_skip()
            raise BudgetExceededError(
                f"Request budget exceeded: {self.requests_count} >= {self.max_requests}"
            )
        if self.metrics is not None:
            self.metrics.inc_network()
        else:
            self._count += 1


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: int = 20,
        retry_max: int = 1,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        budget: Optional[RequestBudget] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.budget = budget
        self.session = requests.Session()

    def get_json(self, url: str, params: Dict[str, Any]) -> Any:
        def send() -> requests.Response:
            return self.session.get(url, params=params, timeout=self.timeout)

        return self._request(url, send)

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        field_mask: str,
    ) -> Any:
        headers = {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }
        payload = json.dumps(body)

        def send() -> requests.Response:
            return self.session.post(url, data=payload, headers=headers, timeout=self.timeout)

        return self._request(url, send)

    def _request(self, url: str, send: Callable[[], requests.Response]) -> Any:
        for attempt in range(1, self.retry_max + 1):
            if self.budget is not None:
                self.budget.consume()
            try:
                resp = send()
            except requests.RequestException:
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    resp.raise_for_status()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            resp.raise_for_status()

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
