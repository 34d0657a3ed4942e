"""Process-local counters exposed at ``/api/metrics``."""

from collections import Counter
from threading import Lock
from typing import Dict

CLAIMS = "claims"
CLAIMS_NOT_FOUND = "claims_not_found"
LOGINS = "logins"
LOGIN_FAILURES = "login_failures"

_counters: "Counter[str]" = Counter()
_lock = Lock()


def increment(name: str, amount: int = 1) -> None:
    with _lock:
        _counters[name] += amount


def record_claim_success() -> None:
    increment(CLAIMS)


def record_claim_not_found() -> None:
    increment(CLAIMS_NOT_FOUND)


def record_claim_rejected(reason: str) -> None:
    # One counter per rejection reason, e.g. "claims_rejected_window".
    increment(f"claims_rejected_{reason}")


def record_login_success() -> None:
    increment(LOGINS)


def record_login_failure() -> None:
    increment(LOGIN_FAILURES)


def snapshot() -> Dict[str, int]:
    with _lock:
        return {name: count for name, count in sorted(_counters.items()) if count}


def reset() -> None:
    with _lock:
        _counters.clear()
