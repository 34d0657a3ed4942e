from __future__ import annotations

import logging

from couponhub.core.config import Settings, settings

logger = logging.getLogger(__name__)

_DEV_SECRET = "dev-secret-key"
_MIN_SECRET_LENGTH = 32


def _is_production(config: Settings) -> bool:
    return (config.environment or "").strip().lower() in {"prod", "production"}


def _collect_problems(config: Settings) -> list[str]:
    problems: list[str] = []
    secret = (config.secret_key or "").strip()
    if secret in {"", _DEV_SECRET} or len(secret) < _MIN_SECRET_LENGTH:
        problems.append("SECRET_KEY must be set to a strong random value (not the dev default).")
    if not config.secure_cookies:
        problems.append("SECURE_COOKIES must be enabled in production.")
    samesite = (config.cookie_samesite or "").strip().lower()
    if samesite not in {"lax", "strict", "none"}:
        problems.append("COOKIE_SAMESITE must be one of: lax | strict | none.")
    if config.claim_window_minutes <= 0:
        problems.append("CLAIM_WINDOW_MINUTES must be positive.")
    return problems


def validate_production_settings(config: Settings | None = None) -> None:
    """
    Fail fast on insecure defaults when running in production.

    Other environments only log the problems at debug level.
    """
    config = config or settings
    problems = _collect_problems(config)
    if not _is_production(config):
        if problems:
            logger.debug("startup_checks_skipped", extra={"problems": problems})
        return
    if problems:
        raise RuntimeError("Production configuration checks failed:\n- " + "\n- ".join(problems))
