# File: app/observability/sentry.py | Version: 2.0 | Title: Optional Sentry initialization
import logging
import os

log = logging.getLogger(__name__)


def init_sentry_if_configured() -> bool:
    """Initialise sentry-sdk when SENTRY_DSN is set; returns whether it ran."""
    dsn = os.getenv("SENTRY_DSN", "").strip()
    if not dsn:
        log.info("Sentry disabled (no SENTRY_DSN).")
        return False

    try:
        import sentry_sdk
    except ImportError:
        log.info("Sentry disabled (sentry-sdk not installed).")
        return False

    try:
        traces = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))
        sentry_sdk.init(
            dsn=dsn,
            environment=os.getenv("SENTRY_ENV", "development"),
            traces_sample_rate=traces,
            send_default_pii=False,
        )
        log.info("Sentry initialized.")
        return True
    except Exception as e:  # pragma: no cover (best-effort)
        log.warning("Sentry init failed: %s", e)
        return False
