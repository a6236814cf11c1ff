"""Notification callback run after public form submissions."""

import logging

logger = logging.getLogger(__name__)


class Notifier:
    def notify(self, form_id: str, data: dict):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: records the submission in the log only."""

    def notify(self, form_id: str, data: dict):
        logger.info("Form %s submitted (%d fields)", form_id, len(data))


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _notifier


def _set_notifier(notifier: Notifier):
    """Replace the notifier (for testing or deployment wiring)."""
    global _notifier
    _notifier = notifier


def run_notification(form_id: str, data: dict):
    """Background task body; a failing notifier never reaches the caller."""
    try:
        _notifier.notify(form_id, data)
    except Exception as e:
        logger.warning("Notification for form %s failed: %s", form_id, e)
