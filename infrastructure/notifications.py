import logging
from typing import Optional, Sequence

from application.ports import Logger, NotificationAction


class LoggingNotifier:
    """Notifier for headless use: every warning goes to the log.

    Callers decide what is worth repeating (the store warns once per outage,
    quarantine once per file), so nothing is suppressed here.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or logging.getLogger("beans.notify")

    def warn(self, message: str, actions: Sequence[NotificationAction] = ()) -> None:
        if actions:
            targets = ", ".join(f"{a.label}: {a.target}" for a in actions)
            self.logger.warning("%s [%s]", message, targets)
        else:
            self.logger.warning("%s", message)


__all__ = ["LoggingNotifier"]
