"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that sends error-level logs to New Relic.

    Error and critical logs are reported with notice_error, which attaches them to the
    current transaction (webhook request or cron background task) when there is one.
    All log levels pass through unchanged.

    Args:
        logger: The logger instance
        method_name: The logging method name (e.g., 'error', 'warning')
        event_dict: The log event dictionary

    Returns:
        The unmodified event dictionary
    """
    if method_name in ("error", "critical"):
        newrelic.agent.notice_error(
            attributes={"log_message": str(event_dict.get("event", ""))[:255]}
        )

    return event_dict
