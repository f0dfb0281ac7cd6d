from connectors.jira.jira_event_effects import (
    apply_jira_event_effects,
    jira_browse_url,
    jira_task_status,
)
from connectors.jira.jira_webhook_handler import (
    JiraWebhookVerifier,
    extract_jira_webhook_metadata,
    verify_jira_webhook,
)
from connectors.jira.jira_webhook_normalizer import (
    jira_event_external_id,
    normalize_jira_webhook,
)

__all__ = [
    "JiraWebhookVerifier",
    "apply_jira_event_effects",
    "extract_jira_webhook_metadata",
    "jira_browse_url",
    "jira_event_external_id",
    "jira_task_status",
    "normalize_jira_webhook",
    "verify_jira_webhook",
]
