"""Constants for the UptimeRobot Operator."""

# API Group
API_GROUP = "uptimerobot.com"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_ACCOUNT = "Account"
KIND_CONTACT = "Contact"
KIND_MONITOR = "Monitor"
KIND_MAINTENANCE_WINDOW = "MaintenanceWindow"
KIND_MONITOR_GROUP = "MonitorGroup"
KIND_SLACK_INTEGRATION = "SlackIntegration"

# Plurals used by the custom objects API
PLURALS = {
    KIND_ACCOUNT: "accounts",
    KIND_CONTACT: "contacts",
    KIND_MONITOR: "monitors",
    KIND_MAINTENANCE_WINDOW: "maintenancewindows",
    KIND_MONITOR_GROUP: "monitorgroups",
    KIND_SLACK_INTEGRATION: "slackintegrations",
}

# Annotations
ANNOTATION_ADOPT_ID = f"{API_GROUP}/adopt-id"
ANNOTATION_SKIP_CLEANUP = f"{API_GROUP}/skip-cleanup"
ANNOTATION_CLEANUP_START_TIME = f"{API_GROUP}/cleanup-start-time"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "uptimerobot-operator"

# Condition Types
COND_READY = "Ready"
COND_SYNCED = "Synced"
COND_ERROR = "Error"
COND_DELETING = "Deleting"

# Condition Reasons
REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"
REASON_SYNC_SUCCESS = "SyncSuccess"
REASON_SYNC_ERROR = "SyncError"
REASON_API_ERROR = "APIError"
REASON_SECRET_NOT_FOUND = "SecretNotFound"

# Deleting condition reasons
REASON_CLEANUP_SKIPPED = "Skipped"
REASON_CLEANUP_SUCCESS = "Success"
REASON_CLEANUP_ERROR = "Error"
REASON_CLEANUP_TIMEOUT = "Timeout"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_CREATED = "Created"
EVENT_REASON_UPDATED = "Updated"
EVENT_REASON_ADOPTED = "Adopted"
EVENT_REASON_RECREATED = "Recreated"
EVENT_REASON_CLEANUP_SKIPPED = "CleanupSkipped"
EVENT_REASON_CLEANUP_SUCCESS = "CleanupSuccess"
EVENT_REASON_CLEANUP_ERROR = "CleanupError"
EVENT_REASON_CLEANUP_TIMEOUT = "CleanupTimeout"

# Heartbeat URL publishing
PUBLISH_TYPE_SECRET = "Secret"
PUBLISH_TYPE_CONFIGMAP = "ConfigMap"
DEFAULT_PUBLISH_KEY = "heartbeatURL"
DEFAULT_HEARTBEAT_BASE_URL = "https://heartbeat.uptimerobot.com"

# Defaults
DEFAULT_SYNC_INTERVAL = "24h"
DEFAULT_OPERATOR_NAMESPACE = "uptime-robot-system"
