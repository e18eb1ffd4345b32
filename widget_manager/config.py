"""
Centralized configuration for the widget manager
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Mime types
WIDGET_VIEW_MIMETYPE = "application/vnd.jupyter.widget-view+json"
WIDGET_STATE_MIMETYPE = "application/vnd.jupyter.widget-state+json"

# Widget message protocol
PROTOCOL_VERSION = "2.0.0"

# Comm settings
COMM_CONFIG = {
    "target_name": os.getenv("WIDGET_COMM_TARGET", "jupyter.widget"),
    "protocol_version": PROTOCOL_VERSION,
}

# Persisted widget state in notebook metadata
DOCUMENT_CONFIG = {
    "metadata_key": "widgets",
    "state_mimetype": WIDGET_STATE_MIMETYPE,
    "state_version_major": 2,
    "state_version_minor": 0,
}

# Module resolution
MODULE_CONFIG = {
    # Plain versions of these modules are widened to ^version before lookup
    "caret_widened_modules": [
        "@jupyter-widgets/base",
        "@jupyter-widgets/controls",
    ],
}

# Restoration
RESTORE_CONFIG = {
    "isolate_failures": os.getenv("WIDGET_ISOLATE_FAILURES", "true").lower() == "true",
}

# Jupyter server / kernel connection
KERNEL_CONFIG = {
    "base_url": os.getenv("JUPYTER_BASE_URL", "http://localhost:8888/"),
    "token": os.getenv("JUPYTER_TOKEN", ""),
    "connection_timeout": float(os.getenv("KERNEL_CONNECTION_TIMEOUT", "20.0")),
    "username": os.getenv("JUPYTER_USERNAME", ""),
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true", 
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}
