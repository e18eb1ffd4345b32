"""
Configuration validation module.

Validates the widget manager settings on startup to catch misconfigurations
early, before a kernel connection is attempted.
"""

import re
import sys
from typing import Dict, List, Any, Optional, Tuple
from urllib.parse import urlparse

import semantic_version

from .. import config
from .exceptions import ConfigValidationError

MIMETYPE_PATTERN = re.compile(r"^[\w.+-]+/[\w.+-]+$")
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigValidator:
    """Validates widget manager configuration"""
    
    def __init__(self,
                 comm_config: Optional[Dict[str, Any]] = None,
                 document_config: Optional[Dict[str, Any]] = None,
                 kernel_config: Optional[Dict[str, Any]] = None,
                 logging_config: Optional[Dict[str, Any]] = None):
        self.comm_config = comm_config if comm_config is not None else config.COMM_CONFIG
        self.document_config = document_config if document_config is not None else config.DOCUMENT_CONFIG
        self.kernel_config = kernel_config if kernel_config is not None else config.KERNEL_CONFIG
        self.logging_config = logging_config if logging_config is not None else config.LOGGING_CONFIG
        self.errors: List[str] = []
        self.warnings: List[str] = []
        
    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.
        
        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()
        
        self._validate_comm_config()
        self._validate_document_config()
        self._validate_kernel_config()
        self._validate_logging_config()
        
        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()
    
    def _validate_comm_config(self):
        target_name = self.comm_config.get("target_name", "")
        if not target_name or not str(target_name).strip():
            self.errors.append("Comm target name must not be empty")
            
        protocol_version = self.comm_config.get("protocol_version", "")
        if not semantic_version.validate(str(protocol_version)):
            self.errors.append(f"Widget protocol version '{protocol_version}' is not a valid semantic version")
    
    def _validate_document_config(self):
        if not self.document_config.get("metadata_key"):
            self.errors.append("Notebook metadata key for widget state must not be empty")
            
        mimetype = self.document_config.get("state_mimetype", "")
        if not MIMETYPE_PATTERN.match(str(mimetype)):
            self.errors.append(f"Widget state mime type '{mimetype}' is not a valid mime type")
            
        major = self.document_config.get("state_version_major", 2)
        if not isinstance(major, int) or major < 1:
            self.errors.append(f"Widget state major version must be a positive integer, got {major!r}")
    
    def _validate_kernel_config(self):
        base_url = self.kernel_config.get("base_url", "")
        if urlparse(str(base_url)).scheme not in ("http", "https"):
            self.errors.append(f"Jupyter base URL has invalid format: {base_url}")
            
        timeout = self.kernel_config.get("connection_timeout", 20.0)
        if timeout <= 0:
            self.errors.append(f"Kernel connection timeout must be positive, got {timeout}")
        elif timeout > 120.0:
            self.warnings.append(f"Kernel connection timeout {timeout}s is very high. Recommended: 5-60s")
            
        if not self.kernel_config.get("token"):
            self.warnings.append("JUPYTER_TOKEN not set: connecting to the Jupyter server without authentication")
    
    def _validate_logging_config(self):
        log_level = str(self.logging_config.get("log_level", "INFO"))
        if log_level.upper() not in VALID_LOG_LEVELS:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}")
        
        backup_count = self.logging_config.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} may be {'too low' if backup_count < 3 else 'too high'}. Recommended: 3-20")


def validate_startup_config(validator: Optional[ConfigValidator] = None) -> List[str]:
    """
    Validate configuration on startup.
    
    Returns:
        The list of warnings
        
    Raises:
        ConfigValidationError: If configuration errors are found
    """
    validator = validator or ConfigValidator()
    is_valid, errors, warnings = validator.validate_all()
    
    for warning in warnings:
        print(f"⚠️  Configuration warning: {warning}", file=sys.stderr)
    
    if not is_valid:
        raise ConfigValidationError(
            f"Found {len(errors)} configuration error(s): " + "; ".join(errors),
            {"errors": errors, "warnings": warnings}
        )
        
    return warnings
