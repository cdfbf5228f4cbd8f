"""
Secure Logging Utility
Structured, redacting logging for the chat backend

SECURITY REQUIREMENTS:
- No phone numbers, bearer tokens or media credentials in logs
- Structured audit lines for every consultation / live-session transition
- Log levels appropriate for production
"""

import logging
import re
import sys
import json
from typing import Optional, Dict, Any

from sihha.core.clock import utcnow

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module"""
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    return logger


class SecureLogger:
    """
    Logging wrapper that redacts credentials and contact details
    """

    SENSITIVE_PATTERNS = [
        r'password',
        r'secret',
        r'token',
        r'jwt',
        r'authorization',
        r'bearer',
        r'phone',
        r'\+235',
    ]

    @staticmethod
    def sanitize_message(message: str) -> str:
        """
        Sanitize log message to remove sensitive information

        Args:
            message: Original log message

        Returns:
            Sanitized log message
        """
        # Chad phone numbers, with or without country code
        message = re.sub(r'\+?235\d{6,}', '[phone]', message)

        # Bearer credentials
        message = re.sub(r'(?i)bearer\s+[A-Za-z0-9._-]+', 'Bearer [token]', message)

        # JWTs (three dot-separated base64url segments)
        message = re.sub(r'\b[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\b', '[token]', message)

        # Remove long alphanumeric strings (likely tokens)
        message = re.sub(r'\b[A-Za-z0-9]{32,}\b', '[token]', message)

        # Remove stack traces (keep first line only)
        if '\n' in message:
            message = message.split('\n')[0] + ' [stack trace truncated]'

        return message

    @staticmethod
    def should_sanitize(message: str) -> bool:
        """Check if message contains sensitive patterns"""
        message_lower = message.lower()
        for pattern in SecureLogger.SENSITIVE_PATTERNS:
            if re.search(pattern, message_lower):
                return True
        return False

    @classmethod
    def log(cls, logger: logging.Logger, level: int, message: str, *args, **kwargs):
        if cls.should_sanitize(message):
            message = cls.sanitize_message(message)
            logger.log(level, f"[SANITIZED] {message}", *args, **kwargs)
        else:
            logger.log(level, message, *args, **kwargs)


def log_info(message: str, logger_name: Optional[str] = None, **kwargs):
    """Log info message securely"""
    logger = get_logger(logger_name or __name__)
    SecureLogger.log(logger, logging.INFO, message, **kwargs)


def log_warning(message: str, logger_name: Optional[str] = None, **kwargs):
    """Log warning message securely"""
    logger = get_logger(logger_name or __name__)
    SecureLogger.log(logger, logging.WARNING, message, **kwargs)


def log_error(message: str, logger_name: Optional[str] = None, exc_info: bool = False, **kwargs):
    """Log error message securely"""
    logger = get_logger(logger_name or __name__)
    if exc_info:
        kwargs['exc_info'] = True
    SecureLogger.log(logger, logging.ERROR, message, **kwargs)


def log_audit(event_type: str, user_id: Optional[str], details: Dict[str, Any]):
    """
    Log audit event with structured data

    Args:
        event_type: Type of audit event, e.g. "consultation.accept"
        user_id: Acting user ID (if applicable)
        details: Additional event details (ids and statuses only)
    """
    logger = get_logger("audit")
    audit_entry = {
        "timestamp": utcnow().isoformat(),
        "event_type": event_type,
        "user_id": user_id,
        "details": details
    }
    logger.info(f"[AUDIT] {json.dumps(audit_entry, default=str)}")
