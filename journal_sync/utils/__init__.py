"""
Utility modules
"""
from .responses import success_response, ApiResponse
from .validators import (
    validate_entry_payload,
    validate_pagination,
    validate_force_full,
    sanitize_string,
)
from .crypto import TokenCrypto
from .logger import setup_logger, get_logger

__all__ = [
    'success_response',
    'ApiResponse',
    'validate_entry_payload',
    'validate_pagination',
    'validate_force_full',
    'sanitize_string',
    'TokenCrypto',
    'setup_logger',
    'get_logger',
]
