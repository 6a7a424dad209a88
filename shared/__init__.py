"""
POSEMATCH Shared Module

Common utilities used across all services.
"""

from .utils import setup_logger, success_response, error_response, log_execution_time, get_now

__all__ = [
    'setup_logger',
    'success_response',
    'error_response',
    'log_execution_time',
    'get_now',
]
