"""
Error taxonomy

Degraded outcomes travel as typed results tagged with an ErrorKind.
Exceptions are reserved for programming and administrative errors.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification attached to degraded results"""
    DATA_ERROR = "DATA_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LOCK_CONTENTION = "LOCK_CONTENTION"
    RISK_VIOLATION = "RISK_VIOLATION"
    EXECUTION_FAILURE = "EXECUTION_FAILURE"


class RegimexError(Exception):
    """Base class for engine exceptions"""


class ConfigurationError(RegimexError, ValueError):
    """Invalid configuration or administrative input"""


class CorruptStateError(RegimexError):
    """Persisted record failed schema or range checks"""


class InsufficientDataError(RegimexError, ValueError):
    """Not enough samples for a calculation"""


class UnknownStrategyError(ConfigurationError):
    """Strategy id not present in the registry"""
