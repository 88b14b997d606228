"""Runtime error classification and recovery helpers."""

from src.runtime.recovery import (
    AttachmentBackoff,
    ErrorSeverity,
    InitializationError,
    RecoveryPolicy,
    RuntimeRecoveryCoordinator,
    classify,
)

__all__ = [
    "AttachmentBackoff",
    "ErrorSeverity",
    "InitializationError",
    "RecoveryPolicy",
    "RuntimeRecoveryCoordinator",
    "classify",
]
