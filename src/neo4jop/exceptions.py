"""Error taxonomy shared by the admission gate and the upgrade orchestrator."""

from enum import Enum


class ErrorReason(str, Enum):
    """Machine-readable reason codes attached to field errors and upgrade failures."""

    INVALID_VERSION_FORMAT = "InvalidVersionFormat"
    UNSUPPORTED_VERSION = "UnsupportedVersion"
    DOWNGRADE_REJECTED = "DowngradeRejected"
    UNSUPPORTED_UPGRADE_PATH = "UnsupportedUpgradePath"
    QUORUM_VIOLATION = "QuorumViolation"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    UNSUPPORTED_ENUM_VALUE = "UnsupportedEnumValue"
    INVALID_VALUE = "InvalidValue"
    MEMBER_READINESS_TIMEOUT = "MemberReadinessTimeout"
    MEMBERSHIP_CONFIRMATION_TIMEOUT = "MembershipConfirmationTimeout"
    STABILIZATION_TIMEOUT = "StabilizationTimeout"


class Neo4jOperatorError(Exception):
    """Base class for all operator errors."""

    reason = None

    def __init__(self, message, reason=None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class InvalidVersionFormat(Neo4jOperatorError):
    """The image tag could not be parsed into a version."""

    reason = ErrorReason.INVALID_VERSION_FORMAT


class UnsupportedVersion(Neo4jOperatorError):
    """The tag parses but falls outside every known versioning epoch."""

    reason = ErrorReason.UNSUPPORTED_VERSION


class ValidationFailed(Neo4jOperatorError):
    """Aggregate of one or more field errors raised by the admission gate."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(format_field_errors(self.errors))


class OracleUnavailable(Neo4jOperatorError):
    """The membership oracle could not answer (timeout, transport or query error)."""


class UpgradeTimeout(Neo4jOperatorError):
    """A bounded upgrade step ran out of time."""


class MemberReadinessTimeout(UpgradeTimeout):
    reason = ErrorReason.MEMBER_READINESS_TIMEOUT


class MembershipConfirmationTimeout(UpgradeTimeout):
    reason = ErrorReason.MEMBERSHIP_CONFIRMATION_TIMEOUT


class StabilizationTimeout(UpgradeTimeout):
    reason = ErrorReason.STABILIZATION_TIMEOUT


def format_field_errors(errors):
    """Render field errors the way the Kubernetes API server reports invalid objects."""
    if not errors:
        return ""
    if len(errors) == 1:
        return str(errors[0])
    return "[" + ", ".join(str(error) for error in errors) + "]"
