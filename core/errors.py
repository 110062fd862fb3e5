"""
core/errors.py -- Error taxonomy for the expiry-audit engine.

VerificationError is a value, not an exception: the verifier returns it inside
a VerificationResult. The exceptions below cross module boundaries and are
caught by the sweep orchestrator or the HTTP layer.
"""

from dataclasses import dataclass
from enum import Enum


class VerificationErrorKind(str, Enum):
    NO_DATA = "no_data"  # lookup answered but carried no usable expiry
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"  # DNS failure, refused connection, TLS failure


@dataclass(frozen=True)
class VerificationError:
    kind: VerificationErrorKind
    message: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


class DeliveryFailure(Exception):
    """Mail transport refused, rejected auth, or timed out."""


class SweepInProgress(Exception):
    """Another sweep currently holds the owner's lock."""

    def __init__(self, owner_id: int) -> None:
        super().__init__(f"A sweep is already running for owner {owner_id}")
        self.owner_id = owner_id


class PolicyMisconfiguration(ValueError):
    """Notification settings that cannot produce a deliverable alert."""
