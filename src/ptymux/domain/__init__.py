"""Domain models for ptymux.

Core data structures, enumerations, and wire envelopes used throughout
the system. All models use Pydantic v2 for validation and serialization.
"""

from ptymux.domain.models import (
    DataMessage,
    ErrorMessage,
    ExitMessage,
    ExitStatus,
    Geometry,
    InboundMessage,
    InputMessage,
    ProjectEntry,
    ResizeMessage,
    RestartMessage,
    SessionInfo,
    SessionState,
    SubmitMessage,
    parse_inbound,
)

__all__ = [
    "DataMessage",
    "ErrorMessage",
    "ExitMessage",
    "ExitStatus",
    "Geometry",
    "InboundMessage",
    "InputMessage",
    "ProjectEntry",
    "ResizeMessage",
    "RestartMessage",
    "SessionInfo",
    "SessionState",
    "SubmitMessage",
    "parse_inbound",
]
