"""Core domain models for ptymux.

These models represent the data flowing through the system: session
geometry and lifecycle state, process exit status, and the JSON
envelopes exchanged with remote consumers over the relay transport.
"""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ptymux.errors import MalformedMessage


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle state of a Process Session."""

    UNSPAWNED = "unspawned"  # No process launched yet
    RUNNING = "running"  # Child alive, relay bound
    EXITED = "exited"  # Child terminated on its own; restartable
    KILLED = "killed"  # Terminated on request


# ---------------------------------------------------------------------------
# Session Models
# ---------------------------------------------------------------------------


class Geometry(BaseModel):
    """Display size of a terminal in character cells."""

    model_config = ConfigDict(frozen=True)

    columns: int = Field(gt=0, description="Width in character cells")
    rows: int = Field(gt=0, description="Height in character cells")


class ExitStatus(BaseModel):
    """How a child process ended.

    Exactly one of ``exit_code`` and ``signal`` is normally set; both are
    None when the status could not be collected (already reaped elsewhere).
    """

    model_config = ConfigDict(frozen=True)

    exit_code: int | None = Field(default=None, description="Exit code for a normal exit")
    signal: int | None = Field(default=None, description="Signal number that terminated the child")


class SessionInfo(BaseModel):
    """Read-only snapshot of a Process Session for status reporting."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    state: SessionState
    active: bool
    label: str
    working_directory: str
    geometry: Geometry
    pid: int | None = None
    exit_status: ExitStatus | None = None


class ProjectEntry(BaseModel):
    """A browsable project directory offered to remote consumers."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str


# ---------------------------------------------------------------------------
# Inbound envelopes (consumer -> core), discriminated on "type"
# ---------------------------------------------------------------------------


class InputMessage(BaseModel):
    """Raw keystroke bytes, written to the pty as-is."""

    model_config = ConfigDict(frozen=True)

    type: Literal["input"] = "input"
    data: str


class SubmitMessage(BaseModel):
    """A block of text to be injected character by character, then Enter."""

    model_config = ConfigDict(frozen=True)

    type: Literal["submit"] = "submit"
    data: str


class ResizeMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["resize"] = "resize"
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


class RestartMessage(BaseModel):
    """Respawn the session's process in its current working directory."""

    model_config = ConfigDict(frozen=True)

    type: Literal["restart"] = "restart"


InboundMessage = Annotated[
    Union[InputMessage, SubmitMessage, ResizeMessage, RestartMessage],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> InputMessage | SubmitMessage | ResizeMessage | RestartMessage:
    """Parse one JSON envelope received from a remote consumer.

    Raises:
        MalformedMessage: If the payload is not valid JSON or does not
            match any known envelope type.
    """
    try:
        return _inbound_adapter.validate_json(raw)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid message: {e.error_count()} validation error(s)") from e


# ---------------------------------------------------------------------------
# Outbound envelopes (core -> consumer)
# ---------------------------------------------------------------------------


class DataMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["data"] = "data"
    data: str


class ExitMessage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["exit"] = "exit"
    exit_code: int | None = Field(default=None, alias="exitCode")
    signal: int | None = None


class ErrorMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    data: str
