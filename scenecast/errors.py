"""
Error types raised across scenecast.

Every failure that reaches a job or an HTTP response is one of these. Render
failures carry a RenderErrorKind (and, for Manim CLI failures, a
ManimFailureKind) so callers never have to pattern-match message text.
"""
from enum import Enum
from typing import Optional, Sequence


class RenderErrorKind(str, Enum):
    CLI_NOT_FOUND = "cli_not_found"
    SPAWN_FAILED = "spawn_failed"
    CLI_FAILED = "cli_failed"
    INCOMPLETE = "incomplete"
    NO_OUTPUT = "no_output"
    OUTPUT_FAILED = "output_failed"
    BROWSER_FAILED = "browser_failed"
    ENCODING_FAILED = "encoding_failed"


class ManimFailureKind(str, Enum):
    DEPRECATED_API = "deprecated_api"
    BAD_PARAMETERS = "bad_parameters"
    TYPE_ERROR = "type_error"
    ATTRIBUTE_ERROR = "attribute_error"
    MISSING_PACKAGE = "missing_package"
    SYNTAX_ERROR = "syntax_error"
    NAME_ERROR = "name_error"
    OUT_OF_MEMORY = "out_of_memory"
    ENCODING = "encoding"
    UNKNOWN = "unknown"


class ScenecastError(Exception):
    """Base class for all scenecast errors."""


class ToolNotFoundError(ScenecastError):
    """An external executable could not be located."""

    def __init__(self, tool: str, message: str, searched: Sequence[str] = (), hint: Optional[str] = None):
        super().__init__(message)
        self.tool = tool
        self.searched = list(searched)
        self.hint = hint


class InvalidEngineError(ScenecastError):
    def __init__(self, engine):
        super().__init__(f"Invalid engine: {engine}")
        self.engine = engine


class CodeGenerationError(ScenecastError):
    """The generative API call failed or returned nothing usable."""


class CodeValidationError(CodeGenerationError):
    """Generated code does not have the shape the renderer expects."""


class BannedConstructError(CodeValidationError):
    def __init__(self, pattern: str):
        super().__init__(f"Generated Manim code contains prohibited construct: {pattern}")
        self.pattern = pattern


class RenderError(ScenecastError):
    def __init__(self, kind: RenderErrorKind, message: str, failure: Optional[ManimFailureKind] = None):
        super().__init__(message)
        self.kind = kind
        self.failure = failure


class EncodingError(RenderError):
    def __init__(self, message: str = "ffmpeg error"):
        super().__init__(RenderErrorKind.ENCODING_FAILED, message)


class JobStateError(ScenecastError):
    """A job lifecycle transition was attempted out of order."""


class JobStoreFullError(ScenecastError):
    """Every slot in the job store is held by a job that is still running."""
