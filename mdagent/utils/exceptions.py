"""
mdagent exception hierarchy

Unified exception hierarchy for the agent runtime. Every error carries an error code and a
context mapping so CLI output and logs stay uniform.
"""

from typing import Any, Dict, Optional


class MdAgentException(Exception):
    """Base class for every mdagent error."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            message: human readable description
            error_code: stable machine readable code
            context: extra details shown in logs
        """
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        error_str = f"[{self.error_code}] {self.message}"
        if self.context:
            error_str += f" | Context: {self.context}"
        return error_str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class ConfigurationError(MdAgentException):
    """Invalid or missing configuration or run inputs."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", context)


class AgentDefinitionError(MdAgentException):
    """Markdown agent definition could not be read or parsed."""

    def __init__(
        self,
        message: str,
        section: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if section:
            ctx["section"] = section
        super().__init__(message, "AGENT_DEFINITION_ERROR", ctx)


class ToolLoadError(MdAgentException):
    """One or more tools could not be resolved."""

    def __init__(self, message: str, failures: Optional[list[str]] = None):
        self.failures = list(failures or [])
        context = {"failures": self.failures} if failures else None
        super().__init__(message, "TOOL_LOAD_ERROR", context)


class UnknownToolError(MdAgentException):
    """The model asked for a tool that is not in the active tool set."""

    def __init__(self, tool_name: str, available: Optional[list[str]] = None):
        self.tool_name = tool_name
        ctx: Dict[str, Any] = {"tool_name": tool_name}
        if available is not None:
            ctx["available"] = list(available)
        super().__init__(f"Unknown tool: {tool_name}", "UNKNOWN_TOOL", ctx)


class ModelStreamError(MdAgentException):
    """The model endpoint failed while streaming."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if model_name:
            ctx["model_name"] = model_name
        super().__init__(message, "MODEL_STREAM_ERROR", ctx)


class PhaseExecutionError(MdAgentException):
    """Fatal failure of a phase; the run stops here."""

    def __init__(
        self,
        message: str,
        phase: str,
        round: int,
        cause: Optional[BaseException] = None,
        error_code: str = "PHASE_ERROR",
    ):
        self.phase = phase
        self.round = round
        self.cause = cause
        super().__init__(message, error_code, {"phase": phase, "round": round})


class RoundLimitError(PhaseExecutionError):
    """Every round of the budget still requested tool calls."""

    def __init__(self, phase: str, max_rounds: int):
        self.max_rounds = max_rounds
        super().__init__(
            f"Reached maximum tool execution rounds ({max_rounds})",
            phase=phase,
            round=max_rounds,
            error_code="ROUND_LIMIT",
        )


def handle_exception(
    exception: Exception,
    logger: Any,
    user_message: str = "Agent run failed",
    log_traceback: bool = True,
) -> str:
    """
    Log an exception uniformly and return the message to show the user.

    Args:
        exception: the error
        logger: logger with error() and debug()
        user_message: message prefix for mdagent errors
        log_traceback: also log the full traceback at debug level

    Returns:
        str: ``user_message``
    """
    if isinstance(exception, MdAgentException):
        logger.error(f"{user_message}: {exception}")
        cause = getattr(exception, "cause", None)
        if cause is not None:
            logger.error(f"Caused by {type(cause).__name__}: {cause}")
    else:
        logger.error(f"Unexpected error: {type(exception).__name__}: {exception}")

    if log_traceback:
        import traceback

        logger.debug(
            "Traceback:\n"
            + "".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            )
        )

    return user_message
