"""Exceptions raised by the research pipeline."""


class ResearchError(Exception):
    """Base exception for research pipeline errors."""

    pass


class ModelError(ResearchError):
    """The language model call failed."""

    def __init__(self, message: str, caller: str | None = None):
        super().__init__(message)
        self.message = message
        self.caller = caller


class ModelAuthenticationError(ModelError):
    """The provider rejected the API key."""

    def __init__(self, caller: str | None = None):
        super().__init__("API key is invalid, check the configuration", caller)


class ModelRateLimitError(ModelError):
    """The provider quota is exhausted or requests are too frequent."""

    def __init__(self, caller: str | None = None):
        super().__init__("API quota exhausted or requests too frequent", caller)


class ModelResponseError(ModelError):
    """The provider answered with an unusable response."""

    pass


class PlanningError(ResearchError):
    """The research plan could not be generated."""

    def __init__(self, reason: str):
        super().__init__(f"Research plan generation failed: {reason}")
        self.reason = reason


class InvalidTopicError(ResearchError, ValueError):
    """The research topic is empty."""

    def __init__(self, message: str = "Research topic must not be empty"):
        super().__init__(message)
        self.message = message


class RunCancelledError(ResearchError):
    """The run was cancelled while in flight."""

    def __init__(self, run_id: str):
        super().__init__(f"Research run {run_id} was cancelled")
        self.run_id = run_id
