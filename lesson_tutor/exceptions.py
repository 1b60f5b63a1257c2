"""Custom exceptions for the Lesson Tutor application."""


class TutorError(Exception):
    """Base class for errors raised by the tutor backend."""
    pass


class MissingInputError(TutorError):
    """A turn arrived with neither text nor attachments."""
    pass


class InvalidModelError(TutorError):
    """A model identifier was empty or malformed."""
    pass


class SessionBusyError(TutorError):
    """A turn is already in flight for this session."""
    pass


class ModelProviderError(TutorError):
    """Network, auth or quota failure while talking to the model backend."""
    pass


class ToolExecutionError(TutorError):
    """A tool failed while running. Surfaced to the model, never to the caller."""
    pass


class ToolNotFoundError(ToolExecutionError):
    """No built-in handler or external provider recognises the tool name."""
    pass


class ToolArgumentError(ToolExecutionError):
    """Tool arguments could not be parsed into a JSON object."""
    pass
