"""Exception hierarchy for document testing."""


class DocTestError(Exception):
    """Base class for all errors raised by doctest_runner."""


class ParseError(DocTestError):
    """Raised when a document's fence structure is malformed."""

    def __init__(self, message: str, line: int) -> None:
        super().__init__(f"line {line}: {message}")
        self.message = message
        self.line = line


class UnsupportedLanguageError(DocTestError):
    """Raised when no runner is registered for a language tag."""

    def __init__(self, language: str) -> None:
        if language:
            message = f"No runner registered for language '{language}'"
        else:
            message = "Code block has no language tag and no default language"
        super().__init__(message)
        self.language = language


class ConfigError(DocTestError):
    """Raised for invalid configuration values or unreadable config sources."""


class WatcherError(DocTestError):
    """Raised when a watched path cannot be observed or re-run."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
