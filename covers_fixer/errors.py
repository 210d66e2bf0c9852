"""Exception hierarchy shared by the library modules and the CLI."""


class CoversFixerError(Exception):
    """Base exception for all covers-fixer errors."""


class PathNotFoundError(CoversFixerError):
    """Raised when a path given on the command line or in the config does not exist."""


class PhpSyntaxError(CoversFixerError):
    """Raised when a PHP file cannot be scanned (unbalanced brackets, unterminated string...)."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
