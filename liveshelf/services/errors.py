"""Exceptions raised by catalogue services and mapped to HTTP responses by routers."""


class CatalogueError(Exception):
    """Base class; ``status_code`` and ``message`` are safe to show to callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BroadcastUrlRequired(CatalogueError):
    def __init__(self):
        super().__init__("broadcast_url is required")


class InvalidBroadcastUrl(CatalogueError):
    def __init__(self):
        super().__init__(
            "Invalid broadcast URL. Expected format: https://x.com/i/broadcasts/1234..."
        )


class UsernameRequired(CatalogueError):
    def __init__(self):
        super().__init__("Could not detect username. Please enter manually.")


class BroadcastNotFound(CatalogueError):
    def __init__(self, message: str = "broadcast not found"):
        super().__init__(message)


class NoteValidationError(CatalogueError):
    pass


class DuplicateNote(CatalogueError):
    def __init__(self):
        super().__init__("duplicate note")


class StoreWriteError(CatalogueError):
    """A primary write failed; reported as a 500 without store details."""

    status_code = 500


class ImageProxyError(CatalogueError):
    """Image proxy rejection; 400 for bad input, 502 for upstream failures."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
