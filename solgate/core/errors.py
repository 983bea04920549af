class NotFoundError(LookupError):
    """No session matches the given identifier."""

    def __init__(self, identifier: str | None = None, message: str | None = None):
        super().__init__(message or "Session not found")
        self.identifier = identifier
