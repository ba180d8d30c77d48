class UserNotFoundException(Exception):
    pass


class UserValidationError(Exception):
    """Rejected write. ``errors`` maps each offending field to a message."""

    def __init__(self, errors: dict):
        super().__init__("Validation failed")
        self.errors = errors

    def __str__(self):
        return "; ".join(f"{field}: {message}" for field, message in self.errors.items())


class CredentialsNotLoadedError(Exception):
    """Stored password hash is missing, unselected or unreadable."""


class EntitlementError(Exception):
    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail

    def __str__(self):
        return str(self.detail)
