"""Result cache errors."""


class PassConflictError(Exception):
    """A pass was requested while another one is still in flight."""

    def __init__(self, message: str = "A prediction pass is already in progress"):
        super().__init__(message)
