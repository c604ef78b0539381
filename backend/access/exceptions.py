class ProfileLookupError(Exception):
    """The profile API could not be reached or returned an unexpected response."""


class PlayerNotFoundError(ProfileLookupError):
    """No account exists with the requested username."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Player '{username}' does not exist")
