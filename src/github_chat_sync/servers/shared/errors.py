ExtraInfoType = dict[str, str | None]


class ServerError(Exception):
    """A request error from the chat sync server."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class SignInRequiredError(ServerError):
    """The tool needs a signed-in session."""

    def __init__(self, action: str):
        super().__init__(message="Sign in to continue. This action is not available to guests.", extra_info={"action": action})
