ExtraInfoType = dict[str, str | None]


class ClientError(Exception):
    """A request error from the chat sync client."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class AuthenticationError(ClientError):
    """There is no active session, or the session is not allowed to perform the action."""

    def __init__(self, action: str, status_code: int | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(
            message="An active session is required.",
            extra_info={"action": action, "status_code": str(status_code) if status_code else None, **extra_info},
        )


class TransportError(ClientError):
    """The request could not be completed because of a network or server failure."""

    def __init__(self, action: str, message: str | None = None, status_code: int | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        self.status_code: int | None = status_code
        super().__init__(
            message="A transport error occured.",
            extra_info={"action": action, "message": message, "status_code": str(status_code) if status_code else None, **extra_info},
        )


class MalformedResponseError(TransportError):
    """The server answered, but the body did not match the expected schema."""

    def __init__(self, action: str, message: str | None = None):
        super().__init__(action=action, message=f"Malformed response: {message}" if message else "Malformed response")
