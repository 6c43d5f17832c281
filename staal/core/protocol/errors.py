"""Errors raised while turning model text into STAAL commands."""


class ProtocolError(Exception):
    """Base class for every recoverable protocol failure."""


class MalformedDocument(ProtocolError):
    pass


class MissingDiscriminator(ProtocolError):
    pass


class UnknownCommand(ProtocolError):
    def __init__(self, type_name: str) -> None:
        super().__init__(f"Command type '{type_name}' is not supported.")
        self.type_name = type_name
