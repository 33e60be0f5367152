class ResignError(Exception):
    pass


class ValidationError(ResignError):
    """Input archive is malformed or unrecognizable."""


class CryptoError(ResignError):
    """Key, certificate or signature generation/verification failed."""


class EntryError(ResignError):
    """A single entry could not be read, digested or mutated."""

    def __init__(self, name, reason):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason
