class PackError(Exception):
    """Base class for every failure raised by the packers."""


# Key material
class MalformedKey(PackError):
    """Key text has the wrong shape, or the value is not usable on the curve."""


class KeyLoadError(PackError):
    """The local key files are missing or unreadable."""


# Identity lookup
class IdentityNotFound(PackError):
    pass


class LookupUnavailable(PackError):
    pass


class NoCompatibleKey(PackError):
    """The identity resolved, but none of its keys belong to the active curve."""


# Unpack failures. All of these must stop plaintext from reaching the caller.
class NotAuthorizedReader(PackError):
    pass


class UnwrapFailed(PackError):
    pass


class SignatureInvalid(PackError):
    pass


class AuthenticationFailed(PackError):
    pass


# Framing
class MalformedMetadata(PackError):
    pass


class BufferTooSmall(PackError):
    pass
