"""Exception types shared by the gatekeeper modules."""


class GatekeeperError(Exception):
    """Base class for every error raised by the gatekeeper."""


class StorageError(GatekeeperError):
    """The allow-list file could not be created, read, decoded or written."""


class ConflictError(GatekeeperError):
    """An IP is already present in the allow-list."""


class NotFoundError(GatekeeperError):
    """An IP is not present in the allow-list."""


class RandomSourceError(GatekeeperError):
    """The system entropy source failed while generating a code."""


class DeliveryError(GatekeeperError):
    """The notification email could not be delivered."""


class ConnectivityError(GatekeeperError):
    """The backend could not be reached or a relayed socket failed."""


class ConfigError(GatekeeperError):
    """The settings document is missing, malformed or has invalid fields."""
