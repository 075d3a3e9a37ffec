"""Exception types raised by Life Connections components."""


class LifeConnectionsError(Exception):
    """Base class for Life Connections errors."""


class SeriesBuildError(LifeConnectionsError):
    """Daily records cannot be turned into a consistent series."""


class DataSourceError(LifeConnectionsError):
    """Domain data could not be fetched."""


class NarrativeError(LifeConnectionsError):
    """The narrative service failed to produce text."""


class ConnectionStoreError(LifeConnectionsError):
    """Connections could not be persisted."""
