"""Exception hierarchy for sync runs"""


class PubsyncError(Exception):
    """Base class for engine errors."""


class FatalSyncError(PubsyncError):
    """Aborts a run before anything has been mutated."""


class ExportFormatError(FatalSyncError, ValueError):
    """The export container cannot be parsed at all."""


class StoreUnavailable(FatalSyncError):
    """The live store cannot be reached at startup."""


class EntityNotFound(PubsyncError, KeyError):
    """A live-store lookup by id found nothing."""

    def __init__(self, collection: str, entity_id: str):
        super().__init__(f"{collection}/{entity_id} not found")
        self.collection = collection
        self.entity_id = entity_id

    def __str__(self) -> str:
        return self.args[0]


class UploadFailed(PubsyncError):
    """Fetching or storing the bytes of a media asset failed."""


class DependencyFailed(PubsyncError):
    """An operation consumes the result of an operation that did not succeed."""
