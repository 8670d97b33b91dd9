class WorkbenchError(Exception):
    """Base class for errors raised by the edit/compose engine."""


class DocumentDecodeError(WorkbenchError):
    """Source bytes could not be parsed as a PDF document."""


class MergeValidationError(WorkbenchError):
    pass


class SplitError(WorkbenchError):
    pass


class UnsupportedImageError(WorkbenchError):
    """Raster payload is corrupt or not a PNG/JPEG container."""


class NodeNotFoundError(WorkbenchError, KeyError):
    pass


class EntityNotFoundError(WorkbenchError, KeyError):
    pass


class ImmutableFieldError(WorkbenchError, ValueError):
    pass
