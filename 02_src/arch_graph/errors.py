"""Error taxonomy of the architecture graph engine."""


class ArchGraphError(Exception):
    """Base class for engine errors."""


class StructuralError(ArchGraphError):
    """An entity cannot be matched to a file or owner container."""


class CollaboratorError(ArchGraphError):
    """An external collaborator failed, timed out or is not configured."""


class TrivialResultError(CollaboratorError):
    """A collaborator answered with a valid but useless result."""
