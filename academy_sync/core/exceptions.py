class AcademySyncException(Exception):
    """Base exception for the consistency engine"""

    pass


class NotFoundException(AcademySyncException):
    """Raised when a referenced entity or row is absent"""

    pass


class DependencyUnavailableException(AcademySyncException):
    """Raised when the document store itself errors or times out"""

    pass


class MalformedDocumentException(AcademySyncException):
    """Raised when a stored document has an unexpected shape for an update"""

    pass


class ConfigurationException(AcademySyncException):
    """Raised for invalid startup configuration"""

    pass


class PartialCascadeFailure(AcademySyncException):
    """Raised on request when some dependent-collection updates failed"""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))
