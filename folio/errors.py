"""
Typed failures raised by the content, catalog and media layers.

The HTTP layer turns them into JSON answers (see ``site.folio_error``);
nothing in here is retried.
"""


class FolioError(Exception):
    status = 500
    kind = "FolioError"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message, "kind": self.kind}
        out.update(self.details)
        return out


class MissingRequiredField(FolioError):
    status = 400
    kind = "MissingRequiredField"

    def __init__(self, *fields: str):
        names = ", ".join(fields)
        super().__init__(f"Missing required fields: {names}", fields=list(fields))


class InvalidEnumValue(FolioError):
    status = 400
    kind = "InvalidEnumValue"

    def __init__(self, field: str, value, allowed):
        allowed = list(allowed)
        super().__init__(
            f"Invalid {field} {value!r}. Must be one of: {', '.join(allowed)}",
            field=field,
            allowed=allowed,
        )


class InvalidFolder(InvalidEnumValue):
    def __init__(self, value, allowed):
        super().__init__("folder", value, allowed)


class InvalidFieldValue(FolioError):
    status = 400
    kind = "InvalidFieldValue"

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", field=field)


class UnsupportedFormat(FolioError):
    status = 415
    kind = "UnsupportedFormat"


class PayloadTooLarge(FolioError):
    status = 413
    kind = "PayloadTooLarge"


class InvalidImage(FolioError):
    status = 400
    kind = "InvalidImage"


class StorageError(FolioError):
    """The object store could not be reached; ``__cause__`` holds the boto error."""

    status = 502
    kind = "StorageError"


class StorageWriteFailed(StorageError):
    kind = "StorageWriteFailed"


class NotFound(FolioError):
    status = 404
    kind = "NotFound"
