"""Error taxonomy shared by ingestion, catalog and query paths."""

from __future__ import annotations


class AnalyticsError(Exception):
    kind = "error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "detail": self.detail}


class ParseError(AnalyticsError):
    """Uploaded content is not tabular, or has no rows or columns."""

    kind = "parse_error"


class UploadTooLargeError(AnalyticsError):
    kind = "upload_too_large"


class UnsupportedFormatError(AnalyticsError):
    kind = "unsupported_format"


class MaterializationError(AnalyticsError):
    """Creating or filling a dataset table failed."""

    kind = "materialization_error"


class ValidationError(AnalyticsError, ValueError):
    """A query references unknown columns, operators or functions."""

    kind = "validation_error"


class NotFoundError(AnalyticsError):
    kind = "not_found"


class PersistenceError(AnalyticsError):
    """The database is unreachable or a statement failed for non-input reasons."""

    kind = "persistence_error"
