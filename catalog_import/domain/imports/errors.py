"""
Exceptions raised by the import pipeline.

Two families matter to callers and must never be confused:

- ``ImportPipelineError`` subclasses abort a whole job (the file could not be
  read, the target table does not exist). The job ends ``failed``.
- ``RowError`` subclasses concern a single row. They are recorded against the
  row and the job carries on; a job with row errors still ends ``completed``.
"""
from typing import Optional


class ImportPipelineError(Exception):
    """Base class for errors that prevent a job from processing any further rows."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FileReadError(ImportPipelineError):
    """Raised when the uploaded file cannot be decoded or parsed."""

    def __init__(self, file_name: Optional[str], reason: str):
        self.file_name = file_name
        super().__init__(f"Failed to read file '{file_name or 'upload'}': {reason}")


class UnsupportedFileTypeError(ImportPipelineError):
    """Raised when the upload is neither CSV nor a spreadsheet."""

    def __init__(self, file_name: Optional[str]):
        self.file_name = file_name
        super().__init__(
            f"Unsupported file type for '{file_name or 'upload'}'. Please upload a CSV or Excel file"
        )


class UnknownTargetTableError(ImportPipelineError):
    """Raised when no validator is registered for the requested table."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"Unknown import target table '{table_name}'")


class EmptyFileError(ImportPipelineError):
    """Raised for files without data rows when empty imports are configured to fail."""

    def __init__(self, file_name: Optional[str] = None):
        self.file_name = file_name
        super().__init__("No rows found in file")


class RowError(Exception):
    """Base class for errors affecting one row only."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RowValidationError(RowError):
    """The row does not satisfy the target table's schema."""


class RecordPersistenceError(RowError):
    """The row validated but the data store refused to save it."""


class JobNotFoundError(Exception):
    """Raised when a job id is not present in the registry."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.message = f"Import job '{job_id}' not found"
        super().__init__(self.message)


class JobStateError(Exception):
    """Raised for operations the job's current state does not allow."""

    def __init__(self, job_id: str, message: str):
        self.job_id = job_id
        self.message = message
        super().__init__(message)
