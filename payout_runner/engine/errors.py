"""
Fatal workflow errors.

Every error carries a stable ``code`` that is written to the audit log, so a
failed run can be found with a plain grep over the history files.
"""


class WorkflowError(Exception):
    """Base class for errors that abort a payout run."""

    code = "WORKFLOW_ERROR"

    def __init__(self, detail: str = "", code: str | None = None):
        if code:
            self.code = code
        self.detail = detail
        super().__init__(f"{self.code}: {detail}" if detail else self.code)


class InputUnavailable(WorkflowError):
    """Payout file is missing, unreadable or has no usable rows."""

    code = "FILE_NOT_FOUND"


class InsufficientFunds(WorkflowError):
    """Spot plus funding balance cannot cover the batch total."""

    code = "NOT_ENOUGH_BALANCE"


class TransferFailed(WorkflowError):
    """Spot to funding transfer was rejected or could not be confirmed."""

    code = "TRANSFER_SPOT_FUNDING_ERROR"


class BatchSubmissionFailed(WorkflowError):
    """Provider rejected the batch payout request."""

    code = "PAYOUT_REQUEST_ERROR"


class BatchStillProcessing(WorkflowError):
    """Polling ended without observing a terminal batch status."""

    code = "BATCH_STILL_PROCESSING"


class RecipientMissingFromResponse(WorkflowError):
    """A submitted merchant send id is absent from the batch status response."""

    code = "INVESTOR_NOT_FOUND"


class NotificationSendFailed(WorkflowError):
    """One recipient could not be notified. Logged, never raised by the pipeline."""

    code = "NOTIFY_FAILED"
