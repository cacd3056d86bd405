"""SQS error codes the adapter maps to domain errors."""

QUEUE_NOT_FOUND_CODES = frozenset(
    {
        "AWS.SimpleQueueService.NonExistentQueue",
        "QueueDoesNotExist",
    }
)

STALE_RECEIPT_HANDLE_CODES = frozenset(
    {
        "ReceiptHandleIsInvalid",
    }
)

# An expired receipt handle comes back as InvalidParameterValue; the message names the handle.
EXPIRED_RECEIPT_HANDLE_CODE = "InvalidParameterValue"
EXPIRED_RECEIPT_HANDLE_MARKER = "receipt handle"
