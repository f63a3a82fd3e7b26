"""Exception taxonomy shared across zapbot."""


class ZapbotError(Exception):
    """Base class for all zapbot errors."""


class TransportError(ZapbotError):
    """Session establishment or transport failure. Always retried via backoff."""


class OperationTimeout(ZapbotError, TimeoutError):
    """An operation or a single retry attempt exceeded its allotted duration."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Timeout after {timeout}s")


class EncodingError(ZapbotError):
    """Sticker metadata could not be serialized."""


class HandlerError(ZapbotError):
    """An event handler raised while processing a dispatch batch."""

    def __init__(self, event: str, cause: BaseException):
        self.event = event
        self.cause = cause
        super().__init__(f"Error processing event {event}: {cause}")


class TranscodeError(ZapbotError):
    """External transcoding tool failed."""


class DownloadError(ZapbotError):
    """Video search or download failed."""


class GenerationError(ZapbotError):
    """AI content generation failure with a user-facing short message."""

    def __init__(self, short_message: str, detail: str = ""):
        self.short_message = short_message
        self.detail = detail
        super().__init__(detail or short_message)
