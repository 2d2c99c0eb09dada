"""
Error types raised by the competitor scraping pipeline.
"""

from __future__ import annotations


class FetchErrorCode:
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"
    INVALID_URL = "INVALID_URL"


class FetchError(RuntimeError):
    """
    Terminal fetch failure after the retry budget is spent.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str,
        url: str,
        retry_count: int,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.url = url
        self.retry_count = retry_count
        self.cause = cause


class UpdateAlreadyRunningError(RuntimeError):
    """
    Raised when a sitemap update is requested while another one is active.
    """

    def __init__(self, task_id: str | None = None) -> None:
        message = "update already running"
        if task_id:
            message = f"{message} (task_id={task_id})"
        super().__init__(message)
        self.task_id = task_id


class NoSitesToUpdateError(RuntimeError):
    """
    Raised when a scheduler run finds no competitor sites to refresh.
    """

    def __init__(self) -> None:
        super().__init__("No sites to update")
