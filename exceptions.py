# farmer_orders/exceptions.py

class FetchCancelled(Exception):
    """A fetch was superseded or cancelled (not a failure, never surfaced to the user)."""


class OrderApiError(Exception):
    """
    Raised when an order API call fails. Carries the structured API details so the
    dashboard can show the server's own reason in its notification.
    """
    def __init__(
        self,
        message: str,
        *,
        api_status: int | None = None,
        api_error_message: str | None = None,
        raw_response_text: str | None = None,
    ):
        super().__init__(message)
        self.api_status = api_status
        self.api_error_message = api_error_message
        self.raw_response_text = raw_response_text

    @property
    def reason(self) -> str:
        return self.api_error_message or str(self)


class InvalidTransition(Exception):
    """Requested status change is not allowed from the order's current status."""
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change status from '{current}' to '{target}'")
        self.current = current
        self.target = target


class NothingToExport(Exception):
    """Export requested with no selected and no filtered orders."""
