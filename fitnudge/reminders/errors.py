class ReminderError(Exception):
    """Base class for reminder engine errors."""


class ConfigFetchError(ReminderError):
    """Active notification policies could not be loaded; the tick is aborted."""


class UserFetchError(ReminderError):
    """Eligible users could not be loaded; the tick is aborted."""


class PerPairError(ReminderError):
    """Handling one policy/user pair failed. Recorded, never aborts the batch."""

    def __init__(self, notification_type: str, user_id: str, cause: BaseException):
        self.notification_type = notification_type
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Error processing {notification_type} for user {user_id}: {cause}")


class SendPrimitiveError(ReminderError):
    """The push provider is not configured or the transport call itself failed."""


class DeliveryFailure(ReminderError):
    """No endpoint accepted the notification."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class NoEndpointsError(DeliveryFailure):
    """The user has no registered push endpoints."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("no endpoints")
