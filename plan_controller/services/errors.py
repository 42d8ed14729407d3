class PlanControllerError(Exception):
    pass


class ValidationError(PlanControllerError):
    pass


class NotFoundError(PlanControllerError):
    pass


class StorageError(PlanControllerError):
    pass


class NotificationDispatchError(PlanControllerError):
    pass


class ConfigUnavailableError(PlanControllerError):
    pass
