class PlannerError(Exception):
    """Base class for workout planner errors."""


class NotAuthenticated(PlannerError):
    """Raised when an operation needs a user identity and none is present."""

    def __init__(self, message: str = "No authenticated user. Please login again.") -> None:
        super().__init__(message)


class InvalidConfiguration(PlannerError):
    """Raised for malformed settings values. Callers substitute defaults."""

    def __init__(self, key: str, value: object, default: object) -> None:
        self.key = key
        self.value = value
        self.default = default
        super().__init__(f"invalid {key}: {value!r}, using {default!r}")


class InvalidDateKey(PlannerError, ValueError):
    """Raised when a ``YYYY-MM-DD`` string cannot be parsed."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"invalid date key: {value!r}")


class UpstreamFailure(PlannerError):
    """Raised when the data store or blob store fails."""


class WorkoutNotFound(PlannerError, LookupError):
    """Raised when a workout id does not exist for the current user."""

    def __init__(self, workout_id: object) -> None:
        self.workout_id = workout_id
        super().__init__(f"workout not found: {workout_id}")
