"""Custom exception hierarchy for the recurrence and calendar engine.

Projection and reconciliation never raise for bad data (they degrade to
anchor-derived defaults). These exceptions cover the collaborator seams and
the one mutating operation, materialization.
"""


class HelmCalendarError(Exception):
    """Base exception for all helm_calendar errors."""


class DataSourceError(HelmCalendarError):
    """A call to the persistence collaborator failed.

    Raised by data source implementations when the backing store cannot be
    read or written. The aggregator isolates these per source.
    """


class ItemNotFoundError(HelmCalendarError):
    """The requested task or todo does not exist.

    Should result in HTTP 404 Not Found response.
    """


class NotRecurringError(HelmCalendarError):
    """The item carries no recognized recurrence pattern.

    Should result in HTTP 422 Unprocessable Entity response.
    """


class OccurrenceNotScheduledError(HelmCalendarError):
    """The date is not one of the dates the parent's rule yields.

    Should result in HTTP 422 Unprocessable Entity response.
    """


class InstanceExistsError(HelmCalendarError):
    """An Instance already exists for (parent_id, due_date).

    Raised by stores that enforce uniqueness on creation. Callers of
    materialize() never see it: the existing instance is returned instead.
    """

    def __init__(self, parent_id: str, due_date: str, existing_id: str | None = None) -> None:
        super().__init__(f"Instance already exists for parent {parent_id} on {due_date}")
        self.parent_id = parent_id
        self.due_date = due_date
        self.existing_id = existing_id
