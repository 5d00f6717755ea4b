# rides/outcomes.py
"""
Typed results returned by the dispatch core.

Callers branch on ``Result.outcome`` rather than catching exceptions, so
"try again" (CONFLICT) stays distinguishable from "stop" (FORBIDDEN,
INVALID_INPUT).
"""
import enum
from dataclasses import dataclass
from typing import Any, Optional

from rest_framework import status as http_status


class Outcome(str, enum.Enum):
    OK = 'ok'
    ASSIGNED = 'assigned'
    NO_CANDIDATES = 'no_drivers_available'
    CONFLICT = 'conflict'
    FORBIDDEN = 'forbidden'
    INVALID_INPUT = 'invalid_input'
    NOT_FOUND = 'not_found'


HTTP_STATUS_BY_OUTCOME = {
    Outcome.OK: http_status.HTTP_200_OK,
    Outcome.ASSIGNED: http_status.HTTP_200_OK,
    Outcome.NO_CANDIDATES: http_status.HTTP_200_OK,
    Outcome.CONFLICT: http_status.HTTP_409_CONFLICT,
    Outcome.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    Outcome.INVALID_INPUT: http_status.HTTP_400_BAD_REQUEST,
    Outcome.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
}


@dataclass(frozen=True)
class Result:
    outcome: Outcome
    trip: Optional[Any] = None
    driver: Optional[Any] = None
    distance_meters: Optional[float] = None
    detail: str = ''
    errors: Optional[dict] = None

    @property
    def ok(self):
        return self.outcome in (Outcome.OK, Outcome.ASSIGNED)

    @property
    def http_status(self):
        return HTTP_STATUS_BY_OUTCOME[self.outcome]

    def as_dict(self):
        data = {'status': self.outcome.value}
        if self.trip is not None:
            data['trip_id'] = str(self.trip.id)
            data['trip_status'] = self.trip.status
        if self.driver is not None:
            data['driver_id'] = str(self.driver.id)
        if self.distance_meters is not None:
            data['distance_meters'] = round(self.distance_meters, 2)
        if self.detail:
            data['detail'] = self.detail
        if self.errors:
            data['errors'] = self.errors
        return data


def ok(trip=None, **kwargs):
    return Result(Outcome.OK, trip=trip, **kwargs)


def conflict(detail, trip=None, **kwargs):
    return Result(Outcome.CONFLICT, trip=trip, detail=detail, **kwargs)


def forbidden(detail, trip=None, **kwargs):
    return Result(Outcome.FORBIDDEN, trip=trip, detail=detail, **kwargs)


def invalid(detail, **kwargs):
    return Result(Outcome.INVALID_INPUT, detail=detail, **kwargs)


def not_found(detail):
    return Result(Outcome.NOT_FOUND, detail=detail)
