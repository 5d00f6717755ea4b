# matching/services.py
import logging

from django.core.exceptions import ValidationError

from drivers.services import AssignmentService
from rides.conf import dispatch_setting
from rides.models import Driver, Station, Trip, TripAssignment
from rides.outcomes import Outcome, Result, conflict, invalid, not_found
from routing.services import Coordinate, DistanceEstimator

logger = logging.getLogger(__name__)


class DriverEligibilityFilter:
    """
    Candidate drivers for a pickup in one station.

    Every call is a fresh query: presence, position and busy state are
    owned by the drivers' own clients and are never cached here.
    """

    def queryset(self, station, zone=None, exclude_driver_ids=()):
        station_id = getattr(station, 'pk', station)
        if station_id is None:
            return Driver.objects.none()

        busy_driver_ids = Trip.objects.filter(
            station_id=station_id,
            status__in=Trip.OPEN_STATUSES,
            driver__isnull=False,
        ).values('driver_id')

        drivers = Driver.objects.filter(
            station_id=station_id,
            is_online=True,
            is_approved=True,
            is_active=True,
            latitude__isnull=False,
            longitude__isnull=False,
        ).exclude(id__in=busy_driver_ids)

        if exclude_driver_ids:
            drivers = drivers.exclude(id__in=list(exclude_driver_ids))
        if zone is not None:
            drivers = drivers.filter(current_zone_id=getattr(zone, 'pk', zone))
        return drivers

    def eligible(self, station, pickup=None, zone=None, exclude_driver_ids=()):
        """
        Drivers of ``station`` that may take a trip at ``pickup``.

        ``pickup`` is not a filter criterion; distance ordering is the
        Matcher's job.
        """
        drivers = list(self.queryset(station, zone=zone, exclude_driver_ids=exclude_driver_ids))
        logger.info(
            f"Eligibility for station {getattr(station, 'pk', station)} "
            f"(zone={getattr(zone, 'pk', zone)}): {len(drivers)} drivers"
        )
        return drivers


class Matcher:
    def __init__(self, estimator=None):
        self.estimator = estimator or DistanceEstimator()

    def rank(self, candidates, pickup):
        """(driver, meters) pairs, nearest first; ties go to the lower driver id"""
        ranked = []
        for driver in candidates:
            try:
                position = Coordinate.of(driver.latitude, driver.longitude)
            except (TypeError, ValueError) as e:
                logger.warning(f"Driver {driver.id} has an unusable position: {e}")
                continue
            ranked.append((driver, self.estimator.distance(pickup, position)))

        ranked.sort(key=lambda pair: (pair[1], str(pair[0].id)))
        return ranked

    def match(self, candidates, pickup):
        ranked = self.rank(candidates, pickup)
        return ranked[0] if ranked else None


class DispatchService:
    """Runs eligibility, ranking and the assignment transaction for one trip."""

    def __init__(self, eligibility=None, matcher=None, assignment=None):
        self.eligibility = eligibility or DriverEligibilityFilter()
        self.matcher = matcher or Matcher()
        self.assignment = assignment or AssignmentService()

    def excluded_driver_ids(self, trip):
        """Drivers that already held and released this trip."""
        return set(
            TripAssignment.objects.filter(
                trip=trip, released_at__isnull=False
            ).values_list('driver_id', flat=True)
        )

    def candidates(self, trip, pickup, widen_zone=False, exclude_driver_ids=()):
        drivers = self.eligibility.eligible(
            trip.station_id, pickup, zone=trip.zone_id, exclude_driver_ids=exclude_driver_ids
        )
        if not drivers and trip.zone_id is not None and widen_zone:
            logger.info(f"No drivers in zone {trip.zone_id} for trip {trip.id}; widening to station")
            drivers = self.eligibility.eligible(
                trip.station_id, pickup, exclude_driver_ids=exclude_driver_ids
            )
        return drivers

    def dispatch(self, trip_id, widen_zone=None, reset_exclusions=False):
        try:
            trip = Trip.objects.select_related('station').get(pk=trip_id)
        except (Trip.DoesNotExist, ValueError, ValidationError):
            return not_found(f'Trip {trip_id} not found')

        if trip.station_id is None:
            return invalid('Trip has no station', trip=trip)
        try:
            pickup = Coordinate.of(trip.pickup_lat, trip.pickup_lng)
        except (TypeError, ValueError) as e:
            return invalid(f'Trip pickup is unusable: {e}', trip=trip)

        if trip.status != Trip.STATUS_PENDING or trip.driver_id is not None:
            logger.info(f"Trip {trip.id} already resolved ({trip.status}, driver={trip.driver_id})")
            return conflict('Trip is already assigned or resolved', trip=trip)

        if widen_zone is None:
            widen_zone = dispatch_setting('ZONE_WIDENING')
        excluded = set() if reset_exclusions else self.excluded_driver_ids(trip)

        candidates = self.candidates(trip, pickup, widen_zone=widen_zone, exclude_driver_ids=excluded)
        ranked = self.matcher.rank(candidates, pickup)
        if not ranked:
            logger.info(f"No drivers available for trip {trip.id}")
            return Result(Outcome.NO_CANDIDATES, trip=trip)

        for driver, distance in ranked[:dispatch_setting('MAX_CANDIDATES')]:
            result = self.assignment.assign(trip, driver, distance_meters=distance)
            if result.outcome is Outcome.ASSIGNED:
                return result
            if result.outcome is not Outcome.CONFLICT:
                return result

            trip.refresh_from_db()
            if trip.status != Trip.STATUS_PENDING or trip.driver_id is not None:
                return conflict('Trip was assigned by another dispatcher', trip=trip)
            logger.info(f"Driver {driver.id} was booked concurrently; trying next candidate for trip {trip.id}")

        logger.info(f"All candidates for trip {trip.id} were taken")
        return Result(Outcome.NO_CANDIDATES, trip=trip)

    def find_drivers(self, station, pickup, zone=None, limit=10):
        """Ranked preview for operators; nothing is assigned."""
        if isinstance(station, Station) and not station.is_active:
            return []
        candidates = self.eligibility.eligible(station, pickup, zone=zone)
        return self.matcher.rank(candidates, pickup)[:limit]
