"""
NYC Yellow Taxi Dashboard: Trip Query & Aggregation Controller
==============================================================

Core of the dashboard. It has no Streamlit imports and can be tested
on its own. It includes:

- Filter criteria state edited field-by-field from the UI
- A single GET against the backend Trips API per filter action
- Fare bucket counts for the bar chart
- A bounded list of pickup coordinates for the map

Responses are stamped with a sequence token when the query is issued; by
default only the response to the most recently issued query is applied.
"""

import logging
import os
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import requests

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION: Backend location and display limits
# ============================================================================
DEFAULT_BACKEND_URL = "http://localhost:5000"
TRIPS_ENDPOINT = "/api/trips"
REQUEST_TIMEOUT = 30
MAX_MARKERS = 10


def backend_url_from_env() -> str:
    """Backend base URL from BACKEND_URL, or the local default when unset or blank."""
    return (os.getenv("BACKEND_URL") or "").strip() or DEFAULT_BACKEND_URL


BACKEND_URL = backend_url_from_env()

# Half-open fare ranges [low, high) in display order; None means unbounded
FARE_BUCKETS = [
    ("5-10", 5.0, 10.0),
    ("10-20", 10.0, 20.0),
    ("20+", 20.0, None),
]

# UI input name -> FilterCriteria attribute (also the query parameter name)
FILTER_FIELDS = {
    "fareMin": "fare_min",
    "fareMax": "fare_max",
    "distanceMin": "distance_min",
    "distanceMax": "distance_max",
    "time": "time",
}

TripRecord = Dict[str, Any]


class TripsAPIError(RuntimeError):
    """Raised when the Trips API cannot produce a usable trip list."""


# ============================================================================
# DATA MODEL: Filter criteria
# ============================================================================

@dataclass
class FilterCriteria:
    """
    User-chosen range and time constraints forwarded to the Trips API.

    Values are stored exactly as the UI hands them over; the backend decides
    what an empty value means.
    """
    fare_min: Any = ""
    fare_max: Any = ""
    distance_min: Any = ""
    distance_max: Any = ""
    time: Any = ""

    def to_params(self) -> Dict[str, Any]:
        """
        Build the query parameters for the Trips API.

        Every parameter is always present. Empty fields are sent as empty
        strings rather than dropped, since requests silently omits None.

        Returns:
            Mapping of query parameter name to value
        """
        params = {}
        for f in fields(self):
            value = getattr(self, f.name)
            params[f.name] = "" if value is None else value
        return params


def resolve_field_name(field_name: str) -> Optional[str]:
    """Map a UI input name (or attribute name) to a FilterCriteria attribute."""
    if field_name in FILTER_FIELDS:
        return FILTER_FIELDS[field_name]
    if field_name in FILTER_FIELDS.values():
        return field_name
    return None


# ============================================================================
# REMOTE QUERY: Trips API client
# ============================================================================

def fetch_trips(
    base_url: str,
    criteria: FilterCriteria,
    session: Optional[requests.Session] = None,
    timeout: int = REQUEST_TIMEOUT,
) -> List[TripRecord]:
    """
    Fetch the trip list matching `criteria` from the backend.

    Args:
        base_url: Backend base URL, without the /api/trips suffix
        criteria: Filter criteria to send as query parameters
        session: Optional requests session (a plain requests.get otherwise)
        timeout: Request timeout in seconds (default: 30s)

    Returns:
        Trip records in the order the API returned them

    Raises:
        TripsAPIError: On transport failure, non-success status, or a body
            that is not a JSON array
    """
    url = base_url.rstrip("/") + TRIPS_ENDPOINT
    http = session if session is not None else requests
    try:
        resp = http.get(url, params=criteria.to_params(), timeout=timeout)
        resp.raise_for_status()
        body = resp.json()
    except requests.exceptions.RequestException as e:
        raise TripsAPIError(f"Failed to fetch trips from {url}: {e}") from e
    except ValueError as e:
        raise TripsAPIError(f"Malformed response from {url}: {e}") from e

    if not isinstance(body, list):
        raise TripsAPIError(
            f"Malformed response from {url}: expected a JSON array, got {type(body).__name__}"
        )
    return body


# ============================================================================
# DERIVATIONS: Chart aggregate and map markers
# ============================================================================

def _column(trips: List[TripRecord], key: str) -> pd.Series:
    # Non-object entries contribute a missing value instead of failing the batch
    values = [trip.get(key) if isinstance(trip, dict) else None for trip in trips]
    return pd.to_numeric(pd.Series(values, dtype=object), errors="coerce").astype("float64")


def derive_fare_aggregate(trips: List[TripRecord]) -> Dict[str, int]:
    """
    Count trips per fare bucket.

    Fares below the lowest bucket or that do not parse as numbers are left
    out of every bucket.

    Args:
        trips: Current trip collection

    Returns:
        Ordered mapping of bucket label to trip count
    """
    fares = _column(trips, "fare_amount")
    counts = {}
    for label, low, high in FARE_BUCKETS:
        in_bucket = fares >= low
        if high is not None:
            in_bucket &= fares < high
        counts[label] = int(in_bucket.sum())
    return counts


def derive_marker_projection(
    trips: List[TripRecord], limit: int = MAX_MARKERS
) -> List[Tuple[float, float]]:
    """
    Pick pickup coordinates for the map.

    Records missing either coordinate are skipped, then the first `limit`
    survivors are kept in their original order.

    Args:
        trips: Current trip collection
        limit: Maximum number of markers (default: 10)

    Returns:
        List of (latitude, longitude) pairs
    """
    lat = _column(trips, "pickup_latitude")
    lon = _column(trips, "pickup_longitude")
    located = lat.notna() & lon.notna()
    return [
        (float(la), float(lo))
        for la, lo in zip(lat[located].head(limit), lon[located].head(limit))
    ]


# ============================================================================
# CONTROLLER: Filter state, query orchestration, current results
# ============================================================================

class TripDashboardController:
    """
    Owns the filter criteria and the current trip collection.

    One instance lives per dashboard session. The derived chart and map data
    are recomputed from the current trips on every access.
    """

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
        guard_stale: bool = True,
    ):
        self.base_url = base_url
        self.session = session
        self.timeout = timeout
        self.guard_stale = guard_stale
        self.filters = FilterCriteria()
        self.trips: List[TripRecord] = []
        self.last_error: Optional[str] = None
        self._initialized = False
        self._issued_seq = 0
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Run the unfiltered initial query, once per controller."""
        if self._initialized:
            return
        self._initialized = True
        self.execute_query()

    def update_filter_field(self, field_name: str, value: Any) -> None:
        """
        Replace one filter field. Does not query.

        Args:
            field_name: UI input name such as "fareMin" (attribute names like
                "fare_min" are accepted too)
            value: Raw value from the input, stored unparsed
        """
        attr = resolve_field_name(field_name)
        if attr is None:
            logger.warning("Ignoring unknown filter field %r", field_name)
            return
        setattr(self.filters, attr, value)

    def execute_query(self) -> bool:
        """
        Query the Trips API with the current filters and apply the result.

        Returns:
            True if the response was applied, False if the query failed or a
            newer query superseded it
        """
        seq, criteria = self._issue()
        return self._run(seq, criteria)

    def submit_query(self, executor: Executor) -> Future:
        """Issue a query now and run it on `executor`; the future yields execute_query's result."""
        seq, criteria = self._issue()
        return executor.submit(self._run, seq, criteria)

    @property
    def fare_aggregate(self) -> Dict[str, int]:
        return derive_fare_aggregate(self.trips)

    @property
    def marker_projection(self) -> List[Tuple[float, float]]:
        return derive_marker_projection(self.trips)

    def _issue(self) -> Tuple[int, FilterCriteria]:
        # In-flight queries see the filters as they were at issue time
        with self._lock:
            self._issued_seq += 1
            return self._issued_seq, FilterCriteria(**vars(self.filters))

    def _run(self, seq: int, criteria: FilterCriteria) -> bool:
        try:
            trips = fetch_trips(self.base_url, criteria, self.session, self.timeout)
        except TripsAPIError as e:
            logger.error("Error fetching trips: %s", e)
            with self._lock:
                if self.guard_stale and seq != self._issued_seq:
                    logger.debug(
                        "Ignoring failure of stale query %d (latest is %d)",
                        seq, self._issued_seq,
                    )
                else:
                    self.last_error = str(e)
            return False
        return self._apply(seq, trips)

    def _apply(self, seq: int, trips: List[TripRecord]) -> bool:
        with self._lock:
            if self.guard_stale and seq != self._issued_seq:
                logger.debug(
                    "Discarding stale response for query %d (latest is %d)",
                    seq, self._issued_seq,
                )
                return False
            self.trips = list(trips)
            self.last_error = None
        logger.info("Loaded %d trips (query %d)", len(trips), seq)
        return True
