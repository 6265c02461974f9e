"""
Pytest fixtures shared by the dashboard tests.

The Trips API is replaced with in-memory fake sessions, so no test touches
the network.
"""

import threading

import pytest
import requests


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200, bad_json=False):
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) and records every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class GatedSession:
    """
    Serves a payload keyed by the fare_min parameter.

    Requests with fare_min == "slow" block until `gate` is set, which lets a
    test finish a later query before an earlier one. A payload that is an
    exception is raised instead of returned.
    """

    def __init__(self, payloads):
        self.payloads = payloads
        self.gate = threading.Event()

    def get(self, url, params=None, timeout=None):
        key = params["fare_min"]
        if key == "slow":
            assert self.gate.wait(5), "gate never opened"
        payload = self.payloads[key]
        if isinstance(payload, Exception):
            raise payload
        return FakeResponse(payload)


@pytest.fixture
def sample_trips():
    """Trips with a mix of fares and coordinate availability."""
    return [
        {"fare_amount": 7, "pickup_latitude": 40.75, "pickup_longitude": -73.99},
        {"fare_amount": "15.50", "pickup_latitude": None, "pickup_longitude": -73.98},
        {"fare_amount": 25, "pickup_latitude": 40.71, "pickup_longitude": -74.01},
        {"fare_amount": 3, "pickup_latitude": 40.73},
        {"fare_amount": "n/a", "pickup_latitude": 40.76, "pickup_longitude": -73.97},
    ]
