import unittest

import requests

from snowday.data_sources import geocoder
from snowday.errors import ForecastTimeout, ForecastUnavailable, LocationNotFound, MissingInput


class DummyResp:
    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


ZIP_PAYLOAD = {
    "post code": "10001",
    "country": "United States",
    "places": [
        {
            "place name": "New York City",
            "longitude": "-73.9967",
            "state": "New York",
            "state abbreviation": "NY",
            "latitude": "40.7484",
        }
    ],
}


class TestResolvePostalCode(unittest.TestCase):
    def setUp(self):
        self._orig_session = geocoder.session

    def tearDown(self):
        geocoder.session = self._orig_session

    def test_resolves_first_place(self):
        fake = FakeSession(response=DummyResp(ZIP_PAYLOAD))
        geocoder.session = fake

        coords = geocoder.resolve_postal_code(" 10001 ", base_url="http://zip.test", country="us")

        self.assertEqual(fake.urls, ["http://zip.test/us/10001"])
        self.assertAlmostEqual(coords.latitude, 40.7484)
        self.assertAlmostEqual(coords.longitude, -73.9967)
        self.assertEqual(coords.place_name, "New York City, NY")

    def test_blank_code_is_missing_input(self):
        with self.assertRaises(MissingInput):
            geocoder.resolve_postal_code("   ")

    def test_unknown_code(self):
        geocoder.session = FakeSession(response=DummyResp({}, status_code=404))
        with self.assertRaises(LocationNotFound):
            geocoder.resolve_postal_code("00000")

    def test_empty_places(self):
        geocoder.session = FakeSession(response=DummyResp({"places": []}))
        with self.assertRaises(LocationNotFound):
            geocoder.resolve_postal_code("10001")

    def test_malformed_place(self):
        geocoder.session = FakeSession(response=DummyResp({"places": [{"latitude": "north"}]}))
        with self.assertRaises(LocationNotFound):
            geocoder.resolve_postal_code("10001")

    def test_server_error(self):
        geocoder.session = FakeSession(response=DummyResp({}, status_code=503))
        with self.assertRaises(ForecastUnavailable):
            geocoder.resolve_postal_code("10001")

    def test_timeout(self):
        geocoder.session = FakeSession(error=requests.ConnectTimeout("slow"))
        with self.assertRaises(ForecastTimeout):
            geocoder.resolve_postal_code("10001")

    def test_connection_error(self):
        geocoder.session = FakeSession(error=requests.ConnectionError("down"))
        with self.assertRaises(ForecastUnavailable):
            geocoder.resolve_postal_code("10001")


if __name__ == "__main__":
    unittest.main()
