import threading
import time
import unittest
from datetime import date

from snowday.domain import (
    CalculationState,
    CautionLevel,
    Coordinates,
    DataOrigin,
    PRESET_SCENARIOS,
    ResultLevel,
    SchoolType,
    VoteChoice,
    WeatherSample,
)
from snowday.errors import (
    CalculationInProgress,
    ForecastUnavailable,
    InvalidWeights,
    LocationNotFound,
    MissingInput,
    StorageUnavailable,
)
from snowday.forecast_cache import ForecastCache
from snowday.kv_store import InMemoryKeyValueStore
from snowday.orchestrator import SnowDayOrchestrator, build_share_summary, format_forecast_label
from snowday.vote_store import VoteStore

MINUTE_MS = 60 * 1000
STORM = PRESET_SCENARIOS["heavy_snowstorm"]


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FakeGeocoder:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def resolve(self, postal_code):
        self.calls.append(postal_code)
        if self.error is not None:
            raise self.error
        return Coordinates(latitude=40.75, longitude=-73.99, place_name="New York City, NY")


class FakeForecastClient:
    def __init__(self, samples=None, error=None):
        self.samples = samples if samples is not None else [STORM] * 24
        self.error = error
        self.calls = []

    def fetch_hourly(self, latitude, longitude, cancel_after_ms, signal=None):
        self.calls.append((latitude, longitude, cancel_after_ms))
        if self.error is not None:
            raise self.error
        return list(self.samples)


class BlockingForecastClient:
    """Signals ``started`` then waits until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch_hourly(self, latitude, longitude, cancel_after_ms, signal=None):
        self.started.set()
        self.release.wait(10)
        return [STORM] * 24


class HangingGeocoder:
    """Signals ``started`` then waits until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def resolve(self, postal_code):
        self.started.set()
        self.release.wait(10)
        return Coordinates(latitude=40.75, longitude=-73.99)


class DownStore(InMemoryKeyValueStore):
    def get(self, key):
        raise StorageUnavailable()

    def put(self, key, value):
        raise StorageUnavailable()


class TestOrchestrator(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore()
        self.geocoder = FakeGeocoder()
        self.client = FakeForecastClient()

    def _make(self, geocoder=None, client=None, store=None, **kwargs):
        store = store if store is not None else self.store
        return SnowDayOrchestrator(
            geocoder=geocoder or self.geocoder,
            forecast_client=client or self.client,
            cache=ForecastCache(store, ttl_seconds=3600, clock=self.clock),
            votes=VoteStore(store, client_id="device-1"),
            today=lambda: date(2025, 1, 13),
            **kwargs,
        )

    def test_starts_idle_with_defaults(self):
        orch = self._make()
        self.assertEqual(orch.state, CalculationState.IDLE)
        self.assertEqual(orch.school_type, SchoolType.PUBLIC)
        self.assertEqual(orch.caution, CautionLevel.STANDARD)
        self.assertFalse(orch.manual_mode)
        self.assertEqual(orch.last_outcome.state, CalculationState.IDLE)

    def test_automatic_success(self):
        orch = self._make()
        outcome = orch.calculate("10001")

        self.assertEqual(orch.state, CalculationState.SUCCESS)
        self.assertEqual(outcome.state, CalculationState.SUCCESS)
        self.assertEqual(outcome.origin, DataOrigin.NETWORK)
        self.assertEqual(outcome.location, "10001")
        self.assertEqual(outcome.hourly, [87] * 24)
        self.assertEqual(outcome.headline, 87)
        self.assertEqual(outcome.tier.level, ResultLevel.NO_SCHOOL)
        self.assertEqual(outcome.forecast_label, "Tuesday, January 14")
        self.assertIn("87% chance", outcome.share_summary)
        self.assertEqual(outcome.tally.total, 0)
        self.assertFalse(outcome.has_voted)
        self.assertEqual(self.geocoder.calls, ["10001"])
        self.assertEqual(self.client.calls, [(40.75, -73.99, 8000)])

    def test_cache_hit_skips_network(self):
        orch = self._make()
        orch.calculate("10001")
        self.clock.now_ms += 59 * MINUTE_MS

        outcome = orch.calculate("10001")

        self.assertEqual(outcome.origin, DataOrigin.CACHE)
        self.assertEqual(len(self.geocoder.calls), 1)
        self.assertEqual(len(self.client.calls), 1)

    def test_stale_cache_refetches(self):
        orch = self._make()
        orch.calculate("10001")
        self.clock.now_ms += 61 * MINUTE_MS

        outcome = orch.calculate("10001")

        self.assertEqual(outcome.origin, DataOrigin.NETWORK)
        self.assertEqual(len(self.client.calls), 2)

    def test_changing_school_type_uses_different_cache_key(self):
        orch = self._make()
        orch.calculate("10001")
        outcome = orch.calculate("10001", school_type=SchoolType.UNIVERSITY)

        self.assertEqual(outcome.origin, DataOrigin.NETWORK)
        self.assertEqual(outcome.headline, 77)

    def test_missing_location_leaves_state_unchanged(self):
        orch = self._make()
        with self.assertRaises(MissingInput):
            orch.calculate("   ")
        self.assertEqual(orch.state, CalculationState.IDLE)
        self.assertEqual(self.geocoder.calls, [])

    def test_geocoder_failure_offers_manual_mode(self):
        orch = self._make(geocoder=FakeGeocoder(error=LocationNotFound()))
        outcome = orch.calculate("99999")

        self.assertEqual(orch.state, CalculationState.FAILED)
        self.assertTrue(orch.manual_mode)
        self.assertTrue(outcome.manual_mode)
        self.assertEqual(
            outcome.error,
            "Could not find location for the provided ZIP code. You can enter weather data manually.",
        )

    def test_forecast_failure_then_manual_recovery(self):
        orch = self._make(client=FakeForecastClient(error=ForecastUnavailable()))
        failed = orch.calculate("10001")
        self.assertEqual(failed.state, CalculationState.FAILED)

        manual = WeatherSample(snowfall_cm=3, temperature_c=-1, precipitation_probability_pct=50, wind_speed_kmh=10)
        outcome = orch.calculate(manual_sample=manual)

        self.assertEqual(outcome.state, CalculationState.SUCCESS)
        self.assertEqual(outcome.origin, DataOrigin.MANUAL)
        self.assertEqual(len(set(outcome.hourly)), 1)
        self.assertIsNone(outcome.location)
        self.assertIsNone(outcome.tally)

    def test_wrong_sample_count_fails(self):
        orch = self._make(client=FakeForecastClient(samples=[STORM] * 12))
        outcome = orch.calculate("10001")
        self.assertEqual(outcome.state, CalculationState.FAILED)
        self.assertEqual(self.store.keys(), [])

    def test_hanging_fetch_times_out(self):
        client = BlockingForecastClient()
        self.addCleanup(client.release.set)
        orch = self._make(client=client, fetch_timeout_ms=50)

        outcome = orch.calculate("10001")

        self.assertEqual(outcome.state, CalculationState.FAILED)
        self.assertEqual(outcome.error, "The weather data request timed out. Please try again.")
        self.assertTrue(orch.manual_mode)

    def test_second_calculation_is_rejected_while_in_flight(self):
        client = BlockingForecastClient()
        self.addCleanup(client.release.set)
        orch = self._make(client=client, fetch_timeout_ms=5000)

        worker = threading.Thread(target=orch.calculate, args=("10001",))
        worker.start()
        self.assertTrue(client.started.wait(2))
        self.assertEqual(orch.state, CalculationState.REQUESTING)

        with self.assertRaises(CalculationInProgress):
            orch.calculate("10001")

        client.release.set()
        worker.join(5)
        self.assertEqual(orch.state, CalculationState.SUCCESS)

    def test_reset_during_flight_discards_result(self):
        client = BlockingForecastClient()
        self.addCleanup(client.release.set)
        orch = self._make(client=client, fetch_timeout_ms=5000)

        worker = threading.Thread(target=orch.calculate, args=("10001",))
        worker.start()
        self.assertTrue(client.started.wait(2))

        orch.reset()
        worker.join(5)

        self.assertFalse(worker.is_alive())
        self.assertEqual(orch.state, CalculationState.IDLE)
        self.assertEqual(orch.last_outcome.state, CalculationState.IDLE)
        self.assertEqual(orch.location, "")

    def test_hanging_geocoder_times_out(self):
        geocoder = HangingGeocoder()
        self.addCleanup(geocoder.release.set)
        orch = self._make(geocoder=geocoder, fetch_timeout_ms=100)

        started = time.monotonic()
        outcome = orch.calculate("10001")

        self.assertLess(time.monotonic() - started, 1.0)
        self.assertEqual(outcome.state, CalculationState.FAILED)
        self.assertEqual(outcome.error, "The weather data request timed out. Please try again.")
        self.assertEqual(self.client.calls, [])

    def test_cancel_interrupts_geocoding(self):
        geocoder = HangingGeocoder()
        self.addCleanup(geocoder.release.set)
        orch = self._make(geocoder=geocoder, fetch_timeout_ms=5000)

        worker = threading.Thread(target=orch.calculate, args=("10001",))
        worker.start()
        self.assertTrue(geocoder.started.wait(2))

        self.assertTrue(orch.cancel())
        worker.join(2)

        self.assertFalse(worker.is_alive())
        self.assertEqual(orch.state, CalculationState.FAILED)
        self.assertTrue(orch.manual_mode)

    def test_rejected_calculation_leaves_inputs_untouched(self):
        client = BlockingForecastClient()
        self.addCleanup(client.release.set)
        orch = self._make(client=client, fetch_timeout_ms=5000)

        worker = threading.Thread(target=orch.calculate, args=("10001",))
        worker.start()
        self.assertTrue(client.started.wait(2))

        with self.assertRaises(CalculationInProgress):
            orch.calculate(weights={"snowfall_multiplier": 1}, scenario="blizzard")
        self.assertEqual(orch.weights.snowfall_multiplier, 8.0)
        self.assertFalse(orch.manual_mode)

        client.release.set()
        worker.join(5)

    def test_invalid_request_leaves_inputs_untouched(self):
        orch = self._make()
        with self.assertRaises(MissingInput):
            orch.calculate(weights={"snowfall_multiplier": 1}, scenario="volcano")
        with self.assertRaises(InvalidWeights):
            orch.calculate(weights={"moon_phase": 1}, scenario="blizzard")
        self.assertEqual(orch.weights.snowfall_multiplier, 8.0)
        self.assertFalse(orch.manual_mode)
        self.assertEqual(orch.state, CalculationState.IDLE)

    def test_cancel_without_flight_is_noop(self):
        self.assertFalse(self._make().cancel())

    def test_reset_restores_defaults(self):
        orch = self._make()
        orch.update_weights({"snowfall_multiplier": 2})
        orch.calculate("10001", school_type=SchoolType.PRIVATE, caution=CautionLevel.CAUTIOUS)

        orch.reset()

        self.assertEqual(orch.state, CalculationState.IDLE)
        self.assertEqual(orch.school_type, SchoolType.PUBLIC)
        self.assertEqual(orch.caution, CautionLevel.STANDARD)
        self.assertEqual(orch.weights.snowfall_multiplier, 8.0)
        self.assertFalse(orch.manual_mode)

    def test_weight_edits_apply_to_next_calculation_only(self):
        orch = self._make()
        first = orch.calculate("10001")
        orch.update_weights({"public_school_bonus": 0})

        self.assertEqual(orch.last_outcome.headline, first.headline)
        second = orch.calculate("10001")
        self.assertEqual(second.headline, first.headline - 5)

    def test_invalid_weights_rejected(self):
        orch = self._make()
        with self.assertRaises(InvalidWeights):
            orch.update_weights({"not_a_weight": 1})
        with self.assertRaises(InvalidWeights):
            orch.update_weights({"snowfall_max": float("nan")})

    def test_scenario_switches_to_manual(self):
        orch = self._make()
        orch.use_scenario("blizzard")
        outcome = orch.calculate()

        self.assertEqual(outcome.origin, DataOrigin.MANUAL)
        self.assertEqual(outcome.headline, 100)
        with self.assertRaises(MissingInput):
            orch.use_scenario("volcano")

    def test_vote_requires_successful_location_forecast(self):
        orch = self._make()
        with self.assertRaises(MissingInput):
            orch.vote(VoteChoice.CLOSES)

        orch.use_scenario("blizzard")
        orch.calculate()
        with self.assertRaises(MissingInput):
            orch.vote(VoteChoice.CLOSES)

    def test_vote_updates_outcome_once(self):
        orch = self._make()
        orch.calculate("10001")

        first = orch.vote(VoteChoice.CLOSES)
        second = orch.vote(VoteChoice.OPENS)

        self.assertTrue(first.accepted)
        self.assertFalse(second.accepted)
        self.assertEqual(orch.last_outcome.tally.closes, 1)
        self.assertTrue(orch.last_outcome.has_voted)

        again = orch.calculate("10001")
        self.assertTrue(again.has_voted)
        self.assertEqual(again.tally.closes, 1)

    def test_storage_outage_does_not_fail_calculation(self):
        orch = self._make(store=DownStore())
        outcome = orch.calculate("10001")

        self.assertEqual(outcome.state, CalculationState.SUCCESS)
        self.assertEqual(outcome.origin, DataOrigin.NETWORK)
        self.assertEqual(outcome.tally.total, 0)


class TestPresentationHelpers(unittest.TestCase):
    def test_forecast_label(self):
        self.assertEqual(format_forecast_label(date(2025, 1, 14)), "Tuesday, January 14")

    def test_share_summary(self):
        text = build_share_summary("Tuesday, January 14", 87, "No School or Possible Early Dismissal.")
        self.assertEqual(
            text,
            "Snow Day Prediction for Tuesday, January 14: 87% chance. "
            "Recommendation: No School or Possible Early Dismissal.",
        )


if __name__ == "__main__":
    unittest.main()
