"""
Tests for the session: click -> analysis flow, supersession of in-flight
analyses, failure handling, startup navigation and the JSON snapshot.
"""

import sys
import json
import asyncio
import pytest
from unittest.mock import patch
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.location.analysis import FieldAnalysisClient
from src.location.exceptions import AnalysisFailure
from src.location.geosearch import GeoSearchResolver
from src.location.map_controller import MapController
from src.location.session import (
    SessionState, STATUS_IDLE, STATUS_READY, STATUS_FAILED, FAILURE_NOTICE,
    OUTCOME_SUPERSEDED,
)


SOIL_BY_LAT = {
    40.0: {"ph": 6.5, "soc": 20.0, "nitrogen": 2.5, "sand": 30.0, "silt": 50.0, "clay": 20.0},
    41.0: {"ph": 5.5, "soc": 10.0, "nitrogen": 1.5, "sand": 60.0, "silt": 25.0, "clay": 15.0},
}


class FakeAnalysisClient:
    """Answers from canned payloads; latitudes with a gate wait for it."""

    def __init__(self, gates=None, failing=()):
        self.gates = gates or {}
        self.failing = set(failing)
        self.current_year = 2022
        self.calls = []
        self._builder = FieldAnalysisClient(base_url="http://analysis.test", current_year=2022)

    async def analyze(self, selection):
        self.calls.append(selection.latitude)
        gate = self.gates.get(selection.latitude)
        if gate is not None:
            await gate.wait()
        if selection.latitude in self.failing:
            raise AnalysisFailure(500, "Internal Server Error")
        payload = {"soil": SOIL_BY_LAT.get(selection.latitude)}
        return self._builder.build_result(selection, payload)


class FakeGeocoder:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.calls = []

    async def search(self, query, limit=8, address_details=True):
        self.calls.append((query, limit, address_details))
        return self.rows


def _corn():
    return {"properties": {"CROP_TYPE": 1, "CNTY": "169", "CSBACRES": 78.4}}


def _session(client=None, geocoder=None):
    map_controller = MapController()
    return SessionState(
        client=client or FakeAnalysisClient(),
        resolver=GeoSearchResolver(geocoder=geocoder or FakeGeocoder(), map_controller=map_controller),
        map_controller=map_controller,
    )


class TestFieldSelection:
    def test_click_then_analyze(self):
        session = _session()

        async def scenario():
            await session.start()
            return await session.select_field(_corn(), {"lat": 40.0, "lng": -93.0})

        result = asyncio.run(scenario())
        assert session.status == STATUS_READY
        assert session.result is result
        assert result.health.score == 100
        assert result.texture == "Loam"
        assert session.selection.crop_name == "Corn"
        assert session.map.popup.content["crop_name"] == "Corn"

    def test_miss_keeps_previous_state(self):
        session = _session()
        asyncio.run(session.select_field(_corn(), (40.0, -93.0)))
        previous = session.result

        assert asyncio.run(session.select_field([], (41.0, -93.0))) is None
        assert session.result is previous
        assert session.selection.latitude == 40.0

    def test_analyze_without_selection_raises(self):
        session = _session()
        with pytest.raises(ValueError):
            asyncio.run(session.analyze())

    def test_start_registers_crop_layer(self):
        session = _session()
        assert asyncio.run(session.start()) is False
        assert session.map.attached is True
        assert session.map.view_state()["layers"] == ["visual-layer"]
        assert "crops2022" in session.map.sources


class TestSupersession:
    def test_late_response_for_older_click_is_discarded(self):
        async def scenario():
            gates = {40.0: asyncio.Event(), 41.0: asyncio.Event()}
            session = _session(client=FakeAnalysisClient(gates=gates))
            first = asyncio.ensure_future(session.select_field(_corn(), (40.0, -93.0)))
            await asyncio.sleep(0)
            second = asyncio.ensure_future(session.select_field(_corn(), (41.0, -93.0)))
            await asyncio.sleep(0)

            gates[41.0].set()
            newer = await second
            gates[40.0].set()
            older = await first
            return session, newer, older

        session, newer, older = asyncio.run(scenario())
        assert older is None
        assert session.result is newer
        assert session.result.selection.latitude == 41.0
        assert session.selection.latitude == 41.0
        assert session.status == STATUS_READY

    def test_superseded_failure_is_ignored(self):
        async def scenario():
            gates = {40.0: asyncio.Event()}
            session = _session(client=FakeAnalysisClient(gates=gates, failing=[40.0]))
            first = asyncio.ensure_future(session.select_field(_corn(), (40.0, -93.0)))
            await asyncio.sleep(0)
            await session.select_field(_corn(), (41.0, -93.0))
            gates[40.0].set()
            await first
            return session

        session = asyncio.run(scenario())
        assert session.status == STATUS_READY
        assert session.error is None
        assert session.result.selection.latitude == 41.0


class TestFailure:
    def test_failure_keeps_prior_result(self):
        session = _session(client=FakeAnalysisClient(failing=[41.0]))
        asyncio.run(session.select_field(_corn(), (40.0, -93.0)))
        previous = session.result

        assert asyncio.run(session.select_field(_corn(), (41.0, -93.0))) is None
        assert session.status == STATUS_FAILED
        assert session.error == FAILURE_NOTICE
        assert session.result is previous

    def test_next_analysis_clears_error(self):
        session = _session(client=FakeAnalysisClient(failing=[41.0]))
        asyncio.run(session.select_field(_corn(), (41.0, -93.0)))
        assert session.error == FAILURE_NOTICE

        asyncio.run(session.select_field(_corn(), (40.0, -93.0)))
        assert session.error is None
        assert session.status == STATUS_READY


class TestOutcome:
    def test_superseded_request_reports_its_own_outcome(self):
        async def scenario():
            gates = {40.0: asyncio.Event()}
            session = _session(client=FakeAnalysisClient(gates=gates, failing=[41.0]))
            older = session.handle_click(_corn(), (40.0, -93.0))
            newer = session.handle_click(_corn(), (41.0, -93.0))

            first = asyncio.ensure_future(session.run_analysis(older))
            await asyncio.sleep(0)
            second = await session.run_analysis(newer)
            gates[40.0].set()
            return session, await first, second

        session, first, second = asyncio.run(scenario())
        assert second == (STATUS_FAILED, None)
        # the session shows the newer failure, the older request was only dropped
        assert first == (OUTCOME_SUPERSEDED, None)
        assert session.status == STATUS_FAILED

    def test_unexpected_client_error_clears_loading(self):
        class BrokenClient(FakeAnalysisClient):
            async def analyze(self, selection):
                raise RuntimeError("unexpected payload")

        session = _session(client=BrokenClient())
        with pytest.raises(RuntimeError):
            asyncio.run(session.select_field(_corn(), (40.0, -93.0)))
        assert session.status == STATUS_FAILED
        assert session.error == FAILURE_NOTICE


class TestStartup:
    def test_initial_address_centres_map(self):
        geocoder = FakeGeocoder([{"display_name": "Ames, Iowa", "lat": "42.03", "lon": "-93.62"}])
        session = _session(geocoder=geocoder)

        assert asyncio.run(session.start(initial_address="Ames, Iowa")) is True
        assert geocoder.calls == [("Ames, Iowa", 1, False)]
        assert session.map.center == (42.03, -93.62)
        assert session.map.zoom == 15
        assert session.map.marker is not None
        assert session.resolver.address == "Ames, Iowa"
        assert session.resolver.is_searching is False

    def test_unresolved_address_leaves_map(self):
        session = _session(geocoder=FakeGeocoder([]))
        assert asyncio.run(session.start(initial_address="Atlantis")) is False
        assert session.map.marker is None
        assert session.map.zoom == 4

    def test_start_after_detach_reattaches_map(self):
        geocoder = FakeGeocoder([{"display_name": "Ames, Iowa", "lat": "42.03", "lon": "-93.62"}])
        session = _session(geocoder=geocoder)
        asyncio.run(session.start())
        session.map.detach()
        assert session.map.attached is False

        assert asyncio.run(session.start(initial_address="Ames, Iowa")) is True
        assert session.map.attached is True
        assert session.map.view_state()["layers"] == ["visual-layer"]
        assert session.map.marker is not None


class TestSnapshot:
    def test_snapshot_is_json_serializable(self):
        session = _session()
        asyncio.run(session.select_field(_corn(), (41.0, -93.0)))
        snapshot = session.snapshot()

        json.dumps(snapshot)
        assert snapshot["status"] == STATUS_READY
        assert snapshot["selection"]["crop_name"] == "Corn"
        result = snapshot["result"]
        assert result["texture"] == "Sandy Loam"
        assert result["health"]["label"] == "Poor"
        assert result["texture_composition"] == {"sand": 60.0, "silt": 25.0, "clay": 15.0}
        assert [entry["year"] for entry in result["timeline"]] == [2022]
        assert len(result["fertilizer_plan"]) == 2

    def test_empty_session(self):
        snapshot = _session().snapshot()
        assert snapshot["status"] == STATUS_IDLE
        assert snapshot["result"] is None
        assert snapshot["selection"] is None
        assert snapshot["search"]["suggestions"] == []

    def test_default_collaborators_from_environment(self):
        with patch.dict("os.environ", {"FIELD_ANALYSIS_URL": "http://env.test/analyze"}):
            session = SessionState()
        assert session.client.base_url == "http://env.test/analyze"
        assert session.resolver.map_controller is session.map
