"""API tests for the FastAPI surface (backend/main.py).

The app runs under TestClient with the upstream connector replaced by a
FakeConnector, so lifespan startup never opens a real socket.
"""
import functools

import pytest
from fastapi.testclient import TestClient

import backend.main as main
from backend.context import ShipWatchContext


@pytest.fixture
def connector(fake_connector):
    return fake_connector()


@pytest.fixture
def client(monkeypatch, connector):
    monkeypatch.setattr(main.settings, "autostart_stream", False)
    monkeypatch.setattr(main.settings, "catalog_url", None)
    monkeypatch.setattr(main.settings, "render_interval", 60.0)
    monkeypatch.setattr(main.settings, "dialect", "relay")
    monkeypatch.setattr(main.settings, "relay_url", "ws://relay.test/ws")
    monkeypatch.setattr(main, "ShipWatchContext",
                        functools.partial(ShipWatchContext, connect=connector))
    with TestClient(main.app) as c:
        yield c


def _seed(client):
    pipeline = main.app.state.context.pipeline
    pipeline.ingest_fields({"mmsi": "338000001", "name": "USNS B", "shipType": 35, "lat": 41, "lon": 11})
    pipeline.ingest_fields({"mmsi": "428000001", "name": "ZIM A", "lat": 32.8, "lon": 35.0})
    pipeline.ingest_fields({"mmsi": "257000003", "name": "HOEGH", "type": "Vehicles Carrier"})


class TestRest:
    def test_root(self, client):
        data = client.get("/").json()
        assert data["name"] == "ShipWatch"
        assert data["status"] == "Idle (stream autostart disabled)"

    def test_vessels_all(self, client):
        _seed(client)
        data = client.get("/api/vessels").json()
        assert data["count"] == 3
        assert [v["name"] for v in data["vessels"]] == ["HOEGH", "USNS B", "ZIM A"]
        assert data["vessels"][0]["positioned"] is False

    def test_vessels_filtered(self, client):
        _seed(client)
        data = client.get("/api/vessels", params={"categories": "military,israeli", "q": "zim"}).json()
        assert [v["mmsi"] for v in data["vessels"]] == ["428000001"]

    def test_vessels_empty_category_list(self, client):
        _seed(client)
        assert client.get("/api/vessels", params={"categories": ""}).json()["count"] == 0

    def test_vessels_bad_category(self, client):
        assert client.get("/api/vessels", params={"categories": "pirates"}).status_code == 422

    def test_status(self, client):
        _seed(client)
        data = client.get("/api/status").json()
        assert data["dialect"] == "relay"
        assert data["state"]["phase"] == "disconnected"
        assert data["vessels"] == 3
        assert data["categories"] == {"military": 1, "israeli": 1, "potential_arms": 1}

    def test_put_filter(self, client):
        resp = client.put("/api/filter", json={"wanted": ["israeli"], "query": "zim"})
        assert resp.status_code == 200
        assert resp.json()["filter"]["wanted"] == ["israeli"]
        assert main.app.state.context.projector.selection.query == "zim"

    def test_post_area_subscribes(self, client, connector):
        resp = client.post("/api/area", json={"south": 40, "west": 10, "north": 42, "east": 12})
        assert resp.json() == {"resubscribed": True, "bbox": [40.0, 10.0, 42.0, 12.0]}
        assert connector.sockets[0].sent == [{"type": "subscribe", "bbox": [[40, 10], [42, 12]]}]
        assert client.get("/api/status").json()["state"]["phase"] == "subscribed"

    def test_post_area_rejects_inverted(self, client):
        resp = client.post("/api/area", json={"south": 42, "west": 10, "north": 40, "east": 12})
        assert resp.status_code == 422

    def test_reconnect(self, client, connector):
        client.post("/api/area", json={"south": 40, "west": 10, "north": 42, "east": 12})
        data = client.post("/api/reconnect").json()
        assert data["subscribed"] is True
        assert len(connector.urls) == 2

    def test_reconnect_before_any_area_uses_initial_area(self, client, connector):
        resp = client.post("/api/reconnect")
        assert resp.status_code == 200
        assert resp.json()["subscribed"] is True
        bbox = connector.sockets[0].sent[0]["bbox"]
        s = main.settings
        assert bbox == [[s.initial_south, s.initial_west], [s.initial_north, s.initial_east]]

    def test_ports(self, client):
        ports = client.get("/api/ports").json()
        assert ports["haifa"] == {"lat": 32.82, "lon": 35.0, "zoom": 12}

    def test_jump(self, client):
        resp = client.post("/api/jump/Genoa")
        assert resp.status_code == 200
        assert resp.json()["port"] == "genoa"

    def test_jump_unknown_port(self, client):
        assert client.post("/api/jump/atlantis").status_code == 404


class TestWebSocket:
    def test_initial_state(self, client):
        _seed(client)
        with client.websocket_connect("/ws") as ws:
            message = ws.receive_json()
        assert message["action"] == "initial_state"
        assert len(message["data"]) == 3
        assert "haifa" in message["ports"]
        assert message["status"] == "Idle (stream autostart disabled)"

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            reply = ws.receive_json()
        assert reply["action"] == "error"
        assert reply["data"]["error"] == "Invalid JSON"

    def test_filter_command_broadcasts_then_acks(self, client):
        _seed(client)
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "filter", "wanted": ["military"]})
            view = ws.receive_json()
            ack = ws.receive_json()
        assert view["action"] == "vessel_batch"
        assert [v["name"] for v in view["data"]] == ["USNS B"]
        assert ack["action"] == "ack"

    def test_unknown_action(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"action": "teleport"})
            reply = ws.receive_json()
        assert reply["action"] == "error"
