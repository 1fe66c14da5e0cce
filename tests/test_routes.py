import random
import unittest

from bingo_engine import create_app
from bingo_engine.db import session_scope
from bingo_engine.repositories.settings_repository import SettingsRepository
from bingo_engine.services.notifier import MemoryNotifier
from tests.base import SPLIT, StubSender

TEST_CONFIG = {
    "TESTING": True,
    "DATABASE_URL": "sqlite+pysqlite:///:memory:",
    "NOTIFIER_BACKEND": "memory",
}


class RoutesTestCase(unittest.TestCase):
    def setUp(self):
        self.notifier = MemoryNotifier()
        self.sender = StubSender()
        self.app = create_app(TEST_CONFIG, notifier=self.notifier, rng=random.Random(5), sender=self.sender)
        self.client = self.app.test_client()

        with session_scope(self.app.extensions["session_factory"]) as session:
            SettingsRepository().set(session, "split_config", SPLIT)
            session.commit()

    def tearDown(self):
        self.app.extensions["bingo"].dispatcher.shutdown(wait=True)
        self.app.extensions["engine"].dispose()

    def _create_round(self):
        resp = self.client.post("/rounds", json={"type": "regular"})
        self.assertEqual(resp.status_code, 201)
        return resp.get_json()["data"]

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"success": True, "data": {"status": "ok"}, "error": None})

    def test_create_and_fetch_round(self):
        created = self._create_round()
        self.assertEqual(created["number"], 1)
        self.assertEqual(created["status"], "selling")

        current = self.client.get("/rounds/current").get_json()["data"]
        self.assertEqual(current["id"], created["id"])
        self.assertEqual(len(self.client.get("/rounds").get_json()["data"]), 1)

    def test_unknown_round_is_not_found(self):
        resp = self.client.get("/rounds/999")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error"]["code"], "not_found")

    def test_wrong_method_uses_error_envelope(self):
        resp = self.client.delete("/health")
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(resp.get_json()["error"]["code"], "method_not_allowed")

    def test_purchase_payment_and_card_lookup(self):
        round_ = self._create_round()
        resp = self.client.post(
            "/purchases",
            json={"round_id": round_["id"], "quantity": 2, "customer_phone": "11 98888-7777"},
        )
        self.assertEqual(resp.status_code, 201)
        purchase = resp.get_json()["data"]
        self.assertEqual(purchase["payment_status"], "pending")
        self.assertEqual(len(purchase["cards"]), 2)

        paid = self.client.post(f"/purchases/{purchase['id']}/payment", json={"status": "paid"}).get_json()["data"]
        again = self.client.post(f"/purchases/{purchase['id']}/payment", json={"status": "paid"}).get_json()["data"]
        self.assertTrue(paid["applied"])
        self.assertFalse(again["applied"])
        self.assertEqual(paid["purchase"]["payment_status"], "paid")

        round_now = self.client.get(f"/rounds/{round_['id']}").get_json()["data"]
        self.assertEqual(round_now["total_sales"], "10.00")
        self.assertEqual(round_now["prize_pool"], "4.00")

        code = purchase["cards"][0]["code"]
        card = self.client.get(f"/cards/{code}").get_json()["data"]
        self.assertEqual(card["status"], "sold")
        self.assertEqual(card["grid"]["R"][2], "FREE")

        check = self.client.get(f"/cards/{code}/check").get_json()["data"]
        self.assertFalse(check["won"])

        self.app.extensions["bingo"].dispatcher.shutdown(wait=True)
        self.assertEqual(len(self.sender.calls), 1)

    def test_pos_cash_sale_is_paid_immediately(self):
        round_ = self._create_round()
        resp = self.client.post(
            "/purchases/pos-sale",
            json={"round_id": round_["id"], "quantity": 1, "payment_method": "cash"},
        )
        self.assertEqual(resp.status_code, 201)
        sale = resp.get_json()["data"]
        self.assertEqual(sale["payment_status"], "paid")
        self.assertIsNone(sale["expires_at"])
        self.assertTrue(sale["settled"])
        self.assertEqual(sale["cards"][0]["status"], "sold")

        missing = self.client.post("/purchases/pos-sale", json={"round_id": round_["id"], "quantity": 1})
        self.assertEqual(missing.status_code, 400)
        self.assertIn("payment_method", missing.get_json()["error"]["details"])

    def test_purchase_payload_is_validated(self):
        resp = self.client.post("/purchases", json={"quantity": 0})
        self.assertEqual(resp.status_code, 400)
        body = resp.get_json()
        self.assertEqual(body["error"]["code"], "validation_error")
        self.assertIn("round_id", body["error"]["details"])

    def test_draw_lifecycle_and_precondition_envelope(self):
        round_id = self._create_round()["id"]

        rejected = self.client.post(f"/rounds/{round_id}/draw-number")
        self.assertEqual(rejected.status_code, 409)
        self.assertEqual(rejected.get_json()["error"]["code"], "precondition_failed")

        started = self.client.post(f"/rounds/{round_id}/start-drawing").get_json()["data"]
        self.assertEqual(started["status"], "drawing")
        self.assertTrue(started["applied"])

        drawn = self.client.post(f"/rounds/{round_id}/draw-number").get_json()["data"]
        self.assertEqual(drawn["position"], 1)

        numbers = self.client.get(f"/rounds/{round_id}/numbers").get_json()["data"]
        self.assertEqual(numbers["total"], 1)
        self.assertEqual(numbers["draws"][0]["number"], drawn["number"])

        live = self.client.get("/rounds/live").get_json()["data"]
        self.assertEqual(live["id"], round_id)

        finished = self.client.post(f"/rounds/{round_id}/finish").get_json()["data"]
        self.assertEqual(finished["status"], "finished")

        cancel = self.client.post(f"/rounds/{round_id}/cancel")
        self.assertEqual(cancel.status_code, 409)

        history = self.client.get("/rounds?history=1").get_json()["data"]
        self.assertEqual(history["total"], 1)

        self.assertEqual(
            [p["status"] for p in self.notifier.on(f"round:{round_id}:status")],
            ["drawing", "finished"],
        )
