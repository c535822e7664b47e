"""
test_score_workflows.py — Account and POI score loops end to end on a real
WorkflowRuntime (FakeDB, recorded push requests, fixed clock).
"""

import asyncio

import pytest
from conftest import seed_profile, seed_report

from autonomy.core.geo import consecutive_days
from autonomy.models.metric import Metric
from autonomy.models.profile import NudgeKind
from autonomy.services.state_store import StateStore
from autonomy.workflows.registry import build_runtime
from autonomy.workflows.triggers import (
    trigger_account_update,
    trigger_poi_update,
    account_state_id,
    poi_state_id,
)

ALL_SYMPTOMS = ["fever", "cough", "fatigue", "breath", "nasal", "throat", "chest", "face"]


@pytest.fixture()
async def runtime(fake_db, push_client, messages, clock):
    rt = build_runtime(fake_db, client=push_client, bundle=messages, clock=clock)
    yield rt
    await rt.shutdown()


async def eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def _types(push_client) -> list[str]:
    return sorted(r.data["notification_type"] for r in push_client.requests)


class TestAccountLoop:
    async def test_band_change_notifies_account(self, fake_db, runtime, push_client, clock):
        now_ts = int(clock.now.timestamp())
        await seed_profile(fake_db, "a1", metric=Metric(score=20, last_update=now_ts - 300).model_dump())

        await trigger_account_update(runtime, ["a1"])
        await eventually(lambda: runtime.run_id(account_state_id("a1")) >= 1)

        assert _types(push_client) == ["RISK_LEVEL_CHANGED"]
        assert push_client.requests[0].template_id == "tpl-new-location"
        profile = await StateStore(fake_db).get_profile("a1")
        assert profile.metric.score == 75
        assert runtime.is_running(account_state_id("a1"))

    async def test_entering_risk_area_starts_nudges(self, fake_db, runtime, push_client, clock):
        now_ts = int(clock.now.timestamp())
        _, today, _ = consecutive_days(clock.now)
        await seed_profile(fake_db, "a1", metric=Metric(score=90, last_update=now_ts - 300).model_dump())
        await seed_report(fake_db, "symptomReport", "a2", today + 60, official_symptoms=ALL_SYMPTOMS)

        await trigger_account_update(runtime, ["a1"])
        await eventually(lambda: runtime.run_id(account_state_id("a1")) >= 1)

        # template for the band change + risk-area text + symptom-spike-area reminder
        assert _types(push_client) == [
            "BEHAVIOR_REPORT_ON_RISK_AREA", "BEHAVIOR_REPORT_ON_RISK_AREA", "RISK_LEVEL_CHANGED",
        ]
        texts = [r for r in push_client.requests if r.template_id is None]
        assert {r.headings["en"] for r in texts} == {
            "You are in a higher-risk area", "Symptoms are rising nearby",
        }
        profile = await StateStore(fake_db).get_profile("a1")
        assert profile.metric.score == 50
        assert profile.last_nudged(NudgeKind.BEHAVIOR_ON_SYMPTOM_SPIKE) == now_ts

    async def test_spike_notifies_without_seeded_catalog(self, fake_db, runtime, push_client, clock):
        now_ts = int(clock.now.timestamp())
        _, today, _ = consecutive_days(clock.now)
        await seed_profile(fake_db, "a1", metric=Metric(score=20, last_update=now_ts - 300).model_dump())
        for reporter in ("r1", "r2", "r3"):
            await seed_report(fake_db, "symptomReport", reporter, today + 60, official_symptoms=["cough"])

        await trigger_account_update(runtime, ["a1"])
        await eventually(lambda: runtime.run_id(account_state_id("a1")) >= 1)

        spikes = [r for r in push_client.requests if r.data["notification_type"] == "ACCOUNT_SYMPTOM_SPIKE"]
        assert len(spikes) == 1
        assert spikes[0].filters[0]["value"] == "a1"
        assert spikes[0].data["symptoms"] == ["cough"]
        assert "Dry cough" in spikes[0].contents["en"]

    async def test_too_frequent_signal_skips_iteration(self, fake_db, runtime, push_client, clock):
        now_ts = int(clock.now.timestamp())
        await seed_profile(fake_db, "a1", metric=Metric(score=20, last_update=now_ts - 2).model_dump())

        await trigger_account_update(runtime, ["a1"])
        await eventually(lambda: runtime.run_id(account_state_id("a1")) >= 1)
        await trigger_account_update(runtime, ["a1"])
        await eventually(lambda: runtime.run_id(account_state_id("a1")) >= 2)

        assert push_client.requests == []
        profile = await StateStore(fake_db).get_profile("a1")
        assert profile.metric.last_update == now_ts - 2

    async def test_missing_profile_keeps_loop_alive(self, runtime, push_client):
        await trigger_account_update(runtime, ["ghost"])
        await eventually(lambda: runtime.run_id(account_state_id("ghost")) >= 1)

        assert runtime.is_running(account_state_id("ghost"))
        assert push_client.requests == []


class TestPOILoop:
    async def test_spike_reaches_every_follower(self, fake_db, runtime, push_client, clock):
        _, today, _ = consecutive_days(clock.now)
        await fake_db["symptom"].insert_one({"_id": "cough", "name": "Dry cough", "source": "official", "weight": 2})
        result = await fake_db["poi"].insert_one({
            "location": {"type": "Point", "coordinates": [121.56, 25.03]}, "address": "", "metric": {},
        })
        poi_id = str(result.inserted_id)
        for account in ("a1", "a2"):
            await seed_profile(fake_db, account, points_of_interest=[
                {"id": poi_id, "alias": "Market", "address": "", "score": 0, "metric": {}},
            ])
        for reporter in ("r1", "r2", "r3"):
            await seed_report(fake_db, "symptomReport", reporter, today + 60, official_symptoms=["cough"])

        await trigger_poi_update(runtime, [poi_id])
        await eventually(lambda: runtime.run_id(poi_state_id(poi_id)) >= 1)

        assert _types(push_client) == ["ACCOUNT_SYMPTOM_SPIKE", "ACCOUNT_SYMPTOM_SPIKE"]
        recipients = sorted(r.filters[0]["value"] for r in push_client.requests)
        assert recipients == ["a1", "a2"]
        for request in push_client.requests:
            assert request.data["poi_id"] == poi_id
            assert request.data["symptoms"] == ["cough"]
            assert "Dry cough" in request.contents["en"]
            assert "乾咳" in request.contents["zh-Hant"]

        store = StateStore(fake_db)
        assert (await store.get_poi(poi_id)).metric.details.symptoms.last_spike_list == ["cough"]
        assert (await store.get_profile("a1")).poi(poi_id).metric.details.symptoms.last_spike_list == ["cough"]
