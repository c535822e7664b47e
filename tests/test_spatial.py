"""
test_spatial.py — Geo-proximity aggregates over the report streams.

Reports are seeded into the FakeDB around Taipei (25.03, 121.56); a point
~0.01° of latitude away is ~1.1 km off.
"""

from datetime import datetime, timezone

import pytest
from conftest import FIXED_NOW, seed_profile, seed_report

from autonomy.core.errors import InvalidInputError
from autonomy.core.geo import consecutive_days
from autonomy.models.location import Location
from autonomy.services.spatial import SpatialAggregator

CENTER = Location(lat=25.03, lng=121.56)
YESTERDAY, TODAY, TOMORROW = consecutive_days(FIXED_NOW)


@pytest.fixture()
def aggregator(fake_db):
    return SpatialAggregator(fake_db)


class TestCounts:
    async def test_count_reports_counts_distinct_profiles(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 10, official_symptoms=["cough"])
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 20, official_symptoms=["fever"])
        await seed_report(fake_db, "symptomReport", "a2", TODAY + 30, official_symptoms=["fever"])

        assert await aggregator.count_reports("symptom", CENTER, 1000, TODAY, TOMORROW) == 2

    async def test_radius_is_inclusive_and_bounded(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "near", TODAY + 1, lat=25.035)
        await seed_report(fake_db, "symptomReport", "far", TODAY + 1, lat=25.05)

        assert await aggregator.count_reports("symptom", CENTER, 1000, TODAY, TOMORROW) == 1
        assert await aggregator.count_reports("symptom", CENTER, 5000, TODAY, TOMORROW) == 2

    async def test_window_is_half_open(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TOMORROW)
        await seed_report(fake_db, "symptomReport", "a2", TODAY)

        assert await aggregator.count_reports("symptom", CENTER, 1000, TODAY, TOMORROW) == 1

    async def test_distribution_counts_every_occurrence(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 1,
                          official_symptoms=["cough"], customized_symptoms=["headache"])
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 2, official_symptoms=["cough"])

        dist = await aggregator.distribution("symptom", CENTER, 1000, TODAY, TOMORROW)
        assert dist == {"cough": 2, "headache": 1}

    async def test_nearby_user_count_uses_utc_day(self, fake_db, aggregator):
        await seed_report(fake_db, "behaviorReport", "a1", TODAY + 60, official_behaviors=["wear_mask"])
        await seed_report(fake_db, "behaviorReport", "a2", YESTERDAY + 60, official_behaviors=["wear_mask"])

        assert await aggregator.nearby_user_count("behavior", CENTER, 1000, FIXED_NOW) == 1


class TestValidation:
    async def test_negative_radius(self, aggregator):
        with pytest.raises(InvalidInputError):
            await aggregator.count_reports("symptom", CENTER, -1, TODAY, TOMORROW)

    async def test_empty_window(self, aggregator):
        with pytest.raises(InvalidInputError):
            await aggregator.count_reports("symptom", CENTER, 1000, TOMORROW, TODAY)

    async def test_unknown_report_type(self, aggregator):
        with pytest.raises(InvalidInputError):
            await aggregator.count_reports("mood", CENTER, 1000, TODAY, TOMORROW)

    async def test_nearest_profiles_needs_radius_or_top_n(self, aggregator):
        with pytest.raises(InvalidInputError):
            await aggregator.nearest_profiles(CENTER)


class TestNearest:
    async def test_nearest_profiles_ordered_by_distance(self, fake_db, aggregator):
        await seed_profile(fake_db, "far", lat=25.038)
        await seed_profile(fake_db, "near", lat=25.031)
        await seed_profile(fake_db, "nowhere", lat=None, lng=None)

        assert await aggregator.nearest_profiles(CENTER, radius_m=2000) == ["near", "far"]
        assert await aggregator.nearest_profiles(CENTER, top_n=1) == ["near"]

    async def test_nearest_pois(self, fake_db, aggregator):
        result = await fake_db["poi"].insert_one(
            {"location": {"type": "Point", "coordinates": [121.56, 25.031]}, "address": "", "metric": {}}
        )
        await fake_db["poi"].insert_one(
            {"location": {"type": "Point", "coordinates": [121.56, 26.0]}, "address": "", "metric": {}}
        )

        assert await aggregator.nearest_pois(CENTER, 1000) == [str(result.inserted_id)]

    async def test_profiles_by_poi(self, fake_db, aggregator):
        await seed_profile(fake_db, "a1", points_of_interest=[{"id": "p1", "alias": "Home"}])
        await seed_profile(fake_db, "a2", points_of_interest=[{"id": "p2", "alias": "Office"}])

        profiles = await aggregator.profiles_by_poi("p1")
        assert [p.account_number for p in profiles] == ["a1"]


class TestScoringInputs:
    async def test_symptom_data(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 1,
                          official_symptoms=["cough", "fever"], customized_symptoms=["headache"])
        await seed_report(fake_db, "symptomReport", "a2", TODAY + 2, official_symptoms=["cough"])

        data = await aggregator.symptom_data(CENTER, 1000, TODAY, TOMORROW)
        assert data.user_count == 2
        assert data.official_count == 3
        assert data.customized_count == 1
        assert data.distribution == {"cough": 2, "fever": 1, "headache": 1}

    async def test_behavior_data(self, fake_db, aggregator):
        await seed_report(fake_db, "behaviorReport", "a1", TODAY + 1,
                          official_behaviors=["wear_mask", "clean_hand"], customized_behaviors=["yoga"])

        data = await aggregator.behavior_data(CENTER, 1000, TODAY, TOMORROW)
        assert data.user_count == 1
        assert data.report_count == 1
        assert data.official_weight == 2
        assert data.customized_weight == 1


class TestAcknowledgements:
    async def test_personal_count_uses_profile_timezone(self, fake_db, aggregator):
        await seed_profile(fake_db, "a1", timezone_name="GMT+8")
        # 2020-05-20 17:00 UTC is 2020-05-21 01:00 local → "today" locally
        late = int(datetime(2020, 5, 20, 17, 0, tzinfo=timezone.utc).timestamp())
        await seed_report(fake_db, "symptomReport", "a1", late)
        # 2020-05-20 10:00 UTC is 18:00 local on the 20th → "yesterday" locally
        earlier = int(datetime(2020, 5, 20, 10, 0, tzinfo=timezone.utc).timestamp())
        await seed_report(fake_db, "symptomReport", "a1", earlier)

        now = datetime(2020, 5, 20, 18, 0, tzinfo=timezone.utc)
        assert await aggregator.personal_report_count("symptom", "a1", now) == (1, 1)

    async def test_personal_count_unknown_profile(self, aggregator):
        assert await aggregator.personal_report_count("symptom", "ghost", FIXED_NOW) is None

    async def test_community_average(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 1)
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 2)
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 3)
        await seed_report(fake_db, "symptomReport", "a2", TODAY + 4)
        await seed_report(fake_db, "symptomReport", "a2", YESTERDAY + 4)

        today, yesterday = await aggregator.community_avg_report_count("symptom", CENTER, 1000, FIXED_NOW)
        assert today == 2.0
        assert yesterday == 1.0

    async def test_community_average_empty(self, aggregator):
        assert await aggregator.community_avg_report_count("behavior", CENTER, 1000, FIXED_NOW) == (0.0, 0.0)

    async def test_last_report(self, fake_db, aggregator):
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 5, official_symptoms=["cough"])
        await seed_report(fake_db, "symptomReport", "a1", TODAY + 50, official_symptoms=["fever"])

        last = await aggregator.last_report("symptom", "a1")
        assert last["official_symptoms"] == ["fever"]
        assert await aggregator.last_report("symptom", "a2") is None
