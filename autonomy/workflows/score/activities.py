"""
Score loop activities.

Each activity is one retryable step of a score loop iteration:

  CalculateAccountStateActivity / CalculatePOIStateActivity
      location → candidate Metric (no writes)
  RefreshLocationStateActivity
      compare the candidate with what is persisted, decide who to notify,
      then persist it
  CheckLocationSpikeActivity
      spike ids → symptom descriptors for message formatting
  NotifyLocationStateActivity
      risk-level-changed template to the state-change recipients

Invariant skips (no location, refreshed less than MIN_UPDATE_INTERVAL ago)
are raised as InvariantViolation subclasses and never retried.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, Field

from autonomy.core.config import settings
from autonomy.core.errors import InvalidLocationError, NotFoundError, TooFrequentUpdateError
from autonomy.core.geo import account_timezone, same_local_day, utc_now
from autonomy.models.catalog import Symptom
from autonomy.models.metric import Metric
from autonomy.models.notification import NotificationType
from autonomy.models.poi import POIRefresh
from autonomy.models.profile import NudgeKind, Profile
from autonomy.services.catalog import SymptomCatalog
from autonomy.services.metrics import MetricCollector
from autonomy.services.notifier import NotificationCenter
from autonomy.services.scoring import Band, band, band_changed
from autonomy.services.spatial import SpatialAggregator
from autonomy.services.state_store import StateStore

logger = logging.getLogger(__name__)

CALCULATE_ACCOUNT_STATE = "CalculateAccountStateActivity"
CALCULATE_POI_STATE = "CalculatePOIStateActivity"
REFRESH_LOCATION_STATE = "RefreshLocationStateActivity"
CHECK_LOCATION_SPIKE = "CheckLocationSpikeActivity"
NOTIFY_LOCATION_STATE = "NotifyLocationStateActivity"


class NotificationProfile(BaseModel):
    """Summary of how the notifications of one refresh are delivered."""

    state_changed_accounts: list[str] = Field(default_factory=list)
    symptoms_spike_accounts: list[str] = Field(default_factory=list)
    report_risk_area: bool = False
    remind_good_behavior: bool = False


# ── Classification ────────────────────────────────────────────────────────────

def is_spike_recipient(previous: Metric, current: Metric, now_ts: int, tz) -> bool:
    """
    A spike is news when the current list is non-empty and either the last
    notified spike was on an earlier local day, or today's list strictly
    extends it.
    """
    current_spikes = set(current.details.symptoms.last_spike_list)
    if not current_spikes:
        return False

    previous_update = previous.details.symptoms.last_spike_update
    if not previous_update or not same_local_day(previous_update, now_ts, tz):
        return True
    return current_spikes > set(previous.details.symptoms.last_spike_list)


def is_state_changed(previous: Metric, current: Metric) -> bool:
    # a never-scored entity has nothing to change from
    return previous.last_update != 0 and band_changed(previous.score, current.score)


def entered_risk_area(previous: Metric, current: Metric) -> bool:
    return (
        previous.last_update != 0
        and band(previous.score) == Band.GREEN
        and band(current.score) != Band.GREEN
    )


def entered_symptom_spike_area(previous: Metric, current: Metric) -> bool:
    return current.symptom_delta > 0 and current.symptom_delta > previous.symptom_delta


def nudge_cooled_down(profile: Profile, kind: NudgeKind, now_ts: int, cooldown_seconds: float) -> bool:
    return now_ts - profile.last_nudged(kind) > cooldown_seconds


# ── Activities ────────────────────────────────────────────────────────────────

class ScoreActivities:
    def __init__(
        self,
        db,
        notifier: NotificationCenter,
        store: Optional[StateStore] = None,
        collector: Optional[MetricCollector] = None,
        catalog: Optional[SymptomCatalog] = None,
        aggregator: Optional[SpatialAggregator] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.notifier = notifier
        self.store = store or StateStore(db)
        self.aggregator = aggregator or SpatialAggregator(db)
        self.collector = collector or MetricCollector(db, self.aggregator)
        self.catalog = catalog or SymptomCatalog(db)
        self.clock = clock

    def _check_interval(self, metric: Metric, now: datetime) -> None:
        if metric.last_update and now.timestamp() - metric.last_update < settings.min_update_interval_seconds:
            raise TooFrequentUpdateError()

    async def calculate_account_state(self, account_number: str) -> Metric:
        profile = await self.store.require_profile(account_number)
        if profile.location is None:
            raise InvalidLocationError()

        now = self.clock()
        self._check_interval(profile.metric, now)

        logger.info("Calculate account state account=%s", account_number)
        return await self.collector.calculate(profile.location, now)

    async def calculate_poi_state(self, poi_id: str) -> Metric:
        poi = await self.store.get_poi(poi_id)
        if poi is None:
            raise NotFoundError(f"poi {poi_id} not found")
        if poi.location is None:
            raise InvalidLocationError()

        now = self.clock()
        self._check_interval(poi.metric, now)

        logger.info("Calculate poi state poi=%s", poi_id)
        return await self.collector.calculate(poi.location, now)

    async def refresh_location_state(
        self, account_number: str, poi_id: str, metric: Metric,
    ) -> NotificationProfile:
        """Classify *metric* against the persisted one, then persist it."""
        if poi_id:
            result = await self._refresh_poi(poi_id, metric)
        else:
            result = await self._refresh_account(account_number, metric)

        logger.debug(
            "Finish state refreshing account=%s poi=%s state_changed=%s spike=%s",
            account_number, poi_id, result.state_changed_accounts, result.symptoms_spike_accounts,
        )
        return result

    async def _refresh_account(self, account_number: str, metric: Metric) -> NotificationProfile:
        profile = await self.store.require_profile(account_number)
        previous = profile.metric
        now_ts = int(self.clock().timestamp())
        tz = account_timezone(profile.timezone)

        result = NotificationProfile()
        if is_state_changed(previous, metric):
            logger.debug("State color changed account=%s old=%s new=%s", account_number, previous.score, metric.score)
            result.state_changed_accounts.append(account_number)
        if is_spike_recipient(previous, metric, now_ts, tz):
            result.symptoms_spike_accounts.append(account_number)

        result.report_risk_area = entered_risk_area(previous, metric)
        cooldown = settings.symptom_spike_nudge_cooldown_minutes * 60
        result.remind_good_behavior = entered_symptom_spike_area(previous, metric) and nudge_cooled_down(
            profile, NudgeKind.BEHAVIOR_ON_SYMPTOM_SPIKE, now_ts, cooldown,
        )

        await self.store.update_profile_metric(account_number, metric)
        return result

    async def _refresh_poi(self, poi_id: str, metric: Metric) -> NotificationProfile:
        poi = await self.store.get_poi(poi_id)
        if poi is None:
            raise NotFoundError(f"poi {poi_id} not found")
        followers = await self.aggregator.profiles_by_poi(poi_id)

        refresh = poi.last_refresh
        if refresh is not None and refresh.last_update == metric.last_update:
            # an earlier attempt committed this metric; its snapshots may be partly written
            logger.info("Resume poi refresh poi=%s last_update=%s", poi_id, metric.last_update)
        else:
            refresh = self._classify_followers(poi_id, followers, metric)
            await self.store.update_poi_metric(poi_id, metric, refresh)

        for profile in followers:
            await self.store.update_profile_poi_metric(profile.account_number, poi_id, metric)

        return NotificationProfile(
            state_changed_accounts=refresh.state_changed_accounts,
            symptoms_spike_accounts=refresh.symptoms_spike_accounts,
        )

    def _classify_followers(self, poi_id: str, followers: list[Profile], metric: Metric) -> POIRefresh:
        """Compare *metric* with every follower's own snapshot of the POI."""
        now_ts = int(self.clock().timestamp())
        refresh = POIRefresh(last_update=metric.last_update)
        for profile in followers:
            snapshot = profile.poi(poi_id)
            previous = snapshot.metric if snapshot else Metric()
            tz = account_timezone(profile.timezone)

            if is_state_changed(previous, metric):
                refresh.state_changed_accounts.append(profile.account_number)
            if is_spike_recipient(previous, metric, now_ts, tz):
                refresh.symptoms_spike_accounts.append(profile.account_number)
        return refresh

    async def check_location_spike(self, spike_list: list[str]) -> list[Symptom]:
        if not spike_list:
            return []
        official, customized, not_found = await self.catalog.ids_to_symptoms(spike_list)
        return official + customized + [Symptom(id=i, name=i) for i in not_found]

    async def notify_location_state(self, poi_id: str, accounts: list[str]) -> None:
        if not accounts:
            logger.warning("Send notification without accounts")
            return

        payload = {"notification_type": NotificationType.RISK_LEVEL_CHANGED.value}
        if poi_id:
            payload["poi_id"] = poi_id
            template = settings.onesignal_template_saved_location_status_change
        else:
            template = settings.onesignal_template_new_location_status_change
        await self.notifier.notify_accounts(accounts, template, payload)
