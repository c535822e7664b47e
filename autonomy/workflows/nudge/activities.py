"""
Nudge activities: time-of-day policy, cooldowns and message formatting.

Follow-up windows are evaluated in the profile's own timezone:

  morning    08:00–12:00   no nudge of this kind since 08:00 today
  afternoon  13:00–17:00   the last nudge of this kind was this morning

Messages are rendered in every push vendor language from the i18n bundle,
keyed by vendor code ("en", "zh-Hant").
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from autonomy.core.config import settings
from autonomy.core.errors import StopRenew
from autonomy.core.geo import account_timezone, start_of_day, utc_now
from autonomy.core.i18n import VENDOR_LANGUAGE_CODES, Bundle
from autonomy.core.i18n import bundle as default_bundle
from autonomy.models.catalog import Symptom
from autonomy.models.notification import NotificationType
from autonomy.models.profile import NudgeKind, Profile
from autonomy.models.report import ReportKind
from autonomy.services.catalog import SymptomCatalog
from autonomy.services.notifier import NotificationCenter
from autonomy.services.spatial import SpatialAggregator
from autonomy.services.state_store import StateStore

logger = logging.getLogger(__name__)

SYMPTOMS_NEED_FOLLOW_UP = "SymptomsNeedFollowUpActivity"
NOTIFY_SYMPTOM_FOLLOW_UP = "NotifySymptomFollowUpActivity"
HIGH_RISK_FOLLOW_UP_NEEDED = "HighRiskFollowUpNeededActivity"
NOTIFY_HIGH_RISK_FOLLOW_UP = "NotifyHighRiskFollowUpActivity"
NOTIFY_SYMPTOM_SPIKE = "NotifySymptomSpikeActivity"
NOTIFY_BEHAVIOR_ON_RISK_AREA = "NotifyBehaviorOnRiskAreaActivity"
NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE = "NotifyBehaviorOnSymptomSpikeActivity"

SYMPTOM_FOLLOW_UP_EXPIRY = timedelta(hours=24)

MORNING = (8, 12)
AFTERNOON = (13, 17)


def current_window(local_now: datetime) -> Optional[tuple[int, int]]:
    """The nudge window containing *local_now*, or None outside both."""
    for window in (MORNING, AFTERNOON):
        if window[0] <= local_now.hour < window[1]:
            return window
    return None


# ── Message formatting ────────────────────────────────────────────────────────

def comma_separated_symptoms(bundle: Bundle, lang: str, symptoms: list[Symptom]) -> str:
    names = []
    for symptom in symptoms:
        try:
            names.append(bundle.localize(lang, f"symptoms.{symptom.id}.name"))
        except KeyError:
            names.append(symptom.name or symptom.id)
    return ", ".join(names)


def localized_message(
    bundle: Bundle, key: str, symptoms: Optional[list[Symptom]] = None,
) -> tuple[dict[str, str], dict[str, str]]:
    """(headings, contents) for `notification.{key}` keyed by vendor language code."""
    headings, contents = {}, {}
    for vendor_code, lang in VENDOR_LANGUAGE_CODES.items():
        variables = None
        if symptoms is not None:
            variables = {"Symptoms": comma_separated_symptoms(bundle, lang, symptoms)}
        headings[vendor_code] = bundle.localize(lang, f"notification.{key}.heading")
        contents[vendor_code] = bundle.localize(lang, f"notification.{key}.content", variables)
    return headings, contents


# ── Activities ────────────────────────────────────────────────────────────────

class NudgeActivities:
    def __init__(
        self,
        db,
        notifier: NotificationCenter,
        store: Optional[StateStore] = None,
        aggregator: Optional[SpatialAggregator] = None,
        catalog: Optional[SymptomCatalog] = None,
        bundle: Optional[Bundle] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.notifier = notifier
        self.store = store or StateStore(db)
        self.aggregator = aggregator or SpatialAggregator(db)
        self.catalog = catalog or SymptomCatalog(db)
        self.bundle = bundle or default_bundle
        self.clock = clock

    async def _send(
        self, account_number: str, key: str, payload: dict[str, Any], symptoms: Optional[list[Symptom]] = None,
    ) -> None:
        headings, contents = localized_message(self.bundle, key, symptoms)
        await self.notifier.notify_account_text(account_number, headings, contents, payload)

    async def _symptoms(self, ids: list[str]) -> list[Symptom]:
        official, customized, not_found = await self.catalog.ids_to_symptoms(ids)
        return official + customized + [Symptom(id=i, name=i) for i in not_found]

    # ── Symptom follow-up ─────────────────────────────────────────────────────

    async def symptoms_need_follow_up(self, account_number: str) -> list[Symptom]:
        """Symptoms of yesterday's report when a follow-up is due now, else []."""
        profile = await self.store.require_profile(account_number)
        tz = account_timezone(profile.timezone)
        now = self.clock()
        local_now = now.astimezone(tz)
        today = int(start_of_day(now, tz).timestamp())

        report = await self.aggregator.last_report(ReportKind.SYMPTOM, account_number)
        if report is None:
            return []

        # only reports from yesterday (local) are followed up
        report_age = today - report["ts"]
        if not 0 < report_age < SYMPTOM_FOLLOW_UP_EXPIRY.total_seconds():
            return []

        last_nudge = profile.last_nudged(NudgeKind.SYMPTOM_FOLLOW_UP)
        since_today = last_nudge - today
        hour = local_now.hour
        morning = since_today < 8 * 3600 and MORNING[0] <= hour < MORNING[1]
        afternoon = 8 * 3600 <= since_today < 12 * 3600 and AFTERNOON[0] <= hour < AFTERNOON[1]
        logger.info(
            "Follow-up check account=%s last_nudge_since_today=%ss hour=%s", account_number, since_today, hour,
        )
        if not (morning or afternoon):
            return []

        ids = list(report.get("official_symptoms") or []) + list(report.get("customized_symptoms") or [])
        return await self._symptoms(ids)

    async def notify_symptom_follow_up(self, account_number: str, symptoms: list[Symptom]) -> None:
        logger.info("Follow up symptoms account=%s symptoms=%s", account_number, [s.id for s in symptoms])
        await self._send(account_number, "symptom_follow_up", {
            "notification_type": NotificationType.ACCOUNT_SYMPTOM_FOLLOW_UP.value,
            "symptoms": [s.id for s in symptoms],
        }, symptoms)
        await self.store.record_nudge(account_number, NudgeKind.SYMPTOM_FOLLOW_UP, int(self.clock().timestamp()))

    # ── Self-reported high risk ───────────────────────────────────────────────

    async def high_risk_follow_up_needed(self, account_number: str) -> bool:
        report = await self.aggregator.last_report(ReportKind.SYMPTOM, account_number)
        if report is None:
            raise StopRenew(f"account {account_number} never reported symptoms")

        profile = await self.store.require_profile(account_number)
        now = self.clock()
        if now.timestamp() - report["ts"] > settings.high_risk_lookback_hours * 3600:
            return False

        tz = account_timezone(profile.timezone)
        window = current_window(now.astimezone(tz))
        if window is None:
            return False

        window_start = start_of_day(now, tz) + timedelta(hours=window[0])
        return profile.last_nudged(NudgeKind.BEHAVIOR_ON_HIGH_RISK) < window_start.timestamp()

    async def notify_high_risk_follow_up(self, account_number: str) -> None:
        await self._send(account_number, "behavior_on_high_risk", {
            "notification_type": NotificationType.BEHAVIOR_REPORT_ON_RISK_AREA.value,
        })
        await self.store.record_nudge(account_number, NudgeKind.BEHAVIOR_ON_HIGH_RISK, int(self.clock().timestamp()))

    # ── Score loop children ───────────────────────────────────────────────────

    async def notify_symptom_spike(self, account_number: str, poi_id: str, symptoms: list[Symptom]) -> None:
        payload: dict[str, Any] = {
            "notification_type": NotificationType.ACCOUNT_SYMPTOM_SPIKE.value,
            "symptoms": [s.id for s in symptoms],
        }
        if poi_id:
            payload["poi_id"] = poi_id
        await self._send(account_number, "symptom_spike", payload, symptoms)

    async def notify_behavior_on_risk_area(self, account_number: str) -> None:
        await self._send(account_number, "behavior_on_risk_area", {
            "notification_type": NotificationType.BEHAVIOR_REPORT_ON_RISK_AREA.value,
        })

    async def notify_behavior_on_symptom_spike(self, account_number: str) -> bool:
        """Send unless another reminder went out within the cooldown; True if sent."""
        profile: Profile = await self.store.require_profile(account_number)
        now_ts = int(self.clock().timestamp())
        cooldown = settings.symptom_spike_nudge_cooldown_minutes * 60
        if now_ts - profile.last_nudged(NudgeKind.BEHAVIOR_ON_SYMPTOM_SPIKE) <= cooldown:
            logger.info("Behavior reminder in cooldown account=%s", account_number)
            return False

        await self._send(account_number, "behavior_on_symptom_spike", {
            "notification_type": NotificationType.BEHAVIOR_REPORT_ON_RISK_AREA.value,
        })
        await self.store.record_nudge(account_number, NudgeKind.BEHAVIOR_ON_SYMPTOM_SPIKE, now_ts)
        return True
