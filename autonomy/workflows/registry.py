"""
registry.py — Wires workflows and activities into a WorkflowRuntime.

Both processes call build_runtime() after connecting to MongoDB. The API
process keeps its runtime in `runtime_client` so routes can signal loops
through the get_runtime dependency.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from autonomy.core.geo import utc_now
from autonomy.core.i18n import Bundle
from autonomy.external.onesignal import OneSignalClient, onesignal_client
from autonomy.services.notifier import NotificationCenter
from autonomy.workflows import triggers
from autonomy.workflows.help import activities as help_activities
from autonomy.workflows.help import workflows as help_workflows
from autonomy.workflows.nudge import activities as nudge_activities
from autonomy.workflows.nudge import workflows as nudge_workflows
from autonomy.workflows.runtime import WorkflowRuntime
from autonomy.workflows.score import activities as score_activities
from autonomy.workflows.score import workflows as score_workflows

logger = logging.getLogger(__name__)


def build_runtime(
    db,
    client: Optional[OneSignalClient] = None,
    bundle: Optional[Bundle] = None,
    clock: Callable[[], datetime] = utc_now,
    concurrency: Optional[int] = None,
) -> WorkflowRuntime:
    notifier = NotificationCenter(client or onesignal_client)
    runtime = WorkflowRuntime(concurrency=concurrency)

    score = score_activities.ScoreActivities(db, notifier, clock=clock)
    runtime.register_activity(score_activities.CALCULATE_ACCOUNT_STATE, score.calculate_account_state)
    runtime.register_activity(score_activities.CALCULATE_POI_STATE, score.calculate_poi_state)
    runtime.register_activity(score_activities.REFRESH_LOCATION_STATE, score.refresh_location_state)
    runtime.register_activity(score_activities.CHECK_LOCATION_SPIKE, score.check_location_spike)
    runtime.register_activity(score_activities.NOTIFY_LOCATION_STATE, score.notify_location_state)

    nudge = nudge_activities.NudgeActivities(db, notifier, bundle=bundle, clock=clock)
    runtime.register_activity(nudge_activities.SYMPTOMS_NEED_FOLLOW_UP, nudge.symptoms_need_follow_up)
    runtime.register_activity(nudge_activities.NOTIFY_SYMPTOM_FOLLOW_UP, nudge.notify_symptom_follow_up)
    runtime.register_activity(nudge_activities.HIGH_RISK_FOLLOW_UP_NEEDED, nudge.high_risk_follow_up_needed)
    runtime.register_activity(nudge_activities.NOTIFY_HIGH_RISK_FOLLOW_UP, nudge.notify_high_risk_follow_up)
    runtime.register_activity(nudge_activities.NOTIFY_SYMPTOM_SPIKE, nudge.notify_symptom_spike)
    runtime.register_activity(nudge_activities.NOTIFY_BEHAVIOR_ON_RISK_AREA, nudge.notify_behavior_on_risk_area)
    runtime.register_activity(
        nudge_activities.NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE, nudge.notify_behavior_on_symptom_spike,
    )

    helps = help_activities.HelpActivities(db, notifier, clock=clock)
    runtime.register_activity(help_activities.BROADCAST_NEW_HELP, helps.broadcast_new_help)
    runtime.register_activity(help_activities.NOTIFY_HELP_ACCEPTED, helps.notify_help_accepted)
    runtime.register_activity(help_activities.EXPIRE_HELP_REQUESTS, helps.expire_help_requests)

    runtime.register_workflow(triggers.ACCOUNT_STATE_WORKFLOW, score_workflows.account_state_workflow)
    runtime.register_workflow(triggers.POI_STATE_WORKFLOW, score_workflows.poi_state_workflow)
    runtime.register_workflow(triggers.SYMPTOM_FOLLOW_UP_WORKFLOW, nudge_workflows.symptom_follow_up_workflow)
    runtime.register_workflow(triggers.HIGH_RISK_FOLLOW_UP_WORKFLOW, nudge_workflows.high_risk_follow_up_workflow)
    runtime.register_workflow(
        triggers.NOTIFY_SYMPTOM_SPIKE_WORKFLOW, nudge_workflows.notify_symptom_spike_workflow,
    )
    runtime.register_workflow(
        triggers.NOTIFY_BEHAVIOR_ON_RISK_AREA_WORKFLOW, nudge_workflows.notify_behavior_on_risk_area_workflow,
    )
    runtime.register_workflow(
        triggers.NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE_WORKFLOW, nudge_workflows.notify_behavior_on_symptom_spike_workflow,
    )
    runtime.register_workflow(triggers.BROADCAST_NEW_HELP_WORKFLOW, help_workflows.broadcast_new_help_workflow)
    runtime.register_workflow(triggers.NOTIFY_HELP_ACCEPTED_WORKFLOW, help_workflows.notify_help_accepted_workflow)
    runtime.register_workflow(triggers.HELP_EXPIRY_WORKFLOW, help_workflows.help_expiry_workflow)

    logger.info("Workflow runtime ready")
    return runtime


class RuntimeHolder:
    """Holds the API process runtime (None when MongoDB is unavailable)."""

    runtime: WorkflowRuntime | None = None


# Module-level singleton: routes reach it through get_runtime()
runtime_client = RuntimeHolder()


def get_runtime() -> WorkflowRuntime | None:
    """FastAPI dependency — the in-process runtime, or None in degraded mode."""
    return runtime_client.runtime
