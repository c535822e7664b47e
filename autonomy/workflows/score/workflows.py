"""
Score loops: one per account (`account-state-{acc}`) and one per POI
(`poi-state-{poi}`).

Each run parks on a selector (timer vs. check signal), refreshes the
entity's metric, dispatches whatever the refresh classified and then
continues as new. Any failure ends the iteration early; the next run
retries from scratch.
"""

import logging

from autonomy.core.config import settings
from autonomy.core.errors import InvariantViolation
from autonomy.core.reporting import report_exception
from autonomy.models.metric import Metric
from autonomy.workflows.runtime import ActivityOptions, WorkflowContext
from autonomy.workflows.score.activities import (
    CALCULATE_ACCOUNT_STATE,
    CALCULATE_POI_STATE,
    CHECK_LOCATION_SPIKE,
    NOTIFY_LOCATION_STATE,
    REFRESH_LOCATION_STATE,
    NotificationProfile,
)
from autonomy.workflows.triggers import (
    ACCOUNT_CHECK_SIGNAL,
    NOTIFY_BEHAVIOR_ON_RISK_AREA_WORKFLOW,
    NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE_WORKFLOW,
    NOTIFY_SYMPTOM_SPIKE_WORKFLOW,
    POI_CHECK_SIGNAL,
    risk_area_nudge_id,
    symptom_spike_area_nudge_id,
    symptom_spike_nudge_id,
)

logger = logging.getLogger(__name__)

# A failed send is not retried inside the iteration: a partial retry could
# deliver the same transition twice.
NOTIFY_OPTIONS = ActivityOptions(max_attempts=1)


async def _calculate(ctx: WorkflowContext, activity: str, entity: str) -> Metric | None:
    try:
        return await ctx.execute_activity(activity, entity)
    except InvariantViolation as exc:
        logger.info("Skip state update workflow=%s reason=%s", ctx.workflow_id, exc)
    except Exception as exc:
        logger.error("Fail to calculate state workflow=%s error=%s", ctx.workflow_id, exc)
        report_exception(exc)
    return None


async def _dispatch(ctx: WorkflowContext, account_number: str, poi_id: str, metric: Metric,
                    notification: NotificationProfile) -> None:
    if notification.state_changed_accounts:
        try:
            await ctx.execute_activity(
                NOTIFY_LOCATION_STATE, poi_id, notification.state_changed_accounts, options=NOTIFY_OPTIONS,
            )
        except Exception as exc:
            logger.error("Fail to notify users for location state workflow=%s error=%s", ctx.workflow_id, exc)
            report_exception(exc)

    spike_list = metric.details.symptoms.last_spike_list
    if notification.symptoms_spike_accounts and spike_list:
        try:
            symptoms = await ctx.execute_activity(CHECK_LOCATION_SPIKE, spike_list)
        except Exception as exc:
            logger.error("Fail to get symptom spike workflow=%s error=%s", ctx.workflow_id, exc)
            report_exception(exc)
        else:
            for account in notification.symptoms_spike_accounts:
                await _child(
                    ctx, symptom_spike_nudge_id(account, poi_id), NOTIFY_SYMPTOM_SPIKE_WORKFLOW,
                    account, poi_id, symptoms,
                )

    if notification.report_risk_area:
        await _child(ctx, risk_area_nudge_id(account_number), NOTIFY_BEHAVIOR_ON_RISK_AREA_WORKFLOW, account_number)

    if notification.remind_good_behavior:
        await _child(
            ctx, symptom_spike_area_nudge_id(account_number), NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE_WORKFLOW,
            account_number,
        )


async def _child(ctx: WorkflowContext, workflow_id: str, name: str, *args) -> None:
    try:
        await ctx.start_child_workflow(workflow_id, name, *args)
    except Exception as exc:
        logger.error("%s failed workflow=%s error=%s", name, workflow_id, exc)


# ── Loops ─────────────────────────────────────────────────────────────────────

async def account_state_workflow(ctx: WorkflowContext, account_number: str) -> None:
    fired = await ctx.select_timer_or_signal(settings.score_check_interval_seconds, ACCOUNT_CHECK_SIGNAL)
    logger.info("Check account state account=%s trigger=%s", account_number, fired)

    metric = await _calculate(ctx, CALCULATE_ACCOUNT_STATE, account_number)
    if metric is None:
        ctx.continue_as_new(account_number)

    try:
        notification = await ctx.execute_activity(REFRESH_LOCATION_STATE, account_number, "", metric)
    except Exception as exc:
        logger.error("Fail to update account state account=%s error=%s", account_number, exc)
        report_exception(exc)
        ctx.continue_as_new(account_number)

    await _dispatch(ctx, account_number, "", metric, notification)
    ctx.continue_as_new(account_number)


async def poi_state_workflow(ctx: WorkflowContext, poi_id: str) -> None:
    fired = await ctx.select_timer_or_signal(settings.score_check_interval_seconds, POI_CHECK_SIGNAL)
    logger.info("Check poi state poi=%s trigger=%s", poi_id, fired)

    metric = await _calculate(ctx, CALCULATE_POI_STATE, poi_id)
    if metric is None:
        ctx.continue_as_new(poi_id)

    try:
        notification = await ctx.execute_activity(REFRESH_LOCATION_STATE, "", poi_id, metric)
    except Exception as exc:
        logger.error("Fail to update poi state poi=%s error=%s", poi_id, exc)
        report_exception(exc)
        ctx.continue_as_new(poi_id)

    # POI loops only notify state changes and spikes; the per-account
    # nudges belong to the account's own loop
    notification.report_risk_area = False
    notification.remind_good_behavior = False
    await _dispatch(ctx, "", poi_id, metric, notification)
    ctx.continue_as_new(poi_id)
