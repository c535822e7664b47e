"""
Nudge loops and the one-shot nudge workflows the score loops start.

  SymptomFollowUpWorkflow                       hourly, per account
  AccountSelfReportedHighRiskFollowUpWorkflow   every 30 min, ends with StopRenew
  NotifySymptomSpikeWorkflow                    one send
  NotifyBehaviorOnEnteringRiskAreaWorkflow      one send
  NotifyBehaviorFollowUpOnEnteringSymptomSpikeAreaWorkflow
                                                one send, 90 min cooldown

Loops end when their account no longer exists.
"""

import logging

from autonomy.core.config import settings
from autonomy.core.errors import NotFoundError, StopRenew
from autonomy.core.reporting import report_exception
from autonomy.models.catalog import Symptom
from autonomy.workflows.nudge.activities import (
    HIGH_RISK_FOLLOW_UP_NEEDED,
    NOTIFY_BEHAVIOR_ON_RISK_AREA,
    NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE,
    NOTIFY_HIGH_RISK_FOLLOW_UP,
    NOTIFY_SYMPTOM_FOLLOW_UP,
    NOTIFY_SYMPTOM_SPIKE,
    SYMPTOMS_NEED_FOLLOW_UP,
)
from autonomy.workflows.runtime import WorkflowContext
from autonomy.workflows.score.workflows import NOTIFY_OPTIONS

logger = logging.getLogger(__name__)


async def symptom_follow_up_workflow(ctx: WorkflowContext, account_number: str) -> None:
    await ctx.sleep(settings.symptom_follow_up_interval_seconds)
    logger.info("Check symptoms for following up account=%s", account_number)

    try:
        symptoms = await ctx.execute_activity(SYMPTOMS_NEED_FOLLOW_UP, account_number)
    except NotFoundError as exc:
        raise StopRenew(str(exc))
    except Exception as exc:
        logger.error("Fail to check symptoms account=%s error=%s", account_number, exc)
        report_exception(exc)
        ctx.continue_as_new(account_number)

    if symptoms:
        try:
            await ctx.execute_activity(NOTIFY_SYMPTOM_FOLLOW_UP, account_number, symptoms, options=NOTIFY_OPTIONS)
        except Exception as exc:
            logger.error("Fail to notify user account=%s error=%s", account_number, exc)
            report_exception(exc)

    ctx.continue_as_new(account_number)


async def high_risk_follow_up_workflow(ctx: WorkflowContext, account_number: str) -> None:
    await ctx.sleep(settings.high_risk_follow_up_interval_seconds)

    try:
        needed = await ctx.execute_activity(HIGH_RISK_FOLLOW_UP_NEEDED, account_number)
    except StopRenew:
        raise
    except NotFoundError as exc:
        raise StopRenew(str(exc))
    except Exception as exc:
        logger.error("Fail to check high risk follow-up account=%s error=%s", account_number, exc)
        report_exception(exc)
        ctx.continue_as_new(account_number)

    if needed:
        try:
            await ctx.execute_activity(NOTIFY_HIGH_RISK_FOLLOW_UP, account_number, options=NOTIFY_OPTIONS)
        except Exception as exc:
            logger.error("Fail to send high risk follow-up account=%s error=%s", account_number, exc)
            report_exception(exc)

    ctx.continue_as_new(account_number)


# ── One-shot children ─────────────────────────────────────────────────────────

async def notify_symptom_spike_workflow(
    ctx: WorkflowContext, account_number: str, poi_id: str, symptoms: list[Symptom],
) -> None:
    await ctx.execute_activity(NOTIFY_SYMPTOM_SPIKE, account_number, poi_id, symptoms, options=NOTIFY_OPTIONS)


async def notify_behavior_on_risk_area_workflow(ctx: WorkflowContext, account_number: str) -> None:
    await ctx.execute_activity(NOTIFY_BEHAVIOR_ON_RISK_AREA, account_number, options=NOTIFY_OPTIONS)


async def notify_behavior_on_symptom_spike_workflow(ctx: WorkflowContext, account_number: str) -> bool:
    return await ctx.execute_activity(NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE, account_number, options=NOTIFY_OPTIONS)
