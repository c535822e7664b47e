"""
triggers.py — Workflow names, ids and the helpers that start / signal them.

Every entity owns exactly one loop per concern, keyed by a stable id:

  account-state-{acc}                  AccountStateWorkflow
  poi-state-{poi}                      POIStateWorkflow
  symptom-follow-up-{acc}              SymptomFollowUpWorkflow
  account-high-risk-follow-up-{acc}    AccountSelfReportedHighRiskFollowUpWorkflow
  help-expiry                          ExpireHelpRequestsWorkflow
  help-broadcast-{help}                BroadcastNewHelpWorkflow
  help-accepted-{help}                 NotifyHelpAcceptedWorkflow

Starting a running id is a no-op, so these helpers are safe to call on
every request.
"""

import logging
from typing import Iterable, Optional

from autonomy.workflows.runtime import WorkflowRuntime

logger = logging.getLogger(__name__)

# ── Workflow names ────────────────────────────────────────────────────────────

ACCOUNT_STATE_WORKFLOW = "AccountStateWorkflow"
POI_STATE_WORKFLOW = "POIStateWorkflow"
SYMPTOM_FOLLOW_UP_WORKFLOW = "SymptomFollowUpWorkflow"
HIGH_RISK_FOLLOW_UP_WORKFLOW = "AccountSelfReportedHighRiskFollowUpWorkflow"
NOTIFY_SYMPTOM_SPIKE_WORKFLOW = "NotifySymptomSpikeWorkflow"
NOTIFY_BEHAVIOR_ON_RISK_AREA_WORKFLOW = "NotifyBehaviorOnEnteringRiskAreaWorkflow"
NOTIFY_BEHAVIOR_ON_SYMPTOM_SPIKE_WORKFLOW = "NotifyBehaviorFollowUpOnEnteringSymptomSpikeAreaWorkflow"
BROADCAST_NEW_HELP_WORKFLOW = "BroadcastNewHelpWorkflow"
NOTIFY_HELP_ACCEPTED_WORKFLOW = "NotifyHelpAcceptedWorkflow"
HELP_EXPIRY_WORKFLOW = "ExpireHelpRequestsWorkflow"

HELP_EXPIRY_ID = "help-expiry"

# ── Signals ───────────────────────────────────────────────────────────────────

ACCOUNT_CHECK_SIGNAL = "accountCheckSignal"
POI_CHECK_SIGNAL = "poiCheckSignal"


# ── Ids ───────────────────────────────────────────────────────────────────────

def account_state_id(account_number: str) -> str:
    return f"account-state-{account_number}"


def poi_state_id(poi_id: str) -> str:
    return f"poi-state-{poi_id}"


def symptom_follow_up_id(account_number: str) -> str:
    return f"symptom-follow-up-{account_number}"


def high_risk_follow_up_id(account_number: str) -> str:
    return f"account-high-risk-follow-up-{account_number}"


def symptom_spike_nudge_id(account_number: str, poi_id: Optional[str] = None) -> str:
    if poi_id:
        return f"poi-{poi_id}-nudge-symptom-spike-{account_number}"
    return f"account-nudge-symptom-spike-{account_number}"


def risk_area_nudge_id(account_number: str) -> str:
    return f"account-nudge-behavior-on-risk-area-{account_number}"


def symptom_spike_area_nudge_id(account_number: str) -> str:
    return f"account-nudge-behavior-on-symptom-spike-{account_number}"


def help_broadcast_id(help_id: str) -> str:
    return f"help-broadcast-{help_id}"


def help_accepted_id(help_id: str) -> str:
    return f"help-accepted-{help_id}"


# ── Triggers ──────────────────────────────────────────────────────────────────

async def trigger_account_update(runtime: WorkflowRuntime, accounts: Iterable[str]) -> None:
    """Signal (starting if needed) the score loop of every account."""
    for account_number in dict.fromkeys(accounts):
        await runtime.signal_with_start(
            account_state_id(account_number), ACCOUNT_CHECK_SIGNAL, ACCOUNT_STATE_WORKFLOW, account_number,
        )


async def trigger_poi_update(runtime: WorkflowRuntime, poi_ids: Iterable[str]) -> None:
    for poi_id in dict.fromkeys(poi_ids):
        await runtime.signal_with_start(poi_state_id(poi_id), POI_CHECK_SIGNAL, POI_STATE_WORKFLOW, poi_id)


async def trigger_symptom_follow_up(runtime: WorkflowRuntime, account_number: str) -> bool:
    return await runtime.start_workflow(
        symptom_follow_up_id(account_number), SYMPTOM_FOLLOW_UP_WORKFLOW, account_number,
    )


async def trigger_high_risk_follow_up(runtime: WorkflowRuntime, account_number: str) -> bool:
    started = await runtime.start_workflow(
        high_risk_follow_up_id(account_number), HIGH_RISK_FOLLOW_UP_WORKFLOW, account_number,
    )
    if started:
        logger.info("High-risk follow-up started account=%s", account_number)
    return started


async def start_account_loops(runtime: WorkflowRuntime, account_number: str) -> None:
    """Loops every registered account keeps running."""
    await runtime.start_workflow(account_state_id(account_number), ACCOUNT_STATE_WORKFLOW, account_number)
    await trigger_symptom_follow_up(runtime, account_number)


async def start_poi_loop(runtime: WorkflowRuntime, poi_id: str) -> None:
    await runtime.start_workflow(poi_state_id(poi_id), POI_STATE_WORKFLOW, poi_id)


async def trigger_help_broadcast(runtime: WorkflowRuntime, help_id: str, accounts: list[str]) -> None:
    if not accounts:
        logger.info("No one to ask for help id=%s", help_id)
        return
    await runtime.start_workflow(help_broadcast_id(help_id), BROADCAST_NEW_HELP_WORKFLOW, help_id, accounts)


async def trigger_help_accepted(runtime: WorkflowRuntime, help_id: str, requester: str) -> None:
    await runtime.start_workflow(help_accepted_id(help_id), NOTIFY_HELP_ACCEPTED_WORKFLOW, help_id, requester)


async def bootstrap_loops(runtime: WorkflowRuntime, store) -> tuple[int, int]:
    """
    (Re)start the loops of every stored profile and POI; returns the counts.

    High-risk follow-ups are restarted for every account too: the loop ends
    itself with StopRenew when the account never reported symptoms. The
    help expiry loop is started once.
    """
    await runtime.start_workflow(HELP_EXPIRY_ID, HELP_EXPIRY_WORKFLOW)

    accounts = await store.list_account_numbers()
    for account_number in accounts:
        await start_account_loops(runtime, account_number)
        await trigger_high_risk_follow_up(runtime, account_number)

    poi_ids = await store.list_poi_ids()
    for poi_id in poi_ids:
        await start_poi_loop(runtime, poi_id)

    logger.info("Loops bootstrapped accounts=%d pois=%d", len(accounts), len(poi_ids))
    return len(accounts), len(poi_ids)
