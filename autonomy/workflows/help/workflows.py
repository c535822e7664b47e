"""
Help request workflows.

  BroadcastNewHelpWorkflow      one send to the requester's cohort
  NotifyHelpAcceptedWorkflow    one send to the requester
  ExpireHelpRequestsWorkflow    single loop (`help-expiry`), every
                                `help_expiry_check_interval_seconds`
"""

import logging

from autonomy.core.config import settings
from autonomy.core.reporting import report_exception
from autonomy.workflows.help.activities import BROADCAST_NEW_HELP, EXPIRE_HELP_REQUESTS, NOTIFY_HELP_ACCEPTED
from autonomy.workflows.runtime import WorkflowContext
from autonomy.workflows.score.workflows import NOTIFY_OPTIONS

logger = logging.getLogger(__name__)


async def broadcast_new_help_workflow(ctx: WorkflowContext, help_id: str, accounts: list[str]) -> None:
    logger.info("Broadcast help request id=%s recipients=%d", help_id, len(accounts))
    await ctx.execute_activity(BROADCAST_NEW_HELP, help_id, accounts, options=NOTIFY_OPTIONS)


async def notify_help_accepted_workflow(ctx: WorkflowContext, help_id: str, requester: str) -> None:
    await ctx.execute_activity(NOTIFY_HELP_ACCEPTED, help_id, requester, options=NOTIFY_OPTIONS)


async def help_expiry_workflow(ctx: WorkflowContext) -> None:
    await ctx.sleep(settings.help_expiry_check_interval_seconds)

    try:
        await ctx.execute_activity(EXPIRE_HELP_REQUESTS)
    except Exception as exc:
        logger.error("Fail to expire help requests error=%s", exc)
        report_exception(exc)

    ctx.continue_as_new()
