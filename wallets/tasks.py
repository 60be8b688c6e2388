import logging

from celery import shared_task

from wallets.services import LedgerService

logger = logging.getLogger(__name__)


@shared_task
def reconcile_wallet_balances():
    """
    Periodic task: verify that every wallet's stored balance equals the sum
    of its ledger entries.

    Divergences are logged for investigation and never rewritten here.
    """
    divergent = LedgerService.find_divergent_wallets()

    for wallet in divergent:
        logger.error(
            "Ledger divergence: wallet=%s stored_balance=%d ledger_total=%d",
            wallet.uuid,
            wallet.balance,
            wallet.ledger_total or 0,
        )

    if divergent:
        logger.error("Found %d wallet(s) with diverging balances.", len(divergent))

    return {"divergent": [str(wallet.uuid) for wallet in divergent]}
