import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def verify_ledger_balances(company_id):
    """Replay one company's ledger against stored account balances."""
    # import lazily to avoid circular imports at module import time
    from .models import Company
    from .posting import verify_account_balances

    company = Company.objects.get(pk=company_id)
    result = verify_account_balances(company)
    logger.info("Ledger verified for company %s: %s accounts", company_id, result["accounts_checked"])
    return result


@shared_task
def verify_all_ledgers():
    """Fan out one verification task per company; meant for celery beat."""
    from .models import Company

    company_ids = list(Company.objects.values_list("pk", flat=True))
    for company_id in company_ids:
        verify_ledger_balances.delay(company_id)
    return len(company_ids)
