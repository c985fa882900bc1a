from fastapi import APIRouter, Depends

from batchgen.api.models import CreditBalanceResponse
from batchgen.config import Settings, get_settings
from batchgen.core.security import get_current_user_id
from batchgen.services.jobs import _get_credit_ledger

router = APIRouter()


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_balance(  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
) -> CreditBalanceResponse:
  """Return the caller's prepaid credit balance."""
  balance = await _get_credit_ledger(settings).get_balance(user_id)
  return CreditBalanceResponse(user_id=balance.user_id, balance=balance.balance)
