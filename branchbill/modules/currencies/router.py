from fastapi import APIRouter

from branchbill.modules.currencies.formats import get_available_currencies
from branchbill.modules.currencies.schemas import CurrencyList

router = APIRouter(prefix="/currencies", tags=["Currencies"])


@router.get("/", response_model=CurrencyList)
def list_currencies():
    """
    List the currencies a branch can bill in, with their decimal precision
    """
    return {"currencies": get_available_currencies()}
