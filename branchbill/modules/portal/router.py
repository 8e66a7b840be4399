from fastapi import APIRouter, Depends, status
import logging

from branchbill.dependencies.dbDependencies import db_dependency
from branchbill.modules.auth.dependencies import AuthDependencies
from branchbill.modules.documents.service import DocumentService
from branchbill.modules.portal.schemas import QuotationRequest, QuotationRequestResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customer-portal", tags=["Customer Portal"])


@router.post("/quotations/request", response_model=QuotationRequestResult, status_code=status.HTTP_201_CREATED)
def request_quotation(
    request: QuotationRequest,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_customer())
):
    """
    Request a quotation as a customer

    Creates a draft quotation with unpriced items; staff set the prices
    before sending it.
    """
    quotation = DocumentService(db).request_quotation(
        customer_id=auth_context.customer_id,
        title=request.title,
        description=request.description,
        items=[item.model_dump() for item in request.items],
        additional_notes=request.additional_notes,
        preferred_due_date=request.preferred_due_date
    )
    logger.info(f"Customer {auth_context.customer_id} requested quotation {quotation.number}")
    return {
        "success": True,
        "message": "Quotation request submitted successfully",
        "quotation_id": quotation.id,
        "number": quotation.number,
    }
