from datetime import date
from typing import Optional, Union
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query

from branchbill.common.exceptions import NumberingFailure
from branchbill.dependencies.dbDependencies import db_dependency
from branchbill.modules.auth.dependencies import AuthDependencies
from branchbill.modules.documents.models import Document, DocumentType
from branchbill.modules.documents.schemas import ExpireElapsedResult, InvoiceCreate, QuotationCreate
from branchbill.modules.documents.service import DocumentService

logger = logging.getLogger(__name__)

# Cross-document operations
router = APIRouter(prefix="/documents", tags=["Documents"])


def create_with_retry(
    service: DocumentService,
    document_type: DocumentType,
    data: Union[InvoiceCreate, QuotationCreate],
    created_by: Optional[UUID] = None
) -> Document:
    """Create a document, retrying once when the number could not be allocated"""
    try:
        return service.create_document(document_type, data, created_by)
    except NumberingFailure as e:
        logger.warning(f"Numbering failed for new {document_type.value} ({e.message}), retrying once")
        return service.create_document(document_type, data, created_by)


@router.post("/expire-elapsed", response_model=ExpireElapsedResult)
def expire_elapsed_documents(
    db: db_dependency,
    as_of: Optional[date] = Query(None, description="Evaluation date (YYYY-MM-DD), defaults to today"),
    auth_context=Depends(AuthDependencies.require_admin())
):
    """
    Mark sent invoices past their due date as overdue and open quotations
    past their valid-until date as expired
    """
    return DocumentService(db).expire_elapsed(as_of)
