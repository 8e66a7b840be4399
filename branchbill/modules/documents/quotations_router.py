from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from branchbill.core.config import settings
from branchbill.dependencies.dbDependencies import db_dependency
from branchbill.modules.auth.dependencies import AuthDependencies
from branchbill.modules.documents.models import DocumentType
from branchbill.modules.documents.router import create_with_retry
from branchbill.modules.documents.schemas import (
    ConversionResult, ConvertQuotationRequest, DocumentEventRequest, DocumentFilters,
    DocumentItemsReplace, DocumentList, DocumentOut, DocumentUpdate, NextDocumentNumber,
    QuotationCreate
)
from branchbill.modules.documents.service import DocumentService

router = APIRouter(prefix="/quotations", tags=["Quotations"])


@router.post("/", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def create_quotation(
    quotation_data: QuotationCreate,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    service = DocumentService(db)
    return create_with_retry(service, DocumentType.QUOTATION, quotation_data, auth_context.principal_id)


@router.get("/", response_model=DocumentList)
def list_quotations(
    db: db_dependency,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    status: Optional[str] = Query(None, description="Quotation status"),
    customer_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Search by number or notes"),
    auth_context=Depends(AuthDependencies.require_staff())
):
    filters = DocumentFilters(
        status=status,
        customer_id=customer_id,
        branch_id=branch_id,
        date_from=start_date,
        date_to=end_date,
        search=search
    )
    return DocumentService(db).list_documents(DocumentType.QUOTATION, filters, limit, offset)


@router.get("/next-number", response_model=NextDocumentNumber)
def get_next_quotation_number(
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).get_next_number(DocumentType.QUOTATION)


@router.get("/number/{number}", response_model=DocumentOut)
def get_quotation_by_number(
    number: str,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).get_document_by_number(DocumentType.QUOTATION, number)


@router.get("/{quotation_id}", response_model=DocumentOut)
def get_quotation(
    quotation_id: UUID,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).get_document(DocumentType.QUOTATION, quotation_id)


@router.patch("/{quotation_id}", response_model=DocumentOut)
def update_quotation(
    quotation_id: UUID,
    quotation_update: DocumentUpdate,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).update_document(DocumentType.QUOTATION, quotation_id, quotation_update)


@router.put("/{quotation_id}/items", response_model=DocumentOut)
def replace_quotation_items(
    quotation_id: UUID,
    payload: DocumentItemsReplace,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).replace_items(DocumentType.QUOTATION, quotation_id, payload.items)


@router.post("/{quotation_id}/events/{event}", response_model=DocumentOut)
def apply_quotation_event(
    quotation_id: UUID,
    event: str,
    db: db_dependency,
    payload: Optional[DocumentEventRequest] = None,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """
    Apply a status event: send, accept, reject, valid-until-elapsed or convert
    """
    payload = payload or DocumentEventRequest()
    return DocumentService(db).apply_event(
        DocumentType.QUOTATION, quotation_id, event,
        as_of=payload.as_of, created_by=auth_context.principal_id
    )


@router.post("/{quotation_id}/convert", response_model=ConversionResult, status_code=status.HTTP_201_CREATED)
def convert_quotation(
    quotation_id: UUID,
    db: db_dependency,
    payload: Optional[ConvertQuotationRequest] = None,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """
    Issue an invoice from an accepted quotation

    The quotation becomes converted and keeps a reference to the new invoice.
    """
    quotation, invoice = DocumentService(db).convert_quotation(quotation_id, payload, auth_context.principal_id)
    return {"quotation": quotation, "invoice": invoice}


@router.delete("/{quotation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quotation(
    quotation_id: UUID,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    DocumentService(db).delete_document(DocumentType.QUOTATION, quotation_id)
