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
    DocumentEventRequest, DocumentFilters, DocumentItemsReplace, DocumentList,
    DocumentOut, DocumentUpdate, InvoiceCreate, NextDocumentNumber
)
from branchbill.modules.documents.service import DocumentService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """
    Create a draft invoice

    Currency and tax rate are copied from the branch and never change afterwards.
    """
    service = DocumentService(db)
    return create_with_retry(service, DocumentType.INVOICE, invoice_data, auth_context.principal_id)


@router.get("/", response_model=DocumentList)
def list_invoices(
    db: db_dependency,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    status: Optional[str] = Query(None, description="Invoice status"),
    customer_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None, description="Issued on or after (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Issued on or before (YYYY-MM-DD)"),
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
    return DocumentService(db).list_documents(DocumentType.INVOICE, filters, limit, offset)


@router.get("/next-number", response_model=NextDocumentNumber)
def get_next_invoice_number(
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """Preview the next invoice number (not reserved)"""
    return DocumentService(db).get_next_number(DocumentType.INVOICE)


@router.get("/number/{number}", response_model=DocumentOut)
def get_invoice_by_number(
    number: str,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).get_document_by_number(DocumentType.INVOICE, number)


@router.get("/{invoice_id}", response_model=DocumentOut)
def get_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    return DocumentService(db).get_document(DocumentType.INVOICE, invoice_id)


@router.patch("/{invoice_id}", response_model=DocumentOut)
def update_invoice(
    invoice_id: UUID,
    invoice_update: DocumentUpdate,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """Update dates or notes of a draft invoice"""
    return DocumentService(db).update_document(DocumentType.INVOICE, invoice_id, invoice_update)


@router.put("/{invoice_id}/items", response_model=DocumentOut)
def replace_invoice_items(
    invoice_id: UUID,
    payload: DocumentItemsReplace,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """Replace the line items of a draft invoice and recompute its totals"""
    return DocumentService(db).replace_items(DocumentType.INVOICE, invoice_id, payload.items)


@router.post("/{invoice_id}/events/{event}", response_model=DocumentOut)
def apply_invoice_event(
    invoice_id: UUID,
    event: str,
    db: db_dependency,
    payload: Optional[DocumentEventRequest] = None,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """
    Apply a status event: send, record-payment, due-date-elapsed or cancel
    """
    payload = payload or DocumentEventRequest()
    return DocumentService(db).apply_event(
        DocumentType.INVOICE, invoice_id, event,
        payment=payload.payment, as_of=payload.as_of, created_by=auth_context.principal_id
    )


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context=Depends(AuthDependencies.require_staff())
):
    """Delete a draft invoice; sent invoices must be cancelled instead"""
    DocumentService(db).delete_document(DocumentType.INVOICE, invoice_id)
