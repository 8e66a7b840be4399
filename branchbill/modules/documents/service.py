"""
Business logic for invoices and quotations.

DocumentService is the only place that commits. Every write runs inside
``_unit_of_work``: number allocation, inserts and conditional status
updates either commit together or roll back together, so a failed creation
never leaves a consumed number or a number-less document behind.
"""

from contextlib import contextmanager
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple, Union
from uuid import UUID
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from branchbill.common.exceptions import (
    BillingError, ConcurrentModificationError, InvalidTransitionError,
    NotFoundError, NumberingFailure, PersistenceError, ValidationError
)
from branchbill.core.config import settings
from branchbill.modules.branches.service import BranchService
from branchbill.modules.currencies.calculator import compute_totals
from branchbill.modules.currencies.schemas import DocumentTotals
from branchbill.modules.customers.service import CustomerService
from branchbill.modules.documents.crud import DocumentCrud
from branchbill.modules.documents.lifecycle import get_lifecycle, parse_event
from branchbill.modules.documents.models import (
    Document, DocumentEvent, DocumentItem, DocumentType, InvoiceStatus, QuotationStatus
)
from branchbill.modules.documents.numbering import DocumentNumberAllocator
from branchbill.modules.documents.schemas import (
    ConvertQuotationRequest, DocumentFilters, DocumentItemCreate, DocumentUpdate,
    InvoiceCreate, PaymentDetailsIn, QuotationCreate
)

logger = logging.getLogger(__name__)


def _build_items(totals: DocumentTotals) -> List[DocumentItem]:
    return [
        DocumentItem(
            position=position,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )
        for position, item in enumerate(totals.items, start=1)
    ]


class DocumentService:
    def __init__(self, db: Session):
        self.db = db
        self.crud = DocumentCrud(db)
        self.allocator = DocumentNumberAllocator(db)

    @contextmanager
    def _unit_of_work(self, action: str):
        try:
            yield
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error {action}: {e}", exc_info=True)
            raise PersistenceError(f"Error {action}") from e
        except Exception:
            self.db.rollback()
            raise

    # ===== Creation =====

    def create_document(
        self,
        document_type: DocumentType,
        data: Union[InvoiceCreate, QuotationCreate],
        created_by: Optional[UUID] = None
    ) -> Document:
        """
        Create a draft invoice or quotation.

        Resolves the branch currency/tax snapshot, computes totals and
        allocates the number in the same transaction as the insert.

        Raises:
            ValidationError: unknown customer, invalid items or dates
            NotFoundError: branch missing or inactive
            NumberingFailure: counter unavailable or number already taken
            PersistenceError: the store failed
        """
        document_type = DocumentType(document_type)
        lifecycle = get_lifecycle(document_type)

        with self._unit_of_work(f"creating {document_type.value}"):
            CustomerService(self.db).require_customer(data.customer_id)
            snapshot = BranchService(self.db).resolve_snapshot(data.branch_id)
            totals = compute_totals(data.items, snapshot.tax_rate, snapshot.code)

            document = Document(
                document_type=document_type,
                customer_id=data.customer_id,
                branch_id=data.branch_id,
                created_by=created_by,
                status=lifecycle.initial.value,
                issue_date=data.issue_date,
                notes=data.notes,
                currency_code=snapshot.code,
                currency_symbol=snapshot.symbol,
                currency_name=snapshot.name,
                tax_rate=totals.tax_rate,
                subtotal=totals.subtotal,
                tax=totals.tax,
                total=totals.total,
                items=_build_items(totals),
            )
            self._apply_default_dates(document, data)

            document.number = self.allocator.allocate(document_type)
            self._insert(document)

        logger.info(
            f"Created {document_type.value} {document.number} for customer {document.customer_id}: "
            f"{document.total} {document.currency_code}"
        )
        return self.get_document(document_type, document.id)

    def _apply_default_dates(self, document: Document, data) -> None:
        if document.document_type == DocumentType.INVOICE:
            due_date = getattr(data, "due_date", None)
            document.due_date = due_date or document.issue_date + timedelta(days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        else:
            valid_until = getattr(data, "valid_until", None)
            document.valid_until = valid_until or document.issue_date + timedelta(days=settings.QUOTATION_VALIDITY_DAYS)
            document.terms = getattr(data, "terms", None)

    def _insert(self, document: Document) -> None:
        try:
            self.crud.insert(document)
        except IntegrityError as e:
            logger.error(f"Number {document.number} rejected by the store: {e}")
            raise NumberingFailure(f"Document number {document.number} is already in use") from e

    def request_quotation(
        self,
        customer_id: UUID,
        title: str,
        description: str,
        items: List[dict],
        additional_notes: Optional[str] = None,
        preferred_due_date: Optional[date] = None
    ) -> Document:
        """
        Customer-portal quotation request: a draft on the default branch,
        priced at zero until staff fill in the prices.
        """
        branch = BranchService(self.db).get_default_branch()
        notes = (
            f"Customer Request: {title}\n\n{description}\n\n"
            f"Additional Notes: {additional_notes or 'None'}\n\n"
            f"Preferred Due Date: {preferred_due_date.isoformat() if preferred_due_date else 'Not specified'}"
        )
        data = QuotationCreate(
            customer_id=customer_id,
            branch_id=branch.id,
            notes=notes,
            items=[
                DocumentItemCreate(description=item["description"], quantity=item["quantity"], unit_price=Decimal("0"))
                for item in items
            ],
        )
        return self.create_document(DocumentType.QUOTATION, data, created_by=customer_id)

    # ===== Queries =====

    def get_document(self, document_type: DocumentType, document_id: UUID) -> Document:
        document_type = DocumentType(document_type)
        document = self.crud.get_by_id(document_id, document_type)
        if not document:
            raise NotFoundError(f"{document_type.value.capitalize()} not found", {"id": str(document_id)})
        return document

    def get_document_by_number(self, document_type: DocumentType, number: str) -> Document:
        document_type = DocumentType(document_type)
        document = self.crud.get_by_number(document_type, number)
        if not document:
            raise NotFoundError(f"{document_type.value.capitalize()} {number} not found")
        return document

    def list_documents(
        self,
        document_type: DocumentType,
        filters: DocumentFilters,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        document_type = DocumentType(document_type)
        if filters.status:
            get_lifecycle(document_type).parse_status(filters.status)

        documents, total, counts = self.crud.get_many(
            document_type,
            limit=limit,
            offset=offset,
            **filters.model_dump()
        )
        return {
            "documents": documents,
            "total": total,
            "limit": limit,
            "offset": offset,
            "counts_by_status": counts,
        }

    def get_next_number(self, document_type: DocumentType) -> dict:
        return self.allocator.peek(document_type)

    # ===== Draft edits =====

    def replace_items(self, document_type: DocumentType, document_id: UUID, items: List[DocumentItemCreate]) -> Document:
        """
        Replace the line items of a draft and recompute its totals with the
        document's own currency and tax snapshot, never the branch's current one.
        """
        document = self.get_document(document_type, document_id)
        lifecycle = get_lifecycle(document.document_type)
        current = document.status_enum
        lifecycle.ensure_items_editable(current)

        with self._unit_of_work(f"updating items of {document.number}"):
            totals = compute_totals(items, document.tax_rate, document.currency_code)
            self.crud.replace_items(document, _build_items(totals))
            updated = self.crud.update_if_status(document.id, current.value, {
                "subtotal": totals.subtotal,
                "tax": totals.tax,
                "total": totals.total,
            })
            if not updated:
                raise ConcurrentModificationError(
                    f"{document.number} changed while its items were being edited; reload and retry"
                )

        self.db.refresh(document)
        logger.info(f"Replaced items of {document.number}: new total {document.total} {document.currency_code}")
        return document

    def update_document(self, document_type: DocumentType, document_id: UUID, data: DocumentUpdate) -> Document:
        """Update header fields of a draft (dates, notes, terms)"""
        document = self.get_document(document_type, document_id)
        lifecycle = get_lifecycle(document.document_type)
        current = document.status_enum
        lifecycle.ensure_items_editable(current)

        values = data.model_dump(exclude_unset=True)
        if "issue_date" in values and values["issue_date"] is None:
            raise ValidationError("issue_date cannot be empty")
        if document.document_type == DocumentType.INVOICE:
            if "valid_until" in values or "terms" in values:
                raise ValidationError("valid_until and terms apply to quotations only")
        elif "due_date" in values:
            raise ValidationError("due_date applies to invoices only")

        issue_date = values.get("issue_date") or document.issue_date
        closing_date = values.get("due_date", document.due_date) if document.document_type == DocumentType.INVOICE \
            else values.get("valid_until", document.valid_until)
        if closing_date and closing_date < issue_date:
            raise ValidationError("Closing date cannot be before the issue date")

        if not values:
            return document

        with self._unit_of_work(f"updating {document.number}"):
            if not self.crud.update_if_status(document.id, current.value, values):
                raise ConcurrentModificationError(f"{document.number} changed concurrently; reload and retry")

        self.db.refresh(document)
        return document

    def delete_document(self, document_type: DocumentType, document_id: UUID) -> None:
        """Hard delete a draft; documents that left draft are cancelled instead"""
        document = self.get_document(document_type, document_id)
        lifecycle = get_lifecycle(document.document_type)
        if document.status_enum != lifecycle.initial:
            raise InvalidTransitionError(
                f"Only draft documents can be deleted; {document.number} is {document.status}",
                {"status": document.status}
            )
        if document.converted_from_document_id is not None:
            raise InvalidTransitionError(
                f"{document.number} was issued from a quotation and cannot be deleted; cancel it instead",
                {"converted_from_document_id": str(document.converted_from_document_id)}
            )

        number = document.number
        with self._unit_of_work(f"deleting {number}"):
            if not self.crud.delete_draft(document.id, lifecycle.initial.value):
                raise ConcurrentModificationError(f"{number} changed concurrently; reload and retry")

        self.db.expunge(document)
        logger.info(f"Deleted draft {document.document_type.value} {number}")

    # ===== Status lifecycle =====

    def apply_event(
        self,
        document_type: DocumentType,
        document_id: UUID,
        event,
        payment: Optional[PaymentDetailsIn] = None,
        as_of: Optional[date] = None,
        created_by: Optional[UUID] = None
    ) -> Document:
        """
        Apply a lifecycle event to a document.

        The status write is conditional on the status read here; if another
        request moved the document in between, ConcurrentModificationError is
        raised and nothing changes.
        """
        document_type = DocumentType(document_type)
        event = parse_event(event)
        if event == DocumentEvent.CONVERT and document_type == DocumentType.QUOTATION:
            quotation, _ = self.convert_quotation(document_id, ConvertQuotationRequest(), created_by)
            return quotation

        document = self.get_document(document_type, document_id)
        lifecycle = get_lifecycle(document.document_type)
        current = document.status_enum
        target = lifecycle.next_status(current, event)
        today = as_of or date.today()

        values = {}
        if event == DocumentEvent.DUE_DATE_ELAPSED:
            self._ensure_elapsed(document, document.due_date, today, "due date")
        elif event == DocumentEvent.VALID_UNTIL_ELAPSED:
            self._ensure_elapsed(document, document.valid_until, today, "valid-until date")
        elif event == DocumentEvent.RECORD_PAYMENT:
            values = self._payment_values(document, payment, today)

        with self._unit_of_work(f"applying {event.value} to {document.number}"):
            if not self.crud.update_status(document.id, current.value, target.value, **values):
                raise ConcurrentModificationError(
                    f"{document.number} is no longer {current.value}; reload and retry",
                    {"expected_status": current.value}
                )

        self.db.refresh(document)
        logger.info(f"{document.document_type.value.capitalize()} {document.number}: {current.value} -> {target.value} ({event.value})")
        return document

    def _ensure_elapsed(self, document: Document, limit: Optional[date], today: date, label: str) -> None:
        if limit is None or limit >= today:
            raise InvalidTransitionError(
                f"The {label} of {document.number} has not elapsed",
                {"limit": limit.isoformat() if limit else None, "as_of": today.isoformat()}
            )

    def _payment_values(self, document: Document, payment: Optional[PaymentDetailsIn], today: date) -> dict:
        payment = payment or PaymentDetailsIn()
        return {
            "payment_method": payment.method,
            "payment_transaction_id": payment.transaction_id,
            "payment_date": payment.date_paid or today,
            "payment_amount": payment.amount if payment.amount is not None else document.total,
        }

    def convert_quotation(
        self,
        quotation_id: UUID,
        data: Optional[ConvertQuotationRequest] = None,
        created_by: Optional[UUID] = None
    ) -> Tuple[Document, Document]:
        """
        Issue an invoice from an accepted quotation.

        The new invoice carries the quotation's items and its currency/tax
        snapshot. Creating the invoice and marking the quotation converted
        commit together.
        """
        data = data or ConvertQuotationRequest()
        quotation = self.get_document(DocumentType.QUOTATION, quotation_id)
        lifecycle = get_lifecycle(DocumentType.QUOTATION)
        current = quotation.status_enum

        if quotation.converted_to_document_id is not None:
            raise InvalidTransitionError(
                f"Quotation {quotation.number} was already converted",
                {"converted_to_document_id": str(quotation.converted_to_document_id)}
            )
        target = lifecycle.next_status(current, DocumentEvent.CONVERT)

        issue_date = data.issue_date or date.today()
        due_date = data.due_date or issue_date + timedelta(days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        if due_date < issue_date:
            raise ValidationError("Due date cannot be before the issue date")

        with self._unit_of_work(f"converting {quotation.number}"):
            totals = compute_totals(
                [
                    {"description": i.description, "quantity": i.quantity, "unit_price": i.unit_price}
                    for i in quotation.items
                ],
                quotation.tax_rate,
                quotation.currency_code
            )
            invoice = Document(
                document_type=DocumentType.INVOICE,
                customer_id=quotation.customer_id,
                branch_id=quotation.branch_id,
                created_by=created_by,
                status=get_lifecycle(DocumentType.INVOICE).initial.value,
                issue_date=issue_date,
                due_date=due_date,
                notes=data.notes if data.notes is not None else f"Converted from quotation {quotation.number}",
                currency_code=quotation.currency_code,
                currency_symbol=quotation.currency_symbol,
                currency_name=quotation.currency_name,
                tax_rate=quotation.tax_rate,
                subtotal=totals.subtotal,
                tax=totals.tax,
                total=totals.total,
                converted_from_document_id=quotation.id,
                items=_build_items(totals),
            )
            invoice.number = self.allocator.allocate(DocumentType.INVOICE)
            self._insert(invoice)

            converted = self.crud.update_if_status(
                quotation.id,
                current.value,
                {"status": target.value, "converted_to_document_id": invoice.id},
                converted_to_document_id=None
            )
            if not converted:
                raise ConcurrentModificationError(
                    f"Quotation {quotation.number} changed during conversion; reload and retry"
                )

        self.db.refresh(quotation)
        logger.info(f"Converted quotation {quotation.number} into invoice {invoice.number}")
        return quotation, self.get_document(DocumentType.INVOICE, invoice.id)

    def expire_elapsed(self, as_of: Optional[date] = None) -> dict:
        """
        Mark sent invoices past their due date overdue and open quotations
        past their valid-until date expired, in one request-scoped pass.
        Documents changed concurrently are skipped.
        """
        today = as_of or date.today()
        overdue, expired = [], []

        with self._unit_of_work("applying elapsed-date events"):
            for invoice in self.crud.get_by_status(DocumentType.INVOICE, [InvoiceStatus.SENT.value]):
                if invoice.due_date and invoice.due_date < today:
                    if self.crud.update_status(invoice.id, InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value):
                        overdue.append(invoice.number)

            open_statuses = [QuotationStatus.DRAFT.value, QuotationStatus.SENT.value]
            for quotation in self.crud.get_by_status(DocumentType.QUOTATION, open_statuses):
                if quotation.valid_until and quotation.valid_until < today:
                    if self.crud.update_status(quotation.id, quotation.status, QuotationStatus.EXPIRED.value):
                        expired.append(quotation.number)

        self.db.expire_all()
        logger.info(f"Elapsed-date sweep as of {today}: {len(overdue)} overdue invoices, {len(expired)} expired quotations")
        return {"as_of": today, "overdue_invoices": overdue, "expired_quotations": expired}
