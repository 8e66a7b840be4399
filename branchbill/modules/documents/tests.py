"""
Tests for the invoices and quotations module

Covers:
- Status lifecycles and terminal states
- Document numbering, including concurrent allocation
- Creation with the branch currency/tax snapshot
- Draft edits, deletion and conditional status updates
- Quotation to invoice conversion
- Elapsed-date sweep
- HTTP endpoints, roles and error rendering
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import update

from branchbill.common.exceptions import (
    ConcurrentModificationError, InvalidTransitionError, NotFoundError,
    NumberingFailure, ValidationError
)
from branchbill.database.database import SessionLocal
from branchbill.modules.documents.crud import DocumentCrud
from branchbill.modules.documents.lifecycle import INVOICE_LIFECYCLE, QUOTATION_LIFECYCLE, get_lifecycle, parse_event
from branchbill.modules.documents.models import (
    Document, DocumentEvent, DocumentSequence, DocumentType, InvoiceStatus, QuotationStatus
)
from branchbill.modules.documents.numbering import DocumentNumberAllocator, format_document_number
from branchbill.modules.documents.schemas import (
    DocumentFilters, DocumentItemCreate, DocumentUpdate, InvoiceCreate, PaymentDetailsIn, QuotationCreate
)
from branchbill.modules.documents.service import DocumentService


# ===== FIXTURES =====

@pytest.fixture
def sample_items():
    return [
        {"description": "Consulting hours", "quantity": "2", "unit_price": "100"},
        {"description": "Travel", "quantity": "1", "unit_price": "50"},
    ]


@pytest.fixture
def service(db_session):
    return DocumentService(db_session)


@pytest.fixture
def make_invoice(service, branch, customer, sample_items):
    def _make(**overrides):
        data = {"customer_id": customer.id, "branch_id": branch.id, "items": sample_items, **overrides}
        return service.create_document(DocumentType.INVOICE, InvoiceCreate(**data))
    return _make


@pytest.fixture
def make_quotation(service, branch, customer, sample_items):
    def _make(**overrides):
        data = {"customer_id": customer.id, "branch_id": branch.id, "items": sample_items, **overrides}
        return service.create_document(DocumentType.QUOTATION, QuotationCreate(**data))
    return _make


@pytest.fixture
def accepted_quotation(service, make_quotation):
    quotation = make_quotation()
    service.apply_event(DocumentType.QUOTATION, quotation.id, "send")
    return service.apply_event(DocumentType.QUOTATION, quotation.id, "accept")


# ===== LIFECYCLE =====

class TestLifecycle:

    @pytest.mark.parametrize("current, event, expected", [
        (InvoiceStatus.DRAFT, DocumentEvent.SEND, InvoiceStatus.SENT),
        (InvoiceStatus.SENT, DocumentEvent.RECORD_PAYMENT, InvoiceStatus.PAID),
        (InvoiceStatus.SENT, DocumentEvent.DUE_DATE_ELAPSED, InvoiceStatus.OVERDUE),
        (InvoiceStatus.OVERDUE, DocumentEvent.RECORD_PAYMENT, InvoiceStatus.PAID),
        (InvoiceStatus.DRAFT, DocumentEvent.CANCEL, InvoiceStatus.CANCELLED),
        (InvoiceStatus.SENT, DocumentEvent.CANCEL, InvoiceStatus.CANCELLED),
        (InvoiceStatus.OVERDUE, DocumentEvent.CANCEL, InvoiceStatus.CANCELLED),
    ])
    def test_invoice_transitions(self, current, event, expected):
        assert INVOICE_LIFECYCLE.next_status(current, event) == expected

    @pytest.mark.parametrize("current, event, expected", [
        (QuotationStatus.DRAFT, DocumentEvent.SEND, QuotationStatus.SENT),
        (QuotationStatus.SENT, DocumentEvent.ACCEPT, QuotationStatus.ACCEPTED),
        (QuotationStatus.SENT, DocumentEvent.REJECT, QuotationStatus.REJECTED),
        (QuotationStatus.DRAFT, DocumentEvent.VALID_UNTIL_ELAPSED, QuotationStatus.EXPIRED),
        (QuotationStatus.SENT, DocumentEvent.VALID_UNTIL_ELAPSED, QuotationStatus.EXPIRED),
        (QuotationStatus.ACCEPTED, DocumentEvent.CONVERT, QuotationStatus.CONVERTED),
    ])
    def test_quotation_transitions(self, current, event, expected):
        assert QUOTATION_LIFECYCLE.next_status(current, event) == expected

    def test_terminal_statuses(self):
        assert INVOICE_LIFECYCLE.terminal == {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
        assert QUOTATION_LIFECYCLE.terminal == {
            QuotationStatus.REJECTED, QuotationStatus.EXPIRED, QuotationStatus.CONVERTED
        }

    @pytest.mark.parametrize("lifecycle", [INVOICE_LIFECYCLE, QUOTATION_LIFECYCLE])
    def test_terminal_statuses_reject_every_event(self, lifecycle):
        for status in lifecycle.terminal:
            for event in DocumentEvent:
                with pytest.raises(InvalidTransitionError):
                    lifecycle.next_status(status, event)

    def test_invalid_transition_lists_allowed_events(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            INVOICE_LIFECYCLE.next_status(InvoiceStatus.DRAFT, DocumentEvent.RECORD_PAYMENT)

        assert exc_info.value.details["allowed_events"] == ["send", "cancel"]

    def test_only_draft_is_editable(self):
        assert INVOICE_LIFECYCLE.can_edit_items(InvoiceStatus.DRAFT)
        assert not INVOICE_LIFECYCLE.can_edit_items(InvoiceStatus.SENT)
        assert not QUOTATION_LIFECYCLE.can_edit_items(QuotationStatus.ACCEPTED)

    def test_parse_status_and_event(self):
        assert get_lifecycle("quotation").parse_status("accepted") == QuotationStatus.ACCEPTED
        assert parse_event("record-payment") == DocumentEvent.RECORD_PAYMENT
        with pytest.raises(ValidationError):
            INVOICE_LIFECYCLE.parse_status("accepted")
        with pytest.raises(ValidationError):
            parse_event("approve")


# ===== NUMBERING =====

def _allocate_in_own_session(document_type):
    session = SessionLocal()
    try:
        number = DocumentNumberAllocator(session).allocate(document_type)
        session.commit()
        return number
    finally:
        session.close()


class TestNumbering:

    def test_format(self):
        assert format_document_number(DocumentType.INVOICE, 7) == "INV-0007"
        assert format_document_number(DocumentType.QUOTATION, 42) == "Q-0042"
        assert format_document_number(DocumentType.INVOICE, 10000) == "INV-10000"

    def test_sequences_are_per_type(self, db_session):
        allocator = DocumentNumberAllocator(db_session)

        assert allocator.allocate(DocumentType.INVOICE) == "INV-0001"
        assert allocator.allocate(DocumentType.QUOTATION) == "Q-0001"
        assert allocator.allocate(DocumentType.INVOICE) == "INV-0002"
        db_session.commit()

    def test_rollback_returns_the_number(self, db_session):
        allocator = DocumentNumberAllocator(db_session)

        assert allocator.allocate(DocumentType.INVOICE) == "INV-0001"
        db_session.rollback()
        assert allocator.allocate(DocumentType.INVOICE) == "INV-0001"
        db_session.commit()
        assert allocator.allocate(DocumentType.INVOICE) == "INV-0002"
        db_session.commit()

    def test_peek_does_not_reserve(self, db_session):
        allocator = DocumentNumberAllocator(db_session)

        assert allocator.peek(DocumentType.INVOICE) == {
            "next_number": "INV-0001", "prefix": "INV", "current_sequence": 0
        }
        allocator.allocate(DocumentType.INVOICE)
        assert allocator.peek(DocumentType.INVOICE)["next_number"] == "INV-0002"
        assert allocator.peek(DocumentType.INVOICE)["next_number"] == "INV-0002"
        db_session.commit()

    def test_concurrent_allocations_are_distinct(self, engine):
        with ThreadPoolExecutor(max_workers=8) as pool:
            numbers = list(pool.map(lambda _: _allocate_in_own_session(DocumentType.INVOICE), range(20)))

        assert len(set(numbers)) == 20
        assert sorted(numbers) == [f"INV-{i:04d}" for i in range(1, 21)]

    def test_concurrent_creations_get_distinct_numbers(self, engine, branch, customer, sample_items):
        data = InvoiceCreate(customer_id=customer.id, branch_id=branch.id, items=sample_items)

        def create(_):
            session = SessionLocal()
            try:
                return DocumentService(session).create_document(DocumentType.INVOICE, data).number
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=5) as pool:
            numbers = list(pool.map(create, range(10)))

        assert sorted(numbers) == [f"INV-{i:04d}" for i in range(1, 11)]

    def test_duplicate_number_is_rejected(self, db_session, service, make_invoice):
        make_invoice()
        db_session.execute(
            update(DocumentSequence)
            .where(DocumentSequence.document_type == DocumentType.INVOICE)
            .values(current_number=0)
        )
        db_session.commit()

        with pytest.raises(NumberingFailure):
            make_invoice()

        assert db_session.query(Document).count() == 1
        db_session.commit()


# ===== CREATION =====

class TestCreateDocument:

    def test_invoice_totals_and_defaults(self, make_invoice, branch):
        invoice = make_invoice(issue_date=date(2024, 3, 1))

        assert invoice.number == "INV-0001"
        assert invoice.status == InvoiceStatus.DRAFT.value
        assert invoice.subtotal == Decimal("250")
        assert invoice.tax == Decimal("12.5")
        assert invoice.total == Decimal("262.5")
        assert invoice.currency_code == "AED"
        assert invoice.due_date == date(2024, 3, 31)
        assert invoice.branch_id == branch.id
        assert [item.position for item in invoice.items] == [1, 2]
        assert invoice.allowed_events == ["send", "cancel"]

    def test_quotation_defaults(self, make_quotation):
        quotation = make_quotation(issue_date=date(2024, 3, 1), terms="Net 15")

        assert quotation.number == "Q-0001"
        assert quotation.valid_until == date(2024, 3, 31)
        assert quotation.due_date is None
        assert quotation.terms == "Net 15"

    def test_zero_decimal_currency(self, service, jpy_branch, customer, sample_items):
        data = InvoiceCreate(customer_id=customer.id, branch_id=jpy_branch.id, items=sample_items)
        invoice = service.create_document(DocumentType.INVOICE, data)

        assert invoice.tax == Decimal("13")
        assert invoice.total == Decimal("263")

    def test_three_decimal_currency(self, service, kwd_branch, customer):
        items = [{"description": "Cable", "quantity": "3", "unit_price": "1.235"}]
        data = InvoiceCreate(customer_id=customer.id, branch_id=kwd_branch.id, items=items)
        invoice = service.create_document(DocumentType.INVOICE, data)

        assert invoice.subtotal == Decimal("3.705")
        assert invoice.tax == Decimal("0.185")
        assert invoice.total == Decimal("3.890")

    def test_unknown_customer(self, service, branch, sample_items):
        data = InvoiceCreate(customer_id=uuid4(), branch_id=branch.id, items=sample_items)
        with pytest.raises(ValidationError):
            service.create_document(DocumentType.INVOICE, data)

    def test_unknown_branch(self, service, customer, sample_items):
        data = InvoiceCreate(customer_id=customer.id, branch_id=uuid4(), items=sample_items)
        with pytest.raises(NotFoundError):
            service.create_document(DocumentType.INVOICE, data)

    def test_inactive_branch(self, db_session, service, branch, customer, sample_items):
        branch.is_active = False
        db_session.commit()

        data = InvoiceCreate(customer_id=customer.id, branch_id=branch.id, items=sample_items)
        with pytest.raises(NotFoundError):
            service.create_document(DocumentType.INVOICE, data)

    def test_failed_creation_consumes_no_number(self, db_session, service, make_invoice, branch, sample_items):
        with pytest.raises(ValidationError):
            service.create_document(
                DocumentType.INVOICE,
                InvoiceCreate(customer_id=uuid4(), branch_id=branch.id, items=sample_items)
            )

        assert make_invoice().number == "INV-0001"
        db_session.commit()

    def test_due_date_before_issue_date_rejected(self, customer, branch, sample_items):
        with pytest.raises(ValueError):
            InvoiceCreate(
                customer_id=customer.id,
                branch_id=branch.id,
                issue_date=date(2024, 3, 10),
                due_date=date(2024, 3, 1),
                items=sample_items
            )


# ===== SNAPSHOT =====

class TestSnapshot:

    def test_branch_changes_do_not_affect_existing_documents(self, db_session, service, make_invoice, branch):
        invoice = make_invoice()
        db_session.commit()

        branch.tax_rate = Decimal("10")
        branch.currency_code = "USD"
        branch.currency_symbol = "$"
        branch.currency_name = "US Dollar"
        db_session.commit()
        db_session.expire_all()

        reloaded = service.get_document(DocumentType.INVOICE, invoice.id)
        assert reloaded.currency_code == "AED"
        assert reloaded.tax_rate == Decimal("5")
        assert reloaded.tax == Decimal("12.5")

    def test_item_edits_use_the_document_snapshot(self, db_session, service, make_invoice, branch):
        invoice = make_invoice()
        db_session.commit()

        branch.tax_rate = Decimal("10")
        db_session.commit()

        updated = service.replace_items(DocumentType.INVOICE, invoice.id, [
            DocumentItemCreate(description="Consulting hours", quantity=Decimal("4"), unit_price=Decimal("100"))
        ])
        assert updated.subtotal == Decimal("400")
        assert updated.tax == Decimal("20")
        assert updated.total == Decimal("420")
        assert len(updated.items) == 1

    def test_new_documents_use_the_new_rate(self, db_session, make_invoice, branch):
        make_invoice()
        branch.tax_rate = Decimal("10")
        db_session.commit()

        assert make_invoice().tax == Decimal("25")


# ===== DRAFT EDITS =====

class TestDraftEdits:

    def test_items_locked_after_send(self, service, make_invoice):
        invoice = make_invoice()
        service.apply_event(DocumentType.INVOICE, invoice.id, "send")

        with pytest.raises(InvalidTransitionError):
            service.replace_items(DocumentType.INVOICE, invoice.id, [
                DocumentItemCreate(description="Extra", quantity=Decimal("1"), unit_price=Decimal("1"))
            ])

    def test_update_header_fields(self, service, make_invoice):
        invoice = make_invoice(issue_date=date(2024, 3, 1))

        updated = service.update_document(
            DocumentType.INVOICE, invoice.id, DocumentUpdate(notes="Deliver to gate 4", due_date=date(2024, 4, 15))
        )
        assert updated.notes == "Deliver to gate 4"
        assert updated.due_date == date(2024, 4, 15)

    def test_update_rejects_fields_of_the_other_type(self, service, make_invoice):
        invoice = make_invoice()
        with pytest.raises(ValidationError):
            service.update_document(DocumentType.INVOICE, invoice.id, DocumentUpdate(valid_until=date.today()))

    def test_update_rejects_closing_date_before_issue(self, service, make_quotation):
        quotation = make_quotation(issue_date=date(2024, 3, 1))
        with pytest.raises(ValidationError):
            service.update_document(
                DocumentType.QUOTATION, quotation.id, DocumentUpdate(valid_until=date(2024, 2, 1))
            )

    def test_update_rejects_empty_issue_date(self, service, make_invoice):
        invoice = make_invoice(issue_date=date(2024, 3, 1))
        with pytest.raises(ValidationError):
            service.update_document(DocumentType.INVOICE, invoice.id, DocumentUpdate(issue_date=None))

        assert service.get_document(DocumentType.INVOICE, invoice.id).issue_date == date(2024, 3, 1)

    def test_delete_draft(self, service, make_invoice):
        invoice = make_invoice()
        service.delete_document(DocumentType.INVOICE, invoice.id)

        with pytest.raises(NotFoundError):
            service.get_document(DocumentType.INVOICE, invoice.id)

    def test_sent_documents_cannot_be_deleted(self, service, make_invoice):
        invoice = make_invoice()
        service.apply_event(DocumentType.INVOICE, invoice.id, "send")

        with pytest.raises(InvalidTransitionError):
            service.delete_document(DocumentType.INVOICE, invoice.id)

    def test_wrong_document_type_not_found(self, service, make_invoice):
        invoice = make_invoice()
        with pytest.raises(NotFoundError):
            service.get_document(DocumentType.QUOTATION, invoice.id)


# ===== STATUS EVENTS =====

class TestStatusEvents:

    def test_invoice_payment(self, service, make_invoice):
        invoice = make_invoice()
        service.apply_event(DocumentType.INVOICE, invoice.id, "send")
        paid = service.apply_event(
            DocumentType.INVOICE, invoice.id, "record-payment",
            payment=PaymentDetailsIn(method="bank_transfer", transaction_id="TRX-981")
        )

        assert paid.status == InvoiceStatus.PAID.value
        assert paid.payment["method"] == "bank_transfer"
        assert paid.payment["amount"] == Decimal("262.5")
        assert paid.payment["date_paid"] == date.today()
        assert paid.allowed_events == []

    def test_paid_invoice_rejects_every_event(self, service, make_invoice):
        invoice = make_invoice()
        service.apply_event(DocumentType.INVOICE, invoice.id, "send")
        service.apply_event(DocumentType.INVOICE, invoice.id, "record-payment")

        for event in DocumentEvent:
            with pytest.raises(InvalidTransitionError):
                service.apply_event(DocumentType.INVOICE, invoice.id, event)

    def test_draft_invoice_cannot_be_paid(self, service, make_invoice):
        invoice = make_invoice()
        with pytest.raises(InvalidTransitionError):
            service.apply_event(DocumentType.INVOICE, invoice.id, "record-payment")

    def test_due_date_elapsed_requires_elapsed_date(self, service, make_invoice):
        invoice = make_invoice(issue_date=date(2024, 3, 1), due_date=date(2024, 3, 31))
        service.apply_event(DocumentType.INVOICE, invoice.id, "send")

        with pytest.raises(InvalidTransitionError):
            service.apply_event(DocumentType.INVOICE, invoice.id, "due-date-elapsed", as_of=date(2024, 3, 31))

        overdue = service.apply_event(DocumentType.INVOICE, invoice.id, "due-date-elapsed", as_of=date(2024, 4, 1))
        assert overdue.status == InvoiceStatus.OVERDUE.value

        paid = service.apply_event(DocumentType.INVOICE, invoice.id, "record-payment")
        assert paid.status == InvoiceStatus.PAID.value

    def test_quotation_expiry(self, service, make_quotation):
        quotation = make_quotation(issue_date=date(2024, 3, 1), valid_until=date(2024, 3, 10))

        expired = service.apply_event(
            DocumentType.QUOTATION, quotation.id, "valid-until-elapsed", as_of=date(2024, 3, 11)
        )
        assert expired.status == QuotationStatus.EXPIRED.value

    def test_stale_status_is_a_conflict(self, db_session, service, make_invoice):
        invoice = make_invoice()
        db_session.commit()

        other = SessionLocal()
        try:
            DocumentService(other).apply_event(DocumentType.INVOICE, invoice.id, "send")
        finally:
            other.close()

        # db_session still holds the draft it read before the other request
        with pytest.raises(ConcurrentModificationError):
            service.apply_event(DocumentType.INVOICE, invoice.id, "send")

    def test_conditional_update_requires_expected_status(self, db_session, make_invoice):
        invoice = make_invoice()
        crud = DocumentCrud(db_session)

        assert not crud.update_status(invoice.id, InvoiceStatus.SENT.value, InvoiceStatus.PAID.value)
        assert crud.update_status(invoice.id, InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value)
        db_session.commit()


# ===== CONVERSION =====

class TestConversion:

    def test_convert_accepted_quotation(self, service, accepted_quotation):
        quotation, invoice = service.convert_quotation(accepted_quotation.id)

        assert quotation.status == QuotationStatus.CONVERTED.value
        assert quotation.converted_to_document_id == invoice.id
        assert invoice.number == "INV-0001"
        assert invoice.status == InvoiceStatus.DRAFT.value
        assert invoice.converted_from_document_id == quotation.id
        assert invoice.customer_id == quotation.customer_id
        assert invoice.total == quotation.total
        assert [i.description for i in invoice.items] == [i.description for i in quotation.items]
        assert invoice.notes == f"Converted from quotation {quotation.number}"

    def test_convert_only_once(self, service, accepted_quotation):
        service.convert_quotation(accepted_quotation.id)

        with pytest.raises(InvalidTransitionError):
            service.convert_quotation(accepted_quotation.id)
        with pytest.raises(InvalidTransitionError):
            service.apply_event(DocumentType.QUOTATION, accepted_quotation.id, "convert")

        invoices = service.list_documents(DocumentType.INVOICE, DocumentFilters())
        assert invoices["total"] == 1

    def test_convert_requires_accepted(self, service, make_quotation):
        quotation = make_quotation()
        with pytest.raises(InvalidTransitionError):
            service.convert_quotation(quotation.id)

    def test_convert_through_event(self, service, accepted_quotation):
        quotation = service.apply_event(DocumentType.QUOTATION, accepted_quotation.id, "convert")
        assert quotation.status == QuotationStatus.CONVERTED.value

    def test_invoices_cannot_be_converted(self, service, make_invoice):
        invoice = make_invoice()
        with pytest.raises(InvalidTransitionError):
            service.apply_event(DocumentType.INVOICE, invoice.id, "convert")

    def test_converted_invoice_keeps_quotation_snapshot(self, db_session, service, accepted_quotation, branch):
        branch.tax_rate = Decimal("10")
        db_session.commit()

        _, invoice = service.convert_quotation(accepted_quotation.id)
        assert invoice.tax_rate == Decimal("5")
        assert invoice.tax == Decimal("12.5")

    def test_converted_invoice_cannot_be_deleted(self, service, accepted_quotation):
        quotation, invoice = service.convert_quotation(accepted_quotation.id)

        with pytest.raises(InvalidTransitionError):
            service.delete_document(DocumentType.INVOICE, invoice.id)

        assert service.get_document(DocumentType.INVOICE, invoice.id).status == InvoiceStatus.DRAFT.value
        assert service.get_document(DocumentType.QUOTATION, quotation.id).converted_to_document_id == invoice.id

        cancelled = service.apply_event(DocumentType.INVOICE, invoice.id, "cancel")
        assert cancelled.status == InvoiceStatus.CANCELLED.value

    def test_failed_conversion_changes_nothing(self, db_session, service, make_invoice, accepted_quotation):
        make_invoice()
        db_session.execute(
            update(DocumentSequence)
            .where(DocumentSequence.document_type == DocumentType.INVOICE)
            .values(current_number=0)
        )
        db_session.commit()

        # the next invoice number collides with INV-0001
        with pytest.raises(NumberingFailure):
            service.convert_quotation(accepted_quotation.id)

        db_session.expire_all()
        quotation = service.get_document(DocumentType.QUOTATION, accepted_quotation.id)
        assert quotation.status == QuotationStatus.ACCEPTED.value
        assert quotation.converted_to_document_id is None
        assert service.get_next_number(DocumentType.INVOICE)["current_sequence"] == 0
        assert db_session.query(Document).filter(Document.document_type == DocumentType.INVOICE).count() == 1
        db_session.commit()

    def test_unexpected_error_rolls_back(self, db_session, service, accepted_quotation, monkeypatch):
        def fail(document_type):
            raise RuntimeError("counter unavailable")
        monkeypatch.setattr(service.allocator, "allocate", fail)

        with pytest.raises(RuntimeError):
            service.convert_quotation(accepted_quotation.id)

        assert not db_session.in_transaction()
        quotation = service.get_document(DocumentType.QUOTATION, accepted_quotation.id)
        assert quotation.status == QuotationStatus.ACCEPTED.value
        assert quotation.converted_to_document_id is None
        db_session.commit()


# ===== LISTING AND SWEEP =====

class TestListing:

    def test_filters_and_counts(self, service, make_invoice):
        first = make_invoice()
        make_invoice()
        make_invoice()
        service.apply_event(DocumentType.INVOICE, first.id, "send")

        result = service.list_documents(DocumentType.INVOICE, DocumentFilters(status="sent"), limit=10)
        assert result["total"] == 1
        assert result["documents"][0].number == "INV-0001"
        assert result["counts_by_status"] == {"draft": 2, "sent": 1}

        searched = service.list_documents(DocumentType.INVOICE, DocumentFilters(search="0003"))
        assert [d.number for d in searched["documents"]] == ["INV-0003"]

    def test_pagination(self, service, make_invoice):
        for _ in range(3):
            make_invoice()

        page = service.list_documents(DocumentType.INVOICE, DocumentFilters(), limit=2, offset=2)
        assert page["total"] == 3
        assert len(page["documents"]) == 1

    def test_invalid_status_filter(self, service):
        with pytest.raises(ValidationError):
            service.list_documents(DocumentType.QUOTATION, DocumentFilters(status="paid"))


class TestExpireElapsed:

    def test_sweep(self, service, make_invoice, make_quotation):
        today = date(2024, 6, 15)
        late = make_invoice(issue_date=date(2024, 5, 1), due_date=date(2024, 6, 1))
        service.apply_event(DocumentType.INVOICE, late.id, "send")
        not_due = make_invoice(issue_date=date(2024, 6, 1), due_date=date(2024, 7, 1))
        service.apply_event(DocumentType.INVOICE, not_due.id, "send")
        make_invoice(issue_date=date(2024, 5, 1), due_date=date(2024, 5, 2))  # draft, untouched
        stale = make_quotation(issue_date=date(2024, 5, 1), valid_until=date(2024, 6, 1))
        make_quotation(issue_date=date(2024, 6, 1), valid_until=date(2024, 6, 30))

        result = service.expire_elapsed(today)

        assert result["overdue_invoices"] == [late.number]
        assert result["expired_quotations"] == [stale.number]
        assert service.get_document(DocumentType.INVOICE, late.id).status == InvoiceStatus.OVERDUE.value
        assert service.get_document(DocumentType.QUOTATION, stale.id).status == QuotationStatus.EXPIRED.value

        assert service.expire_elapsed(today) == {"as_of": today, "overdue_invoices": [], "expired_quotations": []}


# ===== API =====

def _invoice_payload(branch, customer, **overrides):
    payload = {
        "customer_id": str(customer.id),
        "branch_id": str(branch.id),
        "items": [
            {"description": "Consulting hours", "quantity": "2", "unit_price": "100"},
            {"description": "Travel", "quantity": "1", "unit_price": "50"},
        ],
    }
    payload.update(overrides)
    return payload


class TestInvoiceEndpoints:

    def test_create_and_get(self, client, staff_headers, branch, customer):
        response = client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["number"] == "INV-0001"
        assert body["subtotal"] == "250.00"
        assert body["tax"] == "12.50"
        assert body["total"] == "262.50"
        assert body["currency"]["code"] == "AED"
        assert body["allowed_events"] == ["send", "cancel"]

        response = client.get(f"/invoices/{body['id']}", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["number"] == "INV-0001"

        response = client.get("/invoices/number/INV-0001", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["id"] == body["id"]

    def test_zero_decimal_rendering(self, client, staff_headers, jpy_branch, customer):
        response = client.post("/invoices/", json=_invoice_payload(jpy_branch, customer), headers=staff_headers)

        assert response.status_code == 201
        assert response.json()["tax"] == "13"
        assert response.json()["total"] == "263"

    def test_next_number(self, client, staff_headers, branch, customer):
        response = client.get("/invoices/next-number", headers=staff_headers)
        assert response.json() == {"next_number": "INV-0001", "prefix": "INV", "current_sequence": 0}

        client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers)
        response = client.get("/invoices/next-number", headers=staff_headers)
        assert response.json()["next_number"] == "INV-0002"

    def test_validation_errors(self, client, staff_headers, branch, customer):
        response = client.post("/invoices/", json=_invoice_payload(branch, customer, items=[]), headers=staff_headers)
        assert response.status_code == 422

        response = client.post(
            "/invoices/", json=_invoice_payload(branch, customer, customer_id=str(uuid4())), headers=staff_headers
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

        response = client.post(
            "/invoices/", json=_invoice_payload(branch, customer, branch_id=str(uuid4())), headers=staff_headers
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_events(self, client, staff_headers, branch, customer):
        invoice_id = client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers).json()["id"]

        response = client.post(f"/invoices/{invoice_id}/events/record-payment", headers=staff_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"
        assert response.json()["details"]["allowed_events"] == ["send", "cancel"]

        response = client.post(f"/invoices/{invoice_id}/events/send", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "sent"

        response = client.post(
            f"/invoices/{invoice_id}/events/record-payment",
            json={"payment": {"method": "cash", "amount": "262.50"}},
            headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        assert response.json()["payment"]["method"] == "cash"

        response = client.post(f"/invoices/{invoice_id}/events/approve", headers=staff_headers)
        assert response.status_code == 400

    def test_edit_and_delete_draft(self, client, staff_headers, branch, customer):
        invoice_id = client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers).json()["id"]

        response = client.put(
            f"/invoices/{invoice_id}/items",
            json={"items": [{"description": "Audit", "quantity": "1", "unit_price": "1000"}]},
            headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["total"] == "1050.00"

        response = client.patch(f"/invoices/{invoice_id}", json={"notes": "PO 5521"}, headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["notes"] == "PO 5521"

        response = client.delete(f"/invoices/{invoice_id}", headers=staff_headers)
        assert response.status_code == 204
        assert client.get(f"/invoices/{invoice_id}", headers=staff_headers).status_code == 404

    def test_empty_issue_date_is_a_validation_error(self, client, staff_headers, branch, customer):
        invoice_id = client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers).json()["id"]

        response = client.patch(f"/invoices/{invoice_id}", json={"issue_date": None}, headers=staff_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_converted_invoice_delete_conflict(self, client, staff_headers, branch, customer):
        quotation_id = client.post("/quotations/", json=_invoice_payload(branch, customer), headers=staff_headers).json()["id"]
        client.post(f"/quotations/{quotation_id}/events/send", headers=staff_headers)
        client.post(f"/quotations/{quotation_id}/events/accept", headers=staff_headers)
        invoice_id = client.post(f"/quotations/{quotation_id}/convert", headers=staff_headers).json()["invoice"]["id"]

        response = client.delete(f"/invoices/{invoice_id}", headers=staff_headers)
        assert response.status_code == 409
        assert client.get(f"/invoices/{invoice_id}", headers=staff_headers).status_code == 200

    def test_list(self, client, staff_headers, branch, customer):
        for _ in range(3):
            client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers)

        response = client.get("/invoices/", params={"limit": 2}, headers=staff_headers)
        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 3
        assert len(body["documents"]) == 2
        assert body["counts_by_status"] == {"draft": 3}

        response = client.get("/invoices/", params={"status": "accepted"}, headers=staff_headers)
        assert response.status_code == 400

    def test_duplicate_number_surfaces_after_retry(self, client, db_session, staff_headers, branch, customer):
        client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers)
        db_session.execute(update(DocumentSequence).values(current_number=0))
        db_session.commit()

        response = client.post("/invoices/", json=_invoice_payload(branch, customer), headers=staff_headers)
        assert response.status_code == 503
        assert response.json()["error"] == "numbering_failure"


class TestQuotationEndpoints:

    def test_full_cycle_to_invoice(self, client, staff_headers, branch, customer):
        payload = _invoice_payload(branch, customer, terms="50% upfront")
        quotation = client.post("/quotations/", json=payload, headers=staff_headers).json()
        assert quotation["number"] == "Q-0001"
        assert quotation["terms"] == "50% upfront"

        client.post(f"/quotations/{quotation['id']}/events/send", headers=staff_headers)
        client.post(f"/quotations/{quotation['id']}/events/accept", headers=staff_headers)

        response = client.post(f"/quotations/{quotation['id']}/convert", headers=staff_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["quotation"]["status"] == "converted"
        assert body["invoice"]["number"] == "INV-0001"
        assert body["invoice"]["total"] == quotation["total"]
        assert body["invoice"]["converted_from_document_id"] == quotation["id"]

        response = client.post(f"/quotations/{quotation['id']}/convert", headers=staff_headers)
        assert response.status_code == 409

    def test_invoice_fields_rejected_on_quotation(self, client, staff_headers, branch, customer):
        quotation = client.post("/quotations/", json=_invoice_payload(branch, customer), headers=staff_headers).json()

        response = client.patch(
            f"/quotations/{quotation['id']}", json={"due_date": "2030-01-01"}, headers=staff_headers
        )
        assert response.status_code == 400

    def test_quotation_and_invoice_ids_do_not_mix(self, client, staff_headers, branch, customer):
        quotation = client.post("/quotations/", json=_invoice_payload(branch, customer), headers=staff_headers).json()

        assert client.get(f"/invoices/{quotation['id']}", headers=staff_headers).status_code == 404


class TestExpireElapsedEndpoint:

    def test_admin_only(self, client, staff_headers, admin_headers):
        assert client.post("/documents/expire-elapsed", headers=staff_headers).status_code == 403

        response = client.post("/documents/expire-elapsed", params={"as_of": "2024-06-15"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"as_of": "2024-06-15", "overdue_invoices": [], "expired_quotations": []}


class TestAuth:

    def test_missing_token(self, client):
        assert client.get("/invoices/").status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.get("/invoices/", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_customer_cannot_use_staff_endpoints(self, client, customer_headers):
        assert client.get("/invoices/", headers=customer_headers).status_code == 403
