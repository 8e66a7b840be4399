"""
Status lifecycle of invoices and quotations.

Each document type has a closed status enum and an explicit transition
table keyed on (status, event). Anything not in the table is an invalid
transition; statuses with no outgoing entry are terminal.
"""
from typing import Dict, FrozenSet, List, Tuple, Type, Union
import enum

from branchbill.common.exceptions import InvalidTransitionError, ValidationError
from branchbill.modules.documents.enums import DocumentEvent, DocumentType, InvoiceStatus, QuotationStatus

Status = Union[InvoiceStatus, QuotationStatus]


class Lifecycle:
    def __init__(
        self,
        document_type: DocumentType,
        status_enum: Type[enum.Enum],
        initial: Status,
        transitions: Dict[Tuple[Status, DocumentEvent], Status],
        editable: FrozenSet[Status],
    ):
        self.document_type = document_type
        self.status_enum = status_enum
        self.initial = initial
        self.transitions = transitions
        self.editable = editable
        sources = {source for source, _ in transitions}
        self.terminal = frozenset(s for s in status_enum if s not in sources)

    def parse_status(self, value) -> Status:
        if isinstance(value, self.status_enum):
            return value
        try:
            return self.status_enum(value)
        except ValueError:
            valid = ", ".join(s.value for s in self.status_enum)
            raise ValidationError(f"Invalid {self.document_type.value} status '{value}'. Valid statuses: {valid}")

    def allowed_events(self, current: Status) -> List[DocumentEvent]:
        return [event for (source, event) in self.transitions if source == current]

    def is_terminal(self, current: Status) -> bool:
        return current in self.terminal

    def can_edit_items(self, current: Status) -> bool:
        return current in self.editable

    def next_status(self, current: Status, event: DocumentEvent) -> Status:
        """Target status for event, InvalidTransitionError if not permitted"""
        target = self.transitions.get((current, event))
        if target is None:
            if self.is_terminal(current):
                message = f"{self.document_type.value.capitalize()} is {current.value}; no further status changes are allowed"
            else:
                message = f"Cannot {event.value} a {current.value} {self.document_type.value}"
            raise InvalidTransitionError(message, {
                "status": current.value,
                "event": event.value,
                "allowed_events": [e.value for e in self.allowed_events(current)],
            })
        return target

    def ensure_items_editable(self, current: Status) -> None:
        if not self.can_edit_items(current):
            raise InvalidTransitionError(
                f"Line items can only be changed while the {self.document_type.value} is draft (current status: {current.value})",
                {"status": current.value}
            )


INVOICE_LIFECYCLE = Lifecycle(
    document_type=DocumentType.INVOICE,
    status_enum=InvoiceStatus,
    initial=InvoiceStatus.DRAFT,
    transitions={
        (InvoiceStatus.DRAFT, DocumentEvent.SEND): InvoiceStatus.SENT,
        (InvoiceStatus.SENT, DocumentEvent.RECORD_PAYMENT): InvoiceStatus.PAID,
        (InvoiceStatus.SENT, DocumentEvent.DUE_DATE_ELAPSED): InvoiceStatus.OVERDUE,
        (InvoiceStatus.OVERDUE, DocumentEvent.RECORD_PAYMENT): InvoiceStatus.PAID,
        (InvoiceStatus.DRAFT, DocumentEvent.CANCEL): InvoiceStatus.CANCELLED,
        (InvoiceStatus.SENT, DocumentEvent.CANCEL): InvoiceStatus.CANCELLED,
        (InvoiceStatus.OVERDUE, DocumentEvent.CANCEL): InvoiceStatus.CANCELLED,
    },
    editable=frozenset({InvoiceStatus.DRAFT}),
)

QUOTATION_LIFECYCLE = Lifecycle(
    document_type=DocumentType.QUOTATION,
    status_enum=QuotationStatus,
    initial=QuotationStatus.DRAFT,
    transitions={
        (QuotationStatus.DRAFT, DocumentEvent.SEND): QuotationStatus.SENT,
        (QuotationStatus.SENT, DocumentEvent.ACCEPT): QuotationStatus.ACCEPTED,
        (QuotationStatus.SENT, DocumentEvent.REJECT): QuotationStatus.REJECTED,
        (QuotationStatus.DRAFT, DocumentEvent.VALID_UNTIL_ELAPSED): QuotationStatus.EXPIRED,
        (QuotationStatus.SENT, DocumentEvent.VALID_UNTIL_ELAPSED): QuotationStatus.EXPIRED,
        (QuotationStatus.ACCEPTED, DocumentEvent.CONVERT): QuotationStatus.CONVERTED,
    },
    editable=frozenset({QuotationStatus.DRAFT}),
)

_LIFECYCLES = {
    DocumentType.INVOICE: INVOICE_LIFECYCLE,
    DocumentType.QUOTATION: QUOTATION_LIFECYCLE,
}


def get_lifecycle(document_type: DocumentType) -> Lifecycle:
    return _LIFECYCLES[DocumentType(document_type)]


def parse_event(value) -> DocumentEvent:
    if isinstance(value, DocumentEvent):
        return value
    try:
        return DocumentEvent(value)
    except ValueError:
        valid = ", ".join(e.value for e in DocumentEvent)
        raise ValidationError(f"Unknown event '{value}'. Valid events: {valid}")
