"""Document types, statuses and lifecycle events"""
import enum


class DocumentType(enum.Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"


class InvoiceStatus(enum.Enum):
    DRAFT = "draft"            # Editable, not yet sent to the customer
    SENT = "sent"              # Sent, awaiting payment
    PAID = "paid"
    OVERDUE = "overdue"        # Sent and past its due date
    CANCELLED = "cancelled"


class QuotationStatus(enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"        # Past valid_until before being accepted
    CONVERTED = "converted"    # An invoice was issued from it


class DocumentEvent(enum.Enum):
    SEND = "send"
    RECORD_PAYMENT = "record-payment"
    DUE_DATE_ELAPSED = "due-date-elapsed"
    CANCEL = "cancel"
    ACCEPT = "accept"
    REJECT = "reject"
    VALID_UNTIL_ELAPSED = "valid-until-elapsed"
    CONVERT = "convert"
