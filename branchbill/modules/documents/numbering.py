"""
Document number allocation.

Numbers come from one counter row per document type, incremented with a
single ``UPDATE ... SET current_number = current_number + 1``. The row stays
locked until the caller's transaction ends, so concurrent creations are
serialized at the counter and a rolled back creation gives its number back.
Never derive the next number from the highest existing document number:
two concurrent readers would see the same value.
"""
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func
import logging

from branchbill.common.exceptions import NumberingFailure
from branchbill.core.config import settings
from branchbill.modules.documents.models import DocumentSequence, DocumentType

logger = logging.getLogger(__name__)


def get_prefix(document_type: DocumentType) -> str:
    if DocumentType(document_type) == DocumentType.INVOICE:
        return settings.INVOICE_PREFIX
    return settings.QUOTATION_PREFIX


def format_document_number(document_type: DocumentType, value: int) -> str:
    """INV-0001, Q-0042; the padding is a minimum width, INV-10000 follows INV-9999"""
    return f"{get_prefix(document_type)}-{value:0{settings.DOCUMENT_NUMBER_PADDING}d}"


class DocumentNumberAllocator:
    """
    Allocates document numbers inside the caller's transaction.

    The allocator never commits: the caller inserts the document and commits
    both writes together, or rolls both back.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_sequence(self, document_type: DocumentType) -> int:
        """Increment the counter for document_type and return the new value"""
        document_type = DocumentType(document_type)
        try:
            if not self._increment(document_type):
                self._create_counter(document_type)
                if not self._increment(document_type):
                    raise NumberingFailure(f"Counter for {document_type.value} could not be incremented")

            value = self.db.execute(
                select(DocumentSequence.current_number)
                .where(DocumentSequence.document_type == document_type)
            ).scalar_one()
        except NumberingFailure:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing {document_type.value} counter: {e}", exc_info=True)
            raise NumberingFailure(f"Could not allocate a {document_type.value} number") from e

        logger.debug(f"Allocated {document_type.value} sequence {value}")
        return value

    def allocate(self, document_type: DocumentType) -> str:
        """Next formatted number, e.g. INV-0007"""
        return format_document_number(document_type, self.next_sequence(document_type))

    def peek(self, document_type: DocumentType) -> dict:
        """Number the next allocation would produce; does not reserve it"""
        document_type = DocumentType(document_type)
        try:
            current = self.db.execute(
                select(DocumentSequence.current_number)
                .where(DocumentSequence.document_type == document_type)
            ).scalar_one_or_none() or 0
        except SQLAlchemyError as e:
            raise NumberingFailure(f"Could not read the {document_type.value} counter") from e

        return {
            "next_number": format_document_number(document_type, current + 1),
            "prefix": get_prefix(document_type),
            "current_sequence": current,
        }

    def _increment(self, document_type: DocumentType) -> bool:
        result = self.db.execute(
            update(DocumentSequence)
            .where(DocumentSequence.document_type == document_type)
            .values(current_number=DocumentSequence.current_number + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _create_counter(self, document_type: DocumentType) -> None:
        """Create the counter row on first use; losing a creation race is fine"""
        savepoint = self.db.begin_nested()
        try:
            self.db.add(DocumentSequence(
                document_type=document_type,
                current_number=0,
                prefix=get_prefix(document_type)
            ))
            self.db.flush()
            savepoint.commit()
            logger.info(f"Created {document_type.value} counter")
        except IntegrityError:
            savepoint.rollback()
            logger.debug(f"{document_type.value} counter created concurrently, reusing it")
