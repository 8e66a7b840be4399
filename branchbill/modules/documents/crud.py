"""
Database operations for documents.

Writes that change status go through conditional updates keyed on the
status the caller read, so a concurrent change makes them affect no rows
instead of being overwritten. Nothing here commits; DocumentService owns
the transaction.
"""

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import delete, desc, func, or_, update
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from branchbill.modules.documents.models import Document, DocumentItem, DocumentType


class DocumentCrud:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, document: Document) -> UUID:
        self.db.add(document)
        self.db.flush()
        return document.id

    def get_by_id(self, document_id: UUID, document_type: Optional[DocumentType] = None) -> Optional[Document]:
        query = self.db.query(Document).options(
            selectinload(Document.items)
        ).filter(Document.id == document_id)

        if document_type is not None:
            query = query.filter(Document.document_type == document_type)

        return query.first()

    def get_by_number(self, document_type: DocumentType, number: str) -> Optional[Document]:
        return self.db.query(Document).options(
            selectinload(Document.items)
        ).filter(
            Document.document_type == document_type,
            Document.number == number
        ).first()

    def get_by_status(self, document_type: DocumentType, statuses: List[str]) -> List[Document]:
        return self.db.query(Document).filter(
            Document.document_type == document_type,
            Document.status.in_(statuses)
        ).order_by(Document.number).all()

    def get_many(
        self,
        document_type: DocumentType,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
        customer_id: Optional[UUID] = None,
        branch_id: Optional[UUID] = None,
        date_from=None,
        date_to=None,
        search: Optional[str] = None
    ) -> Tuple[List[Document], int, Dict[str, int]]:
        """Filtered page of documents, total count and counts per status for the same filters"""
        query = self.db.query(Document).filter(Document.document_type == document_type)

        if customer_id:
            query = query.filter(Document.customer_id == customer_id)
        if branch_id:
            query = query.filter(Document.branch_id == branch_id)
        if date_from:
            query = query.filter(Document.issue_date >= date_from)
        if date_to:
            query = query.filter(Document.issue_date <= date_to)
        if search:
            query = query.filter(or_(
                Document.number.ilike(f"%{search}%"),
                Document.notes.ilike(f"%{search}%")
            ))

        counts_by_status = dict(
            query.with_entities(Document.status, func.count(Document.id))
            .group_by(Document.status)
            .all()
        )

        if status:
            query = query.filter(Document.status == status)

        total = query.count()
        documents = query.options(
            selectinload(Document.items)
        ).order_by(desc(Document.created_at), desc(Document.number)).offset(offset).limit(limit).all()

        return documents, total, counts_by_status

    def update_if_status(self, document_id: UUID, expected_status: str, values: dict, **conditions) -> bool:
        """
        Apply values only if the document is still in expected_status.

        Extra keyword conditions are equality filters on other columns,
        e.g. ``converted_to_document_id=None``.
        """
        statement = update(Document).where(
            Document.id == document_id,
            Document.status == expected_status
        )
        for column, value in conditions.items():
            attribute = getattr(Document, column)
            statement = statement.where(attribute.is_(None) if value is None else attribute == value)

        result = self.db.execute(
            statement.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def update_status(self, document_id: UUID, expected_status: str, new_status: str, **values) -> bool:
        return self.update_if_status(document_id, expected_status, {**values, "status": new_status})

    def replace_items(self, document: Document, items: List[DocumentItem]) -> None:
        # delete-orphan cascade removes the previous rows
        document.items = items
        self.db.flush()

    def delete_draft(self, document_id: UUID, draft_status: str) -> bool:
        """Hard delete, only while the document is still draft"""
        self.db.execute(
            delete(DocumentItem).where(DocumentItem.document_id == document_id)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(Document).where(
                Document.id == document_id,
                Document.status == draft_status
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
