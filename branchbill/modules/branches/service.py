"""
Read-only access to branches for the document engine.

Branch management lives elsewhere; documents only need the currency and
tax rate in force at creation time.
"""
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from branchbill.common.exceptions import NotFoundError
from branchbill.modules.branches.models import Branch
from branchbill.modules.currencies.schemas import CurrencySnapshot

logger = logging.getLogger(__name__)


class BranchService:
    def __init__(self, db: Session):
        self.db = db

    def get_branch(self, branch_id: UUID) -> Branch:
        """Active branch by id, NotFoundError if missing or inactive"""
        branch = self.db.query(Branch).filter(
            Branch.id == branch_id,
            Branch.is_active == True
        ).first()

        if not branch:
            raise NotFoundError("Branch not found or inactive", {"branch_id": str(branch_id)})

        return branch

    def get_default_branch(self) -> Branch:
        """First active branch, used for customer-portal requests"""
        branch = self.db.query(Branch).filter(
            Branch.is_active == True
        ).order_by(Branch.created_at, Branch.code).first()

        if not branch:
            raise NotFoundError("No active branch found")

        return branch

    def resolve_snapshot(self, branch_id: UUID) -> CurrencySnapshot:
        """Currency and tax rate to freeze into a new document"""
        branch = self.get_branch(branch_id)
        snapshot = CurrencySnapshot(
            code=branch.currency_code,
            symbol=branch.currency_symbol,
            name=branch.currency_name,
            tax_rate=branch.tax_rate or 0,
        )
        logger.debug(f"Resolved snapshot for branch {branch.code}: {snapshot.code} @ {snapshot.tax_rate}%")
        return snapshot
