"""
Tests for branch lookups and the currency snapshot
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from branchbill.common.exceptions import NotFoundError, ValidationError
from branchbill.modules.branches.service import BranchService
from branchbill.modules.customers.service import CustomerService


class TestBranchService:

    def test_resolve_snapshot(self, db_session, branch):
        snapshot = BranchService(db_session).resolve_snapshot(branch.id)

        assert snapshot.code == "AED"
        assert snapshot.name == "UAE Dirham"
        assert snapshot.tax_rate == Decimal("5")

    def test_missing_branch(self, db_session):
        with pytest.raises(NotFoundError):
            BranchService(db_session).get_branch(uuid4())

    def test_default_branch_skips_inactive(self, db_session, branch, jpy_branch):
        branch.is_active = False
        db_session.commit()

        assert BranchService(db_session).get_default_branch().id == jpy_branch.id


class TestCustomerService:

    def test_customer_exists(self, db_session, customer):
        service = CustomerService(db_session)

        assert service.customer_exists(customer.id)
        assert not service.customer_exists(uuid4())

    def test_inactive_customer_rejected(self, db_session, customer):
        customer.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            CustomerService(db_session).require_customer(customer.id)
