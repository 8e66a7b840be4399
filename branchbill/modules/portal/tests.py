"""
Tests for customer-portal quotation requests
"""

import pytest
from datetime import date, timedelta

from branchbill.core.config import settings


@pytest.fixture
def request_payload():
    return {
        "title": "Office fit-out",
        "description": "Desks and chairs for the new floor",
        "additional_notes": "Delivery after 6pm",
        "preferred_due_date": "2030-01-15",
        "items": [
            {"description": "Standing desk", "quantity": "12"},
            {"description": "Task chair"},
        ],
    }


class TestQuotationRequest:

    def test_creates_unpriced_draft(self, client, customer_headers, staff_headers, customer, branch, request_payload):
        response = client.post("/customer-portal/quotations/request", json=request_payload, headers=customer_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["number"] == "Q-0001"

        quotation = client.get(f"/quotations/{body['quotation_id']}", headers=staff_headers).json()
        assert quotation["status"] == "draft"
        assert quotation["customer_id"] == str(customer.id)
        assert quotation["branch_id"] == str(branch.id)
        assert quotation["total"] == "0.00"
        assert [item["description"] for item in quotation["items"]] == ["Standing desk", "Task chair"]
        assert quotation["notes"].startswith("Customer Request: Office fit-out")
        assert "Preferred Due Date: 2030-01-15" in quotation["notes"]
        expected_valid_until = date.today() + timedelta(days=settings.QUOTATION_VALIDITY_DAYS)
        assert quotation["valid_until"] == expected_valid_until.isoformat()

    def test_requires_customer_role(self, client, staff_headers, branch, request_payload):
        response = client.post("/customer-portal/quotations/request", json=request_payload, headers=staff_headers)
        assert response.status_code == 403

    def test_requires_items(self, client, customer_headers, branch, request_payload):
        request_payload["items"] = []
        response = client.post("/customer-portal/quotations/request", json=request_payload, headers=customer_headers)
        assert response.status_code == 422

    def test_no_active_branch(self, client, customer_headers, request_payload):
        response = client.post("/customer-portal/quotations/request", json=request_payload, headers=customer_headers)
        assert response.status_code == 404
