"""
Tests for bearer token handling and role checks
"""

import pytest
import jwt
from datetime import timedelta
from uuid import uuid4

from branchbill.core.config import settings
from branchbill.modules.auth.utils import create_access_token, decode_access_token


class TestTokens:

    def test_round_trip_claims(self):
        principal_id = str(uuid4())
        payload = decode_access_token(create_access_token({"sub": principal_id, "role": "staff"}))

        assert payload["sub"] == principal_id
        assert payload["role"] == "staff"
        assert payload["type"] == "access"

    def test_expired_token_rejected(self):
        token = create_access_token({"sub": str(uuid4()), "role": "staff"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_wrong_secret_rejected(self):
        token = jwt.encode({"sub": str(uuid4()), "role": "admin"}, "another-secret", algorithm=settings.ALGORITHM)
        with pytest.raises(jwt.InvalidSignatureError):
            decode_access_token(token)


class TestRoleChecks:

    def test_token_without_role(self, client):
        token = create_access_token({"sub": str(uuid4())})
        response = client.get("/invoices/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_token(self, client):
        token = create_access_token({"sub": str(uuid4()), "role": "staff"}, expires_delta=timedelta(minutes=-5))
        response = client.get("/invoices/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_customer_token_without_customer_id(self, client, branch):
        token = create_access_token({"sub": str(uuid4()), "role": "customer"})
        response = client.post(
            "/customer-portal/quotations/request",
            json={"title": "Paint", "description": "Two rooms", "items": [{"description": "Paint job"}]},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    def test_admin_has_staff_access(self, client, admin_headers):
        response = client.get("/invoices/", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0
