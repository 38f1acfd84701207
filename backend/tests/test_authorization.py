"""
Role and capability enforcement.

Verifies:
- Every data route needs an active session
- Owner-only routes refuse employees
- Employee capabilities follow the saved AppConfig.permissions
- Cost prices and profit figures stay hidden without permission
"""

import pytest


def _seed_product(client, owner_headers):
    resp = client.post(
        "/api/products",
        json={"code": "P-1", "name": "Arroz", "sale_price": "1.20", "cost_price": "0.80", "stock": 10},
        headers=owner_headers,
    )
    assert resp.status_code == 201
    return resp.get_json()["id"]


def _grant(client, owner_headers, **permissions):
    resp = client.put("/api/config", json={"permissions": permissions}, headers=owner_headers)
    assert resp.status_code == 200


class TestAuthentication:
    @pytest.mark.parametrize("path", [
        "/api/products",
        "/api/sales",
        "/api/clients",
        "/api/expenses",
        "/api/config",
        "/api/session/snapshot",
        "/api/reports/dashboard",
    ])
    def test_missing_token(self, client, db_session, path):
        resp = client.get(path)
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-session"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401


class TestOwnerOnly:
    @pytest.mark.parametrize("method,path", [
        ("get", "/api/suppliers"),
        ("post", "/api/suppliers"),
        ("put", "/api/config"),
        ("delete", "/api/sales"),
        ("delete", "/api/expenses"),
        ("post", "/api/system/reset"),
    ])
    def test_employee_refused(self, client, employee_headers, method, path):
        resp = getattr(client, method)(path, json={}, headers=employee_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_role"] == "owner"

    def test_employee_snapshot_has_no_suppliers(self, client, owner_headers, employee_headers):
        client.post("/api/suppliers", json={"name": "Distribuidora"}, headers=owner_headers)
        assert client.get("/api/session/snapshot", headers=owner_headers).get_json()["suppliers"]
        assert client.get("/api/session/snapshot", headers=employee_headers).get_json()["suppliers"] == []


class TestCapabilities:
    def test_default_employee_capabilities(self, client, owner_headers, employee_headers):
        pid = _seed_product(client, owner_headers)

        resp = client.post(
            "/api/products",
            json={"code": "P-2", "name": "Cafe", "sale_price": "3"},
            headers=employee_headers,
        )
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "can_edit_products"

        assert client.delete(f"/api/products/{pid}", headers=employee_headers).status_code == 403

        # Selling, managing clients and the cash box are on by default
        resp = client.post("/api/sales", json={"items": [{"product_id": pid, "quantity": 1}]}, headers=employee_headers)
        assert resp.status_code == 201
        assert client.post("/api/clients", json={"name": "Ana"}, headers=employee_headers).status_code == 201
        assert client.get("/api/reports/cash-summary", headers=employee_headers).status_code == 200

    def test_granted_permission_takes_effect(self, client, owner_headers, employee_headers):
        _grant(client, owner_headers, can_edit_products=True)
        resp = client.post(
            "/api/products",
            json={"code": "P-2", "name": "Cafe", "sale_price": "3"},
            headers=employee_headers,
        )
        assert resp.status_code == 201

    def test_revoked_permission_takes_effect(self, client, owner_headers, employee_headers):
        _grant(client, owner_headers, can_manage_clients=False, can_access_cashbox=False)
        assert client.post("/api/clients", json={"name": "Ana"}, headers=employee_headers).status_code == 403
        assert client.get("/api/reports/cash-summary", headers=employee_headers).status_code == 403
        assert client.post(
            "/api/expenses", json={"description": "Hielo", "amount": "1"}, headers=employee_headers,
        ).status_code == 403


class TestCostVisibility:
    def test_costs_hidden_from_employee(self, client, owner_headers, employee_headers):
        pid = _seed_product(client, owner_headers)
        client.post("/api/sales", json={"items": [{"product_id": pid, "quantity": 1}]}, headers=owner_headers)

        product = client.get(f"/api/products/{pid}", headers=employee_headers).get_json()
        assert "cost_price" not in product
        listed = client.get("/api/products", headers=employee_headers).get_json()["items"]
        assert "cost_price" not in listed[0]

        snapshot = client.get("/api/session/snapshot", headers=employee_headers).get_json()
        assert "cost_price" not in snapshot["products"][0]
        assert "cost_price" not in snapshot["sales"][0]["items"][0]

        sales = client.get("/api/sales", headers=employee_headers).get_json()["items"]
        assert "cost_price" not in sales[0]["items"][0]

    def test_owner_sees_costs(self, client, owner_headers):
        pid = _seed_product(client, owner_headers)
        product = client.get(f"/api/products/{pid}", headers=owner_headers).get_json()
        assert product["cost_price"] == "0.80"

    def test_permission_reveals_costs(self, client, owner_headers, employee_headers):
        pid = _seed_product(client, owner_headers)
        _grant(client, owner_headers, can_view_costs=True)
        product = client.get(f"/api/products/{pid}", headers=employee_headers).get_json()
        assert product["cost_price"] == "0.80"

    def test_dashboard_profit_gated(self, client, owner_headers, employee_headers):
        assert "profit" not in client.get("/api/reports/dashboard", headers=employee_headers).get_json()
        _grant(client, owner_headers, can_view_dashboard_stats=True)
        assert "profit" in client.get("/api/reports/dashboard", headers=employee_headers).get_json()
