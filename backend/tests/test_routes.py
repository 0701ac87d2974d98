"""
HTTP route tests.

Verifies:
- Missing/unknown caller returns 401
- Capability checks return 403
- Error mapping (400 / 404 / 409)
- Happy paths through components, movements, notifications and users
"""

import io

import pytest


# =============================================================================
# AUTHENTICATION (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/components"),
            ("POST", "/api/components"),
            ("POST", "/api/movements/inward"),
            ("POST", "/api/movements/outward"),
            ("GET", "/api/notifications"),
            ("GET", "/api/users/me"),
        ],
    )
    def test_requires_caller(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_user(self, client, db_session):
        resp = client.get("/api/components", headers={"X-User-Id": "4242"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, engineer, auth_headers):
        engineer.is_active = False
        db_session.commit()
        resp = client.get("/api/components", headers=auth_headers(engineer))
        assert resp.status_code == 401


# =============================================================================
# AUTHORIZATION (403)
# =============================================================================


class TestCapabilityChecks:

    def test_researcher_can_list_but_not_outward(self, client, make_component, researcher, auth_headers):
        component = make_component()

        resp = client.get("/api/components", headers=auth_headers(researcher))
        assert resp.status_code == 200
        assert resp.get_json()["pagination"]["total"] == 1

        resp = client.post(
            "/api/movements/outward",
            json={"component_id": component.id, "quantity": 1, "reason": "Build", "project": "Rover"},
            headers=auth_headers(researcher),
        )
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "outward"

    def test_engineer_cannot_inward(self, client, make_component, engineer, auth_headers):
        component = make_component()
        resp = client.post(
            "/api/movements/inward",
            json={"component_id": component.id, "quantity": 1, "reason": "Restock", "project": "Stores"},
            headers=auth_headers(engineer),
        )
        assert resp.status_code == 403

    def test_user_cannot_delete_component(self, client, make_component, lab_user, auth_headers):
        component = make_component()
        resp = client.delete(f"/api/components/{component.id}", headers=auth_headers(lab_user))
        assert resp.status_code == 403

    def test_non_admin_cannot_manage_users(self, client, lab_user, auth_headers):
        resp = client.get("/api/users", headers=auth_headers(lab_user))
        assert resp.status_code == 403

    def test_check_alerts_admin_only(self, client, lab_user, auth_headers):
        resp = client.post("/api/notifications/check-alerts", headers=auth_headers(lab_user))
        assert resp.status_code == 403


# =============================================================================
# COMPONENTS
# =============================================================================


class TestComponentRoutes:

    def test_create_get_update_delete(self, client, db_session, admin_user, auth_headers):
        headers = auth_headers(admin_user)
        resp = client.post(
            "/api/components",
            json={
                "name": "LM7805",
                "part_number": "LM7805CT",
                "manufacturer": "ST",
                "category": "Power Management",
                "quantity": 20,
                "unit_price": 0.45,
                "critical_low_threshold": 5,
                "location": "Drawer 2",
            },
            headers=headers,
        )
        assert resp.status_code == 201
        component_id = resp.get_json()["component"]["id"]

        resp = client.post(
            "/api/components",
            json={"name": "dup", "part_number": "LM7805CT", "manufacturer": "ST", "location": "X"},
            headers=headers,
        )
        assert resp.status_code == 409

        resp = client.put(f"/api/components/{component_id}", json={"quantity": 1}, headers=headers)
        assert resp.status_code == 400

        resp = client.put(f"/api/components/{component_id}", json={"location": "Drawer 3"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["component"]["location"] == "Drawer 3"

        resp = client.get(f"/api/components/{component_id}?include_movements=true", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["component"]["movements"] == []

        resp = client.delete(f"/api/components/{component_id}", headers=headers)
        assert resp.status_code == 200

        resp = client.get(f"/api/components/{component_id}", headers=headers)
        assert resp.status_code == 404

    def test_invalid_payload(self, client, admin_user, auth_headers):
        resp = client.post(
            "/api/components",
            json={"name": "x", "part_number": "y", "manufacturer": "z", "location": "w", "quantity": -1},
            headers=auth_headers(admin_user),
        )
        assert resp.status_code == 400

    def test_summary_and_export(self, client, make_component, researcher, auth_headers):
        make_component(quantity=2, critical_low_threshold=5)

        resp = client.get("/api/components/stats/summary", headers=auth_headers(researcher))
        assert resp.status_code == 200
        assert resp.get_json()["low_stock_count"] == 1

        resp = client.get("/api/components/export", headers=auth_headers(researcher))
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert resp.get_data(as_text=True).splitlines()[0].startswith("Name,Part Number,Quantity")

    def test_import_multipart(self, client, db_session, lab_user, auth_headers):
        body = "Name,Part Number,Manufacturer,Quantity\nDiode,1N4148,Vishay,100\nBroken,,Vishay,1\n"
        resp = client.post(
            "/api/components/import",
            data={"file": (io.BytesIO(body.encode("utf-8")), "parts.csv")},
            content_type="multipart/form-data",
            headers=auth_headers(lab_user),
        )
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["created"] == 1
        assert data["errors"] == [{"row": 3, "error": "Missing required fields: part_number"}]


# =============================================================================
# MOVEMENTS
# =============================================================================


class TestMovementRoutes:

    def test_inward_outward_and_insufficient(self, client, make_component, lab_user, auth_headers):
        component = make_component(quantity=25, critical_low_threshold=50)
        headers = auth_headers(lab_user)

        resp = client.post(
            "/api/movements/inward",
            json={"component_id": component.id, "quantity": 30, "reason": "Restock", "project": "Stores"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["new_quantity"] == 55

        resp = client.post(
            "/api/movements/outward",
            json={"component_id": component.id, "quantity": 60, "reason": "Build", "project": "Rover"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["available"] == 55

        resp = client.get(f"/api/movements/history/{component.id}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["pagination"]["total"] == 1

    def test_missing_component(self, client, db_session, lab_user, auth_headers):
        resp = client.post(
            "/api/movements/inward",
            json={"component_id": 999, "quantity": 1, "reason": "Restock", "project": "Stores"},
            headers=auth_headers(lab_user),
        )
        assert resp.status_code == 404

    def test_bulk_update(self, client, make_component, admin_user, auth_headers):
        component = make_component(quantity=10)
        resp = client.post(
            "/api/movements/bulk-update",
            json={
                "updates": [
                    {"component_id": component.id, "quantity": -4},
                    {"component_id": component.id, "quantity": -40},
                ],
                "reason": "Stock take",
                "project": "Audit",
            },
            headers=auth_headers(admin_user),
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success_count"] == 1
        assert data["failure_count"] == 1

    def test_statistics_and_recent(self, client, make_component, researcher, auth_headers):
        make_component()
        resp = client.get("/api/movements/statistics?period=quarter", headers=auth_headers(researcher))
        assert resp.status_code == 200
        assert resp.get_json()["period"] == "quarter"

        resp = client.get("/api/movements/statistics?period=eon", headers=auth_headers(researcher))
        assert resp.status_code == 400

        resp = client.get("/api/movements/recent", headers=auth_headers(researcher))
        assert resp.status_code == 200
        assert resp.get_json()["items"] == []


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestNotificationRoutes:

    def test_movement_notification_flow(self, client, make_component, admin_user, lab_user, auth_headers):
        component = make_component(quantity=15, critical_low_threshold=10)
        client.post(
            "/api/movements/outward",
            json={"component_id": component.id, "quantity": 10, "reason": "Build", "project": "Rover"},
            headers=auth_headers(lab_user),
        )

        # Admin sees the movement record and the low stock alert, high/medium first
        resp = client.get("/api/notifications", headers=auth_headers(admin_user))
        items = resp.get_json()["items"]
        assert [n["category"] for n in items] == ["low_stock", "stock_movement"]

        # Lab user is only targeted by the low stock alert
        resp = client.get("/api/notifications/unread-count", headers=auth_headers(lab_user))
        assert resp.get_json()["unread_count"] == 1

        low_id = items[0]["id"]
        resp = client.put(f"/api/notifications/{low_id}/read", headers=auth_headers(lab_user))
        assert resp.status_code == 200
        assert resp.get_json()["notification"]["is_read_by_user"] is True

        resp = client.put("/api/notifications/mark-all-read", headers=auth_headers(admin_user))
        assert resp.get_json()["marked"] == 2

        movement_id = items[1]["id"]
        resp = client.delete(f"/api/notifications/{movement_id}", headers=auth_headers(lab_user))
        assert resp.status_code == 403

    def test_admin_create_and_check(self, client, make_component, admin_user, auth_headers):
        make_component(quantity=1, critical_low_threshold=5)
        headers = auth_headers(admin_user)

        resp = client.post(
            "/api/notifications/create",
            json={"title": "Maintenance", "message": "Stockroom closed Friday",
                  "category": "system", "target_roles": ["user", "admin"]},
            headers=headers,
        )
        assert resp.status_code == 201

        resp = client.post("/api/notifications/check-alerts", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["low_stock_alerts"] == 1

        resp = client.get("/api/notifications/settings", headers=headers)
        assert resp.get_json()["settings"]["categories"]["old_stock"] is True


# =============================================================================
# USERS / SYSTEM
# =============================================================================


class TestUserRoutes:

    def test_me(self, client, engineer, auth_headers):
        resp = client.get("/api/users/me", headers=auth_headers(engineer))
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "engineer"

    def test_admin_user_management(self, client, admin_user, auth_headers):
        headers = auth_headers(admin_user)
        resp = client.post(
            "/api/users",
            json={"username": "tech1", "name": "Tech One", "email": "tech1@lab.local", "role": "user"},
            headers=headers,
        )
        assert resp.status_code == 201
        user_id = resp.get_json()["user"]["id"]

        resp = client.post(
            "/api/users",
            json={"username": "tech1", "name": "Again", "email": "again@lab.local"},
            headers=headers,
        )
        assert resp.status_code == 409

        resp = client.delete(f"/api/users/{admin_user.id}", headers=headers)
        assert resp.status_code == 400

        resp = client.delete(f"/api/users/{user_id}", headers=headers)
        assert resp.status_code == 200

    def test_stats_summary_admin_only(self, client, admin_user, lab_user, auth_headers):
        resp = client.get("/api/users/stats/summary", headers=auth_headers(admin_user))
        assert resp.status_code == 200
        assert resp.get_json()["total_users"] == 2
        assert resp.get_json()["role_breakdown"]["user"] == {"total": 1, "active": 1}

        resp = client.get("/api/users/stats/summary", headers=auth_headers(lab_user))
        assert resp.status_code == 403

    def test_activity_own_or_admin(self, client, make_component, admin_user, lab_user, researcher, auth_headers):
        component = make_component()
        client.post(
            "/api/movements/outward",
            json={"component_id": component.id, "quantity": 3, "reason": "Build", "project": "Rover"},
            headers=auth_headers(lab_user),
        )

        resp = client.get(f"/api/users/{lab_user.id}/activity", headers=auth_headers(lab_user))
        assert resp.status_code == 200
        assert resp.get_json()["items"][0]["quantity"] == 3

        resp = client.get(f"/api/users/{lab_user.id}/activity?limit=1", headers=auth_headers(admin_user))
        assert resp.status_code == 200
        assert resp.get_json()["pagination"]["limit"] == 1

        resp = client.get(f"/api/users/{lab_user.id}/activity", headers=auth_headers(researcher))
        assert resp.status_code == 403

        resp = client.get("/api/users/9999/activity", headers=auth_headers(admin_user))
        assert resp.status_code == 404

    def test_permission_catalog(self, client, admin_user, lab_user, auth_headers):
        resp = client.get("/api/users/permissions", headers=auth_headers(admin_user))
        assert resp.status_code == 200
        categories = resp.get_json()["categories"]
        assert set(categories) == {"INVENTORY", "MOVEMENTS", "REPORTING", "SYSTEM"}
        assert [p["code"] for p in categories["MOVEMENTS"]] == ["inward", "outward"]

        resp = client.get("/api/users/permissions", headers=auth_headers(lab_user))
        assert resp.status_code == 403


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"
        assert resp.get_json()["checks"]["notifications"]["details"]["live_notifications"] == 0
