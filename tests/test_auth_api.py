PASSWORD = "secret123"


def _login(client, email, role, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password, "role": role})


class TestLogin:

    def test_login_returns_token(self, client, tenants):
        res = _login(client, "admin@acme.test", "admin")
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["token"]
        assert body["user"]["role"] == "ADMIN"
        assert body["user"]["company_id"] == tenants.company_a

    def test_token_works_on_me(self, client, tenants):
        token = _login(client, "eve@acme.test", "EMPLOYEE").json()["token"]
        res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        assert res.json()["data"]["email"] == "eve@acme.test"

    def test_form_encoded_login(self, client, tenants):
        res = client.post("/api/v1/auth/login",
                          data={"email": "carl@acme.test", "password": PASSWORD, "role": "CLIENT"})
        assert res.status_code == 200

    def test_missing_fields(self, client, tenants):
        res = client.post("/api/v1/auth/login", json={"email": "admin@acme.test"})
        assert res.status_code == 400
        assert res.json() == {"success": False, "error": "email and password are required"}

    def test_missing_role(self, client, tenants):
        res = client.post("/api/v1/auth/login", json={"email": "admin@acme.test", "password": PASSWORD})
        assert res.status_code == 400
        assert "Role is required" in res.json()["error"]

    def test_wrong_password(self, client, tenants):
        res = _login(client, "admin@acme.test", "ADMIN", password="nope")
        assert res.status_code == 401
        assert res.json()["error"] == "Invalid email, password, or role"

    def test_role_mismatch(self, client, tenants):
        res = _login(client, "eve@acme.test", "ADMIN")
        assert res.status_code == 401
        assert "role mismatch" in res.json()["error"]

    def test_inactive_user(self, client, db, tenants):
        from opsdesk.models.models import User
        db.query(User).filter(User.id == tenants.employee_id).update({"status": "Inactive"})
        db.commit()
        res = _login(client, "eve@acme.test", "EMPLOYEE")
        assert res.status_code == 403

    def test_shared_email_logs_into_matching_tenant(self, client, tenants):
        res = client.post("/api/v1/users", json={
            "name": "Second Admin", "email": "admin@acme.test", "role": "ADMIN", "password": "other-pass",
        }, headers=tenants.other_admin)
        assert res.status_code == 201

        res = _login(client, "admin@acme.test", "ADMIN", password="other-pass")
        assert res.status_code == 200
        assert res.json()["user"]["company_id"] == tenants.company_b
        res = _login(client, "admin@acme.test", "ADMIN")
        assert res.status_code == 200
        assert res.json()["user"]["company_id"] == tenants.company_a
        assert _login(client, "admin@acme.test", "ADMIN", password="nope").status_code == 401

    def test_malformed_json(self, client, tenants):
        res = client.post("/api/v1/auth/login", content=b"{not json",
                          headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        assert res.json()["error"] == "Malformed JSON body"

    def test_logout(self, client):
        assert client.post("/api/v1/auth/logout").json()["success"] is True


class TestTokens:

    def test_missing_token(self, client, tenants):
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 401
        assert res.json()["success"] is False

    def test_garbage_token(self, client, tenants):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.json()["error"] == "Invalid token"


class TestProfile:

    def test_update_me(self, client, tenants):
        res = client.put("/api/v1/auth/me", json={"name": "Alice A.", "phone": "555"}, headers=tenants.admin)
        assert res.status_code == 200
        assert res.json()["data"]["name"] == "Alice A."
        assert res.json()["data"]["phone"] == "555"

    def test_blank_name_rejected(self, client, tenants):
        res = client.put("/api/v1/auth/me", json={"name": "  "}, headers=tenants.admin)
        assert res.status_code == 400

    def test_change_password(self, client, tenants):
        res = client.put("/api/v1/auth/change-password",
                         json={"current_password": PASSWORD, "new_password": "newpass1"}, headers=tenants.employee)
        assert res.status_code == 200
        assert _login(client, "eve@acme.test", "EMPLOYEE", password="newpass1").status_code == 200
        assert _login(client, "eve@acme.test", "EMPLOYEE").status_code == 401

    def test_change_password_wrong_current(self, client, tenants):
        res = client.put("/api/v1/auth/change-password",
                         json={"current_password": "wrong", "new_password": "newpass1"}, headers=tenants.employee)
        assert res.status_code == 400
        assert res.json()["error"] == "Current password is incorrect"

    def test_short_new_password(self, client, tenants):
        res = client.put("/api/v1/auth/change-password",
                         json={"current_password": PASSWORD, "new_password": "abc"}, headers=tenants.employee)
        assert res.status_code == 400


class TestUsers:

    def test_list_is_tenant_scoped_and_paginated(self, client, tenants):
        res = client.get("/api/v1/users?pageSize=2", headers=tenants.admin)
        body = res.json()
        assert res.status_code == 200
        assert len(body["data"]) == 2
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["totalPages"] == 2
        assert all(u["company_id"] == tenants.company_a for u in body["data"])

    def test_role_filter(self, client, tenants):
        body = client.get("/api/v1/users?role=client", headers=tenants.admin).json()
        assert [u["email"] for u in body["data"]] == ["carl@acme.test"]

    def test_create_user_generates_password(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": "New", "email": "new@acme.test", "role": "employee"},
                          headers=tenants.admin)
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["role"] == "EMPLOYEE"
        assert len(data["generated_password"]) == 12
        assert _login(client, "new@acme.test", "EMPLOYEE", password=data["generated_password"]).status_code == 200

    def test_duplicate_email(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": "Dup", "email": "eve@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.admin)
        assert res.status_code == 400

    def test_same_email_allowed_in_other_tenant(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": "Eve", "email": "eve@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.other_admin)
        assert res.status_code == 201

    def test_invalid_role(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": "X", "email": "x@acme.test", "role": "BOSS"},
                          headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"].startswith("Invalid role")

    def test_non_string_name(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": 42, "email": "x@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "name must be a string"

    def test_employee_cannot_create(self, client, tenants):
        res = client.post("/api/v1/users", json={"name": "X", "email": "x@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.employee)
        assert res.status_code == 403
        assert res.json()["error"] == "Insufficient permissions"

    def test_reset_password(self, client, tenants):
        res = client.post(f"/api/v1/users/{tenants.employee_id}/reset-password", json={}, headers=tenants.admin)
        assert res.status_code == 200
        new_password = res.json()["data"]["new_password"]
        assert _login(client, "eve@acme.test", "EMPLOYEE", password=new_password).status_code == 200

    def test_reset_password_other_tenant(self, client, tenants):
        res = client.post(f"/api/v1/users/{tenants.employee_id}/reset-password", json={},
                          headers=tenants.other_admin)
        assert res.status_code == 404
