class TestEmployees:

    def test_list_carries_user_fields(self, client, tenants):
        res = client.get("/api/v1/employees", headers=tenants.employee)
        body = res.json()
        assert res.status_code == 200
        assert body["pagination"]["total"] == 2
        eve = next(e for e in body["data"] if e["user_id"] == tenants.employee_id)
        assert eve["name"] == "Eve Employee"
        assert eve["department_name"] == "Workshop"

    def test_department_and_search_filters(self, client, tenants):
        body = client.get(f"/api/v1/employees?department={tenants.department_id}", headers=tenants.admin).json()
        assert [e["employee_number"] for e in body["data"]] == ["EMP-0002"]
        body = client.get("/api/v1/employees?search=alice", headers=tenants.admin).json()
        assert [e["employee_number"] for e in body["data"]] == ["EMP-0001"]

    def test_other_tenant_sees_nothing(self, client, tenants):
        body = client.get("/api/v1/employees", headers=tenants.other_admin).json()
        assert body["data"] == []

    def test_profile(self, client, tenants):
        res = client.get("/api/v1/employees/profile", headers=tenants.employee)
        assert res.status_code == 200
        assert res.json()["data"]["employee_number"] == "EMP-0002"

        res = client.put("/api/v1/employees/profile", json={"phone": "0400"}, headers=tenants.employee)
        assert res.json()["data"]["phone"] == "0400"

    def test_profile_missing_for_client(self, client, tenants):
        res = client.get("/api/v1/employees/profile", headers=tenants.client)
        assert res.status_code == 404

    def test_create_employee(self, client, tenants):
        res = client.post("/api/v1/employees", json={
            "name": "Tom Tech",
            "email": "tom@acme.test",
            "role": "EMPLOYEE",
            "department_id": tenants.department_id,
            "joining_date": "2025-03-01",
            "salary": "4200",
        }, headers=tenants.admin)
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["employee_number"] == "EMP-0003"
        assert data["department_name"] == "Workshop"
        assert data["joining_date"] == "2025-03-01"
        assert data["salary"] == 4200.0
        assert data["generated_password"]

    def test_create_rejects_foreign_department(self, client, tenants):
        res = client.post("/api/v1/employees", json={
            "name": "Tom", "email": "tom@other.test", "role": "EMPLOYEE", "department_id": tenants.department_id,
        }, headers=tenants.other_admin)
        assert res.status_code == 400
        assert res.json()["error"] == "Department not found in this company"

    def test_create_duplicate_email(self, client, tenants):
        res = client.post("/api/v1/employees", json={"name": "E", "email": "eve@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.admin)
        assert res.status_code == 400

    def test_create_requires_admin(self, client, tenants):
        res = client.post("/api/v1/employees", json={"name": "E", "email": "e2@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.employee)
        assert res.status_code == 403

    def test_update_employee(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/employees/{emp_id}", json={"name": "Eve E.", "salary": 5000},
                         headers=tenants.admin)
        assert res.status_code == 200
        assert res.json()["data"]["name"] == "Eve E."
        assert res.json()["data"]["salary"] == 5000.0

    def test_status_must_be_known(self, client, tenants):
        res = client.post("/api/v1/employees", json={"name": "Tom", "email": "tom@acme.test", "role": "EMPLOYEE",
                                                     "status": "active"}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid status. Must be one of: Active, Inactive"

        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/employees/{emp_id}", json={"status": "Disabled"}, headers=tenants.admin)
        assert res.status_code == 400
        assert client.get("/api/v1/auth/me", headers=tenants.employee).status_code == 200
        res = client.put(f"/api/v1/employees/{emp_id}", json={"status": "Inactive"}, headers=tenants.admin)
        assert res.json()["data"]["status"] == "Inactive"

    def test_update_rejects_non_string_name(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/employees/{emp_id}", json={"name": 5}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "name must be a string"

    def test_deleted_employee_email_stays_taken(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        client.delete(f"/api/v1/employees/{emp_id}", headers=tenants.admin)
        res = client.post("/api/v1/employees", json={"name": "Eve", "email": "eve@acme.test", "role": "EMPLOYEE"},
                          headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "User with this email already exists"

    def test_update_email_clash(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/employees/{emp_id}", json={"email": "admin@acme.test"}, headers=tenants.admin)
        assert res.status_code == 400

    def test_delete_soft_deletes_user(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        res = client.delete(f"/api/v1/employees/{emp_id}", headers=tenants.admin)
        assert res.status_code == 200
        assert client.get(f"/api/v1/employees/{emp_id}", headers=tenants.admin).status_code == 404
        # the deleted user's token no longer resolves
        assert client.get("/api/v1/auth/me", headers=tenants.employee).status_code == 401

    def test_cannot_delete_self(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.admin).json()["data"]["id"]
        res = client.delete(f"/api/v1/employees/{emp_id}", headers=tenants.admin)
        assert res.status_code == 400

    def test_get_other_tenant_employee(self, client, tenants):
        emp_id = client.get("/api/v1/employees/profile", headers=tenants.employee).json()["data"]["id"]
        assert client.get(f"/api/v1/employees/{emp_id}", headers=tenants.other_admin).status_code == 404


class TestDepartments:

    def test_list_counts_employees(self, client, tenants):
        body = client.get("/api/v1/departments", headers=tenants.employee).json()
        assert body["data"][0]["name"] == "Workshop"
        assert body["data"][0]["total_employees"] == 1
        assert body["data"][0]["company_name"] == "Acme Services"

    def test_crud(self, client, tenants):
        res = client.post("/api/v1/departments", json={"name": "Sales"}, headers=tenants.admin)
        assert res.status_code == 201
        dept_id = res.json()["data"]["id"]

        res = client.put(f"/api/v1/departments/{dept_id}", json={"name": "Field Sales"}, headers=tenants.admin)
        assert res.json()["data"]["name"] == "Field Sales"

        assert client.delete(f"/api/v1/departments/{dept_id}", headers=tenants.admin).status_code == 200
        assert client.get(f"/api/v1/departments/{dept_id}", headers=tenants.admin).status_code == 404

    def test_name_required(self, client, tenants):
        res = client.post("/api/v1/departments", json={"name": ""}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "Department name is required"

    def test_writes_need_admin(self, client, tenants):
        res = client.post("/api/v1/departments", json={"name": "Sales"}, headers=tenants.employee)
        assert res.status_code == 403

    def test_other_tenant_cannot_touch(self, client, tenants):
        res = client.put(f"/api/v1/departments/{tenants.department_id}", json={"name": "Hijack"},
                         headers=tenants.other_admin)
        assert res.status_code == 404


class TestPositions:

    def test_create_with_department(self, client, tenants):
        res = client.post("/api/v1/positions", json={
            "name": "Technician", "department_id": tenants.department_id, "description": "Bench work",
        }, headers=tenants.admin)
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["department_name"] == "Workshop"
        assert data["total_employees"] == 0

        body = client.get(f"/api/v1/positions?department_id={tenants.department_id}", headers=tenants.admin).json()
        assert [p["name"] for p in body["data"]] == ["Technician"]

    def test_foreign_department_rejected(self, client, tenants):
        res = client.post("/api/v1/positions", json={"name": "X", "department_id": tenants.department_id},
                          headers=tenants.other_admin)
        assert res.status_code == 400

    def test_update_and_delete(self, client, tenants):
        pos_id = client.post("/api/v1/positions", json={"name": "Clerk"}, headers=tenants.admin).json()["data"]["id"]
        res = client.put(f"/api/v1/positions/{pos_id}", json={"description": "Front desk"}, headers=tenants.admin)
        assert res.json()["data"]["description"] == "Front desk"
        assert client.delete(f"/api/v1/positions/{pos_id}", headers=tenants.admin).status_code == 200
        assert client.get(f"/api/v1/positions/{pos_id}", headers=tenants.admin).status_code == 404
