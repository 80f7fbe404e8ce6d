from datetime import date, timedelta


class TestTimeLogs:

    def _log(self, client, headers, hours=2, day=None, **extra):
        body = {"hours": hours, "date": (day or date.today()).isoformat()}
        body.update(extra)
        return client.post("/api/v1/time-logs", json=body, headers=headers)

    def test_create(self, client, tenants):
        res = self._log(client, tenants.employee, hours="1.5", project_id=7, description="Bench test")
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["hours"] == 1.5
        assert data["project_id"] == 7
        assert data["user_name"] == "Eve Employee"

    def test_validation(self, client, tenants):
        res = client.post("/api/v1/time-logs", json={"hours": 2}, headers=tenants.employee)
        assert res.status_code == 400
        assert res.json()["error"] == "hours and date are required"
        assert self._log(client, tenants.employee, hours=25).status_code == 400
        assert self._log(client, tenants.employee, hours=-1).status_code == 400

    def test_employee_sees_own_logs(self, client, tenants):
        self._log(client, tenants.employee)
        self._log(client, tenants.admin)
        assert client.get("/api/v1/time-logs", headers=tenants.employee).json()["pagination"]["total"] == 1
        assert client.get("/api/v1/time-logs", headers=tenants.admin).json()["pagination"]["total"] == 2
        body = client.get(f"/api/v1/time-logs?user_id={tenants.employee_id}", headers=tenants.admin).json()
        assert body["pagination"]["total"] == 1

    def test_stats(self, client, tenants):
        today = date.today()
        self._log(client, tenants.employee, hours=2, day=today)
        self._log(client, tenants.employee, hours=3, day=today - timedelta(days=400))
        data = client.get("/api/v1/time-logs/stats", headers=tenants.employee).json()["data"]
        assert data["total_logs"] == 2
        assert data["total_hours"] == 5.0
        assert data["today_hours"] == 2.0
        assert data["week_hours"] == 2.0
        assert data["month_hours"] == 2.0

    def test_update_and_delete(self, client, tenants):
        log_id = self._log(client, tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/time-logs/{log_id}", json={"hours": 4}, headers=tenants.employee)
        assert res.json()["data"]["hours"] == 4.0
        assert client.put(f"/api/v1/time-logs/{log_id}", json={"hours": 0},
                          headers=tenants.employee).status_code == 400
        assert client.get(f"/api/v1/time-logs/{log_id}", headers=tenants.client).status_code == 404
        assert client.delete(f"/api/v1/time-logs/{log_id}", headers=tenants.employee).status_code == 200
        assert client.get(f"/api/v1/time-logs/{log_id}", headers=tenants.employee).status_code == 404


class TestEvents:

    def _create(self, client, tenants, **extra):
        body = {
            "event_name": "Safety briefing",
            "starts_on_date": "2025-07-01",
            "starts_on_time": "09:30",
            "employees": [tenants.employee_id, tenants.admin_id],
            "departments": [tenants.department_id],
        }
        body.update(extra)
        return client.post("/api/v1/events", json=body, headers=tenants.admin)

    def test_create_with_attendees(self, client, tenants):
        res = self._create(client, tenants)
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["label_color"] == "#3B82F6"
        assert data["starts_on_time"] == "09:30"
        assert sorted(e["user_id"] for e in data["employees"]) == sorted([tenants.employee_id, tenants.admin_id])
        assert data["departments"] == [{"department_id": tenants.department_id, "name": "Workshop"}]

    def test_comma_separated_ids_from_form(self, client, tenants):
        res = client.post("/api/v1/events", data={
            "event_name": "Stocktake",
            "starts_on_date": "2025-07-02",
            "employee_ids": f"{tenants.employee_id},{tenants.admin_id}",
        }, headers=tenants.admin)
        assert res.status_code == 201
        assert len(res.json()["data"]["employees"]) == 2

    def test_required_fields(self, client, tenants):
        res = client.post("/api/v1/events", json={"event_name": "x"}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "event_name and starts_on_date are required"

    def test_attendees_from_other_tenant(self, client, tenants):
        res = self._create(client, tenants, employees=[tenants.other_admin_id])
        assert res.status_code == 400

    def test_bad_color_and_range(self, client, tenants):
        assert self._create(client, tenants, label_color="blue").status_code == 400
        assert self._create(client, tenants, ends_on_date="2025-06-01").status_code == 400
        assert self._create(client, tenants, label_color=123456).status_code == 400
        res = self._create(client, tenants, event_name={"en": "Briefing"})
        assert res.status_code == 400
        assert res.json()["error"] == "event_name must be a string"

    def test_update_attendees(self, client, tenants):
        event_id = self._create(client, tenants).json()["data"]["id"]
        res = client.put(f"/api/v1/events/{event_id}", json={"employees": [tenants.employee_id], "departments": []},
                         headers=tenants.admin)
        assert res.status_code == 200
        data = res.json()["data"]
        assert [e["user_id"] for e in data["employees"]] == [tenants.employee_id]
        assert data["departments"] == []

    def test_list_and_date_filter(self, client, tenants):
        self._create(client, tenants)
        self._create(client, tenants, event_name="Later", starts_on_date="2025-09-01")
        body = client.get("/api/v1/events?start=2025-08-01", headers=tenants.employee).json()
        assert [e["event_name"] for e in body["data"]] == ["Later"]
        assert client.get("/api/v1/events", headers=tenants.other_admin).json()["data"] == []

    def test_writes_need_admin_and_delete(self, client, tenants):
        event_id = self._create(client, tenants).json()["data"]["id"]
        assert client.delete(f"/api/v1/events/{event_id}", headers=tenants.employee).status_code == 403
        assert client.delete(f"/api/v1/events/{event_id}", headers=tenants.admin).status_code == 200
        assert client.get(f"/api/v1/events/{event_id}", headers=tenants.admin).status_code == 404


class TestCustomFields:

    def test_create_and_filter(self, client, tenants):
        res = client.post("/api/v1/custom-fields", json={"name": "vin_number", "label": "VIN", "module": "orders"},
                          headers=tenants.admin)
        assert res.status_code == 201
        assert res.json()["data"]["type"] == "text"
        client.post("/api/v1/custom-fields", json={"name": "fleet", "label": "Fleet", "module": "clients",
                                                   "type": "checkbox"}, headers=tenants.admin)
        body = client.get("/api/v1/custom-fields?module=orders", headers=tenants.employee).json()
        assert [f["name"] for f in body["data"]] == ["vin_number"]

    def test_validation(self, client, tenants):
        def post(body):
            return client.post("/api/v1/custom-fields", json=body, headers=tenants.admin)

        assert post({"name": "x"}).status_code == 400
        assert post({"name": "Bad Name", "label": "L", "module": "orders"}).status_code == 400
        assert post({"name": "ok", "label": "L", "module": "orders", "type": "color"}).status_code == 400
        assert post({"name": "ok", "label": "L", "module": "orders"}).status_code == 201
        assert post({"name": "ok", "label": "Again", "module": "orders"}).status_code == 400

    def test_delete_requires_admin(self, client, tenants):
        field_id = client.post("/api/v1/custom-fields", json={"name": "ok", "label": "L", "module": "orders"},
                               headers=tenants.admin).json()["data"]["id"]
        assert client.delete(f"/api/v1/custom-fields/{field_id}", headers=tenants.employee).status_code == 403
        assert client.delete(f"/api/v1/custom-fields/{field_id}", headers=tenants.other_admin).status_code == 404
        assert client.delete(f"/api/v1/custom-fields/{field_id}", headers=tenants.admin).status_code == 200
        assert client.get("/api/v1/custom-fields", headers=tenants.admin).json()["data"] == []
