import json

RECORD = {
    "jobCardNumber": "JC-100",
    "beforeRepair": {"pressure": "1200", "leak": "High", "calibration": "Off", "passFail": "Fail"},
    "afterRepair": {"pressure": 1600, "leak": "None", "passFail": "Pass"},
    "injectorParams": {"pilotInjection": "1.2", "mainInjection": "22.5", "leakTest": "Pass"},
    "testDate": "2025-04-10",
}


def _create(client, headers, body=None):
    return client.post("/api/v1/testing-records", json=body or RECORD, headers=headers)


class TestTestingRecords:

    def test_create_nested_shape(self, client, tenants):
        res = _create(client, tenants.employee)
        assert res.status_code == 201
        data = res.json()["data"]
        assert data["jobCardNumber"] == "JC-100"
        assert data["technicianName"] == "Eve Employee"
        assert data["beforeRepair"]["passFail"] == "Fail"
        assert data["afterRepair"] == {"pressure": "1600", "leak": "None", "calibration": None, "passFail": "Pass"}
        assert data["injectorParams"]["leakTest"] == "Pass"
        assert data["injectorParams"]["returnFlow"] is None
        assert data["testDate"] == "2025-04-10"

    def test_pass_fail_defaults_to_fail(self, client, tenants):
        data = _create(client, tenants.admin, {"jobCardNumber": "JC-100"}).json()["data"]
        assert data["beforeRepair"]["passFail"] == "Fail"
        assert data["afterRepair"]["passFail"] == "Fail"
        assert data["injectorParams"]["leakTest"] == "Fail"
        assert data["testDate"]

    def test_form_payload_with_json_sections(self, client, tenants):
        res = client.post("/api/v1/testing-records", data={
            "jobCardNumber": "JC-100",
            "afterRepair": json.dumps({"passFail": "Pass"}),
        }, headers=tenants.admin)
        assert res.status_code == 201
        assert res.json()["data"]["afterRepair"]["passFail"] == "Pass"

    def test_invalid_pass_fail(self, client, tenants):
        body = dict(RECORD, afterRepair={"passFail": "Maybe"})
        assert _create(client, tenants.admin, body).status_code == 400

    def test_unknown_job_card(self, client, tenants):
        res = _create(client, tenants.admin, dict(RECORD, jobCardNumber="JC-999"))
        assert res.status_code == 404
        assert res.json()["error"] == "Job card not found"

    def test_job_card_from_other_tenant(self, client, tenants):
        assert _create(client, tenants.other_admin).status_code == 404

    def test_client_cannot_create(self, client, tenants):
        assert _create(client, tenants.client).status_code == 403

    def test_employee_limited_to_assigned_cards(self, client, db, tenants):
        from opsdesk.models.models import JobCard
        db.add(JobCard(company_id=tenants.company_a, job_no="JC-200", technician_id=tenants.admin_id))
        db.commit()
        res = _create(client, tenants.employee, dict(RECORD, jobCardNumber="JC-200"))
        assert res.status_code == 403

    def test_list_with_count_and_technician_filter(self, client, tenants):
        _create(client, tenants.employee)
        _create(client, tenants.admin)
        body = client.get("/api/v1/testing-records", headers=tenants.admin).json()
        assert body["count"] == 2
        body = client.get("/api/v1/testing-records?technician=Eve Employee", headers=tenants.admin).json()
        assert body["count"] == 2
        body = client.get("/api/v1/testing-records?technician=Nobody", headers=tenants.admin).json()
        assert body["count"] == 0
        assert client.get("/api/v1/testing-records", headers=tenants.other_admin).json()["count"] == 0

    def test_partial_update(self, client, tenants):
        record_id = _create(client, tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/testing-records/{record_id}", json={"beforeRepair": {"passFail": "Pass"}},
                         headers=tenants.employee)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["beforeRepair"]["passFail"] == "Pass"
        assert data["beforeRepair"]["pressure"] == "1200"
        assert data["afterRepair"]["passFail"] == "Pass"

    def test_update_without_fields(self, client, tenants):
        record_id = _create(client, tenants.employee).json()["data"]["id"]
        res = client.put(f"/api/v1/testing-records/{record_id}", json={}, headers=tenants.employee)
        assert res.status_code == 400
        assert res.json()["error"] == "No fields to update"

    def test_delete_is_physical(self, client, db, tenants):
        from opsdesk.models.models import TestingRecord as Record
        record_id = _create(client, tenants.employee).json()["data"]["id"]
        assert client.delete(f"/api/v1/testing-records/{record_id}", headers=tenants.employee).status_code == 200
        assert db.query(Record).filter(Record.id == record_id).count() == 0
        assert client.get(f"/api/v1/testing-records/{record_id}", headers=tenants.admin).status_code == 404
