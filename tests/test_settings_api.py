import os

from opsdesk.models.models import SystemSetting


def _settings(client, headers, path="/api/v1/settings"):
    return {s["setting_key"]: s for s in client.get(path, headers=headers).json()["data"]}


class TestSettings:

    def test_tenant_value_overrides_global_default(self, client, db, tenants):
        db.add(SystemSetting(company_id=None, setting_key="general_currency", setting_value="USD"))
        db.add(SystemSetting(company_id=None, setting_key="general_timezone", setting_value="UTC"))
        db.commit()

        res = client.put("/api/v1/settings", json={"setting_key": "general_currency", "setting_value": "AUD"},
                         headers=tenants.admin)
        assert res.status_code == 200

        mine = _settings(client, tenants.admin)
        assert mine["general_currency"]["setting_value"] == "AUD"
        assert mine["general_currency"]["company_id"] == tenants.company_a
        assert mine["general_timezone"]["company_id"] is None

        other = _settings(client, tenants.other_admin)
        assert other["general_currency"]["setting_value"] == "USD"

    def test_upsert_keeps_one_row(self, client, db, tenants):
        for value in ["a", "b"]:
            client.put("/api/v1/settings", json={"setting_key": "invoice_prefix", "setting_value": value},
                       headers=tenants.admin)
        rows = db.query(SystemSetting).filter(SystemSetting.setting_key == "invoice_prefix").all()
        assert len(rows) == 1
        assert rows[0].setting_value == "b"

    def test_object_values_stored_as_json(self, client, tenants):
        res = client.put("/api/v1/settings", json={"setting_key": "theme", "setting_value": {"dark": True}},
                         headers=tenants.admin)
        assert res.json()["data"]["setting_value"] == '{"dark": true}'

    def test_list_payload(self, client, tenants):
        res = client.put("/api/v1/settings", json=[
            {"setting_key": "invoice_prefix", "setting_value": "INV"},
            {"setting_key": "invoice_due_days", "setting_value": 30},
        ], headers=tenants.admin)
        assert [r["setting_key"] for r in res.json()["data"]] == ["invoice_prefix", "invoice_due_days"]
        by_category = _settings(client, tenants.admin, "/api/v1/settings/category/invoice")
        assert by_category["invoice_due_days"]["setting_value"] == "30"

    def test_category_wildcards_are_literal(self, client, tenants):
        client.put("/api/v1/settings/bulk", json={"settings": [
            {"setting_key": "mail_host", "setting_value": "smtp.acme.test"},
            {"setting_key": "mailer", "setting_value": "smtp"},
        ]}, headers=tenants.admin)
        assert list(_settings(client, tenants.admin, "/api/v1/settings/category/mail_")) == ["mail_host"]
        assert _settings(client, tenants.admin, "/api/v1/settings/category/%25") == {}

    def test_setting_key_required(self, client, tenants):
        res = client.put("/api/v1/settings", json={"setting_value": "x"}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "setting_key is required"

    def test_bulk(self, client, tenants):
        res = client.put("/api/v1/settings/bulk", json={"settings": [
            {"setting_key": "general_company_name", "setting_value": "Acme"},
            {"setting_value": "skipped"},
        ]}, headers=tenants.admin)
        assert res.status_code == 200
        assert res.json()["data"] == [{"setting_key": "general_company_name", "success": True}]

    def test_bulk_requires_array(self, client, tenants):
        res = client.put("/api/v1/settings/bulk", json={"settings": "nope"}, headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "Settings must be an array"

    def test_logo_upload(self, client, tenants):
        res = client.put("/api/v1/settings", files={"logo": ("logo.png", b"\x89PNG....", "image/png")},
                         headers=tenants.admin)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["setting_key"] == "logo"
        assert data["setting_value"].endswith("_logo.png")
        assert os.path.exists(data["setting_value"].lstrip("/")) or os.path.exists(data["setting_value"])

    def test_logo_must_be_image(self, client, tenants):
        res = client.put("/api/v1/settings", files={"logo": ("logo.txt", b"text", "text/plain")},
                         headers=tenants.admin)
        assert res.status_code == 400
        assert res.json()["error"] == "Only image files are allowed"

    def test_writes_need_admin(self, client, tenants):
        res = client.put("/api/v1/settings", json={"setting_key": "a", "setting_value": "b"},
                         headers=tenants.employee)
        assert res.status_code == 403
