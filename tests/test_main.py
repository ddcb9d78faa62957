class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_db_check_counts_rows(self, client, make_tenant):
        make_tenant()
        make_tenant(name="Smile Dental")

        response = client.get("/db-check")

        assert response.json() == {"status": "ok", "tenants": 2, "conversations": 0}
