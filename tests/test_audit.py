from licitahub.models import AuditLog

USER = "c3d2e1f0-5555-4c2e-9d6b-000000000001"


def test_authenticated_request_is_audited(client, auth_headers, db):
    client.post("/api/saved-filters", json={"name": "Obras"}, headers=auth_headers(USER))

    entry = db.query(AuditLog).one()
    assert entry.user_id == USER
    assert entry.action == "saved_filter_create"
    assert entry.resource_type == "saved_filter"
    assert entry.details["status_code"] == 201
    assert entry.details["path"] == "/api/saved-filters"


def test_anonymous_request_is_audited_without_user(client, db):
    client.get("/api/saved-filters")

    entry = db.query(AuditLog).one()
    assert entry.user_id is None
    assert entry.action == "get_saved-filters"


def test_health_checks_are_not_audited(client, db):
    client.get("/health")
    client.get("/")

    assert db.query(AuditLog).count() == 0
