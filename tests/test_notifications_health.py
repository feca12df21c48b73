"""
Notification listener, notification API and health endpoint tests.
"""

from studio_portal.models.notification import Notification
from studio_portal.services.notification import NotificationService

NOTIF = "/api/v1/notifications"


def _advance_onb(advance_to, project_id):
    advance_to(project_id, "IDEA")


class TestPhaseListener:
    def test_advance_notifies_client_and_staff(self, project_id, advance_to):
        _advance_onb(advance_to, project_id)

        rows = Notification.query.filter_by(category="phase").order_by(Notification.recipient).all()
        assert [n.recipient for n in rows] == ["client-1", "staff"]
        assert rows[0].title == "Brand Refresh moved to Ideation"
        assert rows[0].entity_type == "phase"
        assert rows[0].entity_id == "IDEA"
        assert "25%" in rows[0].message

    def test_launch_notification(self, project_id, advance_to):
        advance_to(project_id, "LAUNCH")
        launch = Notification.query.filter_by(category="phase", entity_id="LAUNCH", recipient="client-1").one()
        assert launch.title == "Brand Refresh has launched"
        assert launch.severity == "success"


class TestNotificationService:
    def test_broadcast_deduplicates(self, project_id):
        rows = NotificationService.broadcast(title="Hi", project_id=project_id, recipients=["a", "a", "staff"])
        assert [n.recipient for n in rows] == ["a", "staff"]

    def test_staff_reads_team_inbox(self, staff, client_actor, project_id):
        NotificationService.create(title="team only", project_id=project_id)
        assert NotificationService.unread_count(staff) == 1
        assert NotificationService.unread_count(client_actor) == 0


class TestNotificationApi:
    def test_list_and_unread_count(self, client, client_headers, project_id, advance_to):
        _advance_onb(advance_to, project_id)
        body = client.get(NOTIF, headers=client_headers).get_json()
        assert body["total"] == 1
        assert body["notifications"][0]["title"] == "Brand Refresh moved to Ideation"

        count = client.get(f"{NOTIF}/unread-count", headers=client_headers).get_json()
        assert count["unread_count"] == 1

    def test_mark_read(self, client, client_headers, project_id, advance_to):
        _advance_onb(advance_to, project_id)
        nid = client.get(NOTIF, headers=client_headers).get_json()["notifications"][0]["id"]

        res = client.post(f"{NOTIF}/{nid}/read", headers=client_headers)
        assert res.status_code == 200
        assert res.get_json()["notification"]["is_read"] is True
        unread = client.get(f"{NOTIF}?unreadOnly=true", headers=client_headers).get_json()
        assert unread["total"] == 0

    def test_cannot_read_someone_elses(self, client, auth_headers, project_id, advance_to):
        _advance_onb(advance_to, project_id)
        nid = Notification.query.filter_by(recipient="client-1").first().id
        res = client.post(f"{NOTIF}/{nid}/read", headers=auth_headers("client-2", "client"))
        assert res.status_code == 404

    def test_filter_by_project(self, client, staff_headers, make_project, advance_to):
        a = make_project(name="A")
        b = make_project(name="B")
        _advance_onb(advance_to, a)
        _advance_onb(advance_to, b)
        body = client.get(f"{NOTIF}?projectId={b}", headers=staff_headers).get_json()
        assert body["total"] == 1
        assert body["notifications"][0]["project_id"] == b

    def test_requires_auth(self, client):
        assert client.get(NOTIF).status_code == 401


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["requirement_catalog"]["status"] == "ok"
        assert body["checks"]["payment_webhook"]["status"] == "ok"

    def test_live_reports_missing_webhook_secret(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "PAYMENT_WEBHOOK_SECRET", "")
        body = client.get("/api/v1/health/live").get_json()
        assert body["checks"]["payment_webhook"]["status"] == "not_configured"
