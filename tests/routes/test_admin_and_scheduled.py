from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from portal.extensions import db
from portal.models.admin_activity import AdminActivityLog


@pytest.fixture(autouse=True)
def _quiet_sentry():
    with patch("portal.billing.subscriptions.sentry_sdk.capture_message"):
        yield


class TestAdjustSubscription:
    def test_admin_grants_tier(self, client, make_user, session_headers):
        admin = make_user(tier="admin")
        member = make_user()

        response = client.post(
            "/api/admin/adjust-subscription",
            json={"user_id": member.id, "action": "grant-tier", "data": {"tier": "tier4"}},
            headers=session_headers(admin),
        )

        assert response.status_code == 200
        assert response.get_json() == {
            "success": True,
            "action": "grant-tier",
            "result": {"tier": "tier4", "action": "granted"},
        }
        assert member.membership_tier == "tier4"
        assert AdminActivityLog.query.count() == 1

    def test_member_is_forbidden(self, client, make_user, session_headers):
        member = make_user(tier="tier4")

        response = client.post(
            "/api/admin/adjust-subscription",
            json={"user_id": member.id, "action": "grant-tier", "data": {"tier": "admin"}},
            headers=session_headers(member),
        )

        assert response.status_code == 403
        assert member.membership_tier == "tier4"

    def test_requires_session(self, client):
        assert client.post("/api/admin/adjust-subscription", json={}).status_code == 401

    def test_non_object_data_is_rejected(self, client, make_user, session_headers):
        member = make_user()

        response = client.post(
            "/api/admin/adjust-subscription",
            json={"user_id": member.id, "action": "grant-tier", "data": "x"},
            headers=session_headers(make_user(tier="admin")),
        )

        assert response.status_code == 400
        assert member.membership_tier == "tier1"

    def test_non_object_body_is_rejected(self, client, make_user, session_headers):
        response = client.post(
            "/api/admin/adjust-subscription",
            json=["grant-tier"],
            headers=session_headers(make_user(tier="admin")),
        )

        assert response.status_code == 400

    def test_missing_fields(self, client, make_user, session_headers):
        response = client.post(
            "/api/admin/adjust-subscription",
            json={"action": "refund"},
            headers=session_headers(make_user(tier="admin")),
        )

        assert response.status_code == 400


class TestBulkAction:
    URL = "/api/admin/bulk-action"

    def test_update_tier(self, client, make_user, session_headers):
        members = [make_user(), make_user()]

        response = client.post(
            self.URL,
            json={"action": "update-tier", "user_ids": [m.id for m in members], "data": {"tier": "tier2"}},
            headers=session_headers(make_user(tier="admin")),
        )

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "action": "update-tier", "affected_count": 2}
        assert {m.membership_tier for m in members} == {"tier2"}

    @pytest.mark.parametrize("payload", [
        {"action": "update-tier"},
        {"action": "update-tier", "user_ids": "1"},
        {"user_ids": [1]},
        {"action": "delete-users", "user_ids": [1]},
        {"action": "update-tier", "user_ids": [1], "data": {}},
        {"action": "update-tier", "user_ids": [1], "data": "tier2"},
    ])
    def test_invalid_requests(self, client, make_user, session_headers, payload):
        response = client.post(self.URL, json=payload, headers=session_headers(make_user(tier="admin")))

        assert response.status_code == 400
        assert AdminActivityLog.query.count() == 0

    def test_member_is_forbidden(self, client, make_user, session_headers):
        member = make_user()

        response = client.post(
            self.URL,
            json={"action": "update-tier", "user_ids": [member.id], "data": {"tier": "admin"}},
            headers=session_headers(member),
        )

        assert response.status_code == 403
        assert member.membership_tier == "tier1"


class TestActivityLogs:
    URL = "/api/admin/activity-logs"

    @pytest.fixture
    def admins(self, make_user):
        return make_user(tier="admin", name="First Admin"), make_user(tier="admin", name="Second Admin")

    @pytest.fixture
    def logs(self, admins, make_user):
        first, second = admins
        target = make_user(name="Target Member")
        start = datetime(2030, 1, 1)
        entries = [
            AdminActivityLog(admin_id=first.id, action="MANUAL_GRANT_TIER", target_user_id=target.id,
                             details={"n": 0}, created_at=start),
            AdminActivityLog(admin_id=second.id, action="MANUAL_REFUND", target_user_id=target.id,
                             details={"n": 1}, created_at=start + timedelta(hours=1)),
            AdminActivityLog(admin_id=first.id, action="BULK_UPDATE_TIER",
                             details={"n": 2}, created_at=start + timedelta(hours=2)),
        ]
        db.session.add_all(entries)
        db.session.commit()
        return entries

    def test_newest_first_with_people(self, client, session_headers, admins, logs):
        response = client.get(self.URL, headers=session_headers(admins[0]))

        assert response.status_code == 200
        data = response.get_json()
        assert [log["details"]["n"] for log in data["logs"]] == [2, 1, 0]
        assert data["logs"][0]["target_user"] is None
        assert data["logs"][1]["admin"]["name"] == "Second Admin"
        assert data["logs"][2]["target_user"]["name"] == "Target Member"
        assert data["pagination"] == {"page": 1, "limit": 50, "total": 3, "pages": 1}

    def test_pagination(self, client, session_headers, admins, logs):
        response = client.get(f"{self.URL}?page=2&limit=2", headers=session_headers(admins[0]))

        data = response.get_json()
        assert [log["details"]["n"] for log in data["logs"]] == [0]
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_filters(self, client, session_headers, admins, logs):
        headers = session_headers(admins[0])

        by_action = client.get(f"{self.URL}?action=MANUAL_REFUND", headers=headers).get_json()
        by_admin = client.get(f"{self.URL}?admin_id={admins[0].id}", headers=headers).get_json()

        assert [log["details"]["n"] for log in by_action["logs"]] == [1]
        assert [log["details"]["n"] for log in by_admin["logs"]] == [2, 0]

    @pytest.mark.parametrize("query", ["page=0", "limit=0", "limit=101"])
    def test_rejects_bad_paging(self, client, make_user, session_headers, query):
        response = client.get(f"{self.URL}?{query}", headers=session_headers(make_user(tier="admin")))

        assert response.status_code == 400

    def test_member_is_forbidden(self, client, make_user, session_headers):
        response = client.get(self.URL, headers=session_headers(make_user(tier="tier4")))

        assert response.status_code == 403

    def test_adjustment_shows_up_in_the_log(self, client, make_user, session_headers):
        admin = make_user(tier="admin")
        member = make_user()
        client.post(
            "/api/admin/adjust-subscription",
            json={"user_id": member.id, "action": "refund", "data": {"amount": 5}},
            headers=session_headers(admin),
        )

        logs = client.get(self.URL, headers=session_headers(admin)).get_json()["logs"]

        assert len(logs) == 1
        assert logs[0]["action"] == "MANUAL_REFUND"
        assert logs[0]["target_user"]["id"] == member.id


class TestRenewalReminderJob:
    URL = "/api/scheduled/renewal-reminders"

    def test_rejects_missing_secret(self, client):
        assert client.get(self.URL).status_code == 401

    def test_rejects_wrong_secret(self, client):
        assert client.get(self.URL, headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_runs_with_cron_secret(self, client, make_user, make_subscription):
        make_subscription(make_user(), renewal_date=datetime.utcnow() + timedelta(days=2))
        make_subscription(make_user(), renewal_date=datetime.utcnow() + timedelta(days=30))

        with patch("portal.billing.subscriptions.dispatch_notification", return_value=True):
            response = client.get(self.URL, headers={"Authorization": "Bearer test-cron-secret"})

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "total": 1, "sent": 1, "failed": 0}
