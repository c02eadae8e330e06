from datetime import date

from receipts.models.account import Plan

BILLING_HEADERS = {"X-Billing-Key": "test-billing-key"}


class TestWorkspaceEndpoints:
    def test_create(self, client, team_headers):
        resp = client.post(
            "/workspaces",
            json={
                "name": "Plant 7",
                "slug": "plant-7",
                "tag_fields": [{"key": "line", "label": "Line"}],
            },
            headers=team_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["slug"] == "plant-7"
        assert data["plan"] == "team"
        assert data["seat_limit"] == 5

    def test_create_needs_team_plan(self, client, auth_headers):
        resp = client.post(
            "/workspaces", json={"name": "Mine", "slug": "mine"}, headers=auth_headers
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "upgrade_required"

    def test_bad_slug(self, client, team_headers):
        resp = client.post(
            "/workspaces", json={"name": "Bad", "slug": "Bad Slug"}, headers=team_headers
        )
        assert resp.status_code == 422

    def test_list_and_get(self, client, team_headers, workspace):
        resp = client.get("/workspaces", headers=team_headers)
        assert [w["id"] for w in resp.json()["items"]] == [str(workspace.id)]
        resp = client.get(f"/workspaces/{workspace.id}", headers=team_headers)
        assert resp.json()["name"] == "Acme Ops"

    def test_non_member_cannot_get(self, client, auth_headers, workspace):
        resp = client.get(f"/workspaces/{workspace.id}", headers=auth_headers)
        assert resp.status_code == 403

    def test_patch(self, client, team_headers, workspace):
        resp = client.patch(
            f"/workspaces/{workspace.id}",
            json={"require_recipient_identity": True},
            headers=team_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["require_recipient_identity"] is True


class TestLicensingEndpoints:
    def test_members_and_seats(self, client, team_headers, workspace, make_account):
        acct = make_account(Plan.free)
        resp = client.post(
            f"/workspaces/{workspace.id}/members",
            json={"account_id": str(acct.id)},
            headers=team_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["license_active"] is False

        resp = client.patch(
            f"/workspaces/{workspace.id}/licenses/{acct.id}",
            json={"license_active": True},
            headers=team_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["license_active"] is True

        resp = client.get(f"/workspaces/{workspace.id}/licenses", headers=team_headers)
        summary = resp.json()["summary"]
        assert (summary["used_seats"], summary["available_seats"]) == (2, 3)
        assert len(resp.json()["members"]) == 2

    def test_update_member(self, client, team_headers, workspace, make_account):
        acct = make_account(Plan.free)
        client.post(
            f"/workspaces/{workspace.id}/members",
            json={"account_id": str(acct.id)},
            headers=team_headers,
        )
        resp = client.patch(
            f"/workspaces/{workspace.id}/members/{acct.id}",
            json={"role": "admin"},
            headers=team_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"

    def test_transfer_ownership(self, client, team_headers, workspace, make_account):
        acct = make_account(Plan.free)
        client.post(
            f"/workspaces/{workspace.id}/members",
            json={"account_id": str(acct.id)},
            headers=team_headers,
        )
        resp = client.post(
            f"/workspaces/{workspace.id}/transfer-ownership",
            json={"account_id": str(acct.id)},
            headers=team_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["owner_id"] == str(acct.id)


class TestAnalyticsEndpoint:
    def test_snapshot(self, client, team_headers, workspace):
        resp = client.get(
            f"/workspaces/{workspace.id}/analytics",
            params={"start": "2026-03-01", "end": "2026-03-03"},
            headers=team_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["granularity"] == "day"
        assert [p["date"] for p in data["series"]] == [
            str(date(2026, 3, d)) for d in (1, 2, 3)
        ]
        assert data["totals"]["acknowledgement_rate_percent"] is None

    def test_bad_granularity(self, client, team_headers, workspace):
        resp = client.get(
            f"/workspaces/{workspace.id}/analytics",
            params={"granularity": "year"},
            headers=team_headers,
        )
        assert resp.status_code == 422

    def test_non_member(self, client, auth_headers, workspace):
        resp = client.get(f"/workspaces/{workspace.id}/analytics", headers=auth_headers)
        assert resp.status_code == 403


class TestContactEndpoints:
    def test_contact_and_group(self, client, team_headers, workspace):
        resp = client.post(
            f"/workspaces/{workspace.id}/contacts",
            json={"name": "Ada", "email": "ADA@example.com"},
            headers=team_headers,
        )
        assert resp.status_code == 201
        contact_id = resp.json()["id"]
        assert resp.json()["email"] == "ada@example.com"

        resp = client.post(
            f"/workspaces/{workspace.id}/contact-groups",
            json={"name": "Floor", "contact_ids": [contact_id]},
            headers=team_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["member_count"] == 1
        assert resp.json()["members"][0]["email"] == "ada@example.com"

        resp = client.get(f"/workspaces/{workspace.id}/contacts", headers=team_headers)
        assert resp.json()["count"] == 2


class TestBillingEndpoint:
    def test_requires_key(self, client, account):
        resp = client.post(
            "/billing/plan-updates",
            json={"account_id": str(account.id), "plan": "pro"},
        )
        assert resp.status_code == 401

    def test_wrong_key(self, client, account):
        resp = client.post(
            "/billing/plan-updates",
            json={"account_id": str(account.id), "plan": "pro"},
            headers={"X-Billing-Key": "nope"},
        )
        assert resp.status_code == 401

    def test_workspace_seat_update(self, client, workspace):
        resp = client.post(
            "/billing/plan-updates",
            json={"workspace_id": str(workspace.id), "plan": "team", "seat_limit": 12},
            headers=BILLING_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["seat_limit"] == 12


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_metrics(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "receipts_" in resp.text
