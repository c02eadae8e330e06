METRICS = {
    "max_scroll_percent": 100,
    "time_on_page_seconds": 40,
    "active_seconds": 30,
}


class TestTemplateEndpoints:
    def test_crud(self, client, team_headers, workspace):
        base = f"/workspaces/{workspace.id}/templates"
        resp = client.post(
            base,
            json={"name": "Safety", "settings": {"priority": "high", "bogus": 1}},
            headers=team_headers,
        )
        assert resp.status_code == 201
        template = resp.json()
        assert template["settings"] == {"priority": "high"}

        dup = client.post(base, json={"name": "Safety"}, headers=team_headers)
        assert dup.status_code == 409
        assert dup.json()["code"] == "conflict"

        listed = client.get(f"/api/v1{base}", headers=team_headers).json()
        assert [t["name"] for t in listed["items"]] == ["Safety"]

        patched = client.patch(
            f"{base}/{template['id']}",
            json={"description": "Site rules"},
            headers=team_headers,
        )
        assert patched.json()["description"] == "Site rules"

        gone = client.delete(f"{base}/{template['id']}", headers=team_headers)
        assert gone.status_code == 204
        missing = client.get(f"{base}/{template['id']}", headers=team_headers)
        assert missing.status_code == 404

    def test_non_member(self, client, auth_headers, workspace):
        resp = client.get(f"/workspaces/{workspace.id}/templates", headers=auth_headers)
        assert resp.status_code == 403


class TestStackEndpoints:
    def test_delivery_flow(
        self, client, team_headers, workspace, team_account, make_document
    ):
        docs = [
            make_document(team_account, title=title, workspace=workspace)
            for title in ("Handbook", "Safety")
        ]
        base = f"/workspaces/{workspace.id}"
        stack = client.post(
            f"{base}/stacks", json={"name": "Onboarding"}, headers=team_headers
        ).json()
        for doc in docs:
            resp = client.post(
                f"{base}/stacks/{stack['id']}/items",
                json={"document_id": str(doc.id)},
                headers=team_headers,
            )
            assert resp.status_code == 200
        assert resp.json()["item_count"] == 2

        created = client.post(
            f"{base}/stack-deliveries",
            json={
                "stack_id": stack["id"],
                "recipients": [{"name": "Ada", "email": "ada@example.com"}],
            },
            headers=team_headers,
        )
        assert created.status_code == 201
        public_id = created.json()["delivery"]["public_id"]

        view = client.get(
            f"/public/stacks/{public_id}",
            params={"recipient_email": "ada@example.com"},
        ).json()
        assert view["required_total"] == 2
        assert view["required_acknowledged"] == 0

        early = client.post(
            f"/public/stacks/{public_id}/finalize", json={"email": "ada@example.com"}
        )
        assert early.status_code == 409
        assert early.json()["details"]["outstanding_count"] == 2

        for doc in docs:
            resp = client.post(
                f"/public/stacks/{public_id}/submit-document",
                json={
                    **METRICS,
                    "document_public_id": doc.public_id,
                    "email": "ada@example.com",
                    "name": "Ada",
                },
                headers={"User-Agent": "kiosk"},
            )
            assert resp.status_code == 201
            assert resp.json()["accepted"] is True

        receipt = client.post(
            f"/public/stacks/{public_id}/finalize", json={"email": "ada@example.com"}
        )
        assert receipt.status_code == 200
        assert receipt.json()["outstanding_count"] == 0

        detail = client.get(
            f"{base}/stack-deliveries/{created.json()['delivery']['id']}",
            headers=team_headers,
        ).json()
        assert detail["delivery"]["status"] == "completed"
        assert detail["recipients"][0]["acknowledged_documents"] == 2
        assert detail["recipients"][0]["completed_at"] is not None

    def test_revoked_link(
        self, client, team_headers, workspace, team_account, make_document
    ):
        doc = make_document(team_account, workspace=workspace)
        base = f"/workspaces/{workspace.id}/stack-deliveries"
        created = client.post(
            base,
            json={"mode": "selected_documents", "document_ids": [str(doc.id)]},
            headers=team_headers,
        ).json()
        revoked = client.post(
            f"{base}/{created['delivery']['id']}/revoke", headers=team_headers
        )
        assert revoked.json()["status"] == "revoked"
        resp = client.get(f"/public/stacks/{created['delivery']['public_id']}")
        assert resp.status_code == 410
        assert resp.json()["code"] == "delivery_closed"

    def test_pro_account_outside_workspace(self, client, auth_headers, workspace):
        resp = client.get(f"/workspaces/{workspace.id}/stacks", headers=auth_headers)
        assert resp.status_code == 403


class TestDocumentActivityEndpoints:
    def test_responsibilities_and_opened(
        self, client, team_headers, workspace, team_account, make_document
    ):
        doc = make_document(team_account, workspace=workspace)
        resp = client.put(
            f"/documents/{doc.id}/responsibilities",
            json={"account_ids": []},
            headers=team_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["can_manage"] is True
        assert [r["coverage_role"] for r in data["responsibilities"]] == ["owner"]

        opened = client.post(f"/documents/{doc.id}/opened", headers=team_headers)
        assert opened.status_code == 200
        assert opened.json()["last_action"] == "opened"
