"""API tests against the application wired to in-memory collaborators."""

import json

import pytest

pytestmark = [pytest.mark.api, pytest.mark.asyncio]

PIPELINE = {
    "project_id": "proj-1",
    "name": "Web build",
    "steps": [
        {"id": "install", "name": "Install", "kind": {"kind": "block", "block_id": "npm-install"}},
        {
            "id": "build",
            "name": "Build",
            "kind": {"kind": "block", "block_id": "npm-build"},
            "depends_on": ["install"],
        },
    ],
    "variables": [{"name": "NODE_VERSION", "value": "20"}],
    "secrets": [{"id": "vault-api-key", "name": "API_KEY"}],
}


async def _create_pipeline(client, **overrides) -> dict:
    response = await client.post("/api/pipelines", json={**PIPELINE, **overrides})
    assert response.status_code == 201
    return response.json()


# ─── Pipelines ──────────────────────────────────────────────────────────────


class TestPipelinesApi:
    """Pipeline CRUD, validation and planning endpoints."""

    async def test_crud(self, client):
        created = await _create_pipeline(client)
        pipeline_id = created["id"]
        assert created["secrets"] == [
            {"id": "vault-api-key", "name": "API_KEY", "scope": "pipeline", "owner_id": pipeline_id}
        ]

        response = await client.get("/api/pipelines", params={"project_id": "proj-1"})
        assert [p["id"] for p in response.json()] == [pipeline_id]

        response = await client.patch(f"/api/pipelines/{pipeline_id}", json={"name": "Renamed"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert len(response.json()["steps"]) == 2

        response = await client.post(f"/api/pipelines/{pipeline_id}/disable")
        assert response.json()["enabled"] is False

        response = await client.post(f"/api/pipelines/{pipeline_id}/duplicate")
        assert response.status_code == 201
        assert response.json()["name"] == "Renamed (copy)"

        response = await client.delete(f"/api/pipelines/{pipeline_id}")
        assert response.status_code == 204
        response = await client.get(f"/api/pipelines/{pipeline_id}")
        assert response.status_code == 404

    async def test_plan(self, client):
        created = await _create_pipeline(client)
        response = await client.get(f"/api/pipelines/{created['id']}/plan")
        assert response.json()["waves"] == [["install"], ["build"]]
        assert response.json()["valid"] is True

    async def test_validate_draft(self, client):
        kind = {"kind": "block", "block_id": "x"}
        steps = [
            {"id": "a", "name": "A", "kind": kind, "depends_on": ["b"]},
            {"id": "b", "name": "B", "kind": kind, "depends_on": ["a"]},
        ]
        response = await client.post("/api/pipelines/validate", json={"steps": steps})
        assert response.status_code == 200
        assert response.json() == {
            "valid": False,
            "errors": ["Circular dependency detected: a -> b -> a"],
        }

    async def test_invalid_payload(self, client):
        response = await client.post("/api/pipelines", json={"project_id": "proj-1"})
        assert response.status_code == 422

    async def test_duplicate_variable_names(self, client):
        created = await _create_pipeline(client)
        variables = [{"name": "X", "value": "1"}, {"name": "X", "value": "2"}]

        response = await client.post("/api/pipelines", json={**PIPELINE, "variables": variables})
        assert response.status_code == 422
        response = await client.patch(
            f"/api/pipelines/{created['id']}", json={"variables": variables}
        )
        assert response.status_code == 422

        pipeline = (await client.get(f"/api/pipelines/{created['id']}")).json()
        assert [v["name"] for v in pipeline["variables"]] == ["NODE_VERSION"]


# ─── Executions ─────────────────────────────────────────────────────────────


class TestExecutionsApi:
    """Starting and tracking executions."""

    async def test_execute_and_follow_events(self, client, executor):
        created = await _create_pipeline(client)

        response = await client.post(
            f"/api/pipelines/{created['id']}/execute",
            json={"project_path": "/srv/web", "overrides": {"NODE_VERSION": "22"}},
        )
        assert response.status_code == 202
        execution = response.json()
        assert execution["status"] == "pending"
        assert execution["waves"] == [["install"], ["build"]]
        assert "env" not in execution
        assert executor.last_env["API_KEY"] == "s3cr3t"
        assert executor.last_env["NODE_VERSION"] == "22"
        assert executor.last_env["PROJECT_PATH"] == "/srv/web"

        execution_id = execution["id"]
        for step_id, status in [
            ("install", "running"),
            ("install", "succeeded"),
            ("build", "running"),
        ]:
            response = await client.post(
                "/api/executions/events",
                json={"execution_id": execution_id, "step_id": step_id, "status": status},
            )
            assert response.status_code == 202

        progress = (await client.get(f"/api/executions/{execution_id}/progress")).json()
        assert progress["completed_steps"] == 1
        assert progress["current_steps"] == ["build"]
        assert progress["progress"] == 50

        response = await client.delete(f"/api/executions/{execution_id}")
        assert response.status_code == 409

        await client.post(
            "/api/executions/events",
            json={"execution_id": execution_id, "step_id": "build", "status": "succeeded"},
        )
        response = await client.get(f"/api/executions/{execution_id}")
        assert response.json()["status"] == "succeeded"

        metrics = (await client.get(f"/api/executions/{execution_id}/metrics")).json()
        assert metrics["steps_succeeded"] == 2

        listed = (await client.get(f"/api/pipelines/{created['id']}/executions")).json()
        assert [e["id"] for e in listed] == [execution_id]

        response = await client.delete(f"/api/executions/{execution_id}")
        assert response.status_code == 204
        response = await client.get(f"/api/executions/{execution_id}")
        assert response.status_code == 404

    async def test_invalid_graph_refused(self, client, executor):
        created = await _create_pipeline(
            client,
            steps=[
                {
                    "id": "a",
                    "name": "A",
                    "kind": {"kind": "block", "block_id": "x"},
                    "depends_on": ["ghost"],
                }
            ],
        )

        response = await client.post(f"/api/pipelines/{created['id']}/execute")

        assert response.status_code == 422
        assert response.json()["errors"] == ["Step 'a' depends on unknown step 'ghost'"]
        assert executor.submissions == []

    async def test_disabled_pipeline_conflict(self, client):
        created = await _create_pipeline(client, enabled=False)
        response = await client.post(f"/api/pipelines/{created['id']}/execute")
        assert response.status_code == 409

    async def test_executor_unavailable(self, client, executor):
        executor.fail_submit = True
        created = await _create_pipeline(client)
        response = await client.post(f"/api/pipelines/{created['id']}/execute")
        assert response.status_code == 502
        assert (await client.get("/api/executions")).json() == []

    async def test_cancel_and_retry(self, client, executor):
        created = await _create_pipeline(client)
        execution_id = (await client.post(f"/api/pipelines/{created['id']}/execute")).json()["id"]

        await client.post(
            "/api/executions/events",
            json={"execution_id": execution_id, "step_id": "install", "status": "running"},
        )
        response = await client.post(f"/api/executions/{execution_id}/steps/install/retry")
        assert response.status_code == 409

        response = await client.post(f"/api/executions/{execution_id}/cancel")
        assert response.status_code == 200
        body = response.json()
        assert body["cancel_requested"] is True
        assert {s["step_id"]: s["status"] for s in body["steps"]} == {
            "install": "running",
            "build": "cancelled",
        }
        assert executor.cancelled == [execution_id]

    async def test_unknown_execution(self, client):
        assert (await client.get("/api/executions/nope")).status_code == 404
        assert (await client.post("/api/executions/nope/cancel")).status_code == 404


# ─── Templates ──────────────────────────────────────────────────────────────


class TestTemplatesApi:
    """Template endpoints."""

    async def test_list_and_recommended(self, client):
        templates = (await client.get("/api/templates")).json()
        assert "react-build" in [t["key"] for t in templates]

        response = await client.get("/api/templates/recommended", params={"framework": "rust"})
        recommended = response.json()
        assert recommended[0]["key"] == "rust-build"

    async def test_export_import(self, client):
        response = await client.get("/api/templates/react-build/export")
        assert response.status_code == 200
        assert "react-build.json" in response.headers["content-disposition"]
        document = response.json()

        response = await client.post("/api/templates/import", content=json.dumps(document))
        assert response.status_code == 409

        document["key"] = "team-react"
        response = await client.post("/api/templates/import", content=json.dumps(document))
        assert response.status_code == 201
        assert response.json()["key"] == "team-react"

        response = await client.post("/api/templates/import", content="{broken")
        assert response.status_code == 422

        assert (await client.delete("/api/templates/team-react")).status_code == 204
        assert (await client.delete("/api/templates/react-build")).status_code == 409

    async def test_generate(self, client):
        body = {"projectId": "proj-1", "projectName": "Shop", "save": True}
        response = await client.post("/api/templates/react-build/generate", json=body)
        assert response.status_code == 200
        pipeline = response.json()
        assert pipeline["name"] == "Shop - React Build Pipeline"

        plan = (await client.get(f"/api/pipelines/{pipeline['id']}/plan")).json()
        assert plan["waves"] == [["install-deps"], ["lint-code", "run-tests"], ["build-project"]]

    async def test_unknown_template(self, client):
        assert (await client.get("/api/templates/nope")).status_code == 404


# ─── Scopes ─────────────────────────────────────────────────────────────────


class TestScopesApi:
    """Variable and secret reference endpoints."""

    async def test_variables(self, client):
        base = "/api/scopes/project/proj-1/variables"

        response = await client.post(base, json={"name": "REGION", "value": "eu"})
        assert response.status_code == 201
        assert (await client.post(base, json={"name": "REGION"})).status_code == 409
        assert (await client.post(base, json={"name": "1BAD"})).status_code == 422

        response = await client.patch(f"{base}/REGION", json={"value": "us"})
        assert response.json()["value"] == "us"

        response = await client.put(base, json=[{"name": "A"}, {"name": "B", "value": "2"}])
        assert [v["name"] for v in response.json()] == ["A", "B"]

        assert (await client.delete(f"{base}/A")).status_code == 204
        assert (await client.get(f"{base}/A")).status_code == 404
        assert [v["name"] for v in (await client.get(base)).json()] == ["B"]

    async def test_secrets_never_expose_values(self, client):
        base = "/api/scopes/pipeline/pipe-1/secrets"

        response = await client.post(base, json={"id": "vault-api-key", "name": "API_KEY"})
        assert response.status_code == 201
        assert "value" not in response.json()

        assert (await client.delete(f"{base}/API_KEY")).status_code == 204
        assert (await client.delete(f"{base}/API_KEY")).status_code == 404

    async def test_unknown_level(self, client):
        assert (await client.get("/api/scopes/team/t-1/variables")).status_code == 422
