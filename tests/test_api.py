from datetime import datetime, timedelta, timezone

from conftest import login


def create_customer(client, name="Globex", email="hello@globex.test", phone="+1-555-0100"):
    response = client.post("/api/customers", json={"name": name, "email": email, "phone": phone})
    assert response.status_code == 201, response.text
    return response.json()["customerId"]


def create_pipeline(client, name="QA", description="x", steps=("A", "B")):
    response = client.post("/api/pipelines", json={"name": name, "description": description, "steps": list(steps)})
    assert response.status_code == 201, response.text
    return response.json()["pipelineId"]


def create_job(client, customer_id, pipeline_id, **extra):
    body = {"title": "Landing Page", "customerId": customer_id, "pipelineId": pipeline_id, "currentStep": "A"}
    body.update(extra)
    return client.post("/api/jobs", json=body)


def test_root_and_store_status(client):
    assert client.get("/").status_code == 200
    status = client.get("/test").json()
    assert status["database"] == "memory"
    assert status["connection_status"] == "Connected"


def test_create_pipeline_then_list(client, user):
    pipeline_id = create_pipeline(client)

    pipelines = {p["id"]: p for p in client.get("/api/pipelines").json()}

    created = pipelines[pipeline_id]
    assert created["name"] == "QA"
    assert created["description"] == "x"
    assert created["steps"] == ["A", "B"]
    assert created["jobCount"] == 0
    assert created["createdAt"] == datetime.now(timezone.utc).date().isoformat()


def test_create_job_then_list(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)
    due = (datetime.now(timezone.utc).date() + timedelta(days=3)).isoformat()

    response = create_job(client, customer_id, pipeline_id, dueDate=due)
    assert response.status_code == 201
    job_id = response.json()["jobId"]

    jobs = client.get("/api/jobs").json()
    assert jobs[0]["id"] == job_id
    assert jobs[0]["customer"] == "Globex"
    assert jobs[0]["pipeline"] == "QA"
    assert jobs[0]["currentStep"] == "A"
    assert jobs[0]["status"] == "active"
    assert jobs[0]["dueDate"] == due
    assert jobs[0]["progress"] == 0


def test_job_without_due_date(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)

    job_id = create_job(client, customer_id, pipeline_id, dueDate="").json()["jobId"]

    job = next(j for j in client.get("/api/jobs").json() if j["id"] == job_id)
    assert job["dueDate"] is None


def test_job_progress_out_of_range_is_rejected(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)

    response = create_job(client, customer_id, pipeline_id, progress=150)

    assert response.status_code == 400
    assert "progress" in response.json()["error"]
    assert all(0 <= j["progress"] <= 100 for j in client.get("/api/jobs").json())
    assert len(client.get("/api/jobs").json()) == 3


def test_job_status_must_be_known(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)

    assert create_job(client, customer_id, pipeline_id, status="archived").status_code == 400
    assert create_job(client, customer_id, pipeline_id, status="paused").status_code == 201


def test_job_requires_fields(client, user):
    response = client.post("/api/jobs", json={"title": "No refs"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_job_rejects_malformed_reference(client, user):
    pipeline_id = create_pipeline(client)

    response = create_job(client, "not-an-id", pipeline_id)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid ID format"}


def test_customer_requires_name_and_email(client, user):
    assert client.post("/api/customers", json={"name": "Nameless"}).status_code == 400
    assert client.post("/api/customers", json={"email": "a@b.test"}).status_code == 400


def test_dashboard_counts_due_this_week(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)
    soon = (datetime.now(timezone.utc).date() + timedelta(days=2)).isoformat()
    later = (datetime.now(timezone.utc).date() + timedelta(days=10)).isoformat()
    create_job(client, customer_id, pipeline_id, dueDate=soon)
    create_job(client, customer_id, pipeline_id, dueDate=later)
    create_job(client, customer_id, pipeline_id, dueDate=soon, status="paused")

    stats = client.get("/api/dashboard/stats").json()

    # Seeded sample jobs are all active and already past due
    assert stats["activeJobs"] == 5
    assert stats["jobsDueThisWeek"] == 1
    assert stats["jobsDueThisWeek"] <= stats["activeJobs"]
    assert stats["totalCustomers"] == 4
    assert stats["totalPipelines"] == 3


def test_customer_listing_counts(client, user):
    customer_id = create_customer(client)
    pipeline_id = create_pipeline(client)
    create_job(client, customer_id, pipeline_id)
    create_job(client, customer_id, pipeline_id, status="completed")

    customers = {c["id"]: c for c in client.get("/api/customers").json()}

    assert customers[customer_id]["activeJobs"] == 1
    assert customers[customer_id]["totalJobs"] == 2
    assert customers[customer_id]["phone"] == "+1-555-0100"
    pipelines = {p["id"]: p for p in client.get("/api/pipelines").json()}
    assert pipelines[pipeline_id]["jobCount"] == 1


def test_users_only_see_their_own_records(client, other_client, user):
    login(other_client, "octocat")
    customer_id = create_customer(other_client, name="Initech")
    pipeline_id = create_pipeline(other_client, name="Octo Flow")
    octo_job = create_job(other_client, customer_id, pipeline_id, title="Octo Job").json()["jobId"]

    mine = client.get("/api/jobs").json()
    theirs = other_client.get("/api/jobs").json()

    assert octo_job not in {j["id"] for j in mine}
    assert {j["title"] for j in mine} == {"E-commerce Website", "Restaurant App", "Portfolio Site"}
    assert octo_job in {j["id"] for j in theirs}
    assert "Initech" not in {c["name"] for c in client.get("/api/customers").json()}
    assert "Octo Flow" not in {p["name"] for p in client.get("/api/pipelines").json()}


def test_cannot_reference_another_users_records(client, other_client, user):
    login(other_client, "octocat")
    foreign_customer = create_customer(other_client, name="Initech")
    my_pipeline = create_pipeline(client)

    response = create_job(client, foreign_customer, my_pipeline)

    assert response.status_code == 400
    assert response.json() == {"error": "Customer not found"}


def test_storage_failure_is_not_leaked(client, user, monkeypatch):
    import aggregation
    from errors import StorageError

    def broken(scope):
        raise StorageError("connection reset by mongo-1.internal:27017")

    monkeypatch.setattr(aggregation, "list_jobs", broken)

    response = client.get("/api/jobs")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch jobs"}


def test_store_status_reports_unreachable_store(client, app, monkeypatch):
    from errors import StorageError

    def unreachable():
        raise StorageError("ping: server selection timeout")

    monkeypatch.setattr(app.state.db, "ping", unreachable)

    body = client.get("/test").json()

    assert body["connection_status"] == "Error"
    assert body["collections"] == []
