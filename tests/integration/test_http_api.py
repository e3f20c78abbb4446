"""End-to-end HTTP tests: real FastAPI app, real database, camelCase wire format."""

import pytest

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


ACME_CALL = {
    "transcriptText": "Full transcript of the Acme call",
    "summary": "Call with Acme",
    "features": [
        {
            "featureName": "Dashboard",
            "aiSummary": "Dashboard is slow",
            "quotes": [{"quote": "It takes a minute to load", "painPoint": "Slow dashboard"}],
        }
    ],
    "newFeatureSuggestions": [
        {
            "featureName": "Export PDF",
            "aiSummary": "Customers want PDF exports",
            "quotes": [{"quote": "We print every report", "painPoint": "No PDF export"}],
        }
    ],
}


async def test_suggestion_lifecycle_over_http(client, seed_feature):
    seed_feature("Dashboard")

    saved = await client.post("/api/transcripts", json=ACME_CALL)
    assert saved.status_code == 200
    body = saved.json()
    assert body["success"] is True
    transcript_id = body["transcriptId"]

    pending = (await client.get("/api/features", params={"status": "pending"})).json()
    assert pending["count"] == 1
    suggestion = pending["features"][0]
    assert suggestion["featureName"] == "Export PDF"
    assert suggestion["isSuggestion"] is True
    assert suggestion["painPointsCount"] == 1
    assert suggestion["transcriptId"] == transcript_id

    # Default list hides unreviewed suggestions
    active = (await client.get("/api/features")).json()
    assert [f["featureName"] for f in active["features"]] == ["Dashboard"]

    approved = await client.post(f"/api/transcripts/suggestions/{suggestion['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["feature"]["status"] == "active"

    names = (await client.get("/api/features/names")).json()
    assert names["features"] == ["Dashboard", "Export PDF"]

    again = await client.post(f"/api/transcripts/suggestions/{suggestion['id']}/approve")
    assert again.status_code == 409
    assert again.json()["success"] is False


async def test_approving_a_name_that_is_already_active_is_rejected(client, seed_feature):
    seed_feature("Slack Integration")
    pending_id = seed_feature("slack integration", status="pending", is_suggestion=True, pain_points_count=1)

    resp = await client.post(f"/api/transcripts/suggestions/{pending_id}/approve")

    assert resp.status_code == 409
    assert resp.json()["error"] == "A feature with this name already exists"
    names = (await client.get("/api/features/names")).json()
    assert names["features"] == ["Slack Integration"]


async def test_transcript_views_over_http(client):
    transcript_id = (await client.post("/api/transcripts", json=ACME_CALL)).json()["transcriptId"]

    listing = (await client.get("/api/transcripts")).json()
    assert [t["id"] for t in listing["transcripts"]] == [transcript_id]

    detail = (await client.get(f"/api/transcripts/{transcript_id}", params={"withHistory": "true"})).json()
    transcript = detail["transcript"]
    assert transcript["features"][0]["featureName"] == "Dashboard"
    assert transcript["newFeatureSuggestions"][0]["status"] == "pending"
    assert transcript["newFeatureSuggestions"][0]["quotes"][0]["painPoint"] == "No PDF export"

    history = (await client.get("/api/transcripts/suggestions/history/export pdf")).json()["history"]
    assert history["featureName"] == "Export PDF"
    assert history["transcriptCount"] == 1

    details = (await client.get("/api/features/details/Export PDF")).json()["feature"]
    assert details["transcripts"][0]["transcriptName"] == "Call with Acme"
    mapping_id = details["transcripts"][0]["painPoints"][0]["mappingId"]

    removed = await client.delete(f"/api/features/mappings/{mapping_id}")
    assert removed.status_code == 200
    details = (await client.get("/api/features/details/Export PDF")).json()["feature"]
    assert details["transcripts"] == []

    deleted = await client.delete(f"/api/transcripts/{transcript_id}")
    assert deleted.status_code == 200
    missing = await client.get(f"/api/transcripts/{transcript_id}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Transcript not found"


async def test_feature_management_over_http(client, seed_transcript):
    seed_transcript(mapped=[("Reports", "q1"), ("reports", "q2")])

    saved = await client.post("/api/features", json={"features": ["Reports", "Dashboard", "reports"]})
    assert saved.json()["count"] == 2

    with_counts = (await client.get("/api/features/with-counts")).json()["features"]
    assert [(f["featureName"], f["painPointCount"]) for f in with_counts] == [("Reports", 1), ("Dashboard", 0)]

    reports_id = with_counts[0]["id"]
    renamed = await client.put(f"/api/features/{reports_id}", json={"featureName": "Reporting", "description": "PDF"})
    assert renamed.status_code == 200
    assert renamed.json()["feature"]["featureName"] == "Reporting"
    details = (await client.get("/api/features/details/reporting")).json()["feature"]
    assert len(details["transcripts"][0]["painPoints"]) == 2

    clash = await client.put(f"/api/features/{reports_id}", json={"featureName": "dashboard"})
    assert clash.status_code == 409

    archived = await client.post(f"/api/features/{reports_id}/archive")
    assert archived.json()["feature"]["status"] == "archived"
    everything = (await client.get("/api/features", params={"status": "all"})).json()
    assert everything["count"] == 2

    deleted = await client.delete("/api/features")
    assert deleted.json()["count"] == 2


async def test_requests_are_scoped_by_user_id(client):
    payload = {**ACME_CALL, "userId": "alice"}
    transcript_id = (await client.post("/api/transcripts", json=payload)).json()["transcriptId"]

    assert (await client.get(f"/api/transcripts/{transcript_id}")).status_code == 404
    assert (await client.get(f"/api/transcripts/{transcript_id}", params={"userId": "alice"})).status_code == 200

    pending = (await client.get("/api/features", params={"status": "pending", "userId": "alice"})).json()
    feature_id = pending["features"][0]["id"]

    foreign = await client.post(f"/api/transcripts/suggestions/{feature_id}/ignore", json={"userId": "bob"})
    assert foreign.status_code == 404

    ignored = await client.post(f"/api/transcripts/suggestions/{feature_id}/ignore", json={"userId": "alice"})
    assert ignored.status_code == 200
    assert ignored.json()["feature"]["status"] == "archived"


async def test_invalid_requests(client):
    blank = await client.post("/api/transcripts", json={**ACME_CALL, "transcriptText": "  "})
    assert blank.status_code == 400
    assert blank.json() == {"success": False, "error": "Invalid request", "message": "Transcript text is required"}

    malformed = await client.post("/api/transcripts", json={"summary": "no text"})
    assert malformed.status_code == 422

    bad_filter = await client.get("/api/features", params={"status": "deleted"})
    assert bad_filter.status_code == 400

    missing = await client.post("/api/features/999/archive")
    assert missing.status_code == 404
