"""
HTTP tests for campaigns, reports and the approval queue.
"""

import uuid
import pytest
from unittest.mock import AsyncMock
from httpx import AsyncClient, ASGITransport
from kdp_ads.auth import require_auth
from kdp_ads.config import Settings, get_settings
from kdp_ads.main import app
from kdp_ads.services.change_service import ChangeProposalRegistry
from kdp_ads.services.execution_service import ExecutionDispatcher, ExecutionResult

CAMPAIGN = {
    "id": "c-1",
    "name": "Dragon Romance - Exact",
    "state": "enabled",
    "daily_budget": 20.0,
}
KEYWORD = {
    "id": "kw-1",
    "ad_group_id": "ag-1",
    "campaign_id": "c-1",
    "keyword_text": "dragon romance",
    "match_type": "exact",
    "state": "enabled",
    "bid": 1.10,
}
WORKED_EXAMPLE_DAY = {
    "campaign_id": "c-1",
    "date": "2024-01-01",
    "impressions": 32830,
    "clicks": 331,
    "spend": 259.40,
    "sales": 767.52,
    "orders": 48,
    "units_sold": 48,
}


def _client(database, dispatcher=None) -> AsyncClient:
    app.state.database = database
    app.state.registry = ChangeProposalRegistry(database.sessionmaker, dispatcher)
    app.dependency_overrides[require_auth] = lambda: "test"
    app.dependency_overrides[get_settings] = lambda: Settings(royalty_per_unit=2.80)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture(autouse=True)
def _reset_app():
    yield
    app.dependency_overrides.clear()
    for attr in ("database", "registry"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)


async def _seed(client: AsyncClient):
    assert (await client.put("/api/campaigns", json=CAMPAIGN)).status_code == 200
    assert (await client.put("/api/campaigns/keywords", json=KEYWORD)).status_code == 200


# ── Campaigns ─────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_campaign_and_keyword_upsert(database):
    async with _client(database) as client:
        await _seed(client)
        updated = await client.put("/api/campaigns", json={**CAMPAIGN, "daily_budget": 30.0})
        assert updated.json()["daily_budget"] == 30.0

        campaigns = (await client.get("/api/campaigns", params={"state": "enabled"})).json()
        assert [c["id"] for c in campaigns] == ["c-1"]
        assert (await client.get("/api/campaigns", params={"state": "paused"})).json() == []

        keywords = (await client.get("/api/campaigns/c-1/keywords")).json()
        assert keywords[0]["bid"] == 1.10
        assert (await client.get("/api/campaigns/nope/keywords")).status_code == 404


@pytest.mark.anyio
async def test_metrics_for_unknown_campaign_rejected(database):
    async with _client(database) as client:
        response = await client.put("/api/campaigns/metrics", json=[WORKED_EXAMPLE_DAY])
        assert response.status_code == 404


@pytest.mark.anyio
async def test_read_raw_daily_metrics(database):
    async with _client(database) as client:
        await _seed(client)
        kenp_day = {**WORKED_EXAMPLE_DAY, "date": "2024-01-02", "kenp_royalties": 3.5, "kenp_pages_read": 700}
        await client.put("/api/campaigns/metrics", json=[kenp_day, WORKED_EXAMPLE_DAY])

        response = await client.get("/api/campaigns/c-1/metrics", params={
            "start_date": "2024-01-01", "end_date": "2024-01-31",
        })
        assert response.status_code == 200
        rows = response.json()
        assert [r["date"] for r in rows] == ["2024-01-01", "2024-01-02"]
        assert rows[0]["orders"] == 48
        assert rows[0]["units_sold"] == 48
        assert rows[0]["kenp_royalties"] is None
        assert rows[1]["kenp_royalties"] == pytest.approx(3.5)
        assert rows[1]["kenp_pages_read"] == 700

        narrowed = await client.get("/api/campaigns/c-1/metrics", params={
            "start_date": "2024-01-02", "end_date": "2024-01-02",
        })
        assert [r["date"] for r in narrowed.json()] == ["2024-01-02"]

        unknown = await client.get("/api/campaigns/nope/metrics", params={
            "start_date": "2024-01-01", "end_date": "2024-01-31",
        })
        assert unknown.status_code == 404
        reversed_range = await client.get("/api/campaigns/c-1/metrics", params={
            "start_date": "2024-02-01", "end_date": "2024-01-01",
        })
        assert reversed_range.status_code == 400


# ── Reports ───────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_roi_report(database):
    async with _client(database) as client:
        await _seed(client)
        stored = await client.put("/api/campaigns/metrics", json=[WORKED_EXAMPLE_DAY])
        assert stored.json() == {"stored": 1}

        response = await client.get("/api/reports/roi", params={
            "campaign_id": "c-1", "start_date": "2024-01-01", "end_date": "2024-01-31",
        })
        assert response.status_code == 200
        report = response.json()["report"]
        assert report["campaign_name"] == "Dragon Romance - Exact"
        assert report["acos"] == pytest.approx(33.80, abs=0.01)
        assert report["estimated_profit"] == pytest.approx(-125.0)
        assert report["break_even_acos"] == pytest.approx(17.51, abs=0.01)
        assert report["period"] == {"start_date": "2024-01-01", "end_date": "2024-01-01"}
        assert "is above break-even" in response.json()["summary"]

        data_range = (await client.get("/api/reports/data-range")).json()
        assert data_range == {"start_date": "2024-01-01", "end_date": "2024-01-01"}


@pytest.mark.anyio
async def test_compare_and_daily_reports(database):
    async with _client(database) as client:
        await _seed(client)
        await client.put("/api/campaigns/metrics", json=[
            WORKED_EXAMPLE_DAY,
            {**WORKED_EXAMPLE_DAY, "date": "2024-01-08"},
        ])

        compare = await client.get("/api/reports/compare", params={
            "start_date": "2024-01-08", "end_date": "2024-01-14",
            "previous_start_date": "2024-01-01", "previous_end_date": "2024-01-07",
        })
        assert compare.status_code == 200
        changes = compare.json()["comparison"]["changes"]
        assert changes["spend_change"] == 0
        assert changes["acos_change"] == 0

        daily = (await client.get("/api/reports/daily", params={
            "start_date": "2024-01-01", "end_date": "2024-01-31",
        })).json()
        assert [d["date"] for d in daily] == ["2024-01-01", "2024-01-08"]


@pytest.mark.anyio
async def test_report_input_validation(database):
    async with _client(database) as client:
        bad_date = await client.get("/api/reports/roi", params={"start_date": "01/01/2024", "end_date": "2024-01-31"})
        assert bad_date.status_code == 400
        reversed_range = await client.get("/api/reports/roi", params={"start_date": "2024-02-01", "end_date": "2024-01-01"})
        assert reversed_range.status_code == 400
        unknown = await client.get("/api/reports/roi", params={
            "campaign_id": "nope", "start_date": "2024-01-01", "end_date": "2024-01-31",
        })
        assert unknown.status_code == 404
        assert (await client.get("/api/reports/data-range")).json() == {"start_date": None, "end_date": None}


# ── Approval queue ────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_propose_reads_current_value(database):
    async with _client(database) as client:
        await _seed(client)
        response = await client.post("/api/approvals/bid", json={"keyword_id": "kw-1", "bid": 0.85})
        assert response.status_code == 200
        change = response.json()
        assert change["status"] == "pending"
        assert change["change_type"] == "bid_adjustment"
        assert change["current_value"] == {"bid": 1.10}
        assert change["proposed_value"] == {"bid": 0.85}

        budget = await client.post("/api/approvals/budget", json={"campaign_id": "c-1", "daily_budget": 35.0})
        assert budget.json()["current_value"] == {"daily_budget": 20.0}

        negative = await client.post("/api/approvals/negative-keyword", json={
            "campaign_id": "c-1", "keyword_text": "free ebook", "match_type": "negativePhrase",
        })
        assert negative.json()["current_value"] == {}

        state = await client.post("/api/approvals/state", json={"keyword_id": "kw-1", "state": "paused"})
        assert state.json()["current_value"] == {"state": "enabled"}

        pending = (await client.get("/api/approvals", params={"status": "pending"})).json()
        assert len(pending) == 4


@pytest.mark.anyio
async def test_propose_unknown_target_is_404(database):
    async with _client(database) as client:
        assert (await client.post("/api/approvals/bid", json={"keyword_id": "kw-x", "bid": 1.0})).status_code == 404
        assert (await client.post("/api/approvals/budget", json={"campaign_id": "c-x", "daily_budget": 5.0})).status_code == 404


@pytest.mark.anyio
async def test_state_proposal_cannot_archive(database):
    async with _client(database) as client:
        await _seed(client)
        archived = await client.post("/api/approvals/state", json={"keyword_id": "kw-1", "state": "archived"})
        assert archived.status_code == 422
        assert (await client.get("/api/approvals")).json() == []

        paused = await client.post("/api/approvals/state", json={"keyword_id": "kw-1", "state": "paused"})
        assert paused.status_code == 200
        assert paused.json()["current_value"] == {"state": "enabled"}
        assert paused.json()["proposed_value"] == {"state": "paused"}


@pytest.mark.anyio
async def test_approve_record_only_then_conflict(database):
    async with _client(database) as client:
        await _seed(client)
        change_id = (await client.post("/api/approvals/bid", json={"keyword_id": "kw-1", "bid": 0.85})).json()["id"]

        approved = await client.post(f"/api/approvals/{change_id}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved_unexecuted"
        assert approved.json()["change"]["status"] == "approved"

        again = await client.post(f"/api/approvals/{change_id}/approve")
        assert again.status_code == 409
        assert again.json()["detail"]["current_status"] == "approved"


@pytest.mark.anyio
async def test_reject_keeps_keyword_bid(database):
    async with _client(database) as client:
        await _seed(client)
        change_id = (await client.post("/api/approvals/bid", json={"keyword_id": "kw-1", "bid": 0.85})).json()["id"]

        rejected = await client.post(f"/api/approvals/{change_id}/reject")
        assert rejected.json()["status"] == "rejected"
        assert (await client.get(f"/api/approvals/{change_id}")).json()["status"] == "rejected"

        keywords = (await client.get("/api/campaigns/c-1/keywords")).json()
        assert keywords[0]["bid"] == 1.10


@pytest.mark.anyio
async def test_failed_execution_is_reported_not_raised(database):
    backend = AsyncMock()
    backend.update_keyword_bid.return_value = ExecutionResult(success=False, error="Bid below minimum")
    async with _client(database, ExecutionDispatcher(backend)) as client:
        await _seed(client)
        change_id = (await client.post("/api/approvals/bid", json={"keyword_id": "kw-1", "bid": 0.01})).json()["id"]

        response = await client.post(f"/api/approvals/{change_id}/approve")
        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["error"] == "Bid below minimum"

        history = (await client.get("/api/approvals/history", params={"change_id": change_id})).json()
        assert len(history) == 1
        assert history[0]["success"] is False
        assert history[0]["api_response"] == {"error": "Bid below minimum"}


@pytest.mark.anyio
async def test_successful_execution(database):
    backend = AsyncMock()
    backend.update_campaign_budget.return_value = ExecutionResult(success=True, response={"success": []})
    async with _client(database, ExecutionDispatcher(backend)) as client:
        await _seed(client)
        change_id = (await client.post("/api/approvals/budget", json={"campaign_id": "c-1", "daily_budget": 35.0})).json()["id"]

        response = await client.post(f"/api/approvals/{change_id}/approve")
        assert response.json()["status"] == "executed"
        assert response.json()["change"]["executed_at"] is not None
        backend.update_campaign_budget.assert_awaited_once_with("c-1", 35.0)


@pytest.mark.anyio
async def test_change_id_validation(database):
    async with _client(database) as client:
        assert (await client.post("/api/approvals/not-a-uuid/approve")).status_code == 400
        assert (await client.get("/api/approvals/not-a-uuid")).status_code == 400
        missing = uuid.uuid4()
        assert (await client.post(f"/api/approvals/{missing}/approve")).status_code == 404
        assert (await client.post(f"/api/approvals/{missing}/reject")).status_code == 404
        assert (await client.get(f"/api/approvals/{missing}")).status_code == 404
