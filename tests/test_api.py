"""
GroupLedger - API Tests

HTTP layer: routing, status codes and the error envelope.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models import IntercompanyTransaction, JournalLine, Organization, OrganizationType, SalesDeal
from tests.factories import make_line, make_organization
from tests.test_ingestion import JOURNAL_CSV


def assert_error(response, status_code, code):
    assert response.status_code == status_code
    detail = response.json()["detail"]
    assert detail["code"] == code
    assert detail["message"]
    assert "timestamp" in detail


async def seed_group(storage):
    holding = make_organization("Youwe Holding", OrganizationType.HOLDING)
    digital = make_organization("Youwe Digital", parent=holding, ownership="76")
    await storage.insert(Organization, [holding, digital])
    await storage.insert(JournalLine, [
        make_line(digital, "4000", credit="10000"),
        make_line(digital, "6000", debit="4000"),
        make_line(digital, "7000", debit="1000"),
    ])
    return holding, digital


# =============================================================================
# HEALTH AND ORGANIZATIONS
# =============================================================================

class TestOrganizationsApi:
    """Tests for organization endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["environment"] == "test"

    @pytest.mark.asyncio
    async def test_create_and_list(self, client):
        response = await client.post("/api/v1/organizations", json={"name": "Youwe Holding", "organization_type": "holding"})

        assert response.status_code == 201
        holding = response.json()
        assert holding["organization_type"] == "holding"
        assert Decimal(holding["ownership_percentage"]) == Decimal("100")

        response = await client.post("/api/v1/organizations", json={
            "name": "Youwe Digital",
            "parent_id": holding["id"],
            "ownership_percentage": "76",
        })
        assert response.status_code == 201

        group = (await client.get(f"/api/v1/organizations/{holding['id']}/group")).json()
        assert [org["name"] for org in group] == ["Youwe Holding", "Youwe Digital"]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, client):
        await client.post("/api/v1/organizations", json={"name": "Symson"})

        response = await client.post("/api/v1/organizations", json={"name": "Symson"})

        assert_error(response, 409, "RESOURCE_CONFLICT")

    @pytest.mark.asyncio
    async def test_ownership_out_of_range(self, client):
        response = await client.post("/api/v1/organizations", json={"name": "Symson", "ownership_percentage": 150})

        assert_error(response, 422, "VALIDATION_ERROR")
        assert response.json()["detail"]["details"]["errors"]

    @pytest.mark.asyncio
    async def test_unknown_organization(self, client):
        response = await client.get(f"/api/v1/organizations/{uuid.uuid4()}")

        assert_error(response, 404, "ORGANIZATION_NOT_FOUND")

    @pytest.mark.asyncio
    async def test_reparent_under_own_child(self, client):
        parent = (await client.post("/api/v1/organizations", json={"name": "Youwe Holding"})).json()
        child = (await client.post("/api/v1/organizations", json={"name": "Youwe Digital", "parent_id": parent["id"]})).json()

        response = await client.patch(f"/api/v1/organizations/{parent['id']}", json={"parent_id": child["id"]})

        assert_error(response, 422, "HIERARCHY_VIOLATION")


# =============================================================================
# UPLOADS
# =============================================================================

class TestUploadsApi:
    """Tests for upload endpoints."""

    @pytest.mark.asyncio
    async def test_upload_types(self, client):
        types = {t["code"]: t for t in (await client.get("/api/v1/uploads/types")).json()}

        assert len(types) == 10
        assert types["journal_lines"]["required_fields"] == ["entity_name", "ledger_account"]

    @pytest.mark.asyncio
    async def test_upload_journal(self, client):
        response = await client.post(
            "/api/v1/uploads",
            data={"upload_type": "journal_lines"},
            files={"file": ("journal.csv", JOURNAL_CSV.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 201
        result = response.json()
        assert result["status"] == "completed"
        assert result["record_count"] == 3
        assert result["skipped_count"] == 1
        assert result["skipped_rows"] == [{"row_index": 2, "missing_fields": ["ledger_account"]}]

        batches = (await client.get("/api/v1/uploads", params={"status": "completed"})).json()
        assert [b["id"] for b in batches] == [result["batch_id"]]

        batch = (await client.get(f"/api/v1/uploads/{result['batch_id']}")).json()
        assert batch["file_name"] == "journal.csv"
        assert batch["period"] == "2024-01"

    @pytest.mark.asyncio
    async def test_unknown_upload_type(self, client):
        response = await client.post(
            "/api/v1/uploads",
            data={"upload_type": "payroll"},
            files={"file": ("payroll.csv", b"Worker\nJan\n", "text/csv")},
        )

        assert_error(response, 422, "UNKNOWN_UPLOAD_TYPE")

    @pytest.mark.asyncio
    async def test_unknown_batch(self, client):
        response = await client.get(f"/api/v1/uploads/{uuid.uuid4()}")

        assert_error(response, 404, "NOT_FOUND")


# =============================================================================
# CONSOLIDATION, KPIS AND CASHFLOW
# =============================================================================

class TestAnalysisApi:
    """Tests for consolidation, KPI and cashflow endpoints."""

    @pytest.mark.asyncio
    async def test_consolidation(self, client, storage):
        holding, _ = await seed_group(storage)

        response = await client.get(f"/api/v1/consolidation/{holding.id}", params={"period": "2024-01"})

        assert response.status_code == 200
        body = response.json()
        assert body["organization_id"] == str(holding.id)
        assert body["revenue"] == 10000
        assert body["unconsolidated"] == []
        assert "Youwe Digital" in body["by_entity"]

    @pytest.mark.asyncio
    async def test_consolidation_reads_do_not_store_intercompany(self, client, storage):
        holding, digital = await seed_group(storage)
        symson = make_organization("Symson", OrganizationType.SAAS, parent=holding)
        await storage.insert(Organization, [symson])
        await storage.insert(JournalLine, [
            make_line(digital, "4000", credit="2000", intercompany_match_id="IC-1"),
            make_line(symson, "6000", debit="2000", intercompany_match_id="IC-1"),
        ])
        params = {"period": "2024-01"}

        for path in ("", "/report", "/export"):
            response = await client.get(f"/api/v1/consolidation/{holding.id}{path}", params=params)
            assert response.status_code == 200
        assert await storage.query(IntercompanyTransaction) == []

        response = await client.post(f"/api/v1/consolidation/{holding.id}/run", params=params)

        assert response.status_code == 200
        assert response.json()["intercompany_eliminations"] == 2000
        stored = await storage.query(IntercompanyTransaction)
        assert [(t.from_entity, t.to_entity, t.amount) for t in stored] == [
            ("Youwe Digital", "Symson", Decimal("2000"))
        ]

    @pytest.mark.asyncio
    async def test_consolidation_invalid_period(self, client, storage):
        holding, _ = await seed_group(storage)

        response = await client.get(f"/api/v1/consolidation/{holding.id}", params={"period": "2024-13"})

        assert_error(response, 422, "INVALID_PERIOD")

    @pytest.mark.asyncio
    async def test_consolidation_export(self, client, storage):
        holding, _ = await seed_group(storage)

        response = await client.get(f"/api/v1/consolidation/{holding.id}/export", params={"period": "2024-01"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "consolidation_2024-01.csv" in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_kpis(self, client, storage):
        _, digital = await seed_group(storage)

        response = await client.post(f"/api/v1/kpis/{digital.id}/calculate", params={"period": "2024-01"})

        assert response.status_code == 200
        kpis = {k["kpi_type"]: k for k in response.json()["kpis"]}
        assert len(kpis) == 9
        assert Decimal(kpis["gross_margin"]["value"]) == Decimal("6000")

        stored = (await client.get(f"/api/v1/kpis/{digital.id}", params={"period": "2024-01"})).json()
        assert len(stored) == 9

    @pytest.mark.asyncio
    async def test_cashflow_forecast(self, client, storage):
        await seed_group(storage)

        response = await client.get("/api/v1/cashflow/forecast", params={"as_of": "2024-01-31"})

        assert response.status_code == 200
        forecast = response.json()
        assert len(forecast) == 12
        assert forecast[0]["month"] == "2024-02"

    @pytest.mark.asyncio
    async def test_sales_pipeline(self, client, storage):
        _, digital = await seed_group(storage)
        await storage.insert(SalesDeal, [
            SalesDeal(
                id=uuid.uuid4(),
                upload_batch_id=uuid.uuid4(),
                organization_id=digital.id,
                entity_name="Acme Retail",
                period="2024-01",
                record_id="D-1",
                deal_name="Webshop",
                deal_stage="Closed Won",
                deal_owner="Alice",
                amount=Decimal("25000"),
                create_date=date(2024, 1, 1),
                close_date=date(2024, 1, 31),
                extra={},
            ),
        ])

        response = await client.get(f"/api/v1/sales/{digital.id}/pipeline", params={"as_of": "2024-02-01"})

        assert response.status_code == 200
        body = response.json()
        assert body["conversion"]["won_deals"] == 1
        assert body["top_owners"][0]["owner"] == "Alice"


# =============================================================================
# REPORTS AND ASSISTANT
# =============================================================================

class TestReportsApi:
    """Tests for report endpoints."""

    @pytest.mark.asyncio
    async def test_report_types_for_saas(self, client):
        response = await client.get("/api/v1/reports/types", params={"organization_type": "saas"})

        assert response.status_code == 200
        assert len(response.json()) == 9

    @pytest.mark.asyncio
    async def test_report_lifecycle(self, client, storage):
        _, digital = await seed_group(storage)

        response = await client.post("/api/v1/reports", json={
            "organization_id": str(digital.id),
            "report_type": "income_statement",
            "period": "2024-01",
        })
        assert response.status_code == 201
        report = response.json()
        assert report["status"] == "generated"

        download = await client.get(f"/api/v1/reports/{report['id']}/download")
        assert download.status_code == 200
        assert download.text.startswith("Category,Subcategory,Amount,Period")

        sent = await client.post(f"/api/v1/reports/{report['id']}/send")
        assert sent.json()["status"] == "sent"

        again = await client.post(f"/api/v1/reports/{report['id']}/send")
        assert_error(again, 409, "INVALID_STATUS_TRANSITION")

    @pytest.mark.asyncio
    async def test_report_without_data(self, client, storage):
        _, digital = await seed_group(storage)

        response = await client.post("/api/v1/reports", json={
            "organization_id": str(digital.id),
            "report_type": "balance_sheet",
            "period": "2023-06",
        })

        assert_error(response, 404, "NO_FINANCIAL_DATA")

    @pytest.mark.asyncio
    async def test_report_not_applicable(self, client, storage):
        _, digital = await seed_group(storage)

        response = await client.post("/api/v1/reports", json={
            "organization_id": str(digital.id),
            "report_type": "mrr",
            "period": "2024-01",
        })

        assert_error(response, 422, "BUSINESS_RULE_VIOLATION")


class TestAssistantApi:
    """Tests for assistant endpoints."""

    @pytest.mark.asyncio
    async def test_chat_without_api_key(self, client):
        response = await client.post("/api/v1/assistant/chat", json={
            "period": "2024-01",
            "messages": [{"role": "user", "content": "How did we do?"}],
        })

        assert_error(response, 502, "OPENAI_API_ERROR")

    @pytest.mark.asyncio
    async def test_suggestions(self, client, storage):
        await seed_group(storage)

        response = await client.get("/api/v1/assistant/suggestions", params={"period": "2024-01"})

        assert response.status_code == 200
        questions = response.json()["questions"]
        assert any("intercompany" in q for q in questions)
