"""
GroupLedger - Upload Ingestion Tests

End-to-end ingestion of CSV exports into an in-memory database.
"""

from decimal import Decimal

import pytest

from app.models import (
    AccountCategory,
    JournalLine,
    Organization,
    OrganizationType,
    SalesDeal,
    UploadBatch,
    UploadStatus,
)
from app.services.ingestion_service import UploadIngestionService, read_csv_rows
from app.services.storage_service import SQLAlchemyStorage
from app.utils.error_handling import PersistenceFailure, StorageError, UnknownUploadTypeException
from tests.factories import make_organization


JOURNAL_CSV = """Journal,Company,Accounting Date,Ledger Account,Ledger Debit Amount,Ledger Credit Amount,Currency,Intercompany Match ID
JE-1,Youwe Digital B.V.,2024-01-10,4000,,"10,000.00",EUR,
JE-2,Youwe Digital B.V.,2024-01-12,6000,"4,000.00",,EUR,
JE-3,Youwe Holding B.V.,2024-01-20,,100.00,,EUR,
JE-4,Symson B.V.,2024-01-25,7000,"1.500,00",,,IC-1
"""


class FlakyStorage(SQLAlchemyStorage):
    """Fails a number of journal line inserts before letting writes through."""

    def __init__(self, session, failures: int, fail_on_call: int = 1):
        super().__init__(session)
        self.failures = failures
        self.fail_on_call = fail_on_call
        self.calls = 0

    async def insert(self, model, records):
        if model is JournalLine:
            self.calls += 1
            if self.failures and self.calls >= self.fail_on_call:
                self.failures -= 1
                raise StorageError("connection reset")
        return await super().insert(model, records)


class TestReadCsvRows:
    """Tests for CSV parsing."""

    def test_skips_blank_lines_and_trims(self):
        rows = read_csv_rows("Company,Amount\n Symson , 10 \n,\n\nAcme,5\n")
        assert rows == [{"Company": "Symson", "Amount": "10"}, {"Company": "Acme", "Amount": "5"}]

    def test_strips_byte_order_mark(self):
        rows = read_csv_rows("\ufeffCompany\nSymson\n".encode("utf-8"))
        assert rows == [{"Company": "Symson"}]


class TestJournalIngestion:
    """Tests for journal line uploads."""

    @pytest.mark.asyncio
    async def test_ingests_and_skips_invalid_rows(self, storage, settings):
        service = UploadIngestionService(storage, settings)

        result = await service.ingest("journal.csv", JOURNAL_CSV.encode("utf-8"), "journal_lines")

        assert result.status == UploadStatus.COMPLETED
        assert result.record_count == 3
        assert result.skipped_count == 1
        assert result.skipped_rows[0].row_index == 2
        assert result.skipped_rows[0].missing_fields == ["ledger_account"]
        assert result.period == "2024-01"
        assert result.created_organizations == ["Symson", "Youwe Digital"]

        batch = await storage.get(UploadBatch, result.batch_id)
        assert batch.status == UploadStatus.COMPLETED
        assert batch.record_count == 3
        assert batch.skipped_count == 1
        assert batch.period == "2024-01"

    @pytest.mark.asyncio
    async def test_records_resolved_and_classified(self, storage, settings):
        service = UploadIngestionService(storage, settings)
        await service.ingest("journal.csv", JOURNAL_CSV, "journal_lines")

        digital = (await storage.query(Organization, name="Youwe Digital"))[0]
        lines = await storage.query(JournalLine, organization_id=digital.id, order_by="ledger_account")

        assert [line.account_category for line in lines] == [AccountCategory.REVENUE, AccountCategory.DIRECT_COST]
        assert lines[0].credit_amount == Decimal("10000.00")
        assert lines[0].period == "2024-01"
        assert lines[0].entity_name == "Youwe Digital B.V."

        symson_line = (await storage.query(JournalLine, intercompany_match_id="IC-1"))[0]
        assert symson_line.debit_amount == Decimal("1500.00")
        assert symson_line.currency == "EUR"

    @pytest.mark.asyncio
    async def test_existing_organization_reused(self, storage, settings):
        existing = make_organization("Symson", OrganizationType.SAAS)
        await storage.insert(Organization, [existing])

        result = await UploadIngestionService(storage, settings).ingest("journal.csv", JOURNAL_CSV, "journal_lines")

        assert "Symson" not in result.created_organizations
        lines = await storage.query(JournalLine, organization_id=existing.id)
        assert len(lines) == 1

    @pytest.mark.asyncio
    async def test_unknown_upload_type_fails_batch(self, storage, settings):
        service = UploadIngestionService(storage, settings)

        with pytest.raises(UnknownUploadTypeException) as exc_info:
            await service.ingest("payroll.csv", JOURNAL_CSV, "payroll")

        batches = await storage.query(UploadBatch)
        assert len(batches) == 1
        assert batches[0].status == UploadStatus.FAILED
        assert "payroll" in batches[0].error_message
        assert exc_info.value.details["batch_id"] == str(batches[0].id)
        assert await storage.query(JournalLine) == []

    @pytest.mark.asyncio
    async def test_unreadable_file_fails_batch(self, storage, settings):
        result = await UploadIngestionService(storage, settings).ingest(
            "journal.csv", b"\xff\xfe\x00bad", "journal_lines"
        )

        assert result.status == UploadStatus.FAILED
        batch = await storage.get(UploadBatch, result.batch_id)
        assert batch.status == UploadStatus.FAILED
        assert batch.record_count == 0

    @pytest.mark.asyncio
    async def test_quarter_period_from_dates(self, storage, settings):
        csv_text = (
            "Company,Accounting Date,Ledger Account,Ledger Credit Amount\n"
            "Symson,2024-01-10,4000,100\n"
            "Symson,2024-03-10,4000,100\n"
        )
        result = await UploadIngestionService(storage, settings).ingest("q1.csv", csv_text, "journal_lines")

        assert result.period == "2024-Q1"
        periods = sorted(line.period for line in await storage.query(JournalLine))
        assert periods == ["2024-01", "2024-03"]


class TestSalesDealIngestion:
    """Sales deals are attributed to the target organization, not per row."""

    @pytest.mark.asyncio
    async def test_deals_use_target_organization(self, storage, settings):
        target = make_organization("Youwe Digital")
        await storage.insert(Organization, [target])
        csv_text = (
            "Record ID,Deal Name,Deal Stage,Create Date,Amount EUR,Associated Company\n"
            "D-1,Webshop,Closed Won,2024-01-05,\"25,000\",Acme Retail\n"
        )

        result = await UploadIngestionService(storage, settings).ingest(
            "deals.csv", csv_text, "sales_deals", target_organization_id=target.id
        )

        assert result.created_organizations == []
        deals = await storage.query(SalesDeal)
        assert deals[0].organization_id == target.id
        assert deals[0].entity_name == "Acme Retail"
        assert deals[0].amount == Decimal("25000")
        assert [o.name for o in await storage.query(Organization)] == ["Youwe Digital"]


class TestIngestionFailures:
    """Tests for storage failures during the record write."""

    @pytest.mark.asyncio
    async def test_retry_after_partial_write(self, db_session, settings):
        # chunk size 2: the first chunk lands, the second fails once
        storage = FlakyStorage(db_session, failures=1, fail_on_call=2)

        result = await UploadIngestionService(storage, settings).ingest("journal.csv", JOURNAL_CSV, "journal_lines")

        assert result.status == UploadStatus.COMPLETED
        assert result.record_count == 3
        assert len(await storage.query(JournalLine)) == 3

    @pytest.mark.asyncio
    async def test_persistent_failure_rolls_back(self, db_session, settings):
        storage = FlakyStorage(db_session, failures=10)

        with pytest.raises(PersistenceFailure):
            await UploadIngestionService(storage, settings).ingest("journal.csv", JOURNAL_CSV, "journal_lines")

        assert await storage.query(JournalLine) == []
        batch = (await storage.query(UploadBatch))[0]
        assert batch.status == UploadStatus.FAILED
        assert batch.record_count == 0
        assert "connection reset" in batch.error_message
