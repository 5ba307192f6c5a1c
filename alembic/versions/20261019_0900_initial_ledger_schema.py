"""Initial ledger schema

Revision ID: 20261019_0900_initial_ledger_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
- organizations: Group entities with parent links and ownership
- upload_batches: One row per ingested CSV export
- journal_lines, customer_invoices, supplier_invoices, customer_contracts,
  time_entries, customer_payments, supplier_payments, bank_statement_lines,
  billing_installments, sales_deals: Canonical records per upload type
- intercompany_transactions: Derived intercompany pairs
- kpi_records: Calculated KPIs per organization and period
- reports: Generated report files
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261019_0900_initial_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(precision=18, scale=2)
HOURS = sa.Numeric(precision=12, scale=2)

LEDGER_TABLES = [
    'journal_lines',
    'customer_invoices',
    'supplier_invoices',
    'customer_contracts',
    'time_entries',
    'customer_payments',
    'supplier_payments',
    'bank_statement_lines',
    'billing_installments',
    'sales_deals',
]


def base_columns():
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def ledger_columns(table_name):
    """Columns every canonical record table shares."""
    return base_columns() + [
        sa.Column('upload_batch_id', sa.Uuid(), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('entity_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('period', sa.String(10), nullable=False, comment='YYYY-MM of the record date'),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(
            ['upload_batch_id'], ['upload_batches.id'],
            name=f'fk_{table_name}_upload_batch_id_upload_batches', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name=f'fk_{table_name}_organization_id_organizations', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=f'pk_{table_name}'),
    ]


def text(name, length=255):
    return sa.Column(name, sa.String(length), nullable=False, server_default='')


def amount(name):
    return sa.Column(name, MONEY, nullable=False, server_default='0')


def day(name):
    return sa.Column(name, sa.Date(), nullable=True)


def currency():
    return sa.Column('currency', sa.String(3), nullable=False, server_default='EUR')


def upgrade() -> None:
    """Create ledger schema."""

    organization_type = sa.Enum('HOLDING', 'SERVICES', 'SAAS', name='organizationtype')
    reporting_type = sa.Enum('STANDALONE', 'CONSOLIDATED', name='reportingtype')
    upload_status = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', name='uploadstatus')
    account_category = sa.Enum(
        'ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'DIRECT_COST', 'OPERATING_EXPENSE', 'OTHER',
        name='accountcategory',
    )
    kpi_type = sa.Enum(
        'GROSS_MARGIN', 'GROSS_MARGIN_PERCENTAGE', 'EBITDA', 'EBITDA_PERCENTAGE',
        'BILLABLE_UTILIZATION', 'AVERAGE_HOURLY_RATE', 'REVENUE_PER_FTE',
        'DAYS_SALES_OUTSTANDING', 'OPERATING_CASH_FLOW',
        'MRR', 'ARR', 'ARPU', 'CUSTOMER_CHURN_RATE', 'GROSS_REVENUE_RETENTION',
        'NET_REVENUE_RETENTION', 'CAC', 'LTV', 'LTV_CAC_RATIO', 'MONTHS_TO_RECOVER_CAC', 'RULE_OF_40',
        name='kpitype',
    )
    kpi_unit = sa.Enum('EUR', 'PERCENT', 'RATIO', 'DAYS', 'COUNT', 'MONTHS', 'SCORE', name='kpiunit')
    report_status = sa.Enum('DRAFT', 'GENERATED', 'SENT', name='reportstatus')

    # ===========================================
    # ORGANIZATIONS AND UPLOADS
    # ===========================================
    op.create_table(
        'organizations',
        *base_columns(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('organization_type', organization_type, nullable=False),
        sa.Column('reporting_type', reporting_type, nullable=False),
        sa.Column('ownership_percentage', sa.Numeric(precision=5, scale=2), nullable=False, server_default='100'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('description', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['parent_id'], ['organizations.id'],
            name='fk_organizations_parent_id_organizations', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_organizations'),
        sa.UniqueConstraint('name', name='uq_organizations_name'),
    )
    op.create_index('ix_organizations_parent_id', 'organizations', ['parent_id'])

    op.create_table(
        'upload_batches',
        *base_columns(),
        sa.Column('file_name', sa.String(500), nullable=False),
        sa.Column('upload_type', sa.String(50), nullable=False),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('period', sa.String(10), nullable=True),
        sa.Column('status', upload_status, nullable=False),
        sa.Column('record_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_upload_batches_organization_id_organizations', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_upload_batches'),
    )
    op.create_index('ix_upload_batches_upload_type', 'upload_batches', ['upload_type'])
    op.create_index('ix_upload_batches_organization_id', 'upload_batches', ['organization_id'])
    op.create_index('ix_upload_batches_period', 'upload_batches', ['period'])

    # ===========================================
    # CANONICAL RECORDS
    # ===========================================
    op.create_table(
        'journal_lines',
        *ledger_columns('journal_lines'),
        text('journal'),
        text('journal_number', 100),
        text('intercompany_initiating_company'),
        text('status', 50),
        day('accounting_date'),
        text('source', 100),
        text('ledger', 100),
        currency(),
        text('ledger_account'),
        sa.Column('account_category', account_category, nullable=False),
        amount('debit_amount'),
        amount('credit_amount'),
        sa.Column('line_memo', sa.Text(), nullable=False, server_default=''),
        text('revenue_category'),
        text('spend_category'),
        text('cost_center'),
        text('customer'),
        text('project'),
        text('worker'),
        text('supplier'),
        text('intercompany_match_id', 100),
    )
    op.create_index('ix_journal_lines_accounting_date', 'journal_lines', ['accounting_date'])
    op.create_index('ix_journal_lines_ledger_account', 'journal_lines', ['ledger_account'])
    op.create_index('ix_journal_lines_account_category', 'journal_lines', ['account_category'])
    op.create_index('ix_journal_lines_intercompany_match_id', 'journal_lines', ['intercompany_match_id'])

    op.create_table(
        'customer_invoices',
        *ledger_columns('customer_invoices'),
        sa.Column('invoice', sa.String(255), nullable=False),
        text('customer'),
        text('customer_id', 100),
        text('invoice_status', 50),
        text('invoice_type', 50),
        day('invoice_date'),
        amount('invoice_amount'),
        amount('amount_due'),
        amount('tax_amount'),
        currency(),
        day('due_date'),
        text('payment_status', 50),
        text('payment_type', 50),
        sa.Column('memo', sa.Text(), nullable=False, server_default=''),
    )

    op.create_table(
        'supplier_invoices',
        *ledger_columns('supplier_invoices'),
        sa.Column('supplier_invoice', sa.String(255), nullable=False),
        text('invoice_number', 100),
        sa.Column('intercompany', sa.Boolean(), nullable=False, server_default=sa.false()),
        text('status', 50),
        text('supplier'),
        text('supplier_invoice_number', 100),
        day('invoice_date'),
        day('accounting_date'),
        day('due_date'),
        amount('invoice_amount'),
        amount('balance_due'),
        amount('tax_amount'),
        currency(),
        sa.Column('memo', sa.Text(), nullable=False, server_default=''),
        text('payment_type', 50),
    )

    op.create_table(
        'customer_contracts',
        *ledger_columns('customer_contracts'),
        sa.Column('contract', sa.String(255), nullable=False),
        text('customer'),
        text('customer_id', 100),
        text('contract_type', 100),
        text('contract_status', 50),
        day('contract_start_date'),
        day('contract_end_date'),
        amount('contract_amount'),
        sa.Column('remaining_amount', MONEY, nullable=True),
        currency(),
        text('billing_frequency', 50),
    )

    op.create_table(
        'time_entries',
        *ledger_columns('time_entries'),
        sa.Column('worker', sa.String(255), nullable=False),
        day('entry_date'),
        sa.Column('total_hours', HOURS, nullable=False, server_default='0'),
        sa.Column('billable_hours', HOURS, nullable=False, server_default='0'),
        amount('amount_to_bill'),
        amount('rate_to_bill'),
        text('billing_status', 50),
        text('customer'),
        text('project'),
    )
    op.create_index('ix_time_entries_worker', 'time_entries', ['worker'])

    op.create_table(
        'customer_payments',
        *ledger_columns('customer_payments'),
        sa.Column('payment', sa.String(255), nullable=False),
        text('customer'),
        text('customer_id', 100),
        day('payment_date'),
        amount('payment_amount'),
        currency(),
        text('payment_status', 50),
        text('payment_type', 50),
    )

    op.create_table(
        'supplier_payments',
        *ledger_columns('supplier_payments'),
        text('transaction_number', 100),
        day('payment_date'),
        text('payment_status', 50),
        text('supplier'),
        text('payment_type', 50),
        amount('amount'),
        currency(),
    )

    op.create_table(
        'bank_statement_lines',
        *ledger_columns('bank_statement_lines'),
        day('transaction_date'),
        amount('amount'),
        sa.Column('direction', sa.String(2), nullable=False, server_default='CR'),
        currency(),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        text('bank_account', 100),
    )

    op.create_table(
        'billing_installments',
        *ledger_columns('billing_installments'),
        text('customer'),
        text('contract'),
        day('installment_date'),
        amount('amount'),
        currency(),
        text('installment_status', 50),
    )

    op.create_table(
        'sales_deals',
        *ledger_columns('sales_deals'),
        sa.Column('record_id', sa.String(100), nullable=False),
        sa.Column('deal_name', sa.String(500), nullable=False),
        text('deal_stage', 100),
        day('create_date'),
        day('close_date'),
        amount('amount'),
        text('deal_owner'),
        text('deal_type', 100),
    )

    for table_name in LEDGER_TABLES:
        op.create_index(f'ix_{table_name}_upload_batch_id', table_name, ['upload_batch_id'])
        op.create_index(f'ix_{table_name}_organization_id', table_name, ['organization_id'])
        op.create_index(f'ix_{table_name}_period', table_name, ['period'])

    # ===========================================
    # DERIVED DATA
    # ===========================================
    op.create_table(
        'intercompany_transactions',
        *base_columns(),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('from_entity', sa.String(255), nullable=False, comment='Selling entity'),
        sa.Column('to_entity', sa.String(255), nullable=False, comment='Buying entity'),
        sa.Column('amount', MONEY, nullable=False),
        currency(),
        sa.Column('match_id', sa.String(100), nullable=False),
        sa.Column('is_eliminated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('elimination_level', sa.String(255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_intercompany_transactions'),
    )
    op.create_index('ix_intercompany_transactions_period', 'intercompany_transactions', ['period'])
    op.create_index('ix_intercompany_transactions_match_id', 'intercompany_transactions', ['match_id'])

    op.create_table(
        'kpi_records',
        *base_columns(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('kpi_type', kpi_type, nullable=False),
        sa.Column('value', sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column('unit', kpi_unit, nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_kpi_records_organization_id_organizations', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_kpi_records'),
        sa.UniqueConstraint('organization_id', 'period', 'kpi_type', name='uq_kpi_records_organization_id'),
    )
    op.create_index('ix_kpi_records_organization_id', 'kpi_records', ['organization_id'])
    op.create_index('ix_kpi_records_period', 'kpi_records', ['period'])

    op.create_table(
        'reports',
        *base_columns(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('report_type', sa.String(50), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('generated_by', sa.String(255), nullable=True),
        sa.Column('file_path', sa.String(500), nullable=True),
        sa.Column('file_format', sa.String(10), nullable=False, server_default='csv'),
        sa.Column('status', report_status, nullable=False),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'],
            name='fk_reports_organization_id_organizations', ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_reports'),
    )
    op.create_index('ix_reports_organization_id', 'reports', ['organization_id'])
    op.create_index('ix_reports_report_type', 'reports', ['report_type'])


def downgrade() -> None:
    """Drop ledger schema."""
    op.drop_table('reports')
    op.drop_table('kpi_records')
    op.drop_table('intercompany_transactions')
    for table_name in reversed(LEDGER_TABLES):
        op.drop_table(table_name)
    op.drop_table('upload_batches')
    op.drop_table('organizations')

    # Drop enums
    for enum_name in (
        'reportstatus', 'kpiunit', 'kpitype', 'accountcategory',
        'uploadstatus', 'reportingtype', 'organizationtype',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
