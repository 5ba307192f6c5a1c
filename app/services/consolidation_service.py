"""
GroupLedger - Multi-Entity Consolidation Service

Consolidates the journal lines of a group of organizations:
- Revenue, direct costs and operating expenses per entity
- Elimination of intercompany revenue
- Minority interest for entities owned below 100%
- Net income after minority interest

Classification uses the account category set at ingestion
(4xxx revenue, 6xxx cost of sales, 7xxx operating expenses).

Known simplifications, kept on purpose:
- Eliminations reduce group revenue only; the buyer's matching cost
  stays in direct costs / operating expenses.
- Minority interest uses each entity's ownership by its immediate parent
  (a 70% subsidiary of an 80% subsidiary counts as 70%). Set
  ``minority_interest_mode`` to "compounded" to multiply ownership along
  the chain instead.
"""

import csv
import io
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Dict, Iterable, List, Optional

from app.config import Settings
from app.models import AccountCategory, IntercompanyTransaction, JournalLine, Organization, classify_account
from app.services.organization_service import (
    DEFAULT_MAX_DEPTH,
    OrganizationService,
    ancestor_chain,
    effective_ownership,
    ownership_of,
)
from app.services.storage_service import StorageClient
from app.utils.calculations import HUNDRED, ZERO, percentage, round_to, total
from app.utils.normalizers import period_months

logger = logging.getLogger(__name__)


class MinorityInterestMode(str, PyEnum):
    """How ownership is applied when computing minority interest"""
    IMMEDIATE = "immediate"  # ownership by the immediate parent only
    COMPOUNDED = "compounded"  # ownership multiplied along the chain to the root


# ===========================================
# RESULT TYPES
# ===========================================

@dataclass
class EntityFinancials:
    """Figures of one organization before group adjustments."""
    name: str
    organization_id: Optional[uuid.UUID]
    ownership_percentage: Decimal = Decimal("100")
    revenue: Decimal = ZERO
    direct_costs: Decimal = ZERO
    operating_expenses: Decimal = ZERO
    minority_interest: Decimal = ZERO

    @property
    def gross_margin(self) -> Decimal:
        return self.revenue - self.direct_costs

    @property
    def ebitda(self) -> Decimal:
        return self.gross_margin - self.operating_expenses

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "ownership_percentage": self.ownership_percentage,
            "revenue": self.revenue,
            "direct_costs": self.direct_costs,
            "operating_expenses": self.operating_expenses,
            "gross_margin": self.gross_margin,
            "ebitda": self.ebitda,
            "minority_interest": self.minority_interest,
        }


@dataclass
class EliminationEntry:
    """One intercompany amount removed from group revenue."""
    from_entity: str
    to_entity: str
    amount: Decimal
    match_id: str
    elimination_level: Optional[str] = None
    source_journal_line_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_entity": self.from_entity,
            "to_entity": self.to_entity,
            "amount": self.amount,
            "match_id": self.match_id,
            "elimination_level": self.elimination_level,
            "source_journal_line_ids": self.source_journal_line_ids,
        }


@dataclass
class ConsolidatedFinancials:
    """Group figures with the per-entity breakdown and elimination ledger."""
    period: str
    revenue_before_elimination: Decimal = ZERO
    intercompany_eliminations: Decimal = ZERO
    revenue: Decimal = ZERO
    direct_costs: Decimal = ZERO
    operating_expenses: Decimal = ZERO
    gross_margin: Decimal = ZERO
    ebitda: Decimal = ZERO
    minority_interest: Decimal = ZERO
    net_income: Decimal = ZERO
    by_entity: Dict[str, EntityFinancials] = field(default_factory=dict)
    eliminations: List[EliminationEntry] = field(default_factory=list)

    @property
    def revenue_after_elimination(self) -> Decimal:
        return self.revenue

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "revenue_before_elimination": self.revenue_before_elimination,
            "intercompany_eliminations": self.intercompany_eliminations,
            "revenue": self.revenue,
            "direct_costs": self.direct_costs,
            "operating_expenses": self.operating_expenses,
            "gross_margin": self.gross_margin,
            "ebitda": self.ebitda,
            "minority_interest": self.minority_interest,
            "net_income": self.net_income,
            "by_entity": {name: entity.to_dict() for name, entity in self.by_entity.items()},
            "eliminations": [entry.to_dict() for entry in self.eliminations],
        }


# ===========================================
# CORE CALCULATION
# ===========================================

def lines_for_organization(organization: Organization, lines: Iterable[JournalLine]) -> List[JournalLine]:
    """
    Lines belonging to an organization: resolved to its id, or unresolved
    with an entity name equal to its name.
    """
    return [
        line for line in lines
        if line.organization_id == organization.id
        or (line.organization_id is None and line.entity_name == organization.name)
    ]


def category_of(line: JournalLine) -> AccountCategory:
    """Stored account category, classifying lines that were never mapped."""
    return line.account_category or classify_account(line.ledger_account)


def credit_of(line: JournalLine) -> Decimal:
    return line.credit_amount or ZERO


def debit_of(line: JournalLine) -> Decimal:
    return line.debit_amount or ZERO


def summarize_lines(lines: Iterable[JournalLine]) -> Dict[AccountCategory, Decimal]:
    """Revenue credits and cost/expense debits per account category."""
    sums: Dict[AccountCategory, Decimal] = defaultdict(lambda: ZERO)
    for line in lines:
        category = category_of(line)
        if category == AccountCategory.REVENUE and credit_of(line) > 0:
            sums[category] += credit_of(line)
        elif category in (AccountCategory.DIRECT_COST, AccountCategory.OPERATING_EXPENSE) and debit_of(line) > 0:
            sums[category] += debit_of(line)
    return sums


def get_elimination_level(
    from_entity: str,
    to_entity: str,
    organizations: Iterable[Organization],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Optional[str]:
    """
    Name of the lowest common ancestor of two organizations, or None when
    they sit in unrelated trees (or either name is unknown).
    """
    organizations = list(organizations)
    by_name = {org.name: org for org in organizations}
    by_id = {org.id: org for org in organizations}
    source, target = by_name.get(from_entity), by_name.get(to_entity)
    if source is None or target is None:
        return None

    target_chain = {org.id for org in ancestor_chain(target, by_id, max_depth)}
    for org in ancestor_chain(source, by_id, max_depth):
        if org.id in target_chain:
            return org.name
    return None


def consolidate(
    organizations: Iterable[Organization],
    ledger_lines: Iterable[JournalLine],
    intercompany_txns: Iterable[IntercompanyTransaction],
    period: str,
    minority_interest_mode: MinorityInterestMode = MinorityInterestMode.IMMEDIATE,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ConsolidatedFinancials:
    """
    Consolidate the given organizations for a period.

    Every transaction passed in is eliminated; filtering out transactions
    without a common ancestor is the caller's job.
    """
    organizations = list(organizations)
    ledger_lines = list(ledger_lines)
    by_id = {org.id: org for org in organizations}
    root_ids = {org.id for org in organizations if org.parent_id not in by_id}

    result = ConsolidatedFinancials(period=period)

    for org in organizations:
        sums = summarize_lines(lines_for_organization(org, ledger_lines))
        result.by_entity[org.name] = EntityFinancials(
            name=org.name,
            organization_id=org.id,
            ownership_percentage=ownership_of(org),
            revenue=sums[AccountCategory.REVENUE],
            direct_costs=sums[AccountCategory.DIRECT_COST],
            operating_expenses=sums[AccountCategory.OPERATING_EXPENSE],
        )

    entities = result.by_entity.values()
    result.revenue_before_elimination = total(e.revenue for e in entities)
    result.direct_costs = total(e.direct_costs for e in entities)
    result.operating_expenses = total(e.operating_expenses for e in entities)

    for txn in intercompany_txns:
        result.eliminations.append(EliminationEntry(
            from_entity=txn.from_entity,
            to_entity=txn.to_entity,
            amount=txn.amount,
            match_id=txn.match_id,
            elimination_level=txn.elimination_level,
            source_journal_line_ids=list((txn.extra or {}).get("source_journal_line_ids", [])),
        ))
    result.intercompany_eliminations = total(e.amount for e in result.eliminations)

    result.revenue = result.revenue_before_elimination - result.intercompany_eliminations
    result.gross_margin = result.revenue - result.direct_costs
    result.ebitda = result.gross_margin - result.operating_expenses

    for org in organizations:
        if minority_interest_mode == MinorityInterestMode.COMPOUNDED:
            if org.id in root_ids:
                continue
            root = ancestor_chain(org, by_id, max_depth)[-1]
            ownership = effective_ownership(org, by_id, root_id=root.id, max_depth=max_depth)
        else:
            ownership = ownership_of(org)
        if ownership >= HUNDRED:
            continue
        entity = result.by_entity[org.name]
        entity.minority_interest = entity.ebitda * (HUNDRED - ownership) / HUNDRED
        result.minority_interest += entity.minority_interest

    result.net_income = result.ebitda - result.minority_interest
    return result


# ===========================================
# INTERCOMPANY MATCHING
# ===========================================

def build_intercompany_transactions(
    lines: Iterable[JournalLine],
    organizations: Iterable[Organization],
    period: str,
    base_currency: str = "EUR",
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[IntercompanyTransaction]:
    """
    Pair journal lines sharing an intercompany match id.

    The seller is the entity crediting revenue (or, failing that, the first
    crediting entity); the buyer is the other entity in the group. Groups
    that touch a single entity are ignored.
    """
    organizations = list(organizations)
    names_by_id = {org.id: org.name for org in organizations}

    def entity_of(line: JournalLine) -> str:
        return names_by_id.get(line.organization_id, line.entity_name)

    groups: Dict[str, List[JournalLine]] = defaultdict(list)
    for line in lines:
        match_id = (line.intercompany_match_id or "").strip()
        if match_id:
            groups[match_id].append(line)

    transactions = []
    for match_id, group in sorted(groups.items()):
        revenue_credits = [
            l for l in group
            if category_of(l) == AccountCategory.REVENUE and credit_of(l) > 0
        ]
        credits = revenue_credits or [l for l in group if credit_of(l) > 0]
        if not credits:
            logger.debug(f"Intercompany match {match_id} has no credit side, skipped")
            continue

        seller = entity_of(credits[0])
        buyers = [entity_of(l) for l in group if entity_of(l) != seller and debit_of(l) > 0]
        buyers = buyers or [entity_of(l) for l in group if entity_of(l) != seller]
        if not buyers:
            logger.debug(f"Intercompany match {match_id} stays within {seller}, skipped")
            continue
        buyer = buyers[0]

        amount = total(credit_of(l) for l in credits if entity_of(l) == seller)
        level = get_elimination_level(seller, buyer, organizations, max_depth)
        transactions.append(IntercompanyTransaction(
            id=uuid.uuid4(),
            period=period,
            from_entity=seller,
            to_entity=buyer,
            amount=amount,
            currency=credits[0].currency or base_currency,
            match_id=match_id,
            is_eliminated=level is not None,
            elimination_level=level,
            extra={"source_journal_line_ids": [str(l.id) for l in group if l.id is not None]},
        ))
    return transactions


# ===========================================
# REPORTING
# ===========================================

def generate_consolidation_report(
    financials: ConsolidatedFinancials,
    organizations: Iterable[Organization],
) -> Dict[str, Any]:
    """Summary with margin percentages, breakdown and eliminations."""
    revenue = financials.revenue
    return {
        "period": financials.period,
        "summary": {
            "revenue_before_elimination": round_to(financials.revenue_before_elimination),
            "intercompany_eliminations": round_to(financials.intercompany_eliminations),
            "total_revenue": round_to(revenue),
            "direct_costs": round_to(financials.direct_costs),
            "gross_margin": round_to(financials.gross_margin),
            "gross_margin_percentage": percentage(financials.gross_margin, revenue),
            "operating_expenses": round_to(financials.operating_expenses),
            "ebitda": round_to(financials.ebitda),
            "ebitda_percentage": percentage(financials.ebitda, revenue),
            "minority_interest": round_to(financials.minority_interest),
            "net_income": round_to(financials.net_income),
            "net_income_percentage": percentage(financials.net_income, revenue),
        },
        "by_entity": [
            {
                **entity.to_dict(),
                "gross_margin_percentage": percentage(entity.gross_margin, entity.revenue),
                "ebitda_percentage": percentage(entity.ebitda, entity.revenue),
            }
            for entity in financials.by_entity.values()
        ],
        "eliminations": [entry.to_dict() for entry in financials.eliminations],
        "organizations": [
            {
                "id": str(org.id),
                "name": org.name,
                "parent_id": str(org.parent_id) if org.parent_id else None,
                "organization_type": org.organization_type.value if org.organization_type else None,
                "ownership_percentage": ownership_of(org),
            }
            for org in organizations
        ],
    }


def export_consolidation_to_csv(financials: ConsolidatedFinancials) -> str:
    """Consolidation as CSV with Summary, By Entity and Intercompany Eliminations sections."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")

    writer.writerow(["Consolidated Financial Report", financials.period])
    writer.writerow([])
    writer.writerow(["Summary"])
    writer.writerow(["Metric", "Amount"])
    for label, value in [
        ("Revenue before eliminations", financials.revenue_before_elimination),
        ("Intercompany eliminations", financials.intercompany_eliminations),
        ("Total revenue", financials.revenue),
        ("Direct costs", financials.direct_costs),
        ("Gross margin", financials.gross_margin),
        ("Operating expenses", financials.operating_expenses),
        ("EBITDA", financials.ebitda),
        ("Minority interest", financials.minority_interest),
        ("Net income", financials.net_income),
    ]:
        writer.writerow([label, round_to(value)])

    writer.writerow([])
    writer.writerow(["By Entity"])
    writer.writerow(["Entity", "Ownership %", "Revenue", "Direct Costs", "Gross Margin",
                     "Operating Expenses", "EBITDA", "Minority Interest"])
    for entity in financials.by_entity.values():
        writer.writerow([
            entity.name,
            round_to(entity.ownership_percentage),
            round_to(entity.revenue),
            round_to(entity.direct_costs),
            round_to(entity.gross_margin),
            round_to(entity.operating_expenses),
            round_to(entity.ebitda),
            round_to(entity.minority_interest),
        ])

    writer.writerow([])
    writer.writerow(["Intercompany Eliminations"])
    writer.writerow(["From", "To", "Amount", "Match ID", "Elimination Level"])
    for entry in financials.eliminations:
        writer.writerow([
            entry.from_entity,
            entry.to_entity,
            round_to(entry.amount),
            entry.match_id,
            entry.elimination_level or "",
        ])

    return output.getvalue()


# ===========================================
# SERVICE
# ===========================================

@dataclass
class ConsolidationRun:
    """Result of consolidating a group from storage."""
    root: Organization
    organizations: List[Organization]
    financials: ConsolidatedFinancials
    intercompany: List[IntercompanyTransaction]

    @property
    def unconsolidated(self) -> List[IntercompanyTransaction]:
        return [txn for txn in self.intercompany if not txn.is_eliminated]


class ConsolidationService:
    """Loads a group from storage and consolidates it."""

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.settings = settings
        self.organizations = OrganizationService(storage, settings)

    async def load_group_lines(self, organizations: List[Organization], period: str) -> List[JournalLine]:
        """Journal lines of a set of organizations for every month in the period."""
        months = period_months(period)
        lines = await self.storage.query(
            JournalLine,
            period=months,
            organization_id=[org.id for org in organizations],
        )
        lines += await self.storage.query(
            JournalLine,
            period=months,
            organization_id=None,
            entity_name=[org.name for org in organizations],
        )
        return lines

    async def consolidate_group(
        self,
        root_id: uuid.UUID,
        period: str,
        persist_intercompany: bool = True,
    ) -> ConsolidationRun:
        """
        Consolidate an organization and everything below it.

        The derived intercompany transactions replace the stored ones for
        the group and period unless ``persist_intercompany`` is off.
        """
        group = await self.organizations.get_group(root_id)
        lines = await self.load_group_lines(group, period)

        transactions = build_intercompany_transactions(
            lines,
            group,
            period,
            base_currency=self.settings.base_currency,
            max_depth=self.settings.max_hierarchy_depth,
        )
        if persist_intercompany:
            await self.storage.delete(
                IntercompanyTransaction,
                period=period,
                from_entity=[org.name for org in group],
            )
            await self.storage.insert(IntercompanyTransaction, transactions)

        eliminated = [txn for txn in transactions if txn.is_eliminated]
        financials = consolidate(
            group,
            lines,
            eliminated,
            period,
            minority_interest_mode=MinorityInterestMode(self.settings.minority_interest_mode),
            max_depth=self.settings.max_hierarchy_depth,
        )
        logger.info(
            f"Consolidated {group[0].name} for {period}: {len(group)} entities, "
            f"{len(lines)} lines, {len(eliminated)} eliminations"
        )
        return ConsolidationRun(
            root=group[0],
            organizations=group,
            financials=financials,
            intercompany=transactions,
        )
