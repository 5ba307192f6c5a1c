"""
GroupLedger - Sales Pipeline Service

CRM deal analysis for one organization:
- Deals per stage in funnel order
- Owner performance (win rate, deal size, cycle time)
- Conversion metrics and a pipeline health score
"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from app.config import Settings
from app.models import SalesDeal
from app.services.organization_service import OrganizationService
from app.services.storage_service import StorageClient
from app.utils.calculations import ZERO, percentage, round_to, safe_divide, total

logger = logging.getLogger(__name__)


STAGE_ORDER = [
    "Appointment Scheduled",
    "Qualified To Buy",
    "Presentation Scheduled",
    "Decision Maker Bought-In",
    "Contract Sent",
    "Closed Won",
    "Closed Lost",
]
CLOSED_WON = "Closed Won"
CLOSED_LOST = "Closed Lost"

# Health score weights and scales
HEALTH_WEIGHTS = {"win_rate": 0.3, "pipeline_value": 0.3, "deal_velocity": 0.2, "stage_distribution": 0.2}
PIPELINE_VALUE_SCALE = Decimal("1000000")
EXPECTED_STAGE_COUNT = 5


def _stage_rank(stage: str) -> int:
    return STAGE_ORDER.index(stage) if stage in STAGE_ORDER else len(STAGE_ORDER)


def _days_open(deal: SalesDeal, as_of: date) -> Optional[int]:
    if deal.create_date is None:
        return None
    end = deal.close_date or as_of
    return (end - deal.create_date).days


def _average_days(days: List[int]) -> int:
    return round(sum(days) / len(days)) if days else 0


def analyze_deal_stages(deals: Iterable[SalesDeal], as_of: Optional[date] = None) -> List[Dict[str, Any]]:
    """Count, value, average age and share of deals per stage, in funnel order."""
    as_of = as_of or date.today()
    by_stage: Dict[str, List[SalesDeal]] = defaultdict(list)
    for deal in deals:
        if deal.deal_stage:
            by_stage[deal.deal_stage].append(deal)
    deal_count = sum(len(stage_deals) for stage_deals in by_stage.values())

    stages = []
    for stage in sorted(by_stage, key=lambda s: (_stage_rank(s), s)):
        stage_deals = by_stage[stage]
        value = total(d.amount or ZERO for d in stage_deals)
        days = [d for d in (_days_open(deal, as_of) for deal in stage_deals) if d is not None]
        stages.append({
            "stage": stage,
            "count": len(stage_deals),
            "total_value": round_to(value),
            "average_value": round_to(safe_divide(value, len(stage_deals))),
            "average_days_in_stage": _average_days(days),
            "conversion_rate": percentage(len(stage_deals), deal_count),
        })
    return stages


def analyze_owner_performance(deals: Iterable[SalesDeal]) -> List[Dict[str, Any]]:
    """Per-owner deal counts, win rate over closed deals and cycle time, highest value first."""
    by_owner: Dict[str, List[SalesDeal]] = defaultdict(list)
    for deal in deals:
        if deal.deal_owner:
            by_owner[deal.deal_owner].append(deal)

    owners = []
    for owner, owner_deals in by_owner.items():
        won = [d for d in owner_deals if d.deal_stage == CLOSED_WON]
        lost = [d for d in owner_deals if d.deal_stage == CLOSED_LOST]
        value = total(d.amount or ZERO for d in owner_deals)
        cycles = [
            (d.close_date - d.create_date).days
            for d in owner_deals
            if d.close_date is not None and d.create_date is not None
        ]
        owners.append({
            "owner": owner,
            "deals_count": len(owner_deals),
            "total_value": round_to(value),
            "won_deals": len(won),
            "lost_deals": len(lost),
            "win_rate": percentage(len(won), len(won) + len(lost)),
            "won_value": round_to(total(d.amount or ZERO for d in won)),
            "average_deal_size": round_to(safe_divide(value, len(owner_deals))),
            "average_deal_cycle": _average_days(cycles),
        })
    return sorted(owners, key=lambda o: o["total_value"], reverse=True)


def conversion_metrics(deals: Iterable[SalesDeal]) -> Dict[str, Any]:
    deals = list(deals)
    won = [d for d in deals if d.deal_stage == CLOSED_WON]
    lost = [d for d in deals if d.deal_stage == CLOSED_LOST]
    open_deals = [d for d in deals if d.deal_stage not in (CLOSED_WON, CLOSED_LOST)]
    win_days = [
        (d.close_date - d.create_date).days
        for d in won
        if d.close_date is not None and d.create_date is not None
    ]
    return {
        "total_deals": len(deals),
        "open_deals": len(open_deals),
        "won_deals": len(won),
        "lost_deals": len(lost),
        "won_value": round_to(total(d.amount or ZERO for d in won)),
        "pipeline_value": round_to(total(d.amount or ZERO for d in open_deals)),
        "win_rate": percentage(len(won), len(won) + len(lost)),
        "conversion_rate": percentage(len(won), len(deals)),
        "average_win_time": _average_days(win_days),
    }


def pipeline_health_score(conversion: Dict[str, Any], stage_count: int) -> int:
    """0-100 score from win rate, open pipeline value, deal velocity and stage coverage."""
    factors = {
        "win_rate": min(Decimal(100), conversion["win_rate"] * 2),
        "pipeline_value": min(Decimal(100), conversion["pipeline_value"] / PIPELINE_VALUE_SCALE * 20),
        "deal_velocity": min(Decimal(100), Decimal(365) / max(conversion["average_win_time"], 1) * 10),
        "stage_distribution": min(Decimal(100), Decimal(stage_count) / EXPECTED_STAGE_COUNT * 100),
    }
    score = sum(factors[name] * Decimal(str(weight)) for name, weight in HEALTH_WEIGHTS.items())
    return int(round_to(score, 0))


class SalesPipelineService:
    """Pipeline analysis over the deals uploaded for an organization."""

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.settings = settings
        self.organizations = OrganizationService(storage, settings)

    async def get_pipeline_analysis(self, organization_id: uuid.UUID, as_of: Optional[date] = None) -> Dict[str, Any]:
        organization = await self.organizations.get_organization(organization_id)
        deals = await self.storage.query(SalesDeal, organization_id=organization_id)

        stages = analyze_deal_stages(deals, as_of)
        conversion = conversion_metrics(deals)
        health = pipeline_health_score(conversion, len(stages))
        logger.info(f"Pipeline analysis for {organization.name}: {len(deals)} deals, health {health}")

        return {
            "organization_id": str(organization_id),
            "overview": {
                "health_score": health,
                "total_pipeline_value": conversion["pipeline_value"],
                "won_value": conversion["won_value"],
                "open_deals": conversion["open_deals"],
                "win_rate": conversion["win_rate"],
                "average_deal_cycle": conversion["average_win_time"],
            },
            "stages": stages,
            "top_owners": analyze_owner_performance(deals)[:10],
            "conversion": conversion,
        }
