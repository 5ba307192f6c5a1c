"""
GroupLedger - Financial Assistant Service

Chat assistant over the group's financial data. The model only sees a
system prompt describing the organizations and KPIs of one period; its
answers are free text and are not used by any calculation.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.config import Settings
from app.models import JournalLine, KpiRecord, Organization, OrganizationType
from app.services.storage_service import StorageClient
from app.utils.error_handling import AssistantUnavailableException
from app.utils.normalizers import period_months

logger = logging.getLogger(__name__)


@dataclass
class FinancialContext:
    """Data handed to the assistant for one period."""
    period: str
    organizations: List[Organization] = field(default_factory=list)
    kpis: List[KpiRecord] = field(default_factory=list)
    journal_lines: List[JournalLine] = field(default_factory=list)


@dataclass
class ChatMessage:
    role: str  # "user" or "assistant"
    content: str


def build_system_prompt(context: FinancialContext) -> str:
    """System prompt listing the organizations and KPIs of the period."""
    names = {org.id: org.name for org in context.organizations}
    organizations = "\n".join(
        f"- {org.name} ({org.organization_type.value}, {org.reporting_type.value})"
        for org in context.organizations
    ) or "- none"
    kpis = "\n".join(
        f"- {names.get(kpi.organization_id, 'unknown')}: {kpi.kpi_type.value} = {kpi.value} {kpi.unit.value}"
        for kpi in context.kpis
    ) or "- none calculated"

    return f"""You are a financial intelligence assistant for a multi-entity corporate group. You have access to financial data exported from Workday and help analyze KPIs, explain results and answer questions about financial performance.

Available organizations:
{organizations}

Current period: {context.period}
Journal lines in period: {len(context.journal_lines)}

Available KPIs:
{kpis}

Guidelines:
- Be concise and data-driven
- Highlight key insights and trends
- Use percentages and comparisons when relevant
- Suggest areas for deeper analysis
- Format amounts in EUR (e.g. EUR 45,000 or 12.5%)
- When discussing consolidation, mention intercompany eliminations and minority interest"""


def suggest_questions(context: FinancialContext) -> List[str]:
    """Starter questions based on which kinds of organizations are present."""
    questions = [
        f"What is the overall financial performance for {context.period}?",
        "Which organization has the highest gross margin?",
        "Show me the EBITDA trend across all entities",
    ]
    types = {org.organization_type for org in context.organizations}

    if OrganizationType.SERVICES in types:
        questions.append("What is the billable utilization rate for professional services?")
        questions.append("How does revenue per FTE compare across service entities?")

    if OrganizationType.SAAS in types:
        questions.append("What is the MRR growth rate for SaaS entities?")
        questions.append("How is customer churn trending?")

    if len(context.organizations) > 1:
        questions.append("What is the impact of intercompany eliminations on consolidated revenue?")
        questions.append("How much does minority interest affect the bottom line?")

    return questions


class AssistantService:
    """Builds context from storage and talks to the OpenAI chat API."""

    def __init__(self, storage: StorageClient, settings: Settings, client: Any = None):
        self.storage = storage
        self.settings = settings
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.settings.openai_api_key:
                raise AssistantUnavailableException("OpenAI API key is not configured")
            import openai

            self._client = openai.AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def build_context(
        self,
        period: str,
        organization_ids: Optional[List[uuid.UUID]] = None,
    ) -> FinancialContext:
        if organization_ids:
            organizations = await self.storage.query(Organization, order_by="name", id=organization_ids)
        else:
            organizations = await self.storage.query(Organization, order_by="name", is_active=True)
        ids = [org.id for org in organizations]

        kpis = await self.storage.query(KpiRecord, organization_id=ids, period=period)
        lines = await self.storage.query(JournalLine, organization_id=ids, period=period_months(period))
        return FinancialContext(period=period, organizations=organizations, kpis=kpis, journal_lines=lines)

    async def chat(self, messages: List[ChatMessage], context: FinancialContext) -> str:
        """Send the conversation with the financial system prompt and return the reply."""
        client = self._get_client()
        payload = [{"role": "system", "content": build_system_prompt(context)}]
        payload += [{"role": m.role, "content": m.content} for m in messages]

        try:
            response = await client.chat.completions.create(
                model=self.settings.openai_model,
                messages=payload,
                temperature=self.settings.openai_temperature,
                max_tokens=self.settings.openai_max_tokens,
            )
        except Exception as e:
            logger.error(f"Assistant request failed: {e}")
            raise AssistantUnavailableException(str(e), original_error=e)

        content = response.choices[0].message.content if response.choices else None
        return content or "No response generated"

    async def analyze_kpi(self, kpi_type: str, value: Any, context: FinancialContext) -> str:
        prompt = f"""Analyze this KPI and provide insights:

KPI: {kpi_type}
Value: {value}
Period: {context.period}

Provide:
1. Brief interpretation of the metric
2. Whether this is good or concerning and why
3. One actionable recommendation"""
        return await self.chat([ChatMessage(role="user", content=prompt)], context)

    async def executive_summary(self, context: FinancialContext) -> str:
        prompt = f"""Generate a concise executive summary of the financial performance for {context.period}. Include:

1. Overall performance highlights
2. Key metrics and trends
3. Areas of concern or opportunity
4. Top 3 recommendations

Keep it under 200 words and use bullet points."""
        return await self.chat([ChatMessage(role="user", content=prompt)], context)
