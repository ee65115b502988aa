"""
Market Breadth: AI Market Analyst

Narrative analysis of the merged dashboard data via Gemini, plus
follow-up chat.

Sessions are stateless on the server: the system instruction and first
prompt are rebuilt from the same data slice, and the earlier analysis and
chat turns are replayed verbatim, so any client holding the transcript
can resume the conversation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from market_breadth.agents.prompts import (
    ANALYSIS_EMPTY_RESPONSE,
    ANALYSIS_REQUEST_PROMPT,
    ANALYST_SYSTEM_PROMPT,
    FOLLOW_UP_EMPTY_RESPONSE,
)
from market_breadth.config import get_settings
from market_breadth.engines.sector_engine import SectorRotationEngine
from market_breadth.models import AnalysisRange, ChatMessage, MergedRecord
from market_breadth.utils.formatters import format_full_date, format_value

log = structlog.get_logger(__name__)

MIN_RECORDS = 5

# Trading sessions per analysis window
SLICE_COUNTS: dict[AnalysisRange, int] = {
    AnalysisRange.M1: 22,
    AnalysisRange.M3: 65,
    AnalysisRange.M6: 130,
    AnalysisRange.Y1: 250,
}

RANGE_LABELS: dict[AnalysisRange, str] = {
    AnalysisRange.M1: "Last 1 month",
    AnalysisRange.M3: "Last 3 months",
    AnalysisRange.M6: "Last 6 months",
    AnalysisRange.Y1: "Last 1 year",
    AnalysisRange.ALL: "All displayed data",
}


class InsufficientDataError(Exception):
    """Too few merged records to analyse."""


class AnalysisUnavailableError(Exception):
    """The LLM call failed."""


# ──────────────────────────────────────────────
# Context Building
# ──────────────────────────────────────────────

def slice_for_range(records: Sequence[MergedRecord], analysis_range: AnalysisRange) -> list[MergedRecord]:
    count = SLICE_COUNTS.get(analysis_range, len(records))
    return list(records[max(0, len(records) - count):])


def render_data_table(records: Sequence[MergedRecord], cap_name: str, sector_name: str) -> str:
    """One pipe-delimited line per record; same records, same text."""
    return "\n".join(
        f"{r.date}"
        f"|VNI:{format_value(r.reference_index)}"
        f"|MA20%:{format_value(r.ma20)}"
        f"|MA50%:{format_value(r.ma50)}"
        f"|MA200%:{format_value(r.ma200)}"
        f"|{cap_name}:{format_value(r.secondary_index)}"
        f"|{sector_name}:{format_value(r.selected_series)}"
        for r in records
    )


@dataclass(frozen=True)
class AnalysisContext:
    system_instruction: str
    prompt: str
    records: tuple[MergedRecord, ...]


@dataclass
class AnalysisSession:
    """A finished analysis plus its follow-up transcript."""
    context: AnalysisContext
    analysis: str
    model: str
    messages: list[ChatMessage] = field(default_factory=list)

    def history(self) -> list[BaseMessage]:
        """Full conversation as replayed to the model."""
        turns: list[BaseMessage] = [
            SystemMessage(content=self.context.system_instruction),
            HumanMessage(content=self.context.prompt),
            AIMessage(content=self.analysis),
        ]
        for msg in self.messages:
            turns.append(HumanMessage(content=msg.text) if msg.role == "user" else AIMessage(content=msg.text))
        return turns


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = [p.get("text", "") if isinstance(p, dict) else str(p) for p in content]
        content = "".join(parts)
    return (content or "").strip()


# ──────────────────────────────────────────────
# Analyst
# ──────────────────────────────────────────────

class MarketAnalyst:
    """Builds the analysis context and talks to the LLM."""

    def __init__(
        self,
        sector_engine: Optional[SectorRotationEngine] = None,
        llm_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.sector_engine = sector_engine or SectorRotationEngine()
        self._llm_factory = llm_factory or self._create_llm

    @staticmethod
    def _create_llm(model: str) -> ChatGoogleGenerativeAI:
        """Create a Gemini LLM instance."""
        settings = get_settings()
        return ChatGoogleGenerativeAI(
            model=model,
            google_api_key=settings.google_api_key,
            temperature=settings.gemini_temperature,
            max_output_tokens=8192,
        )

    @staticmethod
    def resolve_model(model: Optional[str]) -> str:
        """Unknown or missing model ids fall back to the configured default."""
        settings = get_settings()
        if model and model in settings.gemini_models:
            return model
        return settings.gemini_model

    async def build_context(
        self,
        records: Sequence[MergedRecord],
        sector_name: str,
        cap_name: str,
        analysis_range: AnalysisRange = AnalysisRange.Y1,
    ) -> AnalysisContext:
        if len(records) < MIN_RECORDS:
            raise InsufficientDataError(
                "Not enough data to analyse. Make sure the charts have loaded."
            )

        recent = slice_for_range(records, analysis_range)
        start_date = format_full_date(recent[0].timestamp)
        end_date = format_full_date(recent[-1].timestamp)
        range_label = RANGE_LABELS[analysis_range]
        sector_ranking = await self.sector_engine.summary(recent[0].timestamp)

        system_instruction = ANALYST_SYSTEM_PROMPT.format(
            count=len(recent),
            start_date=start_date,
            end_date=end_date,
            cap_name=cap_name,
            sector_name=sector_name,
            data_table=render_data_table(recent, cap_name, sector_name),
            range_label=range_label,
            sector_ranking=sector_ranking,
        )
        prompt = ANALYSIS_REQUEST_PROMPT.format(
            range_label=range_label,
            start_date=start_date,
            end_date=end_date,
            sector_name=sector_name,
            cap_name=cap_name,
        )
        return AnalysisContext(system_instruction, prompt, tuple(recent))

    async def _invoke(self, model: str, messages: list[BaseMessage]) -> str:
        llm = self._llm_factory(model)
        try:
            response = await llm.ainvoke(messages)
        except Exception as exc:
            log.error("analyst.llm_failed", model=model, error=str(exc))
            raise AnalysisUnavailableError(str(exc) or "AI service connection error") from exc
        return _response_text(response)

    async def analyze(
        self,
        records: Sequence[MergedRecord],
        sector_name: str,
        cap_name: str,
        analysis_range: AnalysisRange = AnalysisRange.Y1,
        model: Optional[str] = None,
    ) -> AnalysisSession:
        """Run the first analysis turn."""
        model = self.resolve_model(model)
        context = await self.build_context(records, sector_name, cap_name, analysis_range)
        text = await self._invoke(model, [
            SystemMessage(content=context.system_instruction),
            HumanMessage(content=context.prompt),
        ])
        log.info("analyst.analysis_complete", model=model, records=len(context.records))
        return AnalysisSession(context=context, analysis=text or ANALYSIS_EMPTY_RESPONSE, model=model)

    async def restore_session(
        self,
        records: Sequence[MergedRecord],
        sector_name: str,
        cap_name: str,
        analysis_range: AnalysisRange,
        previous_analysis: str,
        messages: Sequence[ChatMessage] = (),
        model: Optional[str] = None,
    ) -> AnalysisSession:
        """Rebuild a session from its data slice and transcript, without calling the LLM."""
        context = await self.build_context(records, sector_name, cap_name, analysis_range)
        return AnalysisSession(
            context=context,
            analysis=previous_analysis,
            model=self.resolve_model(model),
            messages=list(messages),
        )

    async def follow_up(self, session: AnalysisSession, question: str) -> str:
        """Ask a follow-up question; the session transcript grows on success."""
        question_msg = ChatMessage(role="user", text=question)
        history = session.history() + [HumanMessage(content=question)]
        text = await self._invoke(session.model, history) or FOLLOW_UP_EMPTY_RESPONSE
        session.messages.extend([question_msg, ChatMessage(role="model", text=text)])
        return text
