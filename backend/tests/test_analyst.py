"""
AI Market Analyst Tests

Deterministic context building, session replay, and LLM failure
handling, with a scripted LLM in place of Gemini.
"""

from __future__ import annotations

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from market_breadth.agents.analyst import (
    AnalysisUnavailableError,
    InsufficientDataError,
    MarketAnalyst,
    render_data_table,
    slice_for_range,
)
from market_breadth.config import get_settings
from market_breadth.models import AnalysisRange, ChatMessage, MergedRecord

JAN1 = 1704067200000
DAY_MS = 86_400_000


def _records(n: int) -> list[MergedRecord]:
    return [
        MergedRecord(
            date=f"day{i}",
            timestamp=JAN1 + i * DAY_MS,
            formatted_date="x",
            ma20=50.0 + i,
            ma50=40.0,
            ma200=30.0,
            reference_index=1200.0 + i if i % 2 == 0 else None,
            secondary_index=1500.0,
            selected_series=None,
        )
        for i in range(n)
    ]


class FakeSectorEngine:
    def __init__(self):
        self.starts: list[int] = []

    async def summary(self, start_ts: int) -> str:
        self.starts.append(start_ts)
        return "1. Banks: +4.2%"


class FakeLLM:
    def __init__(self, reply="### Analysis", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[list] = []

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.reply)


def _analyst(llm: FakeLLM) -> tuple[MarketAnalyst, list[str]]:
    requested: list[str] = []

    def factory(model: str):
        requested.append(model)
        return llm

    return MarketAnalyst(sector_engine=FakeSectorEngine(), llm_factory=factory), requested


# ──────────────────────────────────────────────
# Context
# ──────────────────────────────────────────────

class TestContext:

    def test_slice_sizes(self):
        records = _records(300)
        assert len(slice_for_range(records, AnalysisRange.M1)) == 22
        assert len(slice_for_range(records, AnalysisRange.M3)) == 65
        assert len(slice_for_range(records, AnalysisRange.M6)) == 130
        assert len(slice_for_range(records, AnalysisRange.Y1)) == 250
        assert len(slice_for_range(records, AnalysisRange.ALL)) == 300
        assert slice_for_range(records, AnalysisRange.M1)[-1] == records[-1]

    def test_slice_shorter_than_window(self):
        assert len(slice_for_range(_records(10), AnalysisRange.Y1)) == 10

    def test_data_table_line(self):
        line = render_data_table(_records(1), "MidCap", "Banks")
        assert line == "day0|VNI:1200.0|MA20%:50.0|MA50%:40.0|MA200%:30.0|MidCap:1500.0|Banks:-"

    def test_data_table_missing_reference(self):
        lines = render_data_table(_records(2), "C", "S").splitlines()
        assert "|VNI:-|" in lines[1]

    def test_context_is_deterministic(self):
        analyst, _ = _analyst(FakeLLM())
        records = _records(40)
        a = asyncio.run(analyst.build_context(records, "Banks", "MidCap", AnalysisRange.M1))
        b = asyncio.run(analyst.build_context(records, "Banks", "MidCap", AnalysisRange.M1))
        assert a == b

    def test_context_contents(self):
        analyst, _ = _analyst(FakeLLM())
        records = _records(40)
        context = asyncio.run(analyst.build_context(records, "Banks", "MidCap", AnalysisRange.M1))
        assert len(context.records) == 22
        assert "MARKET DATA (22 sessions, 19/01/2024 - 09/02/2024)" in context.system_instruction
        assert "1. Banks: +4.2%" in context.system_instruction
        assert "Last 1 month" in context.prompt
        assert "View on Banks and MidCap" in context.prompt
        assert analyst.sector_engine.starts == [records[18].timestamp]

    def test_too_few_records(self):
        analyst, _ = _analyst(FakeLLM())
        with pytest.raises(InsufficientDataError):
            asyncio.run(analyst.build_context(_records(4), "Banks", "MidCap"))


# ──────────────────────────────────────────────
# Analysis / Chat
# ──────────────────────────────────────────────

class TestAnalysis:

    def test_analyze(self):
        llm = FakeLLM(reply="  ### Report  ")
        analyst, requested = _analyst(llm)
        session = asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap", AnalysisRange.M1))
        assert session.analysis == "### Report"
        assert requested == [get_settings().gemini_model]
        sent = llm.calls[0]
        assert isinstance(sent[0], SystemMessage)
        assert isinstance(sent[1], HumanMessage)

    def test_unknown_model_falls_back(self):
        analyst, requested = _analyst(FakeLLM())
        asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap", model="gpt-nope"))
        assert requested == [get_settings().gemini_model]

    def test_allowed_model_is_used(self):
        analyst, requested = _analyst(FakeLLM())
        model = get_settings().gemini_models[-1]
        asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap", model=model))
        assert requested == [model]

    def test_empty_reply_has_placeholder(self):
        analyst, _ = _analyst(FakeLLM(reply=""))
        session = asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap"))
        assert session.analysis

    def test_content_blocks_are_joined(self):
        analyst, _ = _analyst(FakeLLM(reply=[{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]))
        session = asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap"))
        assert session.analysis == "ab"

    def test_llm_failure(self):
        analyst, _ = _analyst(FakeLLM(error=RuntimeError("quota")))
        with pytest.raises(AnalysisUnavailableError):
            asyncio.run(analyst.analyze(_records(30), "Banks", "MidCap"))

    def test_restore_and_follow_up_replays_history(self):
        llm = FakeLLM(reply="Answer 2")
        analyst, _ = _analyst(llm)
        previous = [
            ChatMessage(role="user", text="Question 1"),
            ChatMessage(role="model", text="Answer 1"),
        ]
        session = asyncio.run(analyst.restore_session(
            _records(30), "Banks", "MidCap", AnalysisRange.M3,
            previous_analysis="Earlier analysis",
            messages=previous,
        ))
        assert llm.calls == []

        answer = asyncio.run(analyst.follow_up(session, "Question 2"))
        assert answer == "Answer 2"
        sent = llm.calls[0]
        assert [type(m) for m in sent] == [
            SystemMessage, HumanMessage, AIMessage, HumanMessage, AIMessage, HumanMessage,
        ]
        assert sent[2].content == "Earlier analysis"
        assert sent[-1].content == "Question 2"
        assert [m.text for m in session.messages] == ["Question 1", "Answer 1", "Question 2", "Answer 2"]

    def test_failed_follow_up_leaves_transcript(self):
        analyst, _ = _analyst(FakeLLM(error=RuntimeError("down")))
        session = asyncio.run(analyst.restore_session(
            _records(30), "Banks", "MidCap", AnalysisRange.M1, previous_analysis="x",
        ))
        with pytest.raises(AnalysisUnavailableError):
            asyncio.run(analyst.follow_up(session, "Why?"))
        assert session.messages == []
