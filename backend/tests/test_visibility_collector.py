"""Visibility collector tests — per-entity lookups, batched share of voice, deadline."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

from ai_visibility.exceptions import UpstreamError
from ai_visibility.schemas.visibility_schema import ShareOfVoiceEntry
from ai_visibility.services.visibility_collector import (
    VisibilityCollector,
    parse_share_rows,
    share_for,
)
from ai_visibility.timing import Deadline, bind_deadline


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RoutedLM:
    """Answers visibility prompts from per-entity tables.

    ``citations`` / ``ratings`` map entity -> list of replies (one per
    attempt); an Exception item is raised. ``shares`` is the batched reply.
    """

    def __init__(self, citations=None, ratings=None, shares='{"shares": []}', hang=(), delay=0.0):
        self.citations = {k: list(v) for k, v in (citations or {}).items()}
        self.ratings = {k: list(v) for k, v in (ratings or {}).items()}
        self.shares = shares
        self.hang = set(hang)
        self.delay = delay
        self.prompts = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _reply(self, table, entity):
        if entity in self.hang:
            await asyncio.sleep(30)
        replies = table.get(entity) or ["unknown"]
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, prompt):
        self.prompts.append(prompt)
        if prompt.startswith("Given the companies"):
            if isinstance(self.shares, Exception):
                raise self.shares
            return self.shares

        if prompt.startswith("How many times has "):
            entity = prompt[len("How many times has "):].split(" been cited")[0]
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                if self.delay:
                    await asyncio.sleep(self.delay)
                return await self._reply(self.citations, entity)
            finally:
                self.in_flight -= 1

        entity = prompt[len("What is the average customer rating for "):].split(" on major")[0]
        return await self._reply(self.ratings, entity)


# ===================================================================
# Share of voice parsing
# ===================================================================

class TestShareRows:

    def test_object_reply(self):
        rows = parse_share_rows('{"shares": [{"company": "Acme", "percent": 40}, {"company": "Bolt", "percent": 35.5}]}')
        assert rows == [ShareOfVoiceEntry(company="Acme", percent=40), ShareOfVoiceEntry(company="Bolt", percent=35.5)]

    def test_bare_array_reply(self):
        rows = parse_share_rows('[{"company": "Zen", "percent": 25}]')
        assert rows == [ShareOfVoiceEntry(company="Zen", percent=25)]

    def test_bad_rows_skipped_and_non_numeric_percent_zero(self):
        rows = parse_share_rows('{"shares": [{"percent": 10}, "Acme", {"company": "Bolt", "percent": "high"}]}')
        assert rows == [ShareOfVoiceEntry(company="Bolt", percent=0.0)]

    def test_garbage_is_empty(self):
        assert parse_share_rows("no data available") == []

    def test_share_for_matches_case_insensitively(self):
        rows = [ShareOfVoiceEntry(company="ACME  Corp", percent=12.5)]
        assert share_for("acme corp", rows) == 12.5
        assert share_for("Bolt", rows) == 0.0


# ===================================================================
# Single-metric lookups
# ===================================================================

class TestLookups:

    def test_second_attempt_used_when_first_unparseable(self):
        lm = RoutedLM(citations={"Acme": ["not sure", '{"citationCount": 42}']})
        collector = VisibilityCollector(lm)
        assert asyncio.run(collector.fetch_citation_count("Acme")) == 42

    def test_two_bad_attempts_yield_none(self):
        lm = RoutedLM(ratings={"Acme": ["?", '{"rating": "great"}']})
        collector = VisibilityCollector(lm)
        assert asyncio.run(collector.fetch_customer_rating("Acme")) is None
        assert len(lm.prompts) == 2

    def test_boolean_is_not_a_number(self):
        lm = RoutedLM(citations={"Acme": ['{"citationCount": true}']})
        assert asyncio.run(VisibilityCollector(lm).fetch_citation_count("Acme")) is None

    def test_non_finite_values_rejected(self):
        lm = RoutedLM(
            citations={"Acme": ['{"citationCount": Infinity}']},
            ratings={"Acme": ['{"rating": NaN}']},
        )
        collector = VisibilityCollector(lm)
        assert asyncio.run(collector.fetch_citation_count("Acme")) is None
        assert asyncio.run(collector.fetch_customer_rating("Acme")) is None

    def test_non_finite_percent_is_zero(self):
        rows = parse_share_rows('{"shares": [{"company": "Acme", "percent": -Infinity}]}')
        assert rows == [ShareOfVoiceEntry(company="Acme", percent=0.0)]

    def test_upstream_error_counts_as_attempt(self):
        lm = RoutedLM(ratings={"Acme": [UpstreamError("down"), '{"rating": 4.6}']})
        assert asyncio.run(VisibilityCollector(lm).fetch_customer_rating("Acme")) == 4.6


# ===================================================================
# collect()
# ===================================================================

class TestCollect:

    def test_records_in_input_order(self):
        lm = RoutedLM(
            citations={"Acme": ['{"citationCount": 120}'], "Bolt": ['{"citationCount": 80}']},
            ratings={"Acme": ['{"rating": 4.5}'], "Bolt": ['{"rating": 4.1}']},
            shares='{"shares": [{"company": "bolt", "percent": 30}, {"company": "Acme", "percent": 55}]}',
        )
        records = asyncio.run(VisibilityCollector(lm).collect(["Acme", "Bolt", "Zen"]))

        assert list(records) == ["Acme", "Bolt", "Zen"]
        assert records["Acme"].citation_count == 120
        assert records["Acme"].customer_rating == 4.5
        assert records["Acme"].share_of_voice_percent == 55
        assert records["Bolt"].share_of_voice_percent == 30
        assert records["Zen"].citation_count is None
        assert records["Zen"].share_of_voice_percent == 0.0

    def test_share_of_voice_failure_defaults_all_to_zero(self):
        lm = RoutedLM(citations={"Acme": ['{"citationCount": 3}']}, shares=UpstreamError("down"))
        records = asyncio.run(VisibilityCollector(lm).collect(["Acme", "Bolt"]))

        assert records["Acme"].citation_count == 3
        assert all(r.share_of_voice_percent == 0.0 for r in records.values())

    def test_share_of_voice_is_one_batched_call(self):
        lm = RoutedLM()
        asyncio.run(VisibilityCollector(lm).collect(["Acme", "Bolt", "Zen"]))

        batched = [p for p in lm.prompts if p.startswith("Given the companies")]
        assert len(batched) == 1
        assert "Acme, Bolt, Zen" in batched[0]

    def test_empty_input(self):
        lm = RoutedLM()
        assert asyncio.run(VisibilityCollector(lm).collect([])) == {}
        assert lm.prompts == []

    def test_concurrency_is_bounded(self):
        lm = RoutedLM(delay=0.01)
        entities = [f"Co{i}" for i in range(6)]
        asyncio.run(VisibilityCollector(lm, max_concurrency=2).collect(entities))
        assert lm.max_in_flight <= 2

    def test_infinite_citation_keeps_rating(self):
        lm = RoutedLM(
            citations={"Acme": ['{"citationCount": Infinity}']},
            ratings={"Acme": ['{"rating": 4.4}']},
        )
        records = asyncio.run(VisibilityCollector(lm).collect(["Acme"]))

        assert records["Acme"].citation_count is None
        assert records["Acme"].customer_rating == 4.4

    def test_deadline_keeps_finished_fields(self):
        lm = RoutedLM(
            citations={"Acme": ['{"citationCount": 9}']},
            ratings={"Acme": ['{"rating": 4.0}']},
            shares='{"shares": [{"company": "Acme", "percent": 60}]}',
            hang={"Slowco"},
        )

        async def go():
            with bind_deadline(Deadline(0.2)):
                return await VisibilityCollector(lm).collect(["Acme", "Slowco"])

        records = asyncio.run(go())
        assert records["Acme"].citation_count == 9
        assert records["Acme"].share_of_voice_percent == 60
        assert records["Slowco"].citation_count is None
        assert records["Slowco"].customer_rating is None
