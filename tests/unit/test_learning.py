"""Unit tests for the pattern learner."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from metagen.agents.pattern_analyst import (
    LearnedPattern,
    PatternAnalysisInput,
    PatternAnalysisOutput,
)
from metagen.agents.quality_rewriter import QualityRewriteInput, QualityRewriteOutput
from metagen.integrations.outcome_store import (
    ClassifiedPageAttributes,
    GenerationFailedAttributes,
    InMemoryOutcomeStore,
)
from metagen.integrations.search_metrics import PageMetrics
from metagen.services.learning import PatternLearningService
from metagen.services.prompt_state import PromptState
from metagen.services.tracking import PerformanceTracker
from metagen.services.types import Attempt, TrackedRecord


class _FakeAnalyst:
    inputs: list[PatternAnalysisInput] = []
    output = PatternAnalysisOutput(
        patterns=[
            LearnedPattern(
                description="Numbers in the first clause",
                example="3 plans from $9/mo...",
                impact=2.1,
                confidence="high",
            ),
            LearnedPattern(
                description="Question-led openings",
                example="Need faster invoices?",
                impact=1.4,
                confidence="medium",
            ),
        ],
        improvements="Prefer concrete numbers over adjectives.",
        failure_insights=["Drafts ran long when listing features"],
    )

    async def run(self, input_data: PatternAnalysisInput) -> PatternAnalysisOutput:
        _FakeAnalyst.inputs.append(input_data)
        return _FakeAnalyst.output


class _FakeRewriter:
    inputs: list[QualityRewriteInput] = []

    async def run(self, input_data: QualityRewriteInput) -> QualityRewriteOutput:
        _FakeRewriter.inputs.append(input_data)
        return QualityRewriteOutput(content="# Quality guidelines v2\n\nUse numbers.\n")


class _PagingStore(InMemoryOutcomeStore):
    def __init__(self) -> None:
        super().__init__()
        self.queries: list[tuple[str, int, int]] = []

    async def query_by_category(self, category, since, *, limit, offset):
        self.queries.append((category, limit, offset))
        return await super().query_by_category(category, since, limit=limit, offset=offset)


@pytest.fixture
def fake_agents(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeAnalyst.inputs = []
    _FakeRewriter.inputs = []
    monkeypatch.setattr("metagen.services.learning.PatternAnalystAgent", _FakeAnalyst)
    monkeypatch.setattr("metagen.services.learning.QualityGuidelinesRewriterAgent", _FakeRewriter)


def _seed(store: InMemoryOutcomeStore, category: str, count: int, **extra) -> None:
    for index in range(count):
        store.record(
            "fb",
            category,
            {
                "page": f"/{category.lower().replace(' ', '-')}-{index}",
                "title": f"Title {index}",
                "description": f"Description {index}",
                "ctr": 0.05,
                "baselineCTR": 0.02,
                "improvement": "+150%",
                **extra,
            },
        )


def _prompt_files(prompts_dir) -> dict[str, str]:
    return {path.name: path.read_text(encoding="utf-8") for path in sorted(prompts_dir.iterdir())}


@pytest.mark.asyncio
async def test_below_data_floor_records_insufficient_data_and_leaves_files(
    tmp_path,
    fake_agents,
) -> None:
    store = InMemoryOutcomeStore()
    _seed(store, "High CTR", 4)
    prompt_state = PromptState(tmp_path / "prompts")
    prompt_state.initialize()
    before = _prompt_files(prompt_state.prompts_dir)

    learned = await PatternLearningService(prompt_state, store).learn(scope_id="learn")

    assert learned is None
    assert _FakeAnalyst.inputs == []
    assert _prompt_files(prompt_state.prompts_dir) == before
    assert store.outcomes[-1]["category"] == "Insufficient Data"
    assert store.outcomes[-1]["scope_id"] == "learn"
    assert store.outcomes[-1]["attributes"] == {"highPerformers": 4, "needed": 5}


@pytest.mark.asyncio
async def test_learning_appends_patterns_and_archives_quality(tmp_path, fake_agents) -> None:
    store = InMemoryOutcomeStore()
    _seed(store, "High CTR", 6)
    _seed(store, "No Improvement", 1)
    store.record(
        "gen",
        "Generation Failed",
        {"page": "/f", "attempts": 3, "lastReason": "Description is 180 chars", "history": []},
    )
    prompt_state = PromptState(tmp_path / "prompts")
    prompt_state.initialize()
    old_quality = prompt_state.get_quality_prompt()

    learned = await PatternLearningService(prompt_state, store).learn(scope_id="learn")

    assert learned == 2
    analysis_input = _FakeAnalyst.inputs[0]
    assert len(analysis_input.high_performers) == 6
    assert len(analysis_input.low_performers) == 1
    assert "improvement" not in analysis_input.low_performers[0]
    assert analysis_input.generation_failures[0]["lastReason"] == "Description is 180 chars"
    assert analysis_input.max_examples == 10

    patterns = prompt_state.get_patterns()
    assert [p.description for p in patterns] == [
        "Numbers in the first clause",
        "Question-led openings",
    ]
    assert all(p.sample_size == 6 for p in patterns)

    assert _FakeRewriter.inputs[0].current_quality == old_quality
    assert _FakeRewriter.inputs[0].failure_insights == ["Drafts ran long when listing features"]
    assert prompt_state.get_quality_prompt() == "# Quality guidelines v2\n\nUse numbers.\n"
    [backup] = list(prompt_state.prompts_dir.glob("quality-*.md"))
    assert backup.read_text(encoding="utf-8") == old_quality

    learned_event = store.outcomes[-1]
    assert learned_event["category"] == "Patterns Learned"
    assert learned_event["attributes"]["count"] == 2
    assert learned_event["attributes"]["highPerformers"] == 6
    assert learned_event["attributes"]["lowPerformers"] == 1
    assert learned_event["attributes"]["generationFailures"] == 1


@pytest.mark.asyncio
async def test_outcome_fetch_follows_pagination(tmp_path, fake_agents) -> None:
    store = _PagingStore()
    _seed(store, "High CTR", 5)
    prompt_state = PromptState(tmp_path / "prompts")

    learned = await PatternLearningService(prompt_state, store, page_size=2).learn(scope_id="learn")

    assert learned == 2
    assert [offset for category, _, offset in store.queries if category == "High CTR"] == [0, 2, 4]
    assert len(_FakeAnalyst.inputs[0].high_performers) == 5


@pytest.mark.asyncio
async def test_records_without_description_are_not_high_performers(tmp_path, fake_agents) -> None:
    store = InMemoryOutcomeStore()
    _seed(store, "High CTR", 5)
    store.outcomes[0]["attributes"]["description"] = ""
    prompt_state = PromptState(tmp_path / "prompts")

    learned = await PatternLearningService(prompt_state, store).learn(scope_id="learn")

    assert learned is None
    assert store.outcomes[-1]["attributes"]["highPerformers"] == 4


@pytest.mark.asyncio
async def test_store_errors_propagate(tmp_path, fake_agents) -> None:
    class _BrokenStore(InMemoryOutcomeStore):
        async def query_by_category(self, category, since, *, limit, offset):
            raise RuntimeError("outcome store down")

    with pytest.raises(RuntimeError, match="outcome store down"):
        await PatternLearningService(PromptState(tmp_path / "p"), _BrokenStore()).learn(
            scope_id="learn"
        )


@pytest.mark.asyncio
async def test_six_high_and_one_low_without_failures_changes_quality(tmp_path, fake_agents) -> None:
    store = InMemoryOutcomeStore()
    _seed(store, "High CTR", 6)
    _seed(store, "No Improvement", 1)
    prompt_state = PromptState(tmp_path / "prompts")
    before = prompt_state.get_quality_prompt()

    learned = await PatternLearningService(prompt_state, store).learn(scope_id="learn")

    assert learned is not None and learned >= 1
    assert prompt_state.get_quality_prompt() != before
    assert _FakeAnalyst.inputs[0].generation_failures == []


@pytest.mark.asyncio
async def test_tracker_attributes_reach_the_analyst_intact(tmp_path, fake_agents) -> None:
    now = datetime.now(timezone.utc)
    paths = [f"/page-{index}" for index in range(5)]

    class _Metrics:
        async def query_by_page(self, site_url, page_url, start_date, end_date):
            return PageMetrics(page_url=page_url, ctr=0.09, impressions=300)

        async def query_all(self, site_url, start_date, end_date):
            return []

    store = InMemoryOutcomeStore()
    records = [
        TrackedRecord(
            path=path,
            title=f"Title {path}",
            description=f"Description {path}",
            run_id="run-1",
            generated_at=now - timedelta(days=10),
            baseline_ctr=0.02,
        )
        for path in paths
    ]
    await PerformanceTracker(_Metrics(), store, site_url="https://example.com").track(
        records, scope_id="fb", now=now
    )
    store.record(
        "gen",
        "Generation Failed",
        {
            "page": "https://example.com/failed",
            "attempts": 3,
            "lastReason": "too long",
            "history": [Attempt(attempt=3, reason="too long").to_dict()],
        },
    )

    learned = await PatternLearningService(PromptState(tmp_path / "prompts"), store).learn(
        scope_id="learn", now=now
    )

    assert learned == 2
    analysis_input = _FakeAnalyst.inputs[0]
    performer_keys = set(ClassifiedPageAttributes.__required_keys__)
    for performer in analysis_input.high_performers:
        assert set(performer) <= performer_keys
        assert all(value is not None for value in performer.values())
    assert analysis_input.high_performers[0] == {
        "page": "/page-0",
        "title": "Title /page-0",
        "description": "Description /page-0",
        "ctr": 0.09,
        "baselineCTR": 0.02,
        "improvement": "+350%",
    }
    [failure] = analysis_input.generation_failures
    assert set(failure) == set(GenerationFailedAttributes.__required_keys__)
    assert failure["history"] == [{"attempt": 3, "reason": "too long"}]
