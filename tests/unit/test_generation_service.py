"""Unit tests for the generation retry loop."""

from __future__ import annotations

from typing import Any

import pytest

from metagen.agents.meta_writer import GeneratedText, MetaWriterInput
from metagen.integrations.outcome_store import InMemoryOutcomeStore
from metagen.services.generation import MetaGenerationService
from metagen.services.prompt_state import PromptState
from metagen.services.types import Candidate, GenerationFailure, GenerationSuccess
from metagen.services.validators import ValidationResult


class _FakeWriter:
    """Stands in for MetaWriterAgent; records every input it receives."""

    instances: list["_FakeWriter"] = []
    outputs: list[GeneratedText | Exception] = []

    def __init__(self, system_prompt: str, model_override: str | None = None) -> None:
        self.system_prompt = system_prompt
        self.inputs: list[MetaWriterInput] = []
        _FakeWriter.instances.append(self)

    async def run(self, input_data: MetaWriterInput) -> GeneratedText:
        self.inputs.append(input_data)
        output = _FakeWriter.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output


class _ScriptedValidator:
    def __init__(self, verdicts: list[ValidationResult]) -> None:
        self.verdicts = verdicts
        self.attempts: list[int] = []

    async def validate(self, generated, candidate, context) -> ValidationResult:
        self.attempts.append(context.attempt)
        return self.verdicts.pop(0)


@pytest.fixture
def fake_writer(monkeypatch: pytest.MonkeyPatch) -> type[_FakeWriter]:
    _FakeWriter.instances = []
    _FakeWriter.outputs = []
    monkeypatch.setattr("metagen.services.generation.MetaWriterAgent", _FakeWriter)
    return _FakeWriter


def _text(n: int) -> GeneratedText:
    return GeneratedText(title=f"Title {n}", description=f"Description attempt {n}")


def _candidate(path: str = "/pricing") -> Candidate:
    return Candidate(
        url=f"https://example.com{path}",
        ctr=0.012,
        impressions=1800,
        current_title="Pricing",
        current_description="Our prices.",
        content="Plans start at $9.",
    )


def _service(tmp_path, store, validator, max_retries: int = 3) -> MetaGenerationService:
    return MetaGenerationService(
        PromptState(tmp_path / "prompts"),
        store,
        validators=[validator],
        max_retries=max_retries,
    )


@pytest.mark.asyncio
async def test_first_attempt_success_records_generated_with_meta(tmp_path, fake_writer) -> None:
    store = InMemoryOutcomeStore()
    fake_writer.outputs = [_text(1)]
    validator = _ScriptedValidator([ValidationResult(passed=True, meta={"qualityScore": 8})])

    batch = await _service(tmp_path, store, validator).generate([_candidate()], scope_id="gen")

    assert batch.failures == []
    [result] = batch.results
    assert result.attempts == 1
    assert result.baseline_ctr == 0.012
    assert result.baseline_impressions == 1800
    assert result.meta == {"qualityScore": 8}

    generated = store.outcomes[-1]
    assert generated["category"] == "Generated"
    assert generated["attributes"]["attempts"] == 1
    assert generated["attributes"]["currentCTR"] == 0.012
    assert generated["attributes"]["qualityScore"] == 8
    assert generated["attributes"]["length"] == len("Description attempt 1")


@pytest.mark.asyncio
async def test_each_retry_replays_the_full_rejection_history(tmp_path, fake_writer) -> None:
    """Attempt N sees the reasons of attempts 1..N-1, in order."""
    store = InMemoryOutcomeStore()
    fake_writer.outputs = [_text(1), _text(2), _text(3)]
    validator = _ScriptedValidator(
        [
            ValidationResult(passed=False, reason="Description is 90 chars, must be 140-160"),
            ValidationResult(passed=False, reason="Quality score 5/10 (needs 7+): generic"),
            ValidationResult(passed=True),
        ]
    )

    batch = await _service(tmp_path, store, validator).generate([_candidate()], scope_id="gen")

    writer = fake_writer.instances[0]
    assert [len(item.rejected_attempts) for item in writer.inputs] == [0, 1, 2]
    third = writer.inputs[2].rejected_attempts
    assert [item.attempt for item in third] == [1, 2]
    assert [item.reason for item in third] == [
        "Description is 90 chars, must be 140-160",
        "Quality score 5/10 (needs 7+): generic",
    ]
    assert third[0].description == "Description attempt 1"
    assert validator.attempts == [1, 2, 3]
    assert batch.results[0].attempts == 3


@pytest.mark.asyncio
async def test_exhaustion_returns_failure_with_complete_history(tmp_path, fake_writer) -> None:
    store = InMemoryOutcomeStore()
    fake_writer.outputs = [_text(1), _text(2), _text(3)]
    validator = _ScriptedValidator(
        [ValidationResult(passed=False, reason=f"reason {n}") for n in (1, 2, 3)]
    )

    batch = await _service(tmp_path, store, validator).generate([_candidate()], scope_id="gen")

    assert batch.results == []
    [failure] = batch.failures
    assert isinstance(failure, GenerationFailure)
    assert failure.attempts == 3
    assert len(failure.history) == 3
    assert failure.last_reason == "reason 3"
    assert [item.to_dict() for item in failure.history] == [
        {"attempt": 1, "reason": "reason 1"},
        {"attempt": 2, "reason": "reason 2"},
        {"attempt": 3, "reason": "reason 3"},
    ]

    failed = store.outcomes[-1]
    assert failed["category"] == "Generation Failed"
    assert failed["attributes"]["attempts"] == 3
    assert failed["attributes"]["lastReason"] == "reason 3"
    assert len(failed["attributes"]["history"]) == 3


@pytest.mark.asyncio
async def test_transport_error_fails_candidate_with_zero_attempts(tmp_path, fake_writer) -> None:
    store = InMemoryOutcomeStore()
    fake_writer.outputs = [RuntimeError("connection reset"), _text(2)]
    validator = _ScriptedValidator([ValidationResult(passed=True)])

    batch = await _service(tmp_path, store, validator).generate(
        [_candidate("/a"), _candidate("/b")],
        scope_id="gen",
    )

    [failure] = batch.failures
    assert failure.url.endswith("/a")
    assert failure.attempts == 0
    assert failure.last_reason == "connection reset"
    assert [item.to_dict() for item in failure.history] == [
        {"attempt": 0, "reason": "connection reset"}
    ]
    assert store.outcomes[0]["category"] == "Generation Error"
    assert store.outcomes[0]["attributes"] == {
        "page": "https://example.com/a",
        "error": "connection reset",
    }

    # The batch continues past the failed candidate.
    assert [result.url for result in batch.results] == ["https://example.com/b"]


@pytest.mark.asyncio
async def test_on_outcome_called_per_candidate_in_order(tmp_path, fake_writer) -> None:
    store = InMemoryOutcomeStore()
    fake_writer.outputs = [_text(1), _text(2)]
    validator = _ScriptedValidator(
        [ValidationResult(passed=True), ValidationResult(passed=False, reason="nope")]
    )
    seen: list[Any] = []

    await _service(tmp_path, store, validator, max_retries=1).generate(
        [_candidate("/a"), _candidate("/b")],
        scope_id="gen",
        on_outcome=seen.append,
    )

    assert [type(item) for item in seen] == [GenerationSuccess, GenerationFailure]
    assert seen[1].attempts == 1


@pytest.mark.asyncio
async def test_writer_uses_rendered_system_prompt(tmp_path, fake_writer) -> None:
    prompt_state = PromptState(tmp_path / "prompts")
    prompt_state.add_pattern(
        description="Lead with the number",
        example="Save 40% on...",
        impact=2.1,
        confidence="high",
        sample_size=6,
    )
    fake_writer.outputs = [_text(1)]
    service = MetaGenerationService(
        prompt_state,
        InMemoryOutcomeStore(),
        validators=[_ScriptedValidator([ValidationResult(passed=True)])],
    )

    await service.generate([_candidate()], scope_id="gen")

    assert fake_writer.instances[0].system_prompt == prompt_state.get_system_prompt()
    assert "Lead with the number (2.1x CTR, 6 samples)" in fake_writer.instances[0].system_prompt
