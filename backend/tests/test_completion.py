from __future__ import annotations

import math

import pytest

from studypulse.aggregation import (
    chapter_completion,
    chapter_progress,
    completion_records,
    subject_completion,
    syllabus_completion,
)
from studypulse.errors import ValidationError
from studypulse.records import CompletionUnit


def _complete_chapter(chapter_id: str, subject: str = "physics") -> CompletionUnit:
    return CompletionUnit(
        chapter_id=chapter_id,
        subject_tag=subject,
        lectures=(True,) * 4,
        drills=(True,) * 4,
        assignments=(True,) * 2,
        hard_set=(True,) * 3,
        revision_score=10,
    )


def test_fully_complete_chapter_is_one_hundred_percent() -> None:
    assert chapter_completion(_complete_chapter("kinematics")) == pytest.approx(100.0)


def test_chapter_without_entries_is_zero_not_nan() -> None:
    empty = CompletionUnit(chapter_id="empty", subject_tag="physics")
    completion = chapter_completion(empty)
    assert completion == 0.0
    assert not math.isnan(completion)


def test_partial_chapter_prorates_each_checklist() -> None:
    unit = CompletionUnit(
        chapter_id="optics",
        subject_tag="physics",
        lectures=(True, True, False, False),
        drills=(True, False, False, False),
        assignments=(True, True),
        revision_score=6,
    )
    expected = 25 * 0.5 + 35 * 0.25 + 25 * 1.0 + 15 * 0.6
    assert chapter_completion(unit) == pytest.approx(round(expected, 2))


def test_empty_checklists_redistribute_their_weight() -> None:
    unit = CompletionUnit(chapter_id="waves", subject_tag="physics", lectures=(True, False))
    # lectures are the only counted part, so they carry the whole weight
    assert chapter_completion(unit) == pytest.approx(50.0)


def test_hard_set_is_reported_but_not_weighted() -> None:
    unit = CompletionUnit(
        chapter_id="thermo",
        subject_tag="physics",
        lectures=(True,),
        hard_set=(False, False),
    )
    progress = chapter_progress(unit)
    assert progress.completion == pytest.approx(100.0)
    assert progress.hard_set_pct == 0.0
    assert progress.drills_pct is None
    assert progress.needs_improvement is True


def test_subject_completion_is_mean_of_chapters() -> None:
    done = _complete_chapter("a")
    untouched = CompletionUnit.create("b", "physics", lectures=3, assignments=2)
    result = subject_completion([done, untouched], subjects=["physics", "botany"])
    assert result["physics"] == pytest.approx(50.0)
    assert result["botany"] is None


def test_syllabus_completion_handles_zero_expected_chapters() -> None:
    units = [_complete_chapter("a"), CompletionUnit.create("b", "physics", lectures=2)]
    assert syllabus_completion(units) == pytest.approx(50.0)
    assert syllabus_completion(units, expected_chapters=4) == pytest.approx(25.0)
    assert syllabus_completion(units, expected_chapters=0) is None
    assert syllabus_completion([]) is None


def test_create_mirrors_drill_count_and_entries_keep_length() -> None:
    unit = CompletionUnit.create("c", "chemistry", lectures=3)
    assert len(unit.drills) == 3

    updated = unit.with_entry("drills", 2).with_revision(8)
    assert updated.drills == (False, False, True)
    assert len(updated.lectures) == 3
    assert updated.revision_score == 8
    assert unit.drills == (False, False, False)


def test_entry_outside_fixed_length_is_rejected() -> None:
    unit = CompletionUnit.create("c", "chemistry", lectures=2)
    with pytest.raises(ValidationError):
        unit.with_entry("lectures", 2)
    with pytest.raises(ValidationError):
        unit.with_revision(11)


def test_completion_records_carry_chapter_percentages() -> None:
    records = completion_records([_complete_chapter("a", "biology")])
    assert len(records) == 1
    assert records[0].source_type == "checklist"
    assert records[0].raw_unit == "percent"
    assert records[0].raw_value == pytest.approx(100.0)
