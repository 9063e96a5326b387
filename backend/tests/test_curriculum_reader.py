from __future__ import annotations

import logging

from planner.curriculum_reader import calculate_meta_duration, flatten, index_metas
from planner.models import Meta, Plan, StudyProfile


def _meta(meta_id: str, **fields) -> Meta:
    payload = {"id": meta_id, "title": meta_id.upper(), "type": "questions", "questions_minutes": 20}
    payload.update(fields)
    return Meta(**payload)


def _plan(**overrides) -> Plan:
    payload = {
        "id": "plan-1",
        "disciplines": [
            {
                "id": "const",
                "name": "Constitutional Law",
                "order": 1,
                "folder_id": "law",
                "topics": [
                    {"id": "c1", "name": "Rights", "order": 0, "metas": [{"id": "c1-a", "title": "A", "type": "questions"}]},
                    {"id": "c2", "name": "Powers", "order": 1, "metas": [{"id": "c2-a", "title": "B", "type": "questions"}]},
                ],
            },
            {
                "id": "admin",
                "name": "Administrative Law",
                "order": 2,
                "folder_id": "law",
                "topics": [
                    {"id": "a1", "name": "Acts", "order": 0, "metas": [{"id": "a1-a", "title": "C", "type": "questions"}]},
                ],
            },
            {
                "id": "port",
                "name": "Portuguese",
                "order": 0,
                "topics": [
                    {
                        "id": "p1",
                        "name": "Syntax",
                        "metas": [
                            {"id": "p1-b", "title": "Second", "type": "summary", "order": 2},
                            {
                                "id": "p1-a",
                                "title": "First",
                                "type": "material",
                                "order": 1,
                                "page_count": 10,
                                "review_config": {"active": True, "intervals": "1,7,30"},
                            },
                        ],
                    }
                ],
            },
        ],
        "folders": [{"id": "law", "name": "Law"}],
        "cycles": [
            {
                "id": "cycle-1",
                "items": [
                    {"id": "i1", "type": "discipline", "reference_id": "port", "order": 0},
                    {"id": "i2", "type": "folder", "reference_id": "law", "order": 1},
                    {"id": "i3", "type": "simulado", "reference_id": "sim-1", "order": 2},
                ],
            }
        ],
    }
    payload.update(overrides)
    return Plan.model_validate(payload)


def test_meta_durations_follow_level_and_study_mode() -> None:
    profile = StudyProfile()
    assert calculate_meta_duration(_meta("m", type="material", page_count=10), profile) == 30
    assert calculate_meta_duration(_meta("m", type="law", law_pages=4), StudyProfile(level="beginner")) == 20
    assert calculate_meta_duration(_meta("m", type="material", page_count=10), StudyProfile(semi_active_material=True)) == 60
    lesson = _meta("m", type="lesson", videos=[{"duration": 10}, {"duration": 15}])
    assert calculate_meta_duration(lesson, profile) == 25
    assert calculate_meta_duration(lesson, StudyProfile(semi_active_class=True)) == 50
    assert calculate_meta_duration(_meta("m", type="questions", questions_minutes=None), profile) == 30
    assert calculate_meta_duration(_meta("m", type="review"), profile) == 15


def test_flatten_walks_cycles_and_interleaves_folders() -> None:
    units = flatten(_plan())

    assert [unit.meta_id for unit in units] == ["p1-a", "p1-b", "c1-a", "a1-a", "c2-a"]
    assert [unit.order for unit in units] == [0, 1, 2, 3, 4]
    assert units[0].review_intervals == "1,7,30"
    assert units[1].review_intervals is None
    assert units[2].discipline_name == "Constitutional Law"


def test_folder_turns_take_several_topics() -> None:
    plan = _plan()
    plan.cycles[0].items[1].topics_per_turn = 2
    assert [unit.meta_id for unit in flatten(plan)][2:] == ["c1-a", "c2-a", "a1-a"]


def test_plan_without_cycles_uses_discipline_order() -> None:
    units = flatten(_plan(cycles=[]))
    assert [unit.meta_id for unit in units] == ["p1-a", "p1-b", "c1-a", "c2-a", "a1-a"]


def test_dangling_references_are_skipped_and_logged(caplog) -> None:
    plan = _plan()
    plan.cycles[0].items.append(
        plan.cycles[0].items[0].model_copy(update={"id": "i4", "reference_id": "gone", "order": 3})
    )
    with caplog.at_level(logging.WARNING, logger="planner.curriculum_reader"):
        units = flatten(plan)

    assert len(units) == 5
    assert "gone" in caplog.text


def test_index_metas_covers_every_goal() -> None:
    lookup = index_metas(_plan())
    assert set(lookup) == {"c1-a", "c2-a", "a1-a", "p1-a", "p1-b"}
    assert lookup["p1-a"].topic.name == "Syntax"
