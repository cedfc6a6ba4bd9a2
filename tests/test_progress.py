"""
Tests for completion progress.
"""

from circle_onboarding.progress import completed_field_count, percent, step_progress
from circle_onboarding.steps import required_field_keys


class TestPercent:

    def test_empty(self):
        assert percent({}) == 0

    def test_basics_contribute_four_fields(self, basics_answers):
        assert completed_field_count(basics_answers) == 4
        # 4 / 19 = 21.05%
        assert percent(basics_answers) == 21

    def test_optional_fields_dont_count(self):
        assert percent({"city": "Austin", "height_inches": 4}) == 0

    def test_complete_commercial_session(self, commercial_answers):
        # equipment_access and weights_acknowledged never get answered
        assert percent(commercial_answers) == 89

    def test_everything_answered(self):
        data = {key: True for key in required_field_keys()}
        assert percent(data) == 100

    def test_monotonic_while_filling(self, home_answers):
        data = {}
        last = 0
        for key in required_field_keys():
            if key in home_answers:
                data[key] = home_answers[key]
            current = percent(data)
            assert current >= last
            last = current
        assert 0 <= last <= 100

    def test_pruned_branch_does_not_lower_progress(self, home_answers):
        before = percent(home_answers)
        home_answers["gym_locations"] = ["outdoor"]
        assert percent(home_answers) >= before

    def test_half_rounds_up(self, monkeypatch):
        monkeypatch.setattr("circle_onboarding.progress.required_field_keys", lambda: ["a", "b", "c", "d", "e", "f", "g", "h"])
        # 1/8 = 12.5%
        assert percent({"a": 1}) == 13


class TestStepProgress:

    def test_covers_full_static_list(self):
        breakdown = step_progress({})
        assert len(breakdown) == 16
        assert breakdown[0].step_id == "name"

    def test_in_sequence_flags(self):
        breakdown = {p.step_id: p for p in step_progress({"gym_locations": ["commercial"]})}
        assert breakdown["gym_search"].in_sequence
        assert not breakdown["equipment"].in_sequence
        assert not breakdown["weights"].in_sequence

    def test_counts(self, basics_answers):
        basics_answers.pop("weight")
        basics = next(p for p in step_progress(basics_answers) if p.step_id == "basics")
        assert basics.filled == 3
        assert basics.total == 4
        assert not basics.completed

    def test_review_counts_as_complete(self):
        review = step_progress({})[-1]
        assert review.step_id == "review"
        assert review.completed
        assert review.to_dict()["total"] == 0
