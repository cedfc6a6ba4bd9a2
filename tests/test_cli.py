"""
Tests for the circle-onboarding CLI.
"""

import json

from typer.testing import CliRunner

from circle_onboarding.main import app

runner = CliRunner()


def write_answers(tmp_path, data, name="answers.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data))
    return str(path)


class TestStepsCommand:

    def test_lists_branched_sequence(self, tmp_path):
        result = runner.invoke(app, ["steps", write_answers(tmp_path, {"gym_locations": ["commercial"]})])
        assert result.exit_code == 0
        assert "Find Your Gym" in result.output
        assert "Home Equipment" not in result.output


class TestProgressCommand:

    def test_percent(self, tmp_path, basics_answers):
        result = runner.invoke(app, ["progress", write_answers(tmp_path, basics_answers)])
        assert result.exit_code == 0
        assert "21%" in result.output
        assert "4/19" in result.output

    def test_accepts_saved_envelope(self, tmp_path, basics_answers):
        envelope = {"step_index": 3, "data": basics_answers}
        result = runner.invoke(app, ["progress", write_answers(tmp_path, envelope)])
        assert "21%" in result.output

    def test_bad_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{oops")
        result = runner.invoke(app, ["progress", str(path)])
        assert result.exit_code == 1


class TestCheckCommand:

    def test_incomplete(self, tmp_path, commercial_answers):
        del commercial_answers["maxes_acknowledged"]
        result = runner.invoke(app, ["check", write_answers(tmp_path, commercial_answers)])
        assert result.exit_code == 1
        assert "maxes" in result.output

    def test_invalid(self, tmp_path, commercial_answers):
        commercial_answers["gender"] = "robot"
        result = runner.invoke(app, ["check", write_answers(tmp_path, commercial_answers)])
        assert result.exit_code == 1
        assert "basics" in result.output

    def test_ready(self, tmp_path, commercial_answers):
        result = runner.invoke(app, ["check", write_answers(tmp_path, commercial_answers)])
        assert result.exit_code == 0
        assert "Ready to submit" in result.output
        assert '"height_inches": 70' in result.output


class TestHealthCommand:

    def test_runs_without_supabase(self):
        result = runner.invoke(app, ["health"])
        assert result.exit_code == 0
        assert "Configuration loaded" in result.output
