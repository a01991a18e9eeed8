from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from spfarms.harvest.models import HARVEST_STATUS_ORDER, HarvestStatus
from spfarms.harvest.progress import (
    drying_summary,
    progress_segments,
    render_progress,
    stage_timer,
    trim_summary,
    wet_summary,
)
from spfarms.harvest.weights import StrainWeightInputs
from tests.fakes import make_harvest


@given(st.sampled_from(HARVEST_STATUS_ORDER))
def test_progress_has_seven_segments_filled_through_status(status):
    segments = progress_segments(status)
    assert len(segments) == 7
    assert sum(segments) == HARVEST_STATUS_ORDER.index(status) + 1
    assert segments[: sum(segments)] == (True,) * sum(segments)


def test_progress_accepts_raw_status_strings():
    assert progress_segments("active") == (True, False, False, False, False, False, False)
    assert all(progress_segments("closed"))


def test_render_progress_marks_current_step():
    text = render_progress(HarvestStatus.TRIMMING, width=4)
    bars, labels = text.plain.split("\n")
    assert bars.count("━") == 7 * 8
    assert labels.split() == ["Active", "Drying", "Dried", "Trimming", "Curing", "Packaged", "Closed"]
    bold = [span for span in text.spans if span.style == "bold"]
    assert len(bold) == 1
    assert text.plain[bold[0].start : bold[0].end] == "Trimming"


def test_wet_summary():
    inputs = StrainWeightInputs()
    assert wet_summary(inputs) is None
    inputs.update("wet_weight_grams", {1: "500", 2: "300"})
    assert wet_summary(inputs) == "Total wet: 800g"
    inputs.set(2, "waste_weight_grams", "12.5")
    assert wet_summary(inputs) == "Total wet: 800g · Total waste: 12.5g"


def test_drying_summary_without_wet_weight_shows_only_total():
    inputs = StrainWeightInputs()
    inputs.update("dry_weight_grams", {1: "100", 2: "80"})
    assert drying_summary(inputs, make_harvest("drying")) == ["Total dry: 180g"]


def test_drying_summary_hidden_until_dry_entered():
    inputs = StrainWeightInputs()
    inputs.set(1, "dry_weight_grams", "")
    assert drying_summary(inputs, make_harvest("drying", wet_weight_grams=800)) == []


def test_trim_summary():
    inputs = StrainWeightInputs()
    assert trim_summary(inputs) is None
    inputs.update("flower_weight_grams", {1: "90", 2: "60"})
    inputs.set(1, "shake_weight_grams", "20")
    assert trim_summary(inputs) == "Flower: 150g · Shake: 20g · Waste: 0g"


def test_stage_timer_caps_fraction():
    assert stage_timer(7, 14) == ("Day 7/14", 0.5)
    assert stage_timer(None, 30) == ("Day 0/30", 0.0)
    assert stage_timer(45, 30) == ("Day 45/30", 1.0)
