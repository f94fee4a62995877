from conftest import sample_result
from eq_coach.models import AnalysisResult, Scenario, AnalysisRequest, Segment
from eq_coach.report import (
    ReportView,
    extract_formula_steps,
    extract_scenario,
    highlight,
    locate_segments,
    render_html,
    render_terminal,
)

TEXT = "你总是迟到，我注意到项目进度受到了影响。你能理解一下我的压力吗？我们一起想想办法好吗？"


def bad(text, start=None):
    return Segment(text, "highlight_bad", "comment", start)


def good(text, start=None):
    return Segment(text, "highlight_good", "comment", start)


def test_pieces_concatenate_back_to_text():
    pieces = highlight(TEXT, sample_result().segments)
    assert "".join(p.text for p in pieces) == TEXT
    assert [p.text for p in pieces if p.highlighted] == [
        "你总是迟到", "我注意到项目进度受到了影响", "你能理解一下我的压力吗", "我们一起想想办法好吗"
    ]


def test_no_segments_is_one_plain_piece():
    pieces = highlight(TEXT, [])
    assert len(pieces) == 1 and not pieces[0].highlighted


def test_missing_segment_is_dropped():
    pieces = highlight(TEXT, [bad("根本不存在的话"), good("我们一起想想办法好吗")])
    assert [p.text for p in pieces if p.highlighted] == ["我们一起想想办法好吗"]
    assert "".join(p.text for p in pieces) == TEXT


def test_repeated_phrase_highlights_each_occurrence_by_position():
    text = "你又迟到了。你又迟到了。"
    located = locate_segments(text, [bad("你又迟到了", 6), good("你又迟到了", 0)])
    assert [(s.start, s.type) for s in located] == [(0, "highlight_good"), (6, "highlight_bad")]


def test_duplicates_without_offsets_claim_successive_occurrences():
    text = "好的好的，我知道了，好的"
    located = locate_segments(text, [good("好的"), bad("好的"), good("好的")])
    assert [s.start for s in located] == [0, 2, 10]


def test_invalid_offset_falls_back_to_search():
    located = locate_segments(TEXT, [bad("你总是迟到", 40)])
    assert located[0].start == 0


def test_overlapping_segment_is_dropped():
    located = locate_segments(TEXT, [bad("你总是迟到", 0), good("总是")])
    assert [s.text for s in located] == ["你总是迟到"]


def test_original_segments_not_mutated():
    segments = [bad("你总是迟到")]
    locate_segments(TEXT, segments)
    assert segments[0].start is None


def test_extract_scenario_from_tagged_submission():
    request = AnalysisRequest(text="我真的不想再加班了", scenario=Scenario("临时改需求", "甲方又改需求"))
    label, clean = extract_scenario(request.compose())
    assert label == "临时改需求"
    assert clean == "我真的不想再加班了"


def test_extract_scenario_plain_text():
    assert extract_scenario(TEXT) == (None, TEXT)


def test_formula_steps():
    rewrite = sample_result().rewrite
    full, steps = extract_formula_steps(rewrite)
    assert "（" not in full and "观察" not in full
    assert [label for label, _ in steps] == ["Step 1: 观察", "Step 2: 感受", "Step 3: 需求", "Step 4: 请求"]
    assert steps[0][1] == "我注意到这周你迟到了三次"
    assert steps[1][1] == "我有些担心项目进度"


def test_formula_steps_without_markers():
    assert extract_formula_steps("你辛苦了，我们一起看看") == ("你辛苦了，我们一起看看", [])


def test_view_shifts_offsets_past_scenario_tag():
    spoken = "你总是迟到，我很生气"
    submitted = AnalysisRequest(text=spoken, scenario=Scenario("迟到", "同事又迟到")).compose()
    result = sample_result(segments=[])
    result.segments = [bad("你总是迟到", submitted.index("你总是迟到"))]
    result.original_transcript = submitted
    view = ReportView(result)
    assert view.scenario == "迟到"
    assert view.clean_text == spoken
    assert [p.text for p in view.pieces if p.highlighted] == ["你总是迟到"]
    assert "".join(p.text for p in view.pieces) == spoken


def test_view_from_empty_store_shows_sample(tmp_path):
    from eq_coach.storage import ResultStore

    view = ReportView.from_store(ResultStore(tmp_path / "none.json"))
    assert view.result.scores["empathy"] == 55
    assert len(view.tips) == 2


def test_render_html_escapes_and_marks_segments():
    result = sample_result()
    result.original_transcript = TEXT
    result.diagnosis = "<b>注意</b>"
    out = render_html(ReportView(result))
    assert "&lt;b&gt;注意&lt;/b&gt;" in out
    assert out.count('class="segment bad"') == 2
    assert out.count('class="segment good"') == 2


def test_render_terminal_plain():
    result = sample_result()
    result.original_transcript = TEXT
    out = render_terminal(ReportView(result), color=False)
    assert "-你总是迟到[1]" in out
    assert "+我注意到项目进度受到了影响[2]" in out
    assert "\033[" not in out


def test_missing_transcript_placeholder():
    result = AnalysisResult(scores={"empathy": 1}, diagnosis="d", advice=[], segments=[])
    assert "未获取到原始文本" in render_terminal(ReportView(result), color=False)
