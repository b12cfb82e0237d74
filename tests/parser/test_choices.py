"""Tests for trailing choice extraction."""

from lingcao.parser import extract_choices


def test_three_options_with_header():
    text = "你走出山洞。\n\n你的选择：\n1. 向东走\n2、向西走\n3．原地休息"
    result = extract_choices(text)
    assert result.choices == ["向东走", "向西走", "原地休息"]
    assert result.clean_text == "你走出山洞。"


def test_single_option_is_not_a_choice_list():
    text = "正文\n1. 只有一个"
    result = extract_choices(text)
    assert result.choices == []
    assert result.clean_text == text


def test_lettered_options():
    result = extract_choices("正文\nA. 甲\nb、乙")
    assert result.choices == ["甲", "乙"]
    assert result.clean_text == "正文"


def test_blank_lines_between_options_skipped():
    result = extract_choices("正文\n1. 甲\n\n2. 乙\n\n")
    assert result.choices == ["甲", "乙"]
    assert result.clean_text == "正文"


def test_out_of_range_number_stops_scan():
    result = extract_choices("1. 甲\n5. 乙")
    assert result.choices == []


def test_non_header_line_kept():
    result = extract_choices("他沉默了。\n1. 追问\n2. 离开")
    assert result.clean_text == "他沉默了。"


def test_idempotent_on_clean_text():
    first = extract_choices("你走出山洞。\n\n接下来：\n1. 甲\n2. 乙\n3. 丙\n4. 丁")
    second = extract_choices(first.clean_text)
    assert second.clean_text == first.clean_text
    assert second.choices == []


def test_header_kept_when_it_would_expose_more_options():
    text = "1. 甲\n2. 乙\n你可以：\n3. 丙\n4. 丁"
    first = extract_choices(text)
    assert first.choices == ["丙", "丁"]
    assert first.clean_text == "1. 甲\n2. 乙\n你可以："
    assert extract_choices(first.clean_text).clean_text == first.clean_text
