import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from moge.services.text import count_plain_words, count_words, strip_markdown


def test_strip_markdown_removes_common_markup():
    source = (
        "# 第一幕\n"
        "他说：**快走**，然后 _回头_ 看了一眼。\n"
        "- 列表项\n"
        "1. 第一步\n"
        "> 引用的话\n"
        "参见[地图](http://example.com/map)与![插图](img.png)。\n"
        "`code` 不变\n"
    )

    result = strip_markdown(source)

    assert "#" not in result
    assert "**" not in result
    assert "快走" in result
    assert "回头" in result and "_回头_" not in result
    assert "列表项" in result and "- 列表项" not in result
    assert "第一步" in result and "1. " not in result
    assert "引用的话" in result and ">" not in result
    assert "地图" in result and "http://example.com/map" not in result
    assert "插图" not in result and "img.png" not in result
    assert "code 不变" in result


def test_strip_markdown_drops_fenced_code_and_collapses_blank_lines():
    source = "开头\n```\nprint('x')\n```\n\n\n\n结尾"

    result = strip_markdown(source)

    assert "print" not in result
    assert "\n\n\n" not in result
    assert result.startswith("开头")
    assert result.endswith("结尾")


def test_strip_markdown_is_idempotent_on_plain_text():
    source = "## 标题\n\n这是*一段*正文。\n\n- 条目"
    once = strip_markdown(source)

    assert strip_markdown(once) == once
    assert strip_markdown("") == ""


def test_strip_markdown_unwraps_nested_markup_in_one_call():
    cases = {
        "> > 嵌套引用": "嵌套引用",
        "**粗体里有*斜体*呢**": "粗体里有斜体呢",
        "- - 子项": "子项",
        "# # 标题": "标题",
        "> - 引用里的条目": "引用里的条目",
    }

    for source, expected in cases.items():
        once = strip_markdown(source)
        assert once == expected
        assert strip_markdown(once) == once


def test_count_words_counts_every_non_whitespace_character():
    assert count_words("你好 世界\n") == 4
    assert count_words("Hi there") == 7
    assert count_words("**粗体**") == 6
    assert count_words("") == 0
    assert count_words(" \n\t ") == 0


def test_count_plain_words_ignores_markup_symbols():
    assert count_plain_words("**粗体**") == 2
    assert count_plain_words("# 标题 [链接](地址)") == 6
    assert count_plain_words("") == 0
