"""Tests for regex templates and the callback replacer."""

import logging

import pytest

from reference_migrator.errors import ConfigurationError
from reference_migrator.templates import RegexTemplateTokens, expand

GROUPS = {"reference": r"\d+"}


class TestRegexTemplateTokens:
    """Test cases for parsing and compiling templates."""

    def test_literal_text_is_escaped(self):
        tokens = RegexTemplateTokens("(#${reference})", GROUPS)

        assert tokens.regex == r"\(\#(\d+)\)"
        assert tokens.group_indexes == {"reference": [1]}

    def test_dollar_dollar_is_a_literal_dollar(self):
        tokens = RegexTemplateTokens("$$${reference}", GROUPS)
        replacer = tokens.callback_replacer(RegexTemplateTokens("<${reference}>", GROUPS))

        assert replacer.replace("cost $5 and 6") == "cost <5> and 6"

    def test_nested_groups_shift_indexes(self):
        """Capture groups inside a pattern count towards later group numbers."""
        tokens = RegexTemplateTokens(
            "${first}-${second}", {"first": r"(a)(b)", "second": r"\d+"}
        )

        assert tokens.group_indexes == {"first": [1], "second": [4]}

    def test_repeated_groups_allowed_when_requested(self):
        tokens = RegexTemplateTokens(
            "${reference}/${reference}", GROUPS, repeated_groups=True
        )

        assert tokens.group_indexes == {"reference": [1, 2]}

    def test_unterminated_group(self):
        with pytest.raises(ConfigurationError, match="Unterminated"):
            RegexTemplateTokens("#${reference", GROUPS)

    def test_bare_dollar_is_rejected(self):
        with pytest.raises(ConfigurationError, match="must be followed by"):
            RegexTemplateTokens("cost $5", GROUPS)

    def test_invalid_group_regex(self):
        with pytest.raises(ConfigurationError, match="Invalid regex"):
            RegexTemplateTokens("${reference}", {"reference": "[0-9"})

    def test_validate_unused_passes_when_all_groups_used(self):
        RegexTemplateTokens("#${reference}", GROUPS).validate_unused()

    def test_render_replacement_requires_captured_group(self):
        before = RegexTemplateTokens("#${reference}", {"reference": r"\d+", "x": "y"})
        after = RegexTemplateTokens("${x}", {"reference": r"\d+", "x": "y"})

        with pytest.raises(ConfigurationError, match="not captured"):
            after.render_replacement(before)

    def test_compiled_patterns_are_accepted(self):
        import re

        tokens = RegexTemplateTokens("#${reference}", {"reference": re.compile(r"\d+")})

        assert tokens.regex == r"\#(\d+)"
        assert tokens == RegexTemplateTokens("#${reference}", GROUPS)


class TestReplacer:
    """Test cases for Replacer.replace."""

    def test_callback_receives_groups_and_template(self):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("ISSUE-${reference}", GROUPS)
        calls = []

        def callback(group_values, template):
            calls.append((dict(group_values), template))
            return "X"

        result = before.callback_replacer(after, callback).replace("a #1 b #22")

        assert result == "a X b X"
        assert calls == [
            ({0: "#1", 1: "1"}, "ISSUE-${1}"),
            ({0: "#22", 1: "22"}, "ISSUE-${1}"),
        ]

    def test_default_callback_expands_template(self):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("ISSUE-${reference}", GROUPS)

        assert before.callback_replacer(after).replace("Fixes #7.") == "Fixes ISSUE-7."

    def test_digit_after_group_stays_literal(self):
        """`${reference}0` appends a zero instead of naming group 10."""
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("${reference}0", GROUPS)
        replacer = before.callback_replacer(after)

        assert replacer.template == "${1}0"
        assert replacer.replace("#5") == "50"

    def test_literal_dollar_before_group(self):
        """A `$$` in the destination renders as one `$` next to the group."""
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("$$${reference}", GROUPS)
        replacer = before.callback_replacer(after)

        assert replacer.template == "$$${1}"
        assert replacer.replace("#5") == "$5"

    def test_first_only(self):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("<${reference}>", GROUPS)

        replacer = before.callback_replacer(after, first_only=True)

        assert replacer.replace("#1 #2") == "<1> #2"

    def test_multiline_anchors(self):
        before = RegexTemplateTokens("#${reference}", {"reference": r"\d+$"})
        after = RegexTemplateTokens("<${reference}>", {"reference": r"\d+$"})

        assert before.callback_replacer(after).replace("#1\n#2") == "#1\n<2>"
        assert (
            before.callback_replacer(after, multiline=True).replace("#1\n#2")
            == "<1>\n<2>"
        )

    def test_ignored_lines_are_untouched(self):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("<${reference}>", GROUPS)

        replacer = before.callback_replacer(after, patterns_to_ignore=[r"^Keep:"])

        assert replacer.replace("Fix #1\nKeep: #2\nand #3") == "Fix <1>\nKeep: #2\nand <3>"

    def test_ignored_lines_with_first_only(self):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("<${reference}>", GROUPS)

        replacer = before.callback_replacer(
            after, first_only=True, patterns_to_ignore=[r"^Keep:"]
        )

        assert replacer.replace("Keep: #1\n#2\n#3") == "Keep: #1\n<2>\n#3"

    def test_logs_skipped_lines_only_when_some_were_ignored(self, caplog):
        before = RegexTemplateTokens("#${reference}", GROUPS)
        after = RegexTemplateTokens("<${reference}>", GROUPS)
        replacer = before.callback_replacer(after, patterns_to_ignore=[r"^Keep:"])

        with caplog.at_level(logging.DEBUG):
            replacer.replace("Fix #1\nand #2")
        assert "Skipped" not in caplog.text

        with caplog.at_level(logging.DEBUG):
            replacer.replace("Fix #1\nKeep: #2")
        assert "Skipped 1 ignored line(s)" in caplog.text


def test_expand():
    assert expand("$$$1-$2", {1: "a", 2: None}) == "$a-"
    assert expand("$$${1}0", {1: "a"}) == "$a0"
