"""
Regex templates: literal text interleaved with named regex groups.

A template such as ``"Fixes #${reference}"`` combined with the group
``{"reference": r"\\d+"}`` compiles to the regex ``Fixes\\ \\#(\\d+)``. The same
template can also be rendered as a replacement string for another template,
where every ``${name}`` becomes ``${N}``, N being the index of that group in the
matching template.
"""

import logging
import re

from .errors import ConfigurationError

_SHORTHAND_NAME = re.compile(r"[A-Za-z_]\w*")
_GROUP_REFERENCE = re.compile(r"\$(?:\$|\{(?P<braced>\d+)\}|(?P<bare>\d+))")


class RegexTemplateTokens:
    """A parsed template string plus the regex groups it may interpolate."""

    def __init__(self, template, regex_groups, repeated_groups=False):
        self.template = template
        self.regex_groups = {
            name: getattr(pattern, "pattern", pattern)
            for name, pattern in regex_groups.items()
        }
        self.repeated_groups = repeated_groups
        self.tokens = self._tokenize(template)
        self.group_indexes = {}
        self.regex = self._build_regex()

    def _tokenize(self, template):
        tokens, literal, i = [], [], 0
        while i < len(template):
            char = template[i]
            if char != "$":
                literal.append(char)
                i += 1
                continue
            nxt = template[i + 1 : i + 2]
            if nxt == "$":
                literal.append("$")
                i += 2
                continue
            if nxt == "{":
                end = template.find("}", i + 2)
                if end == -1:
                    raise ConfigurationError(
                        f"Unterminated '${{' in template '{template}'."
                    )
                name = template[i + 2 : end]
                i = end + 1
            elif match := _SHORTHAND_NAME.match(template, i + 1):
                name = match.group(0)
                i = match.end()
            else:
                raise ConfigurationError(
                    f"Expansion '$' in template '{template}' must be followed by '{{', '$' or a group name."
                )
            if literal:
                tokens.append(("literal", "".join(literal)))
                literal = []
            tokens.append(("group", name))
        if literal:
            tokens.append(("literal", "".join(literal)))
        return tokens

    def _build_regex(self):
        parts, group_count = [], 0
        for kind, value in self.tokens:
            if kind == "literal":
                parts.append(re.escape(value))
                continue
            if value not in self.regex_groups:
                raise ConfigurationError(
                    f"Group '{value}' is used in template '{self.template}' but not defined."
                )
            if value in self.group_indexes and not self.repeated_groups:
                raise ConfigurationError(
                    f"Group '{value}' is used more than once in template '{self.template}'."
                    " Repeated groups are not allowed."
                )
            try:
                nested = re.compile(self.regex_groups[value]).groups
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regex for group '{value}': {e}"
                ) from e
            group_count += 1
            self.group_indexes.setdefault(value, []).append(group_count)
            # Groups inside the user's own pattern shift the numbering of later groups.
            group_count += nested
            parts.append(f"({self.regex_groups[value]})")
        return "".join(parts)

    def validate_unused(self):
        """Rejects templates that leave some of their declared groups unused."""
        unused = sorted(set(self.regex_groups) - set(self.group_indexes))
        if unused:
            raise ConfigurationError(
                f"Following declared groups are not used in template '{self.template}': {unused}"
            )

    def render_replacement(self, other):
        """
        Renders this template as a replacement string for matches of `other`.

        Groups become `${N}` and literal `$` becomes `$$`, so a digit after a
        group never extends the group number.
        """
        parts = []
        for kind, value in self.tokens:
            if kind == "literal":
                parts.append(value.replace("$", "$$"))
            elif value in other.group_indexes:
                parts.append(f"${{{other.group_indexes[value][0]}}}")
            else:
                raise ConfigurationError(
                    f"Group '{value}' in template '{self.template}' is not captured by '{other.template}'."
                )
        return "".join(parts)

    def callback_replacer(
        self,
        after,
        callback=None,
        first_only=False,
        multiline=False,
        patterns_to_ignore=None,
    ):
        return Replacer(
            self, after, callback, first_only, multiline, patterns_to_ignore
        )

    def __str__(self):
        return self.template

    def __repr__(self):
        return f"RegexTemplateTokens({self.template!r}, {self.regex_groups!r})"

    def __eq__(self, other):
        return (
            isinstance(other, RegexTemplateTokens)
            and self.template == other.template
            and self.regex_groups == other.regex_groups
        )

    def __hash__(self):
        return hash((self.template, tuple(sorted(self.regex_groups.items()))))


def expand(template, group_values):
    """Substitutes `${N}` or `$N` with group N and `$$` with `$`. Missing groups become empty."""

    def _group(match):
        if match.group(0) == "$$":
            return "$"
        index = match.group("braced") or match.group("bare")
        return group_values.get(int(index)) or ""

    return _GROUP_REFERENCE.sub(_group, template)


class Replacer:
    """
    Replaces every match of a `before` template with the text returned by a callback.

    The callback gets a dict of group values (0 is the whole match) and the
    `after` template rendered as a replacement string. Without a callback the
    replacement string is expanded with the captured groups.
    """

    def __init__(
        self, before, after, callback, first_only, multiline, patterns_to_ignore
    ):
        self.before = before
        self.after = after
        self.callback = callback or (lambda group_values, template: expand(template, group_values))
        self.first_only = first_only
        self.pattern = re.compile(before.regex, re.MULTILINE if multiline else 0)
        self.template = after.render_replacement(before)
        self.patterns_to_ignore = [re.compile(p) for p in patterns_to_ignore or ()]

    def _on_match(self, match):
        group_values = {0: match.group(0)}
        for index in range(1, self.pattern.groups + 1):
            group_values[index] = match.group(index)
        return self.callback(group_values, self.template)

    def replace(self, text):
        if not self.patterns_to_ignore:
            return self.pattern.sub(self._on_match, text, count=1 if self.first_only else 0)
        out, replaced_once, skipped = [], False, 0
        for line in text.splitlines(keepends=True):
            if replaced_once:
                out.append(line)
                continue
            if any(p.search(line) for p in self.patterns_to_ignore):
                skipped += 1
                out.append(line)
                continue
            new_line = self.pattern.sub(
                self._on_match, line, count=1 if self.first_only else 0
            )
            if self.first_only and self.pattern.search(line):
                replaced_once = True
            out.append(new_line)
        if skipped:
            logging.debug(f"Skipped {skipped} ignored line(s) while replacing '{self.before}'.")
        return "".join(out)
