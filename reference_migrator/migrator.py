"""
Adjusts textual references in change messages to match the destination.

A reference such as `#123` that is valid in the origin repository is looked up
in the destination's history: the destination change that carries `123` under
the origin label (or one of the additional labels) provides the new reference.
"""

import logging
import re
import threading

from .errors import ConfigurationError, RepoError, ValidationError
from .history import VisitResult
from .templates import RegexTemplateTokens, expand
from .transformation import ExplicitReversal, IntentionalNoop, Transformation

MAX_CHANGES_TO_VISIT = 5000
RESERVED_TOKEN = "$1"
REFERENCE_GROUP = "reference"


class _FirstError:
    """A cell that keeps the first error set on it and ignores later ones."""

    def __init__(self):
        self._lock = threading.Lock()
        self.error = None

    def compare_and_set(self, error):
        with self._lock:
            if self.error is None:
                self.error = error
                return True
            return False


class ReferenceMigrator(Transformation):
    """Rewrites references found by `before` into the shape of `after`."""

    def __init__(self, before, after, reverse_pattern=None, additional_labels=()):
        self.before = before
        self.after = after
        if isinstance(reverse_pattern, str):
            reverse_pattern = re.compile(reverse_pattern)
        self.reverse_pattern = reverse_pattern
        self.additional_labels = tuple(additional_labels)
        # Destination label value -> ref of the first change seen carrying it.
        self.known_changes = {}
        self._lock = threading.Lock()

    @classmethod
    def create(cls, before, after, forward, backward=None, additional_labels=()):
        """
        Builds a migrator, validating both templates up front.

        `forward` is the regex matching a reference in the origin and `backward`
        the optional regex every resolved destination reference must match.
        """
        if RESERVED_TOKEN in after:
            # TODO: support escaping '$1' once a destination format needs it literally.
            raise ConfigurationError(
                f"Destination format '{after}' uses the reserved token '{RESERVED_TOKEN}'."
            )
        patterns = {REFERENCE_GROUP: forward}
        before_tokens = RegexTemplateTokens(before, patterns, repeated_groups=False)
        before_tokens.validate_unused()
        after_tokens = RegexTemplateTokens(after, patterns, repeated_groups=False)
        after_tokens.validate_unused()
        if isinstance(backward, str):
            try:
                backward = re.compile(backward)
            except re.error as e:
                raise ConfigurationError(f"Invalid reverse pattern '{backward}': {e}") from e
        return cls(before_tokens, after_tokens, backward, additional_labels)

    def transform(self, work):
        thrown = _FirstError()
        info = work.migration_info

        def _migrate(group_values, template):
            matched = group_values[0]
            if not group_values.get(1):
                return matched
            try:
                destination_ref = self.find_change(
                    group_values[1], info.origin_label, info.destination_visitable
                )
            except ValidationError as e:
                thrown.compare_and_set(e)
                return matched
            if not destination_ref:
                return matched
            return expand(template, {1: destination_ref})

        replacer = self.before.callback_replacer(self.after, _migrate)
        original = work.message
        replaced = replacer.replace(original)
        if thrown.error is not None:
            raise thrown.error
        if replaced != original:
            work.message = replaced

    def _remember(self, label_value, ref):
        with self._lock:
            self.known_changes.setdefault(label_value, ref)

    def _lookup(self, reference):
        with self._lock:
            return self.known_changes.get(reference)

    def find_change(self, reference, origin_label, destination_reader):
        """
        Returns the destination reference for `reference`, or None if the
        destination history does not mention it within MAX_CHANGES_TO_VISIT changes.
        """
        known = self._lookup(reference)
        if known is not None:
            logging.debug(f"Reference '{reference}' resolved from cache to '{known}'.")
            return known
        if destination_reader is None:
            raise ValidationError("Destination does not support reading change history.")

        labels = [origin_label, *self.additional_labels]
        visited = 0

        def _visitor(change, change_labels):
            nonlocal visited
            for values in change_labels.values():
                for label_value in values:
                    self._remember(label_value, change.ref)
                    if label_value == reference:
                        return VisitResult.TERMINATE
            visited += 1
            if visited > MAX_CHANGES_TO_VISIT:
                logging.warning(
                    f"Gave up looking for '{reference}' after {MAX_CHANGES_TO_VISIT} changes."
                )
                return VisitResult.TERMINATE
            return VisitResult.CONTINUE

        logging.info(f"Looking up reference '{reference}' in {destination_reader!r} using labels {labels}.")
        try:
            destination_reader.visit_changes_with_any_label(None, labels, _visitor)
        except RepoError as e:
            raise ValidationError(f"Exception finding reference '{reference}': {e}") from e

        found = self._lookup(reference)
        if found is None:
            logging.info(f"No destination change found for '{reference}' ({visited} changes visited).")
            return None
        if self.reverse_pattern is not None and not self.reverse_pattern.fullmatch(found):
            raise ValidationError(
                f"Reference {found} does not match regex '{self.reverse_pattern.pattern}'"
            )
        return found

    def reverse(self):
        return ExplicitReversal(IntentionalNoop(), self)

    def describe(self):
        return f"map_references: {self.before} to {self.after}"

    def __repr__(self):
        return f"ReferenceMigrator(before={str(self.before)!r}, after={str(self.after)!r})"

    def __eq__(self, other):
        return (
            isinstance(other, ReferenceMigrator)
            and self.before == other.before
            and self.after == other.after
        )

    def __hash__(self):
        return hash((self.before, self.after))
