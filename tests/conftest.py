"""Shared test doubles for reference migrator tests."""

from reference_migrator.history import Change, ChangeVisitable, VisitResult


class FakeHistory(ChangeVisitable):
    """In-memory destination history that records how it was read."""

    def __init__(self, changes=(), fail_with=None):
        self.changes = list(changes)
        self.fail_with = fail_with
        self.visited = []
        self.scans = 0
        self.requested_labels = None

    def visit_changes_with_any_label(self, start, label_names, visitor):
        self.scans += 1
        self.requested_labels = list(label_names)
        if self.fail_with is not None:
            raise self.fail_with
        for change in self.changes:
            labels = self._filter_labels(change.labels, label_names)
            if not labels:
                continue
            self.visited.append(change.ref)
            if visitor(change, labels) == VisitResult.TERMINATE:
                return


def labeled(ref, **labels):
    """A change whose labels are given as name=value or name=[values]."""
    return Change(
        ref=ref,
        labels={
            name.replace("_", "-"): value if isinstance(value, list) else [value]
            for name, value in labels.items()
        },
    )

