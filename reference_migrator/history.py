"""
Read-only access to a destination's change history.

A history visitor walks changes (newest first) and calls a visitor function
for every change that carries at least one of the requested labels. Labels are
`Name: value` or `Name=value` lines in the change message.
"""

import enum
import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List

from .errors import RepoError

LABEL_LINE = re.compile(r"^(?P<name>[\w-]+)(?:=|: )(?P<value>.*?)[ \t]*$", re.MULTILINE)
GIT_LOG_FORMAT = "%H%x00%B%x1e"


class VisitResult(enum.Enum):
    CONTINUE = "continue"
    TERMINATE = "terminate"


@dataclass
class Change:
    """A change in the destination history, identified by `ref`."""

    ref: str
    message: str = ""
    labels: Dict[str, List[str]] = field(default_factory=dict)


def parse_labels(message):
    """Returns label name -> values, in the order they appear in `message`."""
    labels = {}
    for match in LABEL_LINE.finditer(message or ""):
        labels.setdefault(match.group("name"), []).append(match.group("value"))
    return labels


class ChangeVisitable:
    """Anything whose change history can be walked by label."""

    def visit_changes_with_any_label(self, start, label_names, visitor):
        """
        Calls `visitor(change, labels)` for each change, starting at `start`
        (or the head when None), that carries any of `label_names`. `labels`
        only holds the requested names. Stops when the visitor returns
        VisitResult.TERMINATE or the history is exhausted.
        """
        raise NotImplementedError

    @staticmethod
    def _filter_labels(labels, label_names):
        return {name: labels[name] for name in label_names if labels.get(name)}

    def _visit(self, changes, label_names, visitor):
        """Feeds `changes` to `visitor`. Returns False once the visitor terminates."""
        for change in changes:
            labels = self._filter_labels(change.labels, label_names)
            if not labels:
                continue
            if visitor(change, labels) == VisitResult.TERMINATE:
                return False
        return True


class GitLogHistory(ChangeVisitable):
    """Walks the commits of a local git repository with `git log`."""

    def __init__(self, repo_dir, ref="HEAD", batch_size=100):
        self.repo_dir = repo_dir
        self.ref = ref
        self.batch_size = batch_size

    def _log(self, start, skip):
        cmd = [
            "git",
            "log",
            f"--format={GIT_LOG_FORMAT}",
            f"--skip={skip}",
            f"--max-count={self.batch_size}",
            start or self.ref,
            "--",
        ]
        try:
            result = subprocess.run(
                cmd, check=True, cwd=self.repo_dir, capture_output=True, text=True
            )
        except subprocess.CalledProcessError as e:
            raise RepoError(
                f"'git log' failed in '{self.repo_dir}': {(e.stderr or '').strip()}"
            ) from e
        except OSError as e:
            raise RepoError(f"Cannot run git in '{self.repo_dir}': {e}") from e
        changes = []
        for record in result.stdout.split("\x1e"):
            record = record.strip("\n")
            if not record:
                continue
            sha, _, body = record.partition("\x00")
            changes.append(Change(ref=sha, message=body, labels=parse_labels(body)))
        return changes

    def visit_changes_with_any_label(self, start, label_names, visitor):
        skip = 0
        while True:
            batch = self._log(start, skip)
            logging.debug(f"Read {len(batch)} commits from '{self.repo_dir}' (skip={skip}).")
            if not self._visit(batch, label_names, visitor):
                return
            if len(batch) < self.batch_size:
                return
            skip += len(batch)

    def __repr__(self):
        return f"GitLogHistory({self.repo_dir!r}, ref={self.ref!r})"
