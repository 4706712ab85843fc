"""Component label inference and title correction.

Issues carry their component in a ``[Component]`` title prefix; pull
requests are labelled from the paths their diff touches. Near misses in the
prefix (edit distance <= 2) are corrected in place and the author is told
about it with a comment.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .distance import closest_match
from .github_rest import GitHubClient
from .logging import get_logger
from .models import IssueData, PullRequestData

TITLE_LABEL_PATTERN = re.compile(r"\[(.*?)\]")
DIFF_NEW_FILE_PREFIX = "+++ b/"
MATCH_THRESHOLD = 2

RENAMED_COMMENT = "Your title label prefix has been renamed from {old} to {new}."
MISSING_PREFIX_COMMENT = "The title doesn't have a [Component] prefix."
MULTIPLE_COMPONENTS_COMMENT = "This PR affects multiple components."
AUTO_PREFIX_COMMENT = "Based on the changes, the title has been prefixed with {label}."


def get_title_label(title: str) -> str | None:
    """Return the first ``[...]`` token of ``title``, brackets included."""
    match = TITLE_LABEL_PATTERN.search(title)
    return match.group(0) if match else None


def unbracket(label: str) -> str:
    return label[1:-1] if label.startswith("[") and label.endswith("]") else label


def rewrite_title(title: str, new_label: str) -> str:
    """Swap everything up to the first ``]`` for ``new_label``."""
    _, sep, rest = title.partition("]")
    if not sep:
        return f"{new_label} {title}".rstrip()
    return f"{new_label} {rest.lstrip(' ')}".rstrip()


def get_file_paths(diff: str) -> list[str]:
    """Destination paths of every file in a unified diff."""
    return [
        line[len(DIFF_NEW_FILE_PREFIX) :]
        for line in diff.splitlines()
        if line.startswith(DIFF_NEW_FILE_PREFIX)
    ]


def label_for_path(path: str) -> str | None:
    parts = path.split("/")
    if parts[0] == "components" and len(parts) > 1 and parts[1]:
        return f"[{parts[1]}]"
    if parts[0] == "catalog" and len(parts) > 1:
        return "[Catalog]"
    return None


def labels_from_paths(paths: Iterable[str]) -> list[str]:
    """Distinct labels for ``paths`` in first-seen order."""
    labels: dict[str, None] = {}
    for path in paths:
        label = label_for_path(path)
        if label:
            labels.setdefault(label, None)
    return list(labels)


@dataclass
class ReconcileResult:
    labels: list[str] = field(default_factory=list)
    new_title: str | None = None
    comments: list[str] = field(default_factory=list)


class LabelReconciler:
    def __init__(
        self,
        components_path: str = "components",
        review_label: str = "Needs actionability review",
        threshold: int = MATCH_THRESHOLD,
    ) -> None:
        self.components_path = components_path
        self.review_label = review_label
        self.threshold = threshold
        self.logger = get_logger()

    def _retitle(
        self,
        client: GitHubClient,
        url: str,
        title: str,
        old_label: str,
        new_label: str,
        result: ReconcileResult,
    ) -> None:
        new_title = rewrite_title(title, new_label)
        client.edit_issue(url, title=new_title)
        comment = RENAMED_COMMENT.format(old=old_label, new=new_label)
        client.create_comment(url, comment)
        result.new_title = new_title
        result.comments.append(comment)

    def _apply(self, client: GitHubClient, url: str, result: ReconcileResult) -> None:
        result.labels = list(dict.fromkeys(result.labels))
        if result.labels:
            client.add_labels(url, result.labels)

    def reconcile_issue(self, issue: IssueData, client: GitHubClient) -> ReconcileResult:
        """Label an issue from its title prefix, fixing near-miss prefixes."""
        result = ReconcileResult()
        names = client.get_directory_names(issue.repository_url, self.components_path)
        title_label = get_title_label(issue.title)
        if title_label is not None:
            bare = unbracket(title_label)
            if bare in names:
                result.labels.append(title_label)
            else:
                # All-lowercase entries are not component folders.
                candidates = {name: name for name in names if name.lower() != name}
                best, dist = closest_match(bare, candidates)
                if best is not None and dist <= self.threshold:
                    corrected = f"[{best}]"
                    result.labels.append(corrected)
                    self._retitle(client, issue.url, issue.title, title_label, corrected, result)
                else:
                    self.logger.info("no component matches title label", label=title_label)

        if result.labels:
            self._apply(client, issue.url, result)
        elif title_label is None:
            client.create_comment(issue.url, MISSING_PREFIX_COMMENT)
            result.comments.append(MISSING_PREFIX_COMMENT)
        return result

    def reconcile_pull_request(
        self, pr: PullRequestData, client: GitHubClient
    ) -> ReconcileResult:
        """Label a pull request from the component paths its diff touches."""
        result = ReconcileResult()
        diff = client.get_text(pr.diff_url) if pr.diff_url else None
        path_labels = labels_from_paths(get_file_paths(diff or ""))
        url = pr.issue_url

        if len(path_labels) > 1:
            client.create_comment(url, MULTIPLE_COMPONENTS_COMMENT)
            result.comments.append(MULTIPLE_COMPONENTS_COMMENT)
        result.labels.extend(path_labels)

        title_label = get_title_label(pr.title)
        if title_label is not None:
            if title_label not in path_labels:
                candidates = {label: unbracket(label) for label in path_labels}
                best, dist = closest_match(unbracket(title_label), candidates)
                if best is not None and dist <= self.threshold:
                    result.labels.append(best)
                    self._retitle(client, url, pr.title, title_label, best, result)
        elif len(path_labels) == 1:
            label = path_labels[0]
            new_title = f"{label} {pr.title}"
            client.edit_issue(url, title=new_title)
            comment = AUTO_PREFIX_COMMENT.format(label=label)
            client.create_comment(url, comment)
            result.new_title = new_title
            result.comments.append(comment)

        self._apply(client, url, result)
        return result

    def add_needs_review_label(self, issue: IssueData, client: GitHubClient) -> bool:
        if self.review_label in issue.labels:
            return False
        client.add_labels(issue.url, [self.review_label])
        return True

    def reconcile_all_issues(self, repo_url: str, client: GitHubClient) -> int:
        """Bulk pass: re-apply title and diff labels to every issue of a repo.

        Titles are not rewritten here; only labels already implied by the
        title prefix or the diff are (re)applied. Returns the number of issues
        that received labels.
        """
        labelled = 0
        with self.logger.timed_operation("bulk_label_update", url=repo_url):
            for entry in client.list_issues(repo_url, state="all"):
                issue = IssueData.from_dict(entry)
                if not issue.url:
                    continue
                staged: list[str] = []
                title_label = get_title_label(issue.title)
                if title_label:
                    staged.append(title_label)
                if issue.is_pull_request:
                    diff = client.get_text(issue.diff_url) or ""
                    staged.extend(labels_from_paths(get_file_paths(diff)))
                if staged:
                    client.add_labels(issue.url, dict.fromkeys(staged))
                    labelled += 1
        return labelled


__all__ = [
    "LabelReconciler",
    "ReconcileResult",
    "get_file_paths",
    "get_title_label",
    "label_for_path",
    "labels_from_paths",
    "rewrite_title",
    "unbracket",
]
