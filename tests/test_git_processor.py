"""Tests for the git parsers and formatters."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vcs_saver.classifier import FilterKind
from vcs_saver.config import Limits
from vcs_saver.models import FileOp
from vcs_saver.processors.git import (
    GitProcessor,
    format_branches,
    format_log,
    format_reflog,
    format_status,
    parse_branches,
    parse_log,
    parse_reflog,
    parse_show,
    parse_status,
)

LONG_STATUS = "\n".join(
    [
        "On branch main",
        "Your branch is ahead of 'origin/main' by 2 commits.",
        '  (use "git push" to publish your local commits)',
        "",
        "Changes to be committed:",
        '  (use "git restore --staged <file>..." to unstage)',
        "\tnew file:   src/new.py",
        "",
        "Changes not staged for commit:",
        '  (use "git add <file>..." to update what will be committed)',
        "\tmodified:   src/app.py",
        "\tdeleted:    old.txt",
        "",
        "Untracked files:",
        '  (use "git add <file>..." to include in what will be committed)',
        "\tnotes.md",
        "",
    ]
)

CLEAN_STATUS = "\n".join(
    [
        "On branch main",
        "Your branch is up to date with 'origin/main'.",
        "",
        "nothing to commit, working tree clean",
    ]
)

SHORT_STATUS = "\n".join(
    [
        "## main...origin/main [ahead 1, behind 2]",
        " M src/app.py",
        "A  src/new.py",
        "?? notes.md",
        "UU conflict.txt",
    ]
)

MEDIUM_LOG = "\n".join(
    [
        "commit 1a2b3c4d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b (HEAD -> main, origin/main)",
        "Author: Jane Doe <jane@example.com>",
        "Date:   Wed May 1 10:00:00 2024 +0200",
        "",
        "    Add feature flag",
        "",
        "    Longer body text.",
        "",
        "commit 0f1e2d3c4b5a69788796a5b4c3d2e1f0a9b8c7d6",
        "Merge: 1111111 2222222",
        "Author: John Roe <john@example.com>",
        "Date:   Tue Apr 30 09:00:00 2024 +0200",
        "",
        "    Merge branch 'topic'",
    ]
)

ONELINE_LOG = "1a2b3c4 (HEAD -> main) Add feature flag\n0f1e2d3 Merge branch 'topic'"

SHOW = "\n".join(
    [
        "commit 1a2b3c4d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b (HEAD -> main)",
        "Author: Jane Doe <jane@example.com>",
        "Date:   Wed May 1 10:00:00 2024 +0200",
        "",
        "    Add feature flag",
        "",
        "diff --git a/app.py b/app.py",
        "index 1111111..2222222 100644",
        "--- a/app.py",
        "+++ b/app.py",
        "@@ -1,2 +1,2 @@",
        "-FLAG = False",
        "+FLAG = True",
        " print(FLAG)",
    ]
)

REFLOG = "\n".join(
    [
        "1a2b3c4 (HEAD -> main) HEAD@{0}: commit: Add feature flag",
        "0f1e2d3 HEAD@{1}: checkout: moving from topic to main",
    ]
)

BRANCHES = "\n".join(
    [
        "  feature  0d8e9b1 [origin/feature: ahead 1] add feature",
        "* main     7fd1a60 [origin/main] Merge pull request #6",
        "  remotes/origin/HEAD -> origin/main",
    ]
)


class TestGitStatus:
    def setup_method(self):
        self.limits = Limits()

    def test_long_format(self):
        record = parse_status(LONG_STATUS)
        assert record.branch == "main"
        assert record.tracking == "origin/main +2"
        lines = format_status(record, self.limits, 10).splitlines()
        assert lines == [
            "* main (origin/main +2)",
            "A src/new.py",
            "M src/app.py",
            "D old.txt",
            "? notes.md",
        ]

    def test_hints_are_dropped(self):
        result = format_status(parse_status(LONG_STATUS), self.limits, 10)
        assert "git add" not in result
        assert parse_status(LONG_STATUS).unparsed_count() == 0

    def test_clean(self):
        result = format_status(parse_status(CLEAN_STATUS), self.limits, 10)
        assert result == "* main (origin/main) clean"

    def test_short_format(self):
        record = parse_status(SHORT_STATUS)
        assert record.tracking == "origin/main +1 -2"
        lines = format_status(record, self.limits, 10).splitlines()
        assert lines[0] == "* main (origin/main +1 -2)"
        assert "M src/app.py" in lines
        assert "A src/new.py" in lines
        assert "? notes.md" in lines
        assert "U conflict.txt" in lines
        assert "Conflicts: 1 files" in lines

    def test_unmerged_long_label(self):
        output = "\n".join(
            [
                "On branch main",
                "You have unmerged paths.",
                "Unmerged paths:",
                "\tboth modified:   src/app.py",
            ]
        )
        record = parse_status(output)
        assert record.file_changes[0].op == FileOp.CONFLICTED
        assert record.conflicts[0].path == "src/app.py"

    def test_detached_head(self):
        output = "HEAD detached at 1a2b3c4\nnothing to commit, working tree clean"
        result = format_status(parse_status(output), self.limits, 10)
        assert result == "* (detached 1a2b3c4) clean"

    def test_diverged(self):
        output = "\n".join(
            [
                "On branch main",
                "Your branch and 'origin/main' have diverged,",
                "and have 3 and 4 different commits each, respectively.",
                "nothing to commit, working tree clean",
            ]
        )
        assert parse_status(output).tracking == "origin/main +3 -4"


class TestGitLog:
    def setup_method(self):
        self.limits = Limits()

    def test_medium_format(self):
        record = parse_log(MEDIUM_LOG)
        assert len(record.entries) == 2
        first = record.entries[0]
        assert first.short_id == "1a2b3c4d"
        assert first.full_id.startswith(first.short_id)
        assert first.author == "Jane Doe"
        assert first.timestamp.year == 2024
        assert first.description == "Add feature flag"
        assert first.bookmarks == ["HEAD -> main", "origin/main"]

    def test_format(self):
        lines = format_log(parse_log(MEDIUM_LOG), self.limits, 5).splitlines()
        assert lines == [
            "1a2b3c4d (HEAD -> main, origin/main) Add feature flag",
            "0f1e2d3c Merge branch 'topic'",
        ]

    def test_verbose_keeps_author_not_email(self):
        result = format_log(parse_log(MEDIUM_LOG), Limits(verbose=True), 5)
        assert "Jane Doe" in result
        assert "2024-05-01 10:00" in result
        assert "jane@example.com" not in result

    def test_oneline(self):
        lines = format_log(parse_log(ONELINE_LOG), self.limits, 5).splitlines()
        assert lines[0] == "1a2b3c4 (HEAD -> main) Add feature flag"
        assert lines[1] == "0f1e2d3 Merge branch 'topic'"

    def test_limit(self):
        result = format_log(parse_log(MEDIUM_LOG), self.limits, 1)
        assert "0f1e2d3c" not in result
        assert result.splitlines()[-1] == "… 1 more"


class TestGitShowReflogBranches:
    def setup_method(self):
        self.limits = Limits()
        self.p = GitProcessor()

    def test_show(self):
        record = parse_show(SHOW)
        assert record.commit_id.startswith("1a2b3c4d")
        assert record.description == "Add feature flag"
        result = self.p.format(FilterKind.SHOW, record, self.limits, 5)
        lines = result.splitlines()
        assert lines[0] == "1a2b3c4d HEAD -> main Add feature flag"
        assert "app.py | +1 -1" in lines
        assert "+FLAG = True" in lines

    def test_reflog(self):
        record = parse_reflog(REFLOG)
        assert record.entries[0].args == "HEAD@{0}"
        lines = format_reflog(record, self.limits, 5).splitlines()
        assert lines[0] == "1a2b3c4 HEAD@{0} commit: Add feature flag"
        assert lines[1] == "0f1e2d3 HEAD@{1} checkout: moving from topic to main"

    def test_branches(self):
        record = parse_branches(BRANCHES)
        assert [e.name for e in record.entries] == ["feature", "main", "remotes/origin/HEAD"]
        assert record.entries[1].is_current
        lines = format_branches(record, self.limits, 10).splitlines()
        assert lines[0] == "  feature 0d8e9b1 [origin/feature +1]"
        assert lines[1] == "* main 7fd1a60 [origin/main]"
        assert lines[2] == "  remotes/origin/HEAD -> origin/main"

    def test_plain_branch_listing(self):
        lines = format_branches(parse_branches("  feature\n* main"), self.limits, 10).splitlines()
        assert lines == ["  feature", "* main"]

    def test_branch_limit(self):
        result = format_branches(parse_branches(BRANCHES), self.limits, 1)
        assert result.splitlines()[-1] == "… 2 more branches"


class TestGitProcessor:
    def setup_method(self):
        self.p = GitProcessor()
        self.limits = Limits()

    def test_handles_git_only(self):
        assert self.p.can_handle("git")
        assert not self.p.can_handle("jj")

    def test_log_limit_from_args(self):
        assert self.p.entry_limit(FilterKind.LOG, ("-n", "3"), self.limits) == 3
        assert self.p.entry_limit(FilterKind.LOG, ("-3",), self.limits) == 3
        assert self.p.entry_limit(FilterKind.LOG, ("--max-count=2",), self.limits) == 2
        assert self.p.entry_limit(FilterKind.LOG, (), self.limits) == 5
        assert self.p.entry_limit(FilterKind.STATUS, (), self.limits) == 10

    def test_args_are_not_rewritten(self):
        assert self.p.prepare_args(FilterKind.DIFF, ["diff"]) == ["diff"]
