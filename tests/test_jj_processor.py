"""Tests for the jj parsers and formatters."""

import os
import re
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vcs_saver.classifier import FilterKind
from vcs_saver.config import Limits
from vcs_saver.models import FileOp, LogEntry, OpLogEntry, Unparsed
from vcs_saver.processors.jj import (
    JjProcessor,
    format_bookmarks,
    format_log,
    format_op_log,
    format_status,
    parse_bookmarks,
    parse_log,
    parse_op_log,
    parse_show,
    parse_status,
    shorten_relative_time,
)

CHANGE_IDS = ["kntqzsqt", "orrkosyo", "puqltutt", "qpvuntsm", "rlvkpnrz", "spxkmvlw", "tnwylrpn"]
COMMIT_IDS = ["d7439b06", "7fd1a60b", "0d8e9b1c", "230dd059", "e3c2f1a0", "5b1c7d9e", "9a8f6e4d"]

CLEAN_STATUS = "\n".join(
    [
        "The working copy has no changes.",
        "Working copy  (@) : kntqzsqt d7439b06 (empty) (no description set)",
        "Parent commit (@-): orrkosyo 7fd1a60b master | (empty) Merge pull request #6 from user/branch",
    ]
)

CHANGED_STATUS = "\n".join(
    [
        "Working copy changes:",
        "M src/main.rs",
        "A new_file.rs",
        "Working copy  (@) : kntqzsqt d7439b06 add feature",
        "Parent commit (@-): orrkosyo 7fd1a60b master | Merge pull request #6",
    ]
)

SMALL_LOG = "\n".join(
    [
        "@  kntqzsqt steve@example.com 2024-05-01 10:00:00 d7439b06",
        "│  (empty) (no description set)",
        "○  orrkosyo steve@example.com 2024-05-01 09:00:00 master 7fd1a60b",
        "│  (empty) Merge pull request #6 from user/branch",
        "◆  zzzzzzzz root() 00000000",
    ]
)


def make_log(count):
    lines = []
    for i in range(count):
        glyph = "@" if i == 0 else "○"
        lines.append(f"{glyph}  {CHANGE_IDS[i]} dev@example.com 2024-05-0{i + 1} 10:00:00 {COMMIT_IDS[i]}")
        lines.append(f"│  feature {i}")
    return "\n".join(lines)


OP_LOG = "\n".join(
    [
        "@  d3b77addea49 user@host 3 minutes ago, lasted 3 milliseconds",
        "│  squash commits into f7fb5943a6b9c9e0e0c1a8e1f6b8f1e2d3c4b5a6",
        "│  args: jj squash",
        "○  2b6a1c2e0f4d user@host 10 minutes ago, lasted 5 milliseconds",
        "│  new empty commit",
        "│  args: jj new",
    ]
)

BOOKMARKS = "\n".join(
    [
        "feature: rlvkpnrz 0d8e9b1c add feature",
        "main: orrkosyo 7fd1a60b Merge pull request #6",
        "  @origin (ahead by 1 commits): qpvuntsm 230dd059 older",
        "release: tnwylrpn 9a8f6e4d cut release",
        "  @origin: tnwylrpn 9a8f6e4d cut release",
        "stale (deleted)",
        "  @origin: spxkmvlw 5b1c7d9e gone soon",
    ]
)

SHOW = "\n".join(
    [
        "Commit ID: 7fd1a60b01f78f5d7d2e5a1c7d3a6b4e5f6a7b8c",
        "Change ID: orrkosyolnqpmwtsxvuqyzrlkmnopqrs",
        "Bookmarks: master",
        "Author   : Steve <steve@example.com> (2024-05-01 09:00:00)",
        "Committer: Steve <steve@example.com> (2024-05-01 09:00:00)",
        "",
        "    Merge pull request #6",
        "",
        "diff --git a/src/main.rs b/src/main.rs",
        "index 1111111..2222222 100644",
        "--- a/src/main.rs",
        "+++ b/src/main.rs",
        "@@ -1,3 +1,4 @@",
        " fn main() {",
        '+    println!("hi");',
        " }",
    ]
)


class TestJjStatus:
    def setup_method(self):
        self.limits = Limits()

    def test_clean_status(self):
        result = format_status(parse_status(CLEAN_STATUS), self.limits, 10)
        assert result.splitlines() == ["@ kntqzsqt d7439b06 (empty)", "@- orrkosyo master"]
        assert "has no changes" not in result

    def test_clean_status_is_idempotent(self):
        first = format_status(parse_status(CLEAN_STATUS), self.limits, 10)
        second = format_status(parse_status(CLEAN_STATUS), self.limits, 10)
        assert first == second

    def test_changed_files(self):
        record = parse_status(CHANGED_STATUS)
        assert record.has_changes
        lines = format_status(record, self.limits, 10).splitlines()
        assert "M src/main.rs" in lines
        assert "A new_file.rs" in lines
        assert lines[0] == "@ kntqzsqt d7439b06 add feature"
        assert lines[-1] == "@- orrkosyo master"

    def test_verbose_parent_keeps_hash(self):
        limits = Limits(verbose=True)
        result = format_status(parse_status(CLEAN_STATUS), limits, 10)
        assert "@- orrkosyo 7fd1a60b master" in result

    def test_labels_without_symbols(self):
        output = "\n".join(
            [
                "Working copy : kntqzsqt d7439b06 (empty) (no description set)",
                "Parent commit: orrkosyo 7fd1a60b master | (empty) Merge pull request #6",
            ]
        )
        record = parse_status(output)
        assert record.unparsed_count() == 0
        assert record.working_copy.short_id == "kntqzsqt"
        assert [p.short_id for p in record.parents] == ["orrkosyo"]
        assert format_status(record, self.limits, 10).splitlines() == [
            "@ kntqzsqt d7439b06 (empty)",
            "@- orrkosyo master",
        ]


    def test_file_limit(self):
        files = [f"M src/file{i}.rs" for i in range(14)]
        output = "\n".join(["Working copy changes:", *files, "Working copy  (@) : kntqzsqt d7439b06 wip"])
        result = format_status(parse_status(output), self.limits, 10)
        assert "M src/file9.rs" in result
        assert "M src/file10.rs" not in result
        assert "… 4 more files" in result

    def test_conflicts(self):
        output = "\n".join(
            [
                "Working copy changes:",
                "M src/lib.rs",
                "There are unresolved conflicts at these paths:",
                "src/main.rs    2-sided conflict",
                "Working copy  (@) : kntqzsqt d7439b06 (conflict) resolve me",
                "Parent commit (@-): orrkosyo 7fd1a60b master | base",
            ]
        )
        record = parse_status(output)
        assert record.conflicts[0].path == "src/main.rs"
        assert record.conflicts[0].side_count == 2
        result = format_status(record, self.limits, 10)
        assert "Conflicts: 1 files" in result
        assert "src/main.rs (2-sided)" in result
        assert "@ kntqzsqt d7439b06 (conflict) resolve me" in result

    def test_conflicted_change_is_flagged(self):
        output = "\n".join(
            [
                "Working copy changes:",
                "M src/main.rs",
                "There are unresolved conflicts at these paths:",
                "src/main.rs    3-sided conflict",
                "Working copy  (@) : kntqzsqt d7439b06 (conflict) merge",
            ]
        )
        record = parse_status(output)
        assert record.file_changes[0].op == FileOp.CONFLICTED
        assert "U src/main.rs" in format_status(record, self.limits, 10)

    def test_unknown_line_is_echoed(self):
        output = CLEAN_STATUS + "\nSomething jj added in a later release"
        record = parse_status(output)
        assert record.unparsed_count() == 1
        assert "Something jj added in a later release" in format_status(record, self.limits, 10)


class TestJjLog:
    def setup_method(self):
        self.limits = Limits()

    def test_parse_entries(self):
        record = parse_log(SMALL_LOG)
        entries = [e for e in record.entries if isinstance(e, LogEntry)]
        assert [e.short_id for e in entries] == ["kntqzsqt", "orrkosyo", "zzzzzzzz"]
        assert entries[0].commit_id == "d7439b06"
        assert entries[0].is_empty
        assert entries[0].description == ""
        assert entries[1].bookmarks == ["master"]
        assert entries[1].description == "Merge pull request #6 from user/branch"
        assert entries[0].timestamp.year == 2024

    def test_format_drops_author_and_time(self):
        result = format_log(parse_log(SMALL_LOG), self.limits, 5)
        lines = result.splitlines()
        assert lines[0] == "@ kntqzsqt d7439b06 (empty)"
        assert lines[1] == "○ orrkosyo 7fd1a60b master (empty) Merge pull request #6 from user/branch"
        assert "2024-05-01" not in result

    def test_limit_and_marker(self):
        result = format_log(parse_log(make_log(7)), self.limits, 5)
        lines = result.splitlines()
        assert len(lines) == 6
        assert lines[-1] == "… 2 more"
        assert "tnwylrpn" not in result

    def test_no_marker_within_limit(self):
        result = format_log(parse_log(make_log(3)), self.limits, 5)
        assert "more" not in result

    def test_no_email_in_output(self):
        for limits in (Limits(), Limits(verbose=True)):
            result = format_log(parse_log(make_log(4)), limits, 5)
            assert not re.search(r"\S+@\S+\.\S+", result)

    def test_verbose_keeps_author_name(self):
        result = format_log(parse_log(SMALL_LOG), Limits(verbose=True), 5)
        assert "steve" in result
        assert "2024-05-01 10:00" in result

    def test_long_description_truncated(self):
        output = "@  kntqzsqt dev@example.com 2024-05-01 10:00:00 d7439b06\n│  " + "x" * 100
        result = format_log(parse_log(output), self.limits, 5)
        assert result.endswith("…")
        assert len(result.split(" ", 3)[3]) == 60

    def test_ascii_graph(self):
        output = "\n".join(
            [
                "@  kntqzsqt dev@example.com 2024-05-01 10:00:00 d7439b06",
                "|  first",
                "o  orrkosyo dev@example.com 2024-05-01 09:00:00 7fd1a60b",
                "|  second",
            ]
        )
        result = format_log(parse_log(output), self.limits, 5)
        assert "o orrkosyo 7fd1a60b second" in result

    def test_noise_before_first_entry_is_unparsed(self):
        record = parse_log("Warning: something odd\n" + SMALL_LOG)
        assert isinstance(record.entries[0], Unparsed)
        assert "Warning: something odd" in format_log(record, self.limits, 5)

    def test_author_without_domain(self):
        output = "@  kntqzsqt root@localhost 2024-05-01 10:00:00 d7439b06\n│  initial import"
        entry = parse_log(output).entries[0]
        assert entry.author == "root@localhost"
        assert entry.bookmarks == []
        result = format_log(parse_log(output), self.limits, 5)
        assert result == "@ kntqzsqt d7439b06 initial import"
        assert "root" in format_log(parse_log(output), Limits(verbose=True), 5)

    def test_remote_bookmark_after_author(self):
        output = "○  orrkosyo dev@host 2024-05-01 09:00:00 main@origin 7fd1a60b\n│  sync"
        entry = parse_log(output).entries[0]
        assert entry.author == "dev@host"
        assert entry.bookmarks == ["main@origin"]

    def test_root_is_a_marker(self):
        entry = [e for e in parse_log(SMALL_LOG).entries if isinstance(e, LogEntry)][-1]
        assert entry.is_root
        assert entry.bookmarks == []
        assert format_log(parse_log(SMALL_LOG), self.limits, 5).splitlines()[-1] == "◆ zzzzzzzz 00000000 root()"

    def test_prefix_invariant(self):
        with pytest.raises(ValueError):
            LogEntry(graph_glyph="○", short_id="kntqzsqt", full_id="orrkosyolnqp")
        entry = LogEntry(graph_glyph="○", short_id="kntq", full_id="kntqzsqtlmno")
        assert entry.full_id.startswith(entry.short_id)



class TestJjOpLog:
    def setup_method(self):
        self.limits = Limits()

    def test_compact_op_entry(self):
        result = format_op_log(parse_op_log(OP_LOG), self.limits, 5)
        assert "d3b77ad 3m ago squash …" in result
        assert "user@host" not in result

    def test_short_id_is_prefix(self):
        record = parse_op_log(OP_LOG, op_id_chars=7)
        entry = record.entries[0]
        assert entry.short_op_id == "d3b77ad"
        assert entry.full_op_id.startswith(entry.short_op_id)
        assert entry.args == "jj squash"

    def test_prefix_invariant(self):
        with pytest.raises(ValueError):
            OpLogEntry(graph_glyph="○", short_op_id="d3b77ad", full_op_id="2b6a1c2e0f4d")


    def test_verbose_shows_everything(self):
        result = format_op_log(parse_op_log(OP_LOG), Limits(verbose=True), 5)
        assert "d3b77addea49" in result
        assert "squash commits into f7fb5943a6b9c9e0e0c1a8e1f6b8f1e2d3c4b5a6" in result
        assert "[jj squash]" in result

    def test_limit(self):
        result = format_op_log(parse_op_log(OP_LOG), self.limits, 1)
        assert "2b6a1c2" not in result
        assert result.splitlines()[-1] == "… 1 more"

    def test_shorten_relative_time(self):
        assert shorten_relative_time("3 minutes ago, lasted 3 milliseconds") == "3m ago"
        assert shorten_relative_time("an hour ago, lasted 1 second") == "1h ago"
        assert shorten_relative_time("2 days ago") == "2d ago"
        assert shorten_relative_time("2024-05-01 10:00:00.000 +02:00 - 2024-05-01 10:00:01.000") == "2024-05-01 10:00"


class TestJjBookmarks:
    def setup_method(self):
        self.limits = Limits()

    def test_parse(self):
        record = parse_bookmarks(BOOKMARKS)
        names = [e.name for e in record.entries]
        assert names == ["feature", "main", "release", "stale"]
        main = record.entries[1]
        assert main.change_id == "orrkosyo"
        assert main.remotes[0].remote == "origin"
        assert main.remotes[0].state == "ahead by 1 commits"
        assert record.entries[3].is_deleted

    def test_format(self):
        lines = format_bookmarks(parse_bookmarks(BOOKMARKS), self.limits, 10).splitlines()
        assert lines[0] == "feature: rlvkpnrz 0d8e9b1c"
        assert lines[1] == "main: orrkosyo 7fd1a60b (tracked @origin: qpvuntsm 230dd059, ahead by 1 commits)"
        assert lines[2] == "release: tnwylrpn 9a8f6e4d (tracked @origin)"
        assert lines[3] == "stale (deleted) (tracked @origin: spxkmvlw 5b1c7d9e)"

    def test_limit(self):
        result = format_bookmarks(parse_bookmarks(BOOKMARKS), self.limits, 2)
        assert "release" not in result
        assert result.splitlines()[-1] == "… 2 more bookmarks"


class TestJjShow:
    def test_parse(self):
        record = parse_show(SHOW)
        assert record.commit_id.startswith("7fd1a60b")
        assert record.change_id.startswith("orrkosyo")
        assert record.bookmarks == ["master"]
        assert record.description == "Merge pull request #6"
        assert record.diff.hunks[0].file_path == "src/main.rs"

    def test_format(self):
        p = JjProcessor()
        limits = Limits()
        result = p.format(FilterKind.SHOW, p.parse(FilterKind.SHOW, SHOW, limits), limits, 5)
        lines = result.splitlines()
        assert lines[0] == "orrkosyo 7fd1a60b master Merge pull request #6"
        assert "src/main.rs | +1 -0" in lines
        assert '+    println!("hi");' in lines


class TestJjProcessor:
    def setup_method(self):
        self.p = JjProcessor()
        self.limits = Limits()

    def test_handles_jj_only(self):
        assert self.p.can_handle("jj")
        assert not self.p.can_handle("git")

    def test_diff_runs_with_git_format(self):
        assert self.p.prepare_args(FilterKind.DIFF, ["diff"]) == ["diff", "--git"]
        assert self.p.prepare_args(FilterKind.SHOW, ["show", "--git"]) == ["show", "--git"]
        assert self.p.prepare_args(FilterKind.DIFF, ["diff", "--", "a.rs"]) == ["diff", "--git", "--", "a.rs"]
        assert self.p.prepare_args(FilterKind.LOG, ["log"]) == ["log"]

    def test_log_limit_from_args(self):
        assert self.p.entry_limit(FilterKind.LOG, ("-n", "3"), self.limits) == 3
        assert self.p.entry_limit(FilterKind.LOG, ("--limit=8",), self.limits) == 8
        assert self.p.entry_limit(FilterKind.LOG, (), self.limits) == 5
        assert self.p.entry_limit(FilterKind.BOOKMARK_LIST, (), self.limits) == 10
