"""Tests for CLI commands."""

import io
import os
import shlex
import sys
import time
from pathlib import Path

import pytest
from click.testing import CliRunner

from brename.cli import build_fragments, cli, read_paths


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


def touch(*names: str) -> None:
    for name in names:
        Path(name).write_text(name)


class TestBuildFragments:
    """Tests for shorthand flag expansion."""

    def test_expressions_only(self):
        assert build_fragments(("s/a/b/", "lc")) == ["s/a/b/", "lc"]

    def test_shorthands_follow_expressions(self):
        fragments = build_fragments(
            ("s/a/b/",),
            lowercase=True,
            clean=True,
            url_encode=True,
            by_date=True,
            prefix="x-",
            renumber=4,
            unique=True,
        )

        assert fragments == [
            "s/a/b/",
            "lowercase",
            "clean",
            "url_encode",
            "by_date",
            'prefix("x-")',
            "renumber(4)",
            "unique",
        ]

    def test_prefix_is_quoted(self):
        assert build_fragments((), prefix='say "hi" \\') == ['prefix("say \\"hi\\" \\\\")']


class TestReadPaths:
    """Tests for reading paths from standard input."""

    def test_lines(self):
        assert read_paths(io.BytesIO(b"a b\nc\n\n"), null=False) == ["a b", "c"]

    def test_nul_separated(self):
        assert read_paths(io.BytesIO(b"line\nbreak\0other\0"), null=True) == ["line\nbreak", "other"]

    @pytest.mark.parametrize("name", ["a\fb", "a\rb", "a\vb", "a\x1cb", "a\u2028b"])
    def test_only_newline_separates_lines(self, name):
        data = (name + "\nnext\n").encode("utf-8")

        assert read_paths(io.BytesIO(data), null=False) == [name, "next"]

    def test_undecodable_bytes_survive(self):
        (path,) = read_paths(io.BytesIO(b"x\xff\n"), null=False)

        assert os.fsencode(path) == b"x\xff"


class TestRename:
    """Tests for the brename command."""

    def test_positional_rule(self, runner):
        with runner.isolated_filesystem():
            touch("a.jpeg", "b.jpeg")
            result = runner.invoke(cli, ["s/\\.jpeg$/.jpg/", "a.jpeg", "b.jpeg"])

            assert result.exit_code == 0, result.output
            assert Path("a.jpg").exists()
            assert Path("b.jpg").exists()
            assert "a.jpeg -> a.jpg" in result.output

    def test_expressions_and_shorthands(self, runner):
        with runner.isolated_filesystem():
            touch("My Song!.MP3")
            result = runner.invoke(cli, ["-e", "s/ /_/g", "-l", "-c", "My Song!.MP3"])

            assert result.exit_code == 0, result.output
            assert Path("my_song.mp3").exists()
            assert "'My Song!.MP3' -> my_song.mp3" in result.output

    def test_prefix_with_markup_characters(self, runner):
        with runner.isolated_filesystem():
            touch("a.txt")
            result = runner.invoke(cli, ["--prefix", "[draft] ", "a.txt"])

            assert result.exit_code == 0, result.output
            assert Path("[draft] a.txt").exists()
            assert "'[draft] a.txt'" in result.output

    def test_collision_sets_exit_code(self, runner):
        """Test lowercasing a.txt and A.TXT reports a collision."""
        with runner.isolated_filesystem():
            touch("a.txt", "A.TXT")
            result = runner.invoke(cli, ["-l", "a.txt", "A.TXT"])

            assert result.exit_code == 1
            assert "already exists" in result.output
            assert "a.txt unchanged" in result.output
            assert Path("A.TXT").read_text() == "A.TXT"
            assert Path("a.txt").read_text() == "a.txt"

    def test_partial_success(self, runner):
        with runner.isolated_filesystem():
            touch("x1", "x3")
            result = runner.invoke(cli, ["s/x/y/", "x1", "x2", "x3"])

            assert result.exit_code == 1
            assert Path("y1").exists()
            assert Path("y3").exists()
            assert "Source file not found: x2" in result.output

    def test_invalid_rule_touches_nothing(self, runner):
        with runner.isolated_filesystem():
            touch("a.txt")
            result = runner.invoke(cli, ["-e", "lowercase", "-e", "s/a/b", "a.txt"])

            assert result.exit_code == 2
            assert "Invalid rule" in result.output
            assert Path("a.txt").exists()

    def test_missing_rule(self, runner):
        result = runner.invoke(cli, [])

        assert result.exit_code == 2
        assert "No rule given" in result.output

    @pytest.mark.skipif(
        sys.platform == "darwin" or sys.getfilesystemencoding() != "utf-8",
        reason="needs a filesystem that accepts arbitrary bytes in names",
    )
    def test_non_utf8_name_from_stdin(self, runner):
        with runner.isolated_filesystem():
            Path(os.fsdecode(b"x\xff")).write_text("data")
            result = runner.invoke(cli, ["uppercase"], input=b"x\xff\n")

            assert result.exit_code == 0, result.output
            assert Path(os.fsdecode(b"X\xff")).read_text() == "data"
            assert "X\ufffd" in result.output

    def test_form_feed_in_name_from_stdin(self, runner):
        with runner.isolated_filesystem():
            touch("a\fb")
            result = runner.invoke(cli, ["uppercase"], input="a\fb\n")

            assert result.exit_code == 0, result.output
            assert Path("A\fB").exists()

    def test_paths_from_stdin(self, runner):
        with runner.isolated_filesystem():
            touch("one", "two")
            result = runner.invoke(cli, ["uppercase"], input="one\ntwo\n")

            assert result.exit_code == 0, result.output
            assert Path("ONE").exists()
            assert Path("TWO").exists()

    def test_nul_separated_stdin(self, runner):
        with runner.isolated_filesystem():
            touch("a b")
            result = runner.invoke(cli, ["-0", "tr/ /_/"], input="a b\0")

            assert result.exit_code == 0, result.output
            assert Path("a_b").exists()

    def test_dry_run(self, runner):
        with runner.isolated_filesystem():
            touch("a.txt")
            result = runner.invoke(cli, ["-n", "uppercase", "a.txt"])

            assert result.exit_code == 0, result.output
            assert "(dry run) a.txt -> A.TXT" in result.output
            assert Path("a.txt").exists()
            assert not Path("A.TXT").exists()

    def test_force_from_environment(self, runner):
        with runner.isolated_filesystem():
            touch("a.txt", "b.txt")
            result = runner.invoke(cli, ["s/b/a/", "b.txt"], env={"BRENAME_FORCE": "1"})

            assert result.exit_code == 0, result.output
            assert Path("a.txt").read_text() == "b.txt"

    def test_renumber_and_mkdir(self, runner):
        with runner.isolated_filesystem():
            touch("c.jpg", "a.jpg", "b.jpg")
            result = runner.invoke(
                cli,
                ["-e", "renumber(2)", "-e", "s|^|out/|", "-p", "c.jpg", "a.jpg", "b.jpg"],
            )

            assert result.exit_code == 0, result.output
            assert sorted(os.listdir("out")) == ["01", "02", "03"]
            assert Path("out/01").read_text() == "c.jpg"

    def test_by_date(self, runner):
        with runner.isolated_filesystem():
            touch("shot.png")
            stamp = time.mktime((2023, 3, 5, 12, 0, 0, 0, 0, -1))
            os.utime("shot.png", (stamp, stamp))
            result = runner.invoke(cli, ["--by-date", "--mkdir", "shot.png"])

            assert result.exit_code == 0, result.output
            assert Path("2023-03-05/shot.png").exists()

    def test_empty_command_is_a_usage_error(self, runner):
        with runner.isolated_filesystem():
            touch("a", "b")
            result = runner.invoke(cli, ["--command", "", "uppercase", "a", "b"])

            assert result.exit_code == 2
            assert Path("a").exists()

    def test_failing_command(self, runner):
        with runner.isolated_filesystem():
            touch("a")
            command = shlex.join([sys.executable, "-c", "raise SystemExit(4)"])
            result = runner.invoke(cli, ["--command", command, "uppercase", "a"])

            assert result.exit_code == 1
            assert "exited with status 4" in result.output
            assert Path("a").exists()

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "--expression" in result.output
        assert "--keep-going" in result.output
