"""
Tests for the command-line interface.
"""

import pytest

from fidematch import __version__
from fidematch.app import describe_candidate, describe_resolution, main
from fidematch.schema import Candidate, Provenance, Resolution

from conftest import player

SETTINGS_VARS = (
    "FIDEMATCH_HOME_FEDERATION",
    "FIDEMATCH_CONCURRENCY",
    "FIDEMATCH_DB",
    "FIDEMATCH_SEARCH_URL",
    "FIDEMATCH_TIMEOUT",
    "FIDEMATCH_LOG_LEVEL",
    "FIDEMATCH_LOG_DIR",
)


@pytest.fixture
def cli_env(tmp_path, monkeypatch, sample_fide_html):
    """Run the CLI in tmp_path against a canned registry page."""
    monkeypatch.chdir(tmp_path)
    for name in SETTINGS_VARS:
        monkeypatch.setenv(name, "")
    db_path = tmp_path / "data" / "store.db"
    monkeypatch.setenv("FIDEMATCH_DB", str(db_path))

    terms = []

    def fake_make_fetcher(settings):
        def fetch(term):
            terms.append(term)
            return sample_fide_html
        return fetch

    monkeypatch.setattr("fidematch.app.make_fetcher", fake_make_fetcher)
    return {"db": db_path, "terms": terms, "dir": tmp_path}


class TestDescribe:
    def test_candidate_summary(self):
        c = Candidate(fide_id="3256789", name="Zhang, Kaylin", federation="AUS",
                      standard="1450", blitz="1388", birth_year="2015")
        text = describe_candidate(c)
        assert "Zhang, Kaylin (AUS) [3256789]" in text
        assert "Born: 2015, Title: None" in text
        assert "Std: 1450, Rpd: Unrated, Blz: 1388" in text

    def test_multiple_results_flagged(self):
        r = Resolution(
            candidates=(player("1", "A", "CHN"), player("2", "B", "ENG")),
            accurate=False,
            provenance=Provenance.PRIMARY,
        )
        assert describe_resolution(r).startswith("Multiple Results (lastName, firstName)")

    def test_match_and_no_match(self):
        r = Resolution(candidates=(player("1", "A", "AUS"),), accurate=True, provenance=Provenance.REVERSED)
        assert describe_resolution(r).startswith("Match (firstName lastName (reversed))")
        assert describe_resolution(Resolution.empty(Provenance.ERROR)) == "No match (error)"


class TestCli:
    def test_version(self, cli_env, capsys):
        main(["--version"])
        assert capsys.readouterr().out.strip() == __version__

    def test_no_command_prints_help(self, cli_env, capsys):
        main([])
        assert "usage: fidematch" in capsys.readouterr().out

    def test_run_writes_rating_column(self, cli_env, capsys):
        roster = cli_env["dir"] / "roster.tsv"
        roster.write_text("#\tFirst Name\tLast Name\n1\tKaylin\tZhang\n2\t\tNobody\n", encoding="utf-8")

        main(["run", "--input", str(roster)])

        captured = capsys.readouterr()
        lines = captured.out.rstrip("\n").split("\n")
        assert lines[0] == "#\tFirst Name\tLast Name\tFRtg"
        assert lines[1] == "1\tKaylin\tZhang\t1450"
        assert lines[2] == "2\t\tNobody\t"
        assert "1: Zhang, Kaylin -> Zhang, Kaylin (AUS)" in captured.err
        assert cli_env["terms"] == ["Zhang, Kaylin"]

    def test_run_to_output_file_with_rating_kind(self, cli_env, capsys):
        roster = cli_env["dir"] / "roster.tsv"
        roster.write_text("First\tLast\nKaylin\tZhang\n", encoding="utf-8")
        out = cli_env["dir"] / "out" / "rated.tsv"

        main(["run", "--input", str(roster), "--output", str(out), "--rating", "blitz"])

        assert out.read_text(encoding="utf-8") == "First\tLast\tFRtg\nKaylin\tZhang\t1388\n"
        assert "Wrote 1 rows" in capsys.readouterr().err

    def test_run_uses_cache_on_second_pass(self, cli_env, capsys):
        roster = cli_env["dir"] / "roster.tsv"
        roster.write_text("First\tLast\nKaylin\tZhang\n", encoding="utf-8")

        main(["run", "--input", str(roster)])
        main(["run", "--input", str(roster)])

        assert cli_env["terms"] == ["Zhang, Kaylin"]
        assert "(cached)" in capsys.readouterr().err

    def test_run_missing_input(self, cli_env):
        with pytest.raises(SystemExit, match="Input file not found"):
            main(["run", "--input", "nope.tsv"])

    def test_run_rejects_bad_concurrency(self, cli_env):
        roster = cli_env["dir"] / "roster.tsv"
        roster.write_text("First\tLast\nKaylin\tZhang\n", encoding="utf-8")
        with pytest.raises(SystemExit, match="--concurrency"):
            main(["run", "--input", str(roster), "--concurrency", "0"])

    def test_resolve(self, cli_env, capsys):
        main(["resolve", "--first", "Kaylin", "--last", "Zhang", "--no-cache"])
        out = capsys.readouterr().out
        assert out.startswith("Search: Zhang, Kaylin\nMatch (lastName, firstName)")
        assert "Zhang, Kaylin (AUS) [3256789]" in out
        assert not cli_env["db"].exists()

    def test_deny_list_allow(self, cli_env, capsys):
        main(["deny", "--first", "Kaylin", "--last", "Zhang", "--id", "3256789"])
        main(["denied", "--term", "zhang, kaylin"])
        out = capsys.readouterr().out
        assert "Denylisted 3256789 for 'Zhang, Kaylin'" in out
        assert " - 3256789" in out

        main(["resolve", "--first", "Kaylin", "--last", "Zhang"])
        assert "[3256789]" not in capsys.readouterr().out

        main(["allow", "--term", "Zhang, Kaylin", "--id", "3256789"])
        main(["denied", "--term", "Zhang, Kaylin"])
        assert "No denylisted candidates for 'Zhang, Kaylin'." in capsys.readouterr().out

    def test_deny_requires_term(self, cli_env):
        with pytest.raises(SystemExit, match="--term"):
            main(["deny", "--first", "Kaylin", "--id", "1"])

    def test_purge_without_store(self, cli_env, capsys):
        main(["purge"])
        assert "cached-before=0 removed=0 remaining=0" in capsys.readouterr().out

    def test_unknown_log_level_exits(self, cli_env, monkeypatch):
        monkeypatch.setenv("FIDEMATCH_LOG_LEVEL", "verbose")
        with pytest.raises(SystemExit, match="FIDEMATCH_LOG_LEVEL"):
            main(["--version"])

    def test_run_ignores_whitespace_only_lines(self, cli_env, capsys):
        roster = cli_env["dir"] / "roster.tsv"
        roster.write_text("   \nFirst\tLast\nKaylin\tZhang\n  \n", encoding="utf-8")

        main(["run", "--input", str(roster)])

        assert capsys.readouterr().out == "First\tLast\tFRtg\nKaylin\tZhang\t1450\n"

    def test_bad_environment_exits(self, cli_env, monkeypatch):
        monkeypatch.setenv("FIDEMATCH_CONCURRENCY", "zero")
        with pytest.raises(SystemExit, match="FIDEMATCH_CONCURRENCY"):
            main(["--version"])
