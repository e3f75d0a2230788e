import pytest
from typer.testing import CliRunner

from myrsspress import cli, feed_usage, reliable_feeds
from myrsspress.reliable_feeds import SEED_CATEGORIES, seed_feeds, seed_taxonomy

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **_kwargs: None)


def test_seed_taxonomy_creates_then_skips(table):
    first = seed_taxonomy(table)
    second = seed_taxonomy(table)

    assert len(first.created_categories) == len(SEED_CATEGORIES)
    assert first.created_feeds == len(seed_feeds())
    assert second.created_categories == []
    assert second.created_feeds == 0
    assert second.skipped_feeds == len(seed_feeds())


def test_seed_dry_run_writes_nothing(table):
    report = seed_taxonomy(table, dry_run=True)

    assert report.created_categories
    assert table.items == {}


def test_seed_feeds_have_increasing_priority_per_category():
    feeds = [f for f in seed_feeds() if f.category_id == "technology"]

    assert [f.priority for f in feeds] == list(range(1, len(feeds) + 1))


def test_entertainment_is_matched_before_technology():
    ids = [c.category_id for c in SEED_CATEGORIES if c.locale == "en"]

    assert ids.index("entertainment") < ids.index("technology")


def test_seed_categories_dry_run_command(table):
    result = runner.invoke(cli.app, ["seed-categories", "--dry-run"])

    assert result.exit_code == 0
    assert "Would create" in result.output
    assert table.items == {}


def test_seed_categories_reports_failures(monkeypatch):
    def broken(*_args, **_kwargs):
        return reliable_feeds.SeedReport(failures=["technology: boom"])

    monkeypatch.setattr(cli, "seed_taxonomy", broken)

    result = runner.invoke(cli.app, ["seed-categories"])

    assert result.exit_code == 1
    assert "technology: boom" in result.output


def test_cleanup_command(monkeypatch):
    monkeypatch.setattr(cli, "cleanup_old_newspapers", lambda: 3)

    result = runner.invoke(cli.app, ["cleanup"])

    assert result.exit_code == 0
    assert "Deleted 3 old newspapers" in result.output


def test_cleanup_command_failure(monkeypatch):
    def boom():
        raise RuntimeError("no table")

    monkeypatch.setattr(cli, "cleanup_old_newspapers", boom)

    result = runner.invoke(cli.app, ["cleanup"])

    assert result.exit_code == 1
    assert "Cleanup failed: no table" in result.output


def test_promote_feeds_command(monkeypatch):
    calls = []

    def promote(urls, category_id):
        calls.append((urls, category_id))
        return 1

    monkeypatch.setattr(feed_usage, "promote_feeds_if_qualified", promote)

    result = runner.invoke(
        cli.app, ["promote-feeds", "technology", "https://a.example.com", "https://b.example.com"]
    )

    assert result.exit_code == 0
    assert calls == [(["https://a.example.com", "https://b.example.com"], "technology")]
    assert "Promoted 1/2 feeds into technology" in result.output
