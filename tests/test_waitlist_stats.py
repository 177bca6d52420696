"""CLI script: waitlist stats printed from a submission client."""

from models.forms import ClientResult
from scripts.waitlist_stats import main
from services.submission_service import StubClient
from tests.fakes import FakeSubmissionClient
from utils.errors import configuration_error


def test_prints_stub_stats(capsys):
    exit_code = main(["--recent", "1"], client=StubClient())

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Unconfigured mode" in out
    assert "Matching submissions: 42" in out
    assert "landing_page: 25" in out
    assert "John Doe <john@example.com>" in out
    assert "Jane Smith" not in out


def test_failed_count_sets_exit_code(capsys):
    class BrokenCount(FakeSubmissionClient):
        async def get_count(self, filters=None):
            return ClientResult.failed(configuration_error())

    exit_code = main([], client=BrokenCount())

    assert exit_code == 1
    assert "Count failed: Database connection not available" in capsys.readouterr().out


def test_bad_date_is_rejected(capsys):
    assert main(["--since", "soon"], client=StubClient()) == 2
    assert "Invalid date" in capsys.readouterr().out
