import pytest

from moviedb.cli import app
from moviedb.core.config import ClientConfig
from moviedb.core.errors import TransportFailure
from moviedb.core.models import HttpMethod, RequestOptions, Response


class StubClient:
    def __init__(self, response=None, error=None):
        self.config = ClientConfig(use_default_limits=True)
        self.submitted = []
        self._response = response or Response(status=200, data={"id": 550})
        self._error = error

    async def submit(self, method, endpoint, params=None, options=None):
        self.submitted.append((method, endpoint, params, options))
        if self._error is not None:
            raise self._error
        return self._response

    def quota(self):
        return {"rate_limited": True, "remaining": 3, "ceiling": 40, "reset_in": 1.5, "queued": 0, "in_flight": 0}


class StubSession:
    def __init__(self, client=None):
        self.client = client or StubClient()


def test_get_passes_scalar_value_and_options():
    session = StubSession()
    dispatcher = app.CommandDispatcher(session)

    dispatcher.execute(["get", "movie/:id", "550", "--append", "videos,images", "--timeout", "2000"])

    method, endpoint, params, options = session.client.submitted[0]
    assert method is HttpMethod.GET
    assert endpoint == "movie/:id"
    assert params == "550"
    assert options == RequestOptions(timeout=2000, append_to_response=("videos", "images"))


def test_post_collects_key_value_pairs():
    session = StubSession()
    dispatcher = app.CommandDispatcher(session)

    dispatcher.do_post(["movie/:id/rating", "id=550", "value=8.5"])

    method, _, params, _ = session.client.submitted[0]
    assert method is HttpMethod.POST
    assert params == {"id": "550", "value": "8.5"}


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["movie/:id", "550", "id=1"],
        ["movie/:id", "1", "2"],
        ["movie/:id", "--timeout", "soon"],
        ["movie/:id", "--append"],
    ],
)
def test_invalid_request_arguments(args):
    dispatcher = app.CommandDispatcher(StubSession())

    with pytest.raises(app.CommandError):
        dispatcher.do_get(args)


def test_unknown_command_is_rejected():
    dispatcher = app.CommandDispatcher(StubSession())

    with pytest.raises(app.CommandError):
        dispatcher.execute(["rate", "movie"])


def test_quota_command_prints_snapshot(capsys):
    dispatcher = app.CommandDispatcher(StubSession())

    assert dispatcher.execute(["quota"]) == 0
    assert "remaining=3/40" in capsys.readouterr().out


def test_transport_failures_propagate_to_caller():
    client = StubClient(error=TransportFailure("boom", status=500, data="oops"))
    dispatcher = app.CommandDispatcher(StubSession(client))

    with pytest.raises(TransportFailure):
        dispatcher.execute(["get", "configuration"])


@pytest.mark.parametrize(
    "argv,expected",
    [
        ([], (None, False, [])),
        (["--limits", "get", "movie/1"], (True, False, ["get", "movie/1"])),
        (["--no-limits", "-v", "quota"], (False, True, ["quota"])),
        (["--help", "get"], (None, False, ["help"])),
    ],
)
def test_extract_launch_flags(argv, expected):
    assert app._extract_launch_flags(argv) == expected


class StubCliSession(StubSession):
    closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


def test_repl_runs_commands_until_exit(monkeypatch, capsys):
    session = StubCliSession()
    lines = iter(["", "get configuration", 'get "unterminated', "bogus", "exit"])
    monkeypatch.setattr(app.CliSession, "create", lambda limits_override: session)
    monkeypatch.setattr("builtins.input", lambda prompt: next(lines))

    assert app.run_repl() == 0

    out = capsys.readouterr().out
    assert [submitted[1] for submitted in session.client.submitted] == ["configuration"]
    assert "Parse error" in out
    assert "Unknown command: bogus" in out
    assert "Bye." in out
    assert session.closed


def test_repl_exits_on_end_of_input(monkeypatch, capsys):
    session = StubCliSession()

    def _eof(prompt):
        raise EOFError

    monkeypatch.setattr(app.CliSession, "create", lambda limits_override: session)
    monkeypatch.setattr("builtins.input", _eof)

    assert app.run_repl() == 0
    assert "Exited." in capsys.readouterr().out
