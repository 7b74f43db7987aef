"""Tests for the fabric-live command line."""

import pytest
import yaml

from fabric_live.cli import build_parser, main
from tests.fixtures.fabric_fixtures import OBJECT_ID, STREAM


class TestParser:
    def test_insertion_arguments(self):
        args = build_parser().parse_args(
            ["-v", "insertion", STREAM, "120", "30.5", "hq__target", "--remove"]
        )

        assert args.verbose is True
        assert args.command == "insertion"
        assert (args.stream, args.time, args.duration) == (STREAM, 120.0, 30.5)
        assert args.target_hash == "hq__target"
        assert args.remove is True

    def test_create_flags(self):
        args = build_parser().parse_args(["create", STREAM, "--start", "--show_curl"])

        assert args.start is True
        assert args.show_curl is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Tests for cli.main against the mock fabric."""

    def test_status_prints_yaml(self, service, capsys):
        exit_code = main(["status", STREAM], service=service)

        out = yaml.safe_load(capsys.readouterr().out)
        assert exit_code == 0
        assert out["name"] == STREAM
        assert out["state"] == "inactive"
        assert out["object_id"] == OBJECT_ID
        assert "errcode" not in out

    def test_create_start_and_insertion(self, service, capsys):
        assert main(["create", STREAM, "--start"], service=service) == 0
        assert yaml.safe_load(capsys.readouterr().out)["state"] == "starting"

        assert main(["insertion", STREAM, "100", "5", "h1"], service=service) == 0
        out = yaml.safe_load(capsys.readouterr().out)
        assert out["insertions"][0]["playout"] == "/qfab/h1/rep/playout"

    def test_create_start_show_curl(self, service, capsys):
        """Test create --start --show_curl prints the curl commands with the started state."""
        assert main(["create", STREAM, "--start", "--show_curl"], service=service) == 0

        out = yaml.safe_load(capsys.readouterr().out)
        assert out["state"] == "starting"
        assert out["hash"].startswith("hq__")
        assert any(cmd.endswith("/call/live/start | jq") for cmd in out["curl_commands"])
        assert out["started"]["tlro"].startswith("tlro")

    def test_error_result_exits_1(self, service, capsys):
        """Test a refused operation prints its result and an ERROR line."""
        exit_code = main(["start", STREAM], service=service)

        captured = capsys.readouterr()
        assert exit_code == 1
        assert yaml.safe_load(captured.out)["errcode"] == "E_PRECONDITION"
        assert "ERROR: LRO start failed - must create a stream first" in captured.err

    def test_raised_error_exits_1(self, service, capsys):
        exit_code = main(["status", "no-such-stream"], service=service)

        captured = capsys.readouterr()
        assert exit_code == 1
        assert captured.out == ""
        assert "ERROR: Bad name: no-such-stream" in captured.err

    def test_summary(self, service, capsys):
        assert main(["summary"], service=service) == 0

        out = yaml.safe_load(capsys.readouterr().out)
        assert out["counts"] == {"inactive": 1, "error": 2}
        assert list(out["streams"]) == [STREAM, "studio-b", "broken"]
