"""Test the phiguard command line."""

import json

import pytest

from phiguard.cli.main import build_parser, main


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.fixture
def phi_file(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Contact insurance provider for patient id 123456789\n", encoding="utf-8")
    return path


@pytest.fixture
def clean_file(tmp_path):
    path = tmp_path / "clean.txt"
    path.write_text("Follow up in two weeks\n", encoding="utf-8")
    return path


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args(["note.txt"])
        assert args.actor == "cli"
        assert args.store is None
        assert not args.json

    def test_policy_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--policy", "shred", "note.txt"])

    def test_no_files_is_usage_error(self):
        assert run([]) == 2


class TestScreening:
    """Test screening files."""

    def test_prints_sanitized_text(self, phi_file, capsys):
        assert run([str(phi_file), "--store", "memory://"]) == 0

        out = capsys.readouterr().out
        assert "[REDACTED_INSURANCE]" in out
        assert "123456789" not in out

    def test_json_output(self, phi_file, capsys):
        assert run([str(phi_file), "--json"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["allowed"] is True
        assert payload["sanitized"] is True
        assert payload["categories"] == [
            "generic-identifier-phrase",
            "identifier-numeric",
            "insurance",
        ]
        assert payload["audit_event_id"] == 1

    def test_block_policy_exits_nonzero(self, phi_file, clean_file, capsys):
        assert run([str(clean_file), str(phi_file), "--policy", "block"]) == 1
        captured = capsys.readouterr()
        assert "blocked-by-policy" in captured.err
        assert "Follow up in two weeks" in captured.out

    def test_binary_file_denied(self, tmp_path, capsys):
        path = tmp_path / "scan.bin"
        path.write_bytes(b"\xff\xd8\xff\xe0 not text")

        assert run([str(path)]) == 1
        assert "undecodable-input" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert run([str(tmp_path / "nope.txt")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_bad_store_url(self, clean_file, capsys):
        assert run([str(clean_file), "--store", "nosuchdb://x"]) == 2
        assert "Error" in capsys.readouterr().err


class TestAuditCommands:
    """Test --query-audit and --verify against a SQLite store."""

    def test_query_and_verify(self, phi_file, clean_file, tmp_path, capsys):
        store = f"sqlite:///{tmp_path / 'audit.db'}"
        assert run([str(phi_file), "--store", store, "--actor", "dr-house"]) == 0
        assert run([str(clean_file), "--store", store, "--actor", "dr-wilson"]) == 0
        capsys.readouterr()

        code = run(["--query-audit", "--verify", "--store", store, "--filter-actor", "dr-house"])
        output = json.loads(capsys.readouterr().out)

        assert code == 0
        assert [e["actor_id"] for e in output["events"]] == ["dr-house"]
        assert output["events"][0]["action"] == "phi-detection"
        assert output["events"][0]["resource_id"] == "note.txt"
        assert output["verification"]["valid"] is True

    def test_list_categories(self, capsys):
        assert run(["--list-categories"]) == 0
        out = capsys.readouterr().out
        assert "insurance" in out
        assert "[REDACTED_UNKNOWN_BINARY]" in out
