"""Tests for the oversight CLI."""

import json

import pytest

from oversight.cli.main import build_parser, main


@pytest.fixture
def run(temp_root, clean_env, capsys):
    """Run the CLI against a temporary root and return (exit code, stdout)."""

    def _run(*argv, as_json=True):
        args = ["--root", str(temp_root)]
        if as_json:
            args.append("--json")
        code = main(args + list(argv))
        return code, capsys.readouterr().out

    return _run


def submit_args(agent="extractor", kind="prompt_update"):
    return [
        "submit",
        agent,
        kind,
        "--title",
        "Tighten prompt",
        "--change",
        '{"prompt": "v2"}',
        "--rationale",
        "Fewer false positives",
    ]


class TestParser:
    def test_global_options(self):
        args = build_parser().parse_args(["--json", "--db", "x.db", "summary"])
        assert args.json is True
        assert args.db == "x.db"
        assert args.command == "summary"

    def test_policy_review_flags(self):
        parser = build_parser()
        assert parser.parse_args(["policy", "c1", "--allow-auto"]).requires_review is False
        assert parser.parse_args(["policy", "c1", "--require-review"]).requires_review is True
        assert parser.parse_args(["policy", "c1", "--threshold", "0.5"]).requires_review is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["submit", "a", "everything", "--title", "t",
                                       "--change", "x", "--rationale", "r"])


class TestCommands:
    def test_init_creates_database(self, run, temp_root):
        code, out = run("init")
        assert code == 0
        assert json.loads(out)["db_path"] == str(temp_root / ".oversight" / "governance.db")
        assert (temp_root / ".oversight" / "governance.db").exists()

    def test_full_lifecycle(self, run):
        code, out = run(*submit_args())
        assert code == 0
        submitted = json.loads(out)
        proposal_id = submitted["proposal"]["id"]
        capability_id = submitted["capability"]["id"]
        assert submitted["proposal"]["status"] == "pending"
        assert submitted["proposal"]["proposed_change"] == {"prompt": "v2"}

        code, out = run("decide", proposal_id, "approve", "--reviewer", "alice")
        assert code == 0
        assert json.loads(out)["history_entry"]["change_reason"] == "approved"

        code, _ = run("implement", proposal_id, "--details", '{"commit": "abc"}')
        assert code == 0

        code, out = run("impact", proposal_id, "0.9", "--actual-impact", "Precision +4%")
        assert code == 0
        assert json.loads(out)["proposal"]["success_measured"] is True

        code, out = run("revert", proposal_id, "--reason", "Regressed dates")
        assert code == 0
        assert json.loads(out)["proposal"]["status"] == "reverted"

        code, out = run("history", capability_id)
        assert [e["change_reason"] for e in json.loads(out)] == [
            "approved",
            "impact_measured",
            "reverted",
        ]

        code, out = run("verify")
        assert code == 0
        assert all(r["ok"] for r in json.loads(out))

    def test_invalid_transition_exits_1(self, run):
        _, out = run(*submit_args())
        proposal_id = json.loads(out)["proposal"]["id"]
        run("decide", proposal_id, "reject", "--reviewer", "alice")

        code, out = run("decide", proposal_id, "approve", "--reviewer", "bob")
        assert code == 1
        assert "Cannot approve" in out

    def test_unknown_proposal_exits_1(self, run):
        code, out = run("implement", "missing")
        assert code == 1
        assert "not found" in out

    def test_invalid_json_payload(self, run):
        code, out = run("submit", "a", "prompt_update", "--title", "t",
                        "--change", "{broken", "--rationale", "r")
        assert code == 1
        assert "not valid JSON" in out

    def test_policy_and_listing(self, run):
        _, out = run(*submit_args())
        capability_id = json.loads(out)["capability"]["id"]

        code, out = run("policy", capability_id, "--threshold", "0.0", "--allow-auto", "--by", "admin")
        assert code == 0
        assert json.loads(out)["requires_review"] is False

        _, out = run(*submit_args())
        assert json.loads(out)["proposal"]["status"] == "auto_approved"

        code, out = run("proposals", "--status", "auto_approved")
        assert code == 0
        assert len(json.loads(out)) == 1

        code, out = run("capabilities", "--by-agent")
        assert list(json.loads(out)) == ["extractor"]

        code, out = run("summary")
        summary = json.loads(out)
        assert summary["pending"] == 1
        assert summary["auto_approved"] == 1

    def test_policy_out_of_range(self, run):
        _, out = run(*submit_args())
        capability_id = json.loads(out)["capability"]["id"]
        code, out = run("policy", capability_id, "--threshold", "1.5")
        assert code == 1

    def test_table_output(self, run):
        run(*submit_args())
        code, out = run("capabilities", as_json=False)
        assert code == 0
        assert "Capabilities" in out
        with pytest.raises(json.JSONDecodeError):
            json.loads(out)

    def test_no_command_prints_help(self, run):
        code, out = run(as_json=False)
        assert code == 0
        assert "usage" in out.lower()
