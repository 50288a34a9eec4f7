import builtins
import getpass
import json

import pytest

from codeflow import config, main as cli

from conftest import PASSWORD

EMAIL = "alice@example.com"


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "store.json")


@pytest.fixture
def answers(monkeypatch):
    """Queue replies for getpass.getpass and input, in call order."""
    passwords = []
    lines = []
    monkeypatch.setattr(getpass, "getpass", lambda prompt="": passwords.pop(0))
    monkeypatch.setattr(builtins, "input", lambda prompt="": lines.pop(0))
    return passwords, lines


def run(store_path, *argv):
    return cli.main(["--store", store_path, *argv])


def test_register_import_and_show_codes(tmp_path, store_path, answers, capsys):
    passwords, _ = answers
    passwords += [PASSWORD, PASSWORD]
    assert run(store_path, "register", "--email", EMAIL) == 0

    accounts_file = tmp_path / "accounts.json"
    accounts_file.write_text(json.dumps([
        {"issuer": "GitHub", "name": "alice", "secret": "JBSWY3DPEHPK3PXP"},
        {"name": "bank", "secret": "GEZDGNBVGY3TQOJQ"},
    ]), encoding="utf-8")
    passwords.append(PASSWORD)
    assert run(store_path, "import-json", "--email", EMAIL, str(accounts_file)) == 0

    passwords.append(PASSWORD)
    assert run(store_path, "codes", "--email", EMAIL) == 0
    out = capsys.readouterr().out
    assert "GitHub (alice)" in out
    assert "bank (bank)" in out

    passwords.append(PASSWORD)
    assert run(store_path, "codes", "--email", EMAIL, "--search", "git") == 0
    out = capsys.readouterr().out
    assert "GitHub (alice)" in out
    assert "bank" not in out


def test_wrong_password_exits_with_error(store_path, answers, capsys):
    passwords, _ = answers
    passwords += [PASSWORD, PASSWORD, "wrong password"]
    run(store_path, "register", "--email", EMAIL)

    assert run(store_path, "codes", "--email", EMAIL) == 1
    assert "Incorrect password or corrupted data" in capsys.readouterr().err


def test_register_password_mismatch(store_path, answers):
    passwords, _ = answers
    passwords += [PASSWORD, "something else"]
    assert run(store_path, "register", "--email", EMAIL) == 1


def test_export_json(tmp_path, store_path, answers):
    passwords, lines = answers
    passwords += [PASSWORD, PASSWORD, PASSWORD]
    run(store_path, "register", "--email", EMAIL)
    run(store_path, "import-uri", "--email", EMAIL,
        "otpauth-migration://offline?data=CkQKEC03tXOBXp54TLSHLBeG4fUSCFMxNTIwOTU4GgthbmdlbG9u"
        "ZS5pbiABKAEwAkITYTYyMDRlMTc2NTEyNjkzMDIzNxACGAEgAA%3D%3D")

    output = tmp_path / "out" / "export.json"
    passwords.append(PASSWORD)
    assert run(store_path, "export-json", "--email", EMAIL, "--output", str(output)) == 0
    records = json.loads(output.read_text(encoding="utf-8"))
    assert [(r["issuer"], r["name"]) for r in records] == [("angelone.in", "S1520958")]


def test_reset_requires_confirmation(store_path, answers):
    passwords, lines = answers
    passwords += [PASSWORD, PASSWORD]
    run(store_path, "register", "--email", EMAIL)

    lines.append("someone@else.com")
    assert run(store_path, "reset", "--email", EMAIL) == 1

    lines.append(EMAIL)
    assert run(store_path, "reset", "--email", EMAIL) == 0

    passwords += [PASSWORD, PASSWORD]
    assert run(store_path, "register", "--email", EMAIL) == 0


def test_admin_lists_users(store_path, answers, capsys):
    passwords, _ = answers
    passwords += [PASSWORD, PASSWORD]
    run(store_path, "register", "--email", EMAIL)

    passwords += ["admin password", "admin password", "admin password"]
    assert run(store_path, "users") == 0
    listed = capsys.readouterr().out.splitlines()
    assert EMAIL in listed
    assert config.ADMIN_EMAIL not in listed
