from __future__ import annotations

import base64
import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repodocs import cloner
from repodocs.cancellation import CancellationToken
from repodocs.cloner import CloneWorkspace, GitCloner, classify_git_failure, git_environment, read_token
from repodocs.config import CloneConfig
from repodocs.exceptions import CloneError, CloneFailure, OperationCancelledError
from repodocs.url_validator import validate_repository_url

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

SOURCE = validate_repository_url("https://github.com/owner/repo")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("stderr", "expected"),
    [
        (
            "remote: Repository not found.\nfatal: repository 'https://github.com/o/r.git/' not found",
            CloneFailure.NOT_FOUND,
        ),
        ("fatal: Remote branch nope not found in upstream origin", CloneFailure.NOT_FOUND),
        (
            "fatal: could not read Username for 'https://github.com': terminal prompts disabled",
            CloneFailure.AUTH_REQUIRED,
        ),
        ("git@github.com: Permission denied (publickey).", CloneFailure.AUTH_REQUIRED),
        (
            "fatal: unable to access 'https://github.com/o/r.git/': Could not resolve host: github.com",
            CloneFailure.NETWORK_ERROR,
        ),
        ("fatal: early EOF", CloneFailure.NETWORK_ERROR),
        ("fatal: something unexpected", CloneFailure.GIT_ERROR),
    ],
)
def test_classify_git_failure(stderr: str, expected: CloneFailure) -> None:
    assert classify_git_failure(stderr) == expected


@pytest.mark.unit
def test_clone_error_exit_codes_follow_failure() -> None:
    assert CloneError(url="u", failure=CloneFailure.NOT_FOUND).exit_code == 3
    assert CloneError(url="u", failure=CloneFailure.AUTH_REQUIRED).exit_code == 4
    assert CloneError(url="u", failure=CloneFailure.NETWORK_ERROR).exit_code == 5
    assert CloneError(url="u", failure=CloneFailure.TIMEOUT).exit_code == 9
    assert CloneError(url="u", failure=CloneFailure.GIT_ERROR).exit_code == 1
    assert CloneError(url="u", failure=CloneFailure.AUTH_REQUIRED).suggestion


@pytest.mark.unit
def test_command_passes_depth_branch_and_validated_url(tmp_path: Path) -> None:
    git = GitCloner(CloneConfig(depth=1, branch="dev"))

    cmd = git.command(SOURCE, tmp_path / "repo")

    assert cmd[:2] == ["git", "clone"]
    assert cmd[cmd.index("--depth") + 1] == "1"
    assert cmd[cmd.index("--branch") + 1] == "dev"
    assert cmd[-3:] == ["--", "https://github.com/owner/repo.git", str(tmp_path / "repo")]


@pytest.mark.unit
def test_command_uses_branch_from_url_when_not_configured(tmp_path: Path) -> None:
    source = validate_repository_url("https://github.com/owner/repo/tree/release")

    cmd = GitCloner(CloneConfig()).command(source, tmp_path / "repo")

    assert cmd[cmd.index("--branch") + 1] == "release"
    assert "--depth" not in cmd


@pytest.mark.unit
def test_git_environment_passes_token_as_header_only() -> None:
    env = git_environment(SOURCE, "ghp_secret")

    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["GIT_CONFIG_COUNT"] == "1"
    assert env["GIT_CONFIG_KEY_0"] == "http.https://github.com/.extraheader"
    encoded = base64.b64encode(b"x-access-token:ghp_secret").decode("ascii")
    assert env["GIT_CONFIG_VALUE_0"] == f"AUTHORIZATION: basic {encoded}"
    assert "GITHUB_TOKEN" not in env


@pytest.mark.unit
def test_git_environment_without_token_or_for_ssh() -> None:
    ssh = validate_repository_url("ssh://git@github.com/owner/repo")

    assert "GIT_CONFIG_COUNT" not in git_environment(SOURCE, None)
    assert "GIT_CONFIG_COUNT" not in git_environment(ssh, "ghp_secret")


@pytest.mark.unit
def test_read_token_prefers_environment_then_env_file(tmp_path: Path, mocker: MockerFixture) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("GITHUB_TOKEN=from_file\n", encoding="utf-8")
    mocker.patch.object(cloner, "ENV_FILE", str(env_file))

    assert read_token({"GITHUB_TOKEN": "from_env"}) == "from_env"
    assert read_token({}) == "from_file"

    mocker.patch.object(cloner, "ENV_FILE", "")
    assert read_token({}) is None


def fake_process(mocker: MockerFixture, *, returncode: int = 0, stderr: str = "", hang: bool = False) -> object:
    proc = mocker.MagicMock()
    proc.returncode = returncode

    def communicate(timeout: float | None = None) -> tuple[str, str]:
        if hang and timeout is not None:
            raise subprocess.TimeoutExpired(cmd="git", timeout=timeout)
        return "", stderr

    proc.communicate.side_effect = communicate
    mocker.patch.object(cloner.subprocess, "Popen", return_value=proc)
    mocker.patch.object(cloner, "read_token", return_value=None)
    return proc


@pytest.mark.unit
def test_clone_returns_destination_on_success(tmp_path: Path, mocker: MockerFixture) -> None:
    fake_process(mocker)

    assert GitCloner(CloneConfig()).clone(SOURCE, tmp_path / "repo") == tmp_path / "repo"


@pytest.mark.unit
def test_clone_maps_stderr_to_typed_failure(tmp_path: Path, mocker: MockerFixture) -> None:
    fake_process(mocker, returncode=128, stderr="remote: Repository not found.\n")

    with pytest.raises(CloneError) as exc_info:
        GitCloner(CloneConfig()).clone(SOURCE, tmp_path / "repo")

    assert exc_info.value.failure == CloneFailure.NOT_FOUND
    assert exc_info.value.detail == "remote: Repository not found."


@pytest.mark.unit
def test_clone_times_out_and_kills_git(tmp_path: Path, mocker: MockerFixture) -> None:
    proc = fake_process(mocker, hang=True)

    with pytest.raises(CloneError) as exc_info:
        GitCloner(CloneConfig(timeout=0.05), poll_interval=0.01).clone(SOURCE, tmp_path / "repo")

    assert exc_info.value.failure == CloneFailure.TIMEOUT
    proc.kill.assert_called_once()  # type: ignore[attr-defined]


@pytest.mark.unit
def test_clone_observes_cancellation(tmp_path: Path, mocker: MockerFixture) -> None:
    proc = fake_process(mocker, hang=True)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        GitCloner(CloneConfig(), poll_interval=0.01).clone(SOURCE, tmp_path / "repo", cancel_token=token)

    proc.kill.assert_called_once()  # type: ignore[attr-defined]


@pytest.mark.unit
def test_clone_reports_missing_git_binary(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cloner, "read_token", return_value=None)
    git = GitCloner(CloneConfig(), git_binary=str(tmp_path / "no-such-git"))

    with pytest.raises(CloneError) as exc_info:
        git.clone(SOURCE, tmp_path / "repo")

    assert exc_info.value.failure == CloneFailure.GIT_ERROR


@pytest.mark.unit
def test_clone_workspace_is_removed_on_error() -> None:
    workspace = CloneWorkspace()
    created: Path | None = None

    with pytest.raises(RuntimeError), workspace as path:
        created = path
        (path / "repo").mkdir()
        (path / "repo" / "file.md").write_text("x", encoding="utf-8")
        raise RuntimeError("boom")  # noqa: EM101

    assert created is not None
    assert not created.exists()
    assert workspace.path is None
