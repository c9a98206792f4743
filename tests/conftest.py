"""Shared fakes: a PyGithub stand-in, an httpx mock transport and a brew runner."""

import hashlib
import subprocess
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

from brewver.core.github import RepositoryClient
from brewver.core.http import HttpSession
from brewver.core.installer import BrewInstaller
from brewver.core.resilience import CircuitBreaker, ExponentialBackoff

BOTTLE_BYTES = b"\x1f\x8bpretend-this-is-a-bottle" * 64
BOTTLE_SHA = hashlib.sha256(BOTTLE_BYTES).hexdigest()
LINUX_SHA = "b" * 64
OLD_SHA = "c" * 64

BOTTLE_REF = "a1b2c3d4e5f60718293a4b5c6d7e8f9012345678"
BUMP_REF = "f" * 40

WGET_FORMULA = f'''class Wget < Formula
  desc "Internet file retriever"
  homepage "https://www.gnu.org/software/wget/"
  url "https://ftp.gnu.org/gnu/wget/wget-1.21.4.tar.gz"
  sha256 "81542f5cefb8faacc39bbbc6c82ded80e3e4a88505ae72ea51df27525bcde04c"
  license "GPL-3.0-or-later"

  bottle do
    sha256 arm64_sonoma:  "{BOTTLE_SHA}"
    sha256 cellar: :any_skip_relocation, x86_64_linux: "{LINUX_SHA}"
  end

  depends_on "pkg-config" => :build
  depends_on "openssl@3"

  def install
    system "./configure", "--prefix=#{{prefix}}"
    system "make", "install"
  end
end
'''

WGET_HISTORY = {
    "Formula/w/wget.rb": [
        ("1" * 40, "wget: update 1.24.5 bottle."),
        ("2" * 40, "wget 1.24.5"),
        (BOTTLE_REF, "wget: update 1.21.4 bottle.\n\nSigned-off-by: BrewTestBot"),
        (BUMP_REF, "wget 1.21.4"),
    ],
    "Formula/wget.rb": [
        ("3" * 40, "wget: update 1.20.3_2 bottle."),
        ("4" * 40, "wget: use openssl@3"),
    ],
}


class FakeRepo:
    """Answers get_commits(path=...) from a dict of path -> [(sha, message)]."""

    def __init__(self, history: dict, error: Exception | None = None):
        self.history = history
        self.error = error
        self.paths_requested: list[str] = []

    def get_commits(self, path):
        self.paths_requested.append(path)
        if self.error:
            raise self.error
        return [
            SimpleNamespace(sha=sha, commit=SimpleNamespace(message=message))
            for sha, message in self.history.get(path, [])
        ]


class FakeGithub:
    rate_limiting_resettime = 1700000000

    def __init__(self, repo: FakeRepo):
        self.repo = repo

    def get_repo(self, full_name, lazy=False):
        return self.repo


class FakeBrew:
    """Records brew commands instead of running them."""

    def __init__(self, installed: str = "", fail_on: str | None = None):
        self.installed = installed
        self.fail_on = fail_on
        self.commands: list[list[str]] = []
        self.installed_files: dict[str, bytes] = {}

    def __call__(self, command, capture_output=True, text=True):
        self.commands.append(command)
        if self.fail_on and self.fail_on in command:
            return subprocess.CompletedProcess(command, 1, stdout="", stderr="Error: it broke\n")
        if command[1] == "list":
            if self.installed:
                return subprocess.CompletedProcess(command, 0, stdout=self.installed, stderr="")
            return subprocess.CompletedProcess(command, 1, stdout="", stderr="")
        if command[1] == "install":
            path = Path(command[-1])
            self.installed_files[path.name] = path.read_bytes()
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")


def homebrew_handler(formula: str = WGET_FORMULA, bottle: bytes = BOTTLE_BYTES):
    """MockTransport handler serving raw formula files and ghcr blobs."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "raw.githubusercontent.com":
            return httpx.Response(200, text=formula)
        if request.url.host == "ghcr.io":
            if request.headers.get("Authorization") != "Bearer QQ==":
                return httpx.Response(401)
            return httpx.Response(200, content=bottle)
        return httpx.Response(404)

    handler.requests = requests
    return handler


def make_session(handler, max_retries: int = 2) -> HttpSession:
    return HttpSession(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        backoff=ExponentialBackoff(base_delay=0.0, max_delay=0.0, max_retries=max_retries),
        circuit_breaker=CircuitBreaker(failure_threshold=3, timeout=60.0),
    )


@pytest.fixture
def fake_repo():
    return FakeRepo(WGET_HISTORY)


@pytest.fixture
def handler():
    return homebrew_handler()


@pytest.fixture
def repository(fake_repo, handler):
    return RepositoryClient(
        token=None,
        session=make_session(handler),
        gh=FakeGithub(fake_repo),
    )


@pytest.fixture
def fake_brew():
    return FakeBrew(installed="wget 1.24.5\n")


@pytest.fixture
def brew(fake_brew):
    return BrewInstaller(runner=fake_brew)
