"""Pushing the generated stub code to a remote git repository."""

from __future__ import annotations

import logging
import os
import re
import shlex
import shutil
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from .descriptor import FileDescriptor
from .plugin import Option, Plugin, PluginError

log = logging.getLogger(__name__)

SSH_GIT_URL_PREFIX = "git@"
SSH_GIT_DOMAIN_SEP = ":"
GIT_URL_SUFFIX = ".git"
GENERATED_STUB_NAME = "stub"
GIT_URL_PATH_SEP = "/"
DEFAULT_GIT_TAG = "v1.1.1"
GIT_TAG_NAME_SEP = "."
DEFAULT_GIT_TAG_LEN = 3
PUSH_REFSPECS = ("refs/heads/*:refs/heads/*", "refs/tags/*:refs/tags/*")
COMMIT_MESSAGE = "the generated stub pb is pushed to git repository"

_INTEGER = re.compile(r"[+-]?[0-9]+")


class GitSyncError(PluginError):
    """Synchronising the stub code with the git repository failed."""


class EmptyRemoteRepository(GitSyncError):
    """The remote repository exists but holds no commits."""

    def __init__(self, message: str = "remote repository is empty") -> None:
        super().__init__(message)


class FileManager(ABC):
    """Operations on the local file system used by the sync plugin."""

    @abstractmethod
    def remove_all(self, path: str) -> None:
        """Remove ``path`` and everything below it; a missing path is not an error."""

    @abstractmethod
    def walk(self, root: str) -> Iterator[tuple[str, bool]]:
        """Yield ``(path, is_dir)`` for ``root`` and everything below it."""

    @abstractmethod
    def mkdir_all(self, path: str) -> None:
        """Create ``path`` with any missing parents."""

    @abstractmethod
    def user_home_dir(self) -> str:
        """Return the current user's home directory."""

    @abstractmethod
    def copy_file(self, src: str, dst: str) -> None:
        """Copy the contents of ``src`` into a new file ``dst``."""


class LocalFileManager(FileManager):
    """File operations on the real file system."""

    def remove_all(self, path: str) -> None:
        if os.path.islink(path) or os.path.isfile(path):
            os.remove(path)
        elif os.path.isdir(path):
            shutil.rmtree(path)

    def walk(self, root: str) -> Iterator[tuple[str, bool]]:
        for dirpath, _dirnames, filenames in os.walk(root):
            yield dirpath, True
            for name in filenames:
                yield os.path.join(dirpath, name), False

    def mkdir_all(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def user_home_dir(self) -> str:
        home = os.path.expanduser("~")
        if home == "~":
            raise OSError("home directory is not known")
        return home

    def copy_file(self, src: str, dst: str) -> None:
        shutil.copyfile(src, dst)


@dataclass(frozen=True)
class SshKeyAuth:
    """SSH authentication with a private key file."""

    user: str
    pem_file: str
    password: str = ""

    def environment(self) -> dict[str, str]:
        """Return the environment that makes git use this key."""
        command = f"ssh -i {shlex.quote(self.pem_file)} -o IdentitiesOnly=yes"
        return {**os.environ, "GIT_SSH_COMMAND": command}


class GitManager(ABC):
    """Git operations used by the sync plugin; a repository is named by its directory."""

    @abstractmethod
    def plain_init(self, path: str) -> str:
        """Create an empty repository at ``path`` and return it."""

    @abstractmethod
    def plain_clone(self, path: str, url: str, auth: Any) -> str:
        """Clone ``url`` into ``path``; raise EmptyRemoteRepository if it has no commits."""

    @abstractmethod
    def create_remote(self, repo: str, name: str, url: str) -> None:
        """Add a remote."""

    @abstractmethod
    def remote_urls(self, repo: str, name: str) -> list[str]:
        """Return the URLs of a remote."""

    @abstractmethod
    def add_all(self, repo: str) -> None:
        """Stage every change in the work tree."""

    @abstractmethod
    def commit(self, repo: str, message: str) -> str:
        """Commit the staged changes and return the new commit."""

    @abstractmethod
    def push(self, repo: str, refspecs: list[str], auth: Any) -> None:
        """Push the given refspecs to origin."""

    @abstractmethod
    def tags(self, repo: str) -> list[str]:
        """Return the names of all tags."""

    @abstractmethod
    def head(self, repo: str) -> str:
        """Return the commit HEAD points to."""

    @abstractmethod
    def create_tag(self, repo: str, name: str, commit: str, message: str) -> str:
        """Create an annotated tag on ``commit``."""

    @abstractmethod
    def new_public_keys_from_file(self, user: str, pem_file: str, password: str) -> Any:
        """Return an authentication method from a PEM encoded private key file."""


class CommandGitManager(GitManager):
    """Git operations carried out with the git command."""

    def __init__(self, git: str = "git") -> None:
        self._git_cmd = git

    def _git(
        self, *args: str, repo: str | None = None, auth: Any = None
    ) -> str:
        cmd = [self._git_cmd]
        if repo is not None:
            cmd += ["-C", repo]
        cmd += list(args)
        env = auth.environment() if isinstance(auth, SshKeyAuth) else None
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=env,
                check=False,
            )
        except OSError as exc:
            raise GitSyncError(f"run {' '.join(cmd)} err: {exc}") from exc
        if result.returncode != 0:
            raise GitSyncError(
                f"run {' '.join(cmd)} exited with {result.returncode}: {result.stdout}"
            )
        return result.stdout or ""

    def plain_init(self, path: str) -> str:
        os.makedirs(path, exist_ok=True)
        self._git("init", path)
        return path

    def plain_clone(self, path: str, url: str, auth: Any) -> str:
        self._git("clone", "--recurse-submodules", url, path, auth=auth)
        try:
            self._git("rev-parse", "--verify", "HEAD", repo=path)
        except GitSyncError:
            shutil.rmtree(path, ignore_errors=True)
            raise EmptyRemoteRepository() from None
        return path

    def create_remote(self, repo: str, name: str, url: str) -> None:
        self._git("remote", "add", name, url, repo=repo)

    def remote_urls(self, repo: str, name: str) -> list[str]:
        out = self._git("remote", "get-url", "--all", name, repo=repo)
        return [line.strip() for line in out.splitlines() if line.strip()]

    def add_all(self, repo: str) -> None:
        self._git("add", "--all", repo=repo)

    def commit(self, repo: str, message: str) -> str:
        self._git("commit", "--all", "--allow-empty", "-m", message, repo=repo)
        return self.head(repo)

    def push(self, repo: str, refspecs: list[str], auth: Any) -> None:
        self._git("push", "origin", *refspecs, repo=repo, auth=auth)

    def tags(self, repo: str) -> list[str]:
        out = self._git("tag", "--list", repo=repo)
        return [line.strip() for line in out.splitlines() if line.strip()]

    def head(self, repo: str) -> str:
        return self._git("rev-parse", "HEAD", repo=repo).strip()

    def create_tag(self, repo: str, name: str, commit: str, message: str) -> str:
        self._git("tag", "-a", name, commit, "-m", message, repo=repo)
        return name

    def new_public_keys_from_file(self, user: str, pem_file: str, password: str) -> SshKeyAuth:
        if not os.path.isfile(pem_file):
            raise GitSyncError(f"private key file {pem_file} not found")
        return SshKeyAuth(user, pem_file, password)


def auth_supplier(file_manager: FileManager, git_manager: GitManager) -> Any:
    """Use the user's ``~/.ssh/id_rsa`` to access the remote repository."""
    try:
        home = file_manager.user_home_dir()
    except OSError as exc:
        raise GitSyncError(f"os user home dir err: {exc}") from exc
    rsa_file = os.path.join(home, ".ssh", "id_rsa")
    try:
        return git_manager.new_public_keys_from_file("git", rsa_file, "")
    except (GitSyncError, OSError) as exc:
        raise GitSyncError(
            f"git ssh new public keys from file error: {exc}, file location {rsa_file}"
        ) from exc


def parse_git_url_component(go_package: str, remote: str) -> tuple[str, list[str]]:
    """Split an SSH git URL (from ``remote`` or derived from ``go_package``) into host and path parts."""
    git_url = remote or (
        SSH_GIT_URL_PREFIX
        + go_package.replace(GIT_URL_PATH_SEP, SSH_GIT_DOMAIN_SEP, 1)
        + GIT_URL_SUFFIX
    )
    if (
        SSH_GIT_DOMAIN_SEP not in git_url
        or not git_url.startswith(SSH_GIT_URL_PREFIX)
        or not git_url.endswith(GIT_URL_SUFFIX)
    ):
        raise GitSyncError(f"ssh git url pattern is invalid {git_url}")
    comps = git_url.split(SSH_GIT_DOMAIN_SEP)
    path = comps[1].removesuffix(GIT_URL_SUFFIX)
    return comps[0], path.split(GIT_URL_PATH_SEP)


def _atoi(s: str) -> int | None:
    return int(s) if _INTEGER.fullmatch(s) else None


def gen_new_tag_name(last_tag_name: str) -> str:
    """Increment the patch number of a ``vX.Y.Z`` tag, carrying into Y at 100."""
    parts = last_tag_name.split(GIT_TAG_NAME_SEP)
    if len(parts) != DEFAULT_GIT_TAG_LEN:
        return DEFAULT_GIT_TAG
    patch = _atoi(parts[2])
    if patch is None:
        return DEFAULT_GIT_TAG
    patch += 1
    if patch < 100:
        parts[2] = str(patch)
        return GIT_TAG_NAME_SEP.join(parts)
    minor = _atoi(parts[1])
    if minor is None:
        return DEFAULT_GIT_TAG
    parts[1], parts[2] = str(minor + 1), "1"
    return GIT_TAG_NAME_SEP.join(parts)


def parse_default_path_suffix(pb_dir: str, git_url_base: str) -> str:
    """Return the part of ``pb_dir`` after its last component equal to ``git_url_base``.

    Without such a component the last component of ``pb_dir`` is returned.
    """
    dirs = pb_dir.split(os.sep)
    for i in range(len(dirs) - 1, -1, -1):
        if dirs[i] == git_url_base:
            rest = dirs[i + 1 :]
            return os.path.join(*rest) if rest else ""
    return os.path.basename(pb_dir)


def is_same_dir(files: list[str]) -> bool:
    """Tell whether all ``files`` are in one directory."""
    return len({os.path.dirname(f) for f in files}) <= 1


SupplierFn = Callable[[FileManager, GitManager], Any]


class GitSync(Plugin):
    """Pushes the generated stub files to a remote git repository."""

    def __init__(
        self,
        file_manager: FileManager,
        git_manager: GitManager,
        supplier: SupplierFn = auth_supplier,
    ) -> None:
        self.file_manager = file_manager
        self.git_manager = git_manager
        self.auth: Any = None
        self._init_error: Exception | None = None
        try:
            self.auth = supplier(file_manager, git_manager)
        except (GitSyncError, OSError) as exc:
            self._init_error = exc

    def name(self) -> str:
        return "sync_git"

    def check(self, fd: FileDescriptor | None, opt: Option) -> bool:
        return opt.sync

    def run(self, fd: FileDescriptor | None, opt: Option) -> None:
        if self._init_error is not None:
            raise self._init_error
        go_package = fd.go_package if fd else ""
        git_dir, repo = self._clone_or_init_git_dir(go_package, opt)
        try:
            out_stub_dir = os.path.join(opt.output_dir, GENERATED_STUB_NAME)
            self._copy_stub_to_git_dir(out_stub_dir, git_dir, self._remote_git_url_base(repo))
            self._commit_and_push(repo, opt)
        finally:
            try:
                self.file_manager.remove_all(git_dir)
            except OSError as exc:
                log.error("sync git plugin remove dir:%s error:%s", git_dir, exc)

    def _clone_or_init_git_dir(self, go_package: str, opt: Option) -> tuple[str, str]:
        url_prefix, paths = parse_git_url_component(go_package, opt.remote)
        temp_dir = os.path.join(opt.output_dir, "stub_temp")
        self.file_manager.remove_all(temp_dir)
        repo = self._clone_or_init_git_repo(url_prefix + SSH_GIT_DOMAIN_SEP, temp_dir, paths)
        return temp_dir, repo

    def _clone_or_init_git_repo(self, url_prefix: str, temp_dir: str, paths: list[str]) -> str:
        # The repository may sit at any prefix of the path: a.git, a/b.git, a/b/c.git.
        for n in range(len(paths), 0, -1):
            git_url = url_prefix + GIT_URL_PATH_SEP.join(paths[:n]) + GIT_URL_SUFFIX
            try:
                return self.git_manager.plain_clone(temp_dir, git_url, self.auth)
            except EmptyRemoteRepository:
                return self._init_git_repo(temp_dir, git_url)
            except GitSyncError as exc:
                log.debug("clone %s failed: %s", git_url, exc)
        raise GitSyncError("not found clone git repository, please create git repository")

    def _init_git_repo(self, temp_dir: str, git_url: str) -> str:
        try:
            repo = self.git_manager.plain_init(temp_dir)
        except (GitSyncError, OSError) as exc:
            raise GitSyncError(f"git init error: {exc} url: {temp_dir}") from exc
        try:
            self.git_manager.create_remote(repo, "origin", git_url)
        except GitSyncError as exc:
            raise GitSyncError(f"git create remote err: {exc} gitUrl: {git_url}") from exc
        return repo

    def _commit_and_push(self, repo: str, opt: Option) -> None:
        try:
            self.git_manager.add_all(repo)
        except GitSyncError as exc:
            raise GitSyncError(f"git add err: {exc}") from exc
        try:
            self.git_manager.commit(repo, COMMIT_MESSAGE)
        except GitSyncError as exc:
            raise GitSyncError(f"git commit err: {exc}") from exc
        if opt.new_tag:
            self._set_tag(repo, opt)
        try:
            self.git_manager.push(repo, list(PUSH_REFSPECS), self.auth)
        except GitSyncError as exc:
            raise GitSyncError(f"git push err: {exc}") from exc

    def _copy_stub_to_git_dir(
        self, local_stub_dir: str, local_git_dir: str, git_url_base: str
    ) -> None:
        pb_files = self._collect_pb_files(local_stub_dir)
        pb_dir = os.path.dirname(pb_files[0])
        default_suffix = parse_default_path_suffix(pb_dir, git_url_base)
        dst_dir = self._git_dst_dir(os.path.basename(pb_dir), local_git_dir, default_suffix)
        for pb_file in pb_files:
            dst_file = os.path.join(dst_dir, os.path.basename(pb_file))
            try:
                self.file_manager.remove_all(dst_file)
                self.file_manager.copy_file(pb_file, dst_file)
            except OSError as exc:
                raise GitSyncError(
                    f"copy stub to git local dir error: {exc}, "
                    f"localStubDir: {local_stub_dir}, localGitDir: {local_git_dir}"
                ) from exc

    def _collect_pb_files(self, out_dir: str) -> list[str]:
        pb_files = [path for path, is_dir in self.file_manager.walk(out_dir) if not is_dir]
        if not pb_files:
            raise GitSyncError("generated stub file is empty")
        if not is_same_dir(pb_files):
            raise GitSyncError("generated stub file not is same dir")
        return pb_files

    def _git_dst_dir(self, pb_dir_base: str, local_git_dir: str, default_suffix: str) -> str:
        dst = ""
        for path, is_dir in self.file_manager.walk(local_git_dir):
            if is_dir and os.path.basename(path) == pb_dir_base:
                dst = path
        if dst:
            return dst
        dst = os.path.join(local_git_dir, default_suffix)
        try:
            self.file_manager.mkdir_all(dst)
        except OSError as exc:
            raise GitSyncError(f"mk git local destination dir {dst} error: {exc}") from exc
        return dst

    def _set_tag(self, repo: str, opt: Option) -> None:
        tag = opt.tag
        if tag:
            self._check_tag_absent(repo, tag)
        else:
            tag = self._eval_tag_name(repo)
        commit = self.git_manager.head(repo)
        self.git_manager.create_tag(repo, tag, commit, tag)

    def _check_tag_absent(self, repo: str, tag: str) -> None:
        if tag in self.git_manager.tags(repo):
            raise GitSyncError("tag name is existed")

    def _eval_tag_name(self, repo: str) -> str:
        try:
            tags = self.git_manager.tags(repo)
        except GitSyncError as exc:
            raise GitSyncError(f"when eval tag name, git get tags err: {exc}") from exc
        if not tags:
            return DEFAULT_GIT_TAG
        return gen_new_tag_name(tags[-1])

    def _remote_git_url_base(self, repo: str) -> str:
        try:
            urls = self.git_manager.remote_urls(repo, "origin")
        except GitSyncError:
            return ""
        if not urls:
            return ""
        url = urls[0]
        index = url.rfind(GIT_URL_PATH_SEP)
        if index == -1:
            return ""
        return url[index + 1 :].removesuffix(GIT_URL_SUFFIX)