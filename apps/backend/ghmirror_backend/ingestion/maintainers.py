"""
Derives per-organization maintainers from repository ownership files.

A repository's root CODEOWNERS file wins. Without one, every OWNERS file in the
default branch tree is read and its approvers own the containing directory.
Failures stay local: one bad repository or one unknown login never stops the
organization's pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import yaml

from ghmirror_backend.core.errors import StoreError
from ghmirror_database.models import Maintainer, User
from ghmirror_shared.constants import CODEOWNERS_PATH, OWNERS_FILENAME, VENDORED_DIRECTORIES

from .converters import convert_user
from .github_client import GitHubAPIError

if TYPE_CHECKING:
    from ghmirror_database.models import Repo

    from .cache import MirrorCache
    from .github_client import GitHubRestClient, RawContentFetcher
    from .user_registry import UserRegistry

logger = logging.getLogger(__name__)


class OwnersFileError(ValueError):
    pass


@dataclass
class CodeOwnersEntry:
    path: str
    logins: list[str]


@dataclass
class OwnersFile:
    approvers: list[str] = field(default_factory=list)
    # Parsed for completeness; only approvers grant maintainer paths
    reviewers: list[str] = field(default_factory=list)


def parse_codeowners(content: str) -> list[CodeOwnersEntry]:
    """Parses CODEOWNERS lines of the form '<pattern> @login [@login ...]'.

    The pattern loses a leading '/' and a trailing '/*'; a bare '*' is the
    repository root and becomes the empty path.
    """
    entries = []
    for line in content.split("\n"):
        stripped = line.strip(" \t")
        if stripped == "" or stripped.startswith("#"):
            continue

        fields = stripped.split()
        if not fields:
            continue

        path = fields[0].removeprefix("/").removesuffix("/*")
        if path == "*":
            path = ""

        entries.append(CodeOwnersEntry(path=path, logins=[f.removeprefix("@") for f in fields[1:]]))

    return entries


def is_owners_file(path: str) -> bool:
    components = path.split("/")
    return components[-1] == OWNERS_FILENAME and components[0] not in VENDORED_DIRECTORIES


def owners_directory(path: str) -> str:
    """'a/b/OWNERS' -> 'a/b/'; a root OWNERS file yields ''"""
    return path.removesuffix(OWNERS_FILENAME)


def parse_owners(content: str) -> OwnersFile:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise OwnersFileError(f"invalid OWNERS document: {e}") from e

    if data is None:
        return OwnersFile()
    if not isinstance(data, dict):
        raise OwnersFileError("OWNERS document is not a mapping")

    def _names(key: str) -> list[str]:
        value = data.get(key) or []
        if not isinstance(value, list):
            raise OwnersFileError(f"OWNERS {key} is not a list")
        return [str(v) for v in value]

    return OwnersFile(approvers=_names("approvers"), reviewers=_names("reviewers"))


class MaintainerResolver:
    def __init__(
        self,
        client: GitHubRestClient,
        raw_fetcher: RawContentFetcher,
        cache: MirrorCache,
    ):
        self._client = client
        self._raw = raw_fetcher
        self._cache = cache

    async def resolve(self, org: str, repos: list[Repo], registry: UserRegistry) -> list[Maintainer]:
        """Returns one Maintainer per login with every path granted across repos"""
        maintainers: dict[str, Maintainer] = {}

        for repo in repos:
            try:
                await self._resolve_repo(org, repo, registry, maintainers)
            except (GitHubAPIError, ValueError) as e:
                logger.warning(
                    f"Unable to establish maintainers for repo {repo.org_login}/{repo.repo_name}: {e}",
                    extra={"org": org, "repo": repo.repo_name},
                )

        return list(maintainers.values())

    async def _resolve_repo(
        self,
        org: str,
        repo: Repo,
        registry: UserRegistry,
        maintainers: dict[str, Maintainer],
    ) -> None:
        try:
            content = await self._client.get_file_content(repo.org_login, repo.repo_name, CODEOWNERS_PATH)
        except GitHubAPIError as e:
            logger.debug(f"No usable CODEOWNERS in {repo.org_login}/{repo.repo_name} ({e}); scanning OWNERS files")
            await self._apply_owners(org, repo, registry, maintainers)
            return

        await self._apply_codeowners(org, repo, content, registry, maintainers)

    async def _apply_codeowners(
        self,
        org: str,
        repo: Repo,
        content: str,
        registry: UserRegistry,
        maintainers: dict[str, Maintainer],
    ) -> None:
        entries = parse_codeowners(content)
        logger.debug(f"{len(entries)} entries in CODEOWNERS file for repo {repo.org_login}/{repo.repo_name}")

        for entry in entries:
            for login in entry.logins:
                maintainer = await self._maintainer_for(org, login, registry, maintainers)
                if maintainer is None:
                    continue
                maintainer.paths.append(f"{repo.repo_name}/{entry.path}")

    async def _apply_owners(
        self,
        org: str,
        repo: Repo,
        registry: UserRegistry,
        maintainers: dict[str, Maintainer],
    ) -> None:
        tree = await self._client.get_json(
            f"/repos/{repo.org_login}/{repo.repo_name}/git/trees/{repo.default_branch}",
            params={"recursive": 1},
        )

        # A broken OWNERS file leaves the repository without any grants
        files: dict[str, OwnersFile] = {}
        for path in self._owners_paths(tree):
            content = await self._raw.fetch(repo.org_login, repo.repo_name, repo.default_branch, path)
            try:
                files[path] = parse_owners(content)
            except OwnersFileError as e:
                raise OwnersFileError(f"unable to parse {path}: {e}") from e

        logger.debug(f"{len(files)} OWNERS files found in repo {repo.org_login}/{repo.repo_name}")

        for path, owners in files.items():
            directory = owners_directory(path)
            for login in owners.approvers:
                maintainer = await self._maintainer_for(org, login, registry, maintainers)
                if maintainer is None:
                    continue
                maintainer.paths.append(f"{repo.repo_name}/{directory}")

    @staticmethod
    def _owners_paths(tree: Any) -> list[str]:
        entries = (tree or {}).get("tree") or []
        return [
            entry["path"]
            for entry in entries
            if entry.get("type", "blob") == "blob" and entry.get("path") and is_owners_file(entry["path"])
        ]

    async def _maintainer_for(
        self,
        org: str,
        login: str,
        registry: UserRegistry,
        maintainers: dict[str, Maintainer],
    ) -> Maintainer | None:
        try:
            user = await self._lookup_user(login, registry)
        except (GitHubAPIError, StoreError) as e:
            logger.warning(f"Couldn't get info on potential maintainer {login}: {e}", extra={"login": login})
            return None

        maintainer = maintainers.get(user.user_login)
        if maintainer is None:
            maintainer = Maintainer(org_login=org, user_login=user.user_login, paths=[])
            maintainers[user.user_login] = maintainer
        return maintainer

    async def _lookup_user(self, login: str, registry: UserRegistry) -> User:
        user = registry.get(login)
        if user is not None:
            return user

        user = await self._cache.read_user(login)
        if user is None:
            user = convert_user(await self._client.get_user(login))

        registry.observe(user)
        return user
