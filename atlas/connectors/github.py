"""
GitHub REST API v3 connector (read-only).

Repositories are addressed relative to the configured organisation:
"backend-core" and "someone/backend-core" both resolve to
"<org>/backend-core".
"""

from __future__ import annotations

import base64
import logging
from typing import Any
from urllib.parse import quote

from atlas.connectors.base import HTTPConnector, as_int, failure_as_text
from atlas.services.text import sanitize_query, truncate

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
FILE_LIMIT = 8000
SEARCH_LIMIT = 10
COMMITS_LIMIT = 10
PR_FILES_LIMIT = 20
REPOS_DEFAULT = 100


class GitHubConnector(HTTPConnector):
    def __init__(
        self,
        token: str,
        org: str | None = None,
        base_url: str = GITHUB_API_BASE,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
            **kwargs,
        )
        self.org = org

    def normalize_repo(self, repo: str) -> str:
        if not repo or not self.org:
            return repo
        owner, sep, name = repo.partition("/")
        if not sep:
            return f"{self.org}/{repo}"
        return repo if owner == self.org else f"{self.org}/{name}"

    def _scoped(self, query: str, repo: str | None = None) -> str:
        q = sanitize_query(query)
        if self.org:
            q += f" org:{self.org}"
        if repo:
            q += f" repo:{repo}"
        return q

    @failure_as_text("Listing repositories")
    async def list_repos(self, per_page: Any = None) -> str:
        if not self.org:
            return "GitHub org is not configured (missing GITHUB_ORG)."
        limit = as_int(per_page, REPOS_DEFAULT, maximum=100)
        logger.info("GitHub list org repos: %s per_page=%d", self.org, limit)
        repos = await self._get(
            f"/orgs/{quote(self.org)}/repos", per_page=limit, sort="full_name"
        )
        if not repos:
            return f"No repositories found for org: {self.org}"
        lines = []
        for r in repos:
            line = f"- *{r.get('full_name') or r.get('name')}* (default: {r.get('default_branch') or '?'})"
            description = (r.get("description") or "")[:120]
            lines.append(f"{line}: {description}" if description else line)
        return (
            f"Repositories in org **{self.org}** ({len(repos)}):\n\n" + "\n".join(lines)
        )

    @failure_as_text("GitHub code search")
    async def search_code(self, query: str = "") -> str:
        if not query:
            return "No query provided."
        logger.info("GitHub code search: %s", query)
        data = await self._get(
            "/search/code", q=self._scoped(query), per_page=SEARCH_LIMIT
        )
        items = data.get("items") or []
        if not items:
            return f"No code found for: {query}"
        results = []
        for item in items:
            repo = (item.get("repository") or {}).get("full_name", "?")
            entry = f"- *{repo}* / {item.get('path', '?')}\n  {item.get('html_url', '')}"
            matches = item.get("text_matches") or []
            if matches:
                snippet = " ".join(matches[0].get("fragment", "").split())[:300]
                entry += f"\n  Snippet: {snippet}"
            results.append(entry)
        return f"Found {len(results)} code result(s):\n\n" + "\n\n".join(results)

    @failure_as_text("Retrieving file")
    async def get_file(self, repo: str = "", path: str = "") -> str:
        if not repo:
            return "No repo provided (use owner/repo or the repository name)."
        if not path:
            return "No path provided (e.g. src/main/java/App.java)."
        repo = self.normalize_repo(repo)
        logger.info("GitHub get file: %s %s", repo, path)
        file = await self._get(f"/repos/{repo}/contents/{quote(path)}")
        if not isinstance(file, dict) or file.get("type") != "file":
            return (
                "Path is not a file (it may be a directory). "
                "Use github_list_directory instead."
            )
        content = ""
        if file.get("content"):
            content = base64.b64decode(file["content"]).decode("utf-8", errors="replace")
        content = truncate(content, FILE_LIMIT, "\n\n[Content truncated, file is longer]")
        html_url = file.get("html_url") or f"https://github.com/{repo}/blob/main/{path}"
        return f"*{repo}* / {path}\n{html_url}\n\n{content}"

    @failure_as_text("Listing directory")
    async def list_directory(self, repo: str = "", path: str = "") -> str:
        if not repo:
            return "No repo provided (use owner/repo or the repository name)."
        repo = self.normalize_repo(repo)
        logger.info("GitHub list directory: %s %s", repo, path or "/")
        suffix = f"/{quote(path)}" if path else ""
        items = await self._get(f"/repos/{repo}/contents{suffix}")
        if not isinstance(items, list):
            items = [items]
        if not items:
            return "Directory is empty."
        lines = []
        for item in items:
            kind = "dir " if item.get("type") == "dir" else "file"
            size = f" {item['size']} B" if item.get("size") is not None else ""
            lines.append(f"- [{item.get('name')}]({item.get('html_url', '')}) ({kind}{size})")
        where = f"{repo}/{path}" if path else repo
        return f"Contents of {where}:\n\n" + "\n".join(lines)

    @failure_as_text("GitHub issue search")
    async def search_issues(self, query: str = "", repo: str | None = None) -> str:
        if not query:
            return "No query provided."
        repo = self.normalize_repo(repo) if repo else None
        logger.info("GitHub search issues: %s repo=%s", query, repo)
        data = await self._get(
            "/search/issues", q=self._scoped(query, repo), per_page=SEARCH_LIMIT
        )
        items = data.get("items") or []
        if not items:
            return f"No issues or pull requests found for: {query}"
        results = []
        for item in items:
            kind = "PR" if item.get("pull_request") else "Issue"
            labels = ", ".join(label.get("name", "") for label in item.get("labels") or [])
            author = (item.get("user") or {}).get("login", "?")
            line = f"- *[{kind}] {item.get('title') or '?'}*, {item.get('state') or '?'} by {author}"
            if labels:
                line += f" [{labels}]"
            results.append(f"{line}\n  {item.get('html_url', '')}")
        return f"Found {len(results)} issue(s)/PR(s):\n\n" + "\n\n".join(results)

    @failure_as_text("Retrieving pull request")
    async def get_pull_request(self, repo: str = "", pull_number: Any = None) -> str:
        if not repo:
            return "No repo provided (use owner/repo or the repository name)."
        number = as_int(pull_number, 0)
        if not pull_number or not number:
            return "No pull request number provided."
        repo = self.normalize_repo(repo)
        logger.info("GitHub get PR: %s #%d", repo, number)
        pr = await self._get(f"/repos/{repo}/pulls/{number}")
        lines = [
            f"*{pr.get('title')}*",
            f"URL: {pr.get('html_url', '')}",
            f"State: {pr.get('state') or '?'} | Author: {(pr.get('user') or {}).get('login', '?')} "
            f"| Base: {(pr.get('base') or {}).get('ref', '?')} -> {(pr.get('head') or {}).get('ref', '?')}",
            f"Created: {pr.get('created_at') or '?'} | Updated: {pr.get('updated_at') or '?'}",
            "",
            "Description:",
            (pr.get("body") or "")[:2000] or "(no description)",
        ]

        # The file list is a nice-to-have; a failure here keeps the PR summary
        try:
            files = await self._get(
                f"/repos/{repo}/pulls/{number}/files", per_page=PR_FILES_LIMIT
            )
        except Exception as e:
            logger.warning("GitHub PR files failed for %s #%d: %s", repo, number, e)
            files = []
        if files:
            lines += ["", f"Changed files ({len(files)}):"]
            lines += [
                f"- {f.get('status') or '?'} {f.get('filename') or '?'}"
                for f in files[:PR_FILES_LIMIT]
            ]
            if len(files) > PR_FILES_LIMIT:
                lines.append(f"... and {len(files) - PR_FILES_LIMIT} more")
        return "\n".join(lines)

    @failure_as_text("Listing commits")
    async def list_commits(
        self,
        repo: str = "",
        path: str | None = None,
        since: str | None = None,
    ) -> str:
        if not repo:
            return "No repo provided (use owner/repo or the repository name)."
        repo = self.normalize_repo(repo)
        logger.info("GitHub list commits: %s path=%s since=%s", repo, path, since)
        commits = await self._get(
            f"/repos/{repo}/commits",
            per_page=COMMITS_LIMIT,
            path=path or None,
            since=since or None,
        )
        if not commits:
            return f"No commits found for {repo}" + (f" in {path}" if path else ".")
        lines = []
        for c in commits:
            commit = c.get("commit") or {}
            author = commit.get("author") or {}
            message = (commit.get("message") or "?").split("\n")[0][:80]
            name = author.get("name") or (c.get("author") or {}).get("login") or "?"
            lines.append(
                f"- {(c.get('sha') or '')[:7]} {message} ({name}, {author.get('date') or '?'})"
            )
        where = f" ({path})" if path else ""
        return f"Recent commits for {repo}{where}:\n\n" + "\n".join(lines)
