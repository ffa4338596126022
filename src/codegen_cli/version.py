from __future__ import annotations

import logging
import os
import ssl
from typing import Optional

import httpx
import truststore

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

REPO_OWNER = "abu0306"
REPO_NAME = "codegen-cli"
INSTALL_SCRIPT_URL = f"https://raw.githubusercontent.com/{REPO_OWNER}/{REPO_NAME}/master/install.sh"

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)


def _github_token(cli_token: str | None = None) -> str | None:
    """Return sanitized GitHub token (cli arg takes precedence) or None."""
    return ((cli_token or os.getenv("GH_TOKEN") or os.getenv("GITHUB_TOKEN") or "").strip()) or None


def _github_auth_headers(cli_token: str | None = None) -> dict:
    """Return Authorization header dict only when a non-empty token exists."""
    token = _github_token(cli_token)
    return {"Authorization": f"Bearer {token}"} if token else {}


def compare_version(a: str, b: str) -> int:
    """Compare dotted numeric versions; missing parts count as 0."""
    pa = [int(p) for p in a.split(".")]
    pb = [int(p) for p in b.split(".")]
    for i in range(max(len(pa), len(pb))):
        na = pa[i] if i < len(pa) else 0
        nb = pb[i] if i < len(pb) else 0
        if na != nb:
            return 1 if na > nb else -1
    return 0


def make_client(skip_tls: bool = False) -> httpx.Client:
    return httpx.Client(verify=False if skip_tls else ssl_context)


def fetch_latest_version(client: httpx.Client, github_token: str | None = None) -> Optional[str]:
    api_url = f"https://api.github.com/repos/{REPO_OWNER}/{REPO_NAME}/releases/latest"
    response = client.get(
        api_url,
        timeout=10,
        follow_redirects=True,
        headers={"User-Agent": REPO_NAME, **_github_auth_headers(github_token)},
    )
    if response.status_code != 200:
        raise RuntimeError(f"GitHub API returned {response.status_code} for {api_url}")
    tag = response.json().get("tag_name")
    return tag.lstrip("v") if tag else None


def check_for_update(
    current: str = __version__,
    *,
    client: Optional[httpx.Client] = None,
    github_token: str | None = None,
) -> Optional[str]:
    """Return the latest released version when it is newer than ``current``.

    The check never fails the caller: network and parse errors yield None.
    """
    own_client = client is None
    client = client or make_client()
    try:
        latest = fetch_latest_version(client, github_token)
        if latest and compare_version(latest, current) > 0:
            return latest
        return None
    except (httpx.HTTPError, RuntimeError, ValueError) as e:
        logger.debug("Update check failed: %s", e)
        return None
    finally:
        if own_client:
            client.close()
