"""
Registry HTTP Client for the OCI Distribution API.

Provides HTTP-based registry operations with the Docker Registry v2 auth flow
(Bearer tokens and Basic challenges) and the manifest, blob and tag endpoints
needed to copy, inspect and delete images.
"""
from __future__ import annotations

import base64
import logging
import re
import time
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple
from urllib.parse import urljoin

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import AuthError, NotFound, RateLimited, TransportError, Unsupported
from .auth import AnonymousCredentials, CredentialProvider
from .media_types import ACCEPTED_MANIFEST_TYPES

logger = logging.getLogger(__name__)

__all__ = ["RegistryHTTP"]

# Docker Hub is addressed as index.docker.io but served from registry-1
_ENDPOINT_ALIASES = {
    "index.docker.io": "registry-1.docker.io",
    "docker.io": "registry-1.docker.io",
}

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def _error_codes(response: httpx.Response) -> Set[str]:
    """Error codes from a registry JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return set()
    if not isinstance(body, dict):
        return set()
    return {err.get("code", "") for err in body.get("errors") or [] if isinstance(err, dict)}


def _status_error(e: httpx.HTTPStatusError, what: str) -> Exception:
    """Map an HTTP status error onto the imagesync error taxonomy."""
    status = e.response.status_code
    if status == 404:
        return NotFound(f"{what} not found")
    if status in (401, 403):
        return AuthError(f"Authentication failed for {what}")
    if status == 429:
        return RateLimited(f"Rate limited while accessing {what}")
    return TransportError(f"Registry error {status} for {what}: {e}")


class RegistryHTTP:
    """
    HTTP client for one registry host.

    Implements the Docker Registry v2 auth flow with Bearer token support,
    per-repository Authorization reuse, and retry of timed out requests.
    """

    def __init__(self, registry: str, auth: Optional[CredentialProvider] = None,
                 insecure: bool = False, timeout_s: float = 30.0, retries: int = 0,
                 user_agent: str = "imagesync/0.1.0",
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize registry HTTP client.

        Args:
            registry: Registry hostname (e.g., "localhost:5000", "ghcr.io")
            auth: Credential provider consulted when the registry challenges
            insecure: Use plain HTTP without TLS verification
            timeout_s: Read/write timeout in seconds
            retries: Number of retries for timed out requests
            user_agent: User-Agent header value
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.registry = registry
        self.auth = auth or AnonymousCredentials()
        self.insecure = insecure

        endpoint = _ENDPOINT_ALIASES.get(registry, registry)
        self.base_url = f"{'http' if insecure else 'https'}://{endpoint}"

        self.client = httpx.Client(
            timeout=httpx.Timeout(timeout_s, connect=5.0, pool=5.0),
            follow_redirects=True,
            verify=not insecure,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

        self._retrying = Retrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TimeoutException),
            reraise=True,
        )

        # Token cache: {service/scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}
        # Last Authorization header that worked per repository
        self._repo_auth: Dict[str, str] = {}

    # Manifests

    def get_manifest(self, repo: str, ref: str) -> Tuple[bytes, str, Optional[str]]:
        """
        GET manifest content.

        Returns:
            (manifest_bytes, media_type, Docker-Content-Digest header or None)

        Raises:
            NotFound: If manifest doesn't exist
            AuthError: If authentication fails
            TransportError: For other registry or network errors
        """
        what = f"{self.registry}/{repo}:{ref}"
        headers = {"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        try:
            response = self._request("GET", f"/v2/{repo}/manifests/{ref}", repo, headers=headers)
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error fetching {what}: {e}") from e

        media_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
        return response.content, media_type, response.headers.get("Docker-Content-Digest")

    def head_manifest(self, repo: str, ref: str) -> Optional[str]:
        """
        Get manifest digest without downloading content.

        Returns:
            Docker-Content-Digest header value, or None if the registry sent none

        Raises:
            NotFound: If manifest doesn't exist
            TransportError: For other registry or network errors
        """
        what = f"{self.registry}/{repo}:{ref}"
        headers = {"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        try:
            response = self._request("HEAD", f"/v2/{repo}/manifests/{ref}", repo, headers=headers)
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error checking {what}: {e}") from e
        return response.headers.get("Docker-Content-Digest")

    def put_manifest(self, repo: str, ref: str, media_type: str, payload: bytes) -> Optional[str]:
        """
        PUT manifest under a tag or digest.

        Returns:
            Docker-Content-Digest reported by the registry, if any
        """
        what = f"{self.registry}/{repo}:{ref}"
        try:
            response = self._request(
                "PUT", f"/v2/{repo}/manifests/{ref}", repo,
                headers={"Content-Type": media_type}, content=payload,
            )
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error pushing {what}: {e}") from e
        return response.headers.get("Docker-Content-Digest")

    def delete_manifest(self, repo: str, ref: str) -> None:
        """
        DELETE a tag or the manifest a digest names.

        Raises:
            NotFound: If nothing exists under ``ref``
            TransportError: If the registry refuses the delete
        """
        what = f"{self.registry}/{repo}:{ref}"
        try:
            self._request("DELETE", f"/v2/{repo}/manifests/{ref}", repo)
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error deleting {what}: {e}") from e

    # Tags

    def list_tags(self, repo: str, page_size: int = 100) -> List[str]:
        """
        List all tags of a repository, following Link pagination.

        Raises:
            NotFound: If the registry reports the repository as unknown
            Unsupported: If the registry does not implement tag listing
            TransportError: For other registry or network errors
        """
        what = f"{self.registry}/{repo}"
        tags: List[str] = []
        path: Optional[str] = f"/v2/{repo}/tags/list?n={page_size}"
        while path:
            try:
                response = self._request("GET", path, repo)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                codes = _error_codes(e.response)
                if status in (405, 501) or "UNSUPPORTED" in codes:
                    raise Unsupported(f"{self.registry} does not support tag listing") from e
                if status == 404 and "NAME_UNKNOWN" not in codes:
                    # A bare 404 means the endpoint itself is missing
                    raise Unsupported(f"{self.registry} does not support tag listing") from e
                raise _status_error(e, what) from e
            except httpx.RequestError as e:
                raise TransportError(f"Network error listing tags of {what}: {e}") from e

            tags.extend(response.json().get("tags") or [])
            path = response.links.get("next", {}).get("url")
        return tags

    # Blobs

    def blob_exists(self, repo: str, digest: str) -> bool:
        """Check if blob exists in repository."""
        what = f"{self.registry}/{repo}@{digest}"
        try:
            self._request("HEAD", f"/v2/{repo}/blobs/{digest}", repo)
            return True
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error checking {what}: {e}") from e

    def mount_blob(self, repo: str, digest: str, from_repo: str) -> Tuple[bool, Optional[str]]:
        """
        Cross-repository mount of a blob within this registry.

        A registry that does not mount answers 202 and opens an upload
        session instead; its location is returned so the upload can use it.

        Returns:
            (True, None) if the blob was mounted, else (False, upload location or None)
        """
        what = f"{self.registry}/{repo}@{digest}"
        try:
            response = self._request(
                "POST", f"/v2/{repo}/blobs/uploads/?mount={digest}&from={from_repo}", repo,
            )
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error mounting {what}: {e}") from e
        if response.status_code == 201:
            return True, None
        return False, response.headers.get("Location")

    @contextmanager
    def open_blob(self, repo: str, digest: str) -> Iterator[Tuple[Iterator[bytes], Optional[int]]]:
        """
        Stream a blob.

        Yields:
            (chunk iterator, Content-Length or None)
        """
        what = f"{self.registry}/{repo}@{digest}"
        try:
            response = self._request("GET", f"/v2/{repo}/blobs/{digest}", repo, stream=True)
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error fetching {what}: {e}") from e

        try:
            length = response.headers.get("Content-Length")
            yield response.iter_bytes(), int(length) if length else None
        finally:
            response.close()

    def upload_blob(self, repo: str, digest: str, chunks: Iterable[bytes],
                    size: Optional[int] = None, location: Optional[str] = None) -> None:
        """
        Monolithic blob upload: POST to open a session, then PUT the content.

        Args:
            location: Upload session already opened (e.g. by a declined mount);
                no new session is opened when given
        """
        what = f"{self.registry}/{repo}@{digest}"
        try:
            if not location:
                response = self._request("POST", f"/v2/{repo}/blobs/uploads/", repo)
                location = response.headers.get("Location")
            if not location:
                raise TransportError(f"Registry did not return an upload location for {what}")

            separator = "&" if "?" in location else "?"
            headers = {"Content-Type": "application/octet-stream"}
            if size is not None:
                headers["Content-Length"] = str(size)
            self._request(
                "PUT", f"{location}{separator}digest={digest}", repo,
                headers=headers, content=chunks,
            )
        except httpx.HTTPStatusError as e:
            raise _status_error(e, what) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error uploading {what}: {e}") from e

    # Transport

    def _request(self, method: str, path: str, repo: str, headers: Optional[dict] = None,
                 stream: bool = False, **kwargs) -> httpx.Response:
        """
        Make HTTP request with transparent registry auth flow.

        Handles 401 responses by:
        1. Parsing WWW-Authenticate header for Bearer realm/service/scope or Basic
        2. Looking up credentials for this registry
        3. Exchanging credentials for a Bearer token (cached per service/scope)
        4. Retrying original request with Authorization header
        """
        url = urljoin(self.base_url, path)
        request_headers = dict(headers or {})
        if repo in self._repo_auth:
            request_headers["Authorization"] = self._repo_auth[repo]

        response = self._retrying(self._send, method, url, request_headers, stream, **kwargs)

        if response.status_code == 401:
            authorization = self._authorize(response.headers.get("WWW-Authenticate", ""))
            if authorization:
                if stream:
                    response.close()
                request_headers["Authorization"] = authorization
                response = self._retrying(self._send, method, url, request_headers, stream, **kwargs)
                if response.status_code != 401:
                    self._repo_auth[repo] = authorization

        if response.is_error:
            if stream:
                response.read()
            response.raise_for_status()
        return response

    def _send(self, method: str, url: str, headers: dict, stream: bool, **kwargs) -> httpx.Response:
        logger.debug(f"{method} {url}")
        request = self.client.build_request(method, url, headers=headers, **kwargs)
        return self.client.send(request, stream=stream)

    def _authorize(self, www_authenticate: str) -> Optional[str]:
        """Build an Authorization header value for a registry challenge."""
        creds = self.auth.get_credentials(self.registry)

        if www_authenticate.startswith("Basic"):
            if not creds:
                return None
            username, password = creds
            return "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()

        if not www_authenticate.startswith("Bearer "):
            return None

        # Format: Bearer realm="...",service="...",scope="..."
        params = {m.group(1): m.group(2) for m in _CHALLENGE_PARAM.finditer(www_authenticate)}
        realm = params.get("realm")
        service = params.get("service")
        scope = params.get("scope")
        if not realm:
            return None

        cache_key = f"{service or ''}:{scope or ''}:{creds[0] if creds else ''}"
        if cache_key in self._token_cache:
            token, expiry = self._token_cache[cache_key]
            if time.time() < expiry - 30:  # 30s buffer before expiry
                return f"Bearer {token}"

        query = {k: v for k, v in (("service", service), ("scope", scope)) if v}
        try:
            auth_response = self.client.get(realm, params=query, auth=creds if creds else None)
            auth_response.raise_for_status()
            token_data = auth_response.json()
        except httpx.HTTPStatusError as e:
            raise AuthError(f"Token exchange with {realm} failed: {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise TransportError(f"Token exchange with {realm} failed: {e}") from e

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            return None

        # Cache with expiry (default 60s per the token spec)
        expires_in = token_data.get("expires_in", 60)
        self._token_cache[cache_key] = (token, time.time() + expires_in)
        return f"Bearer {token}"

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
