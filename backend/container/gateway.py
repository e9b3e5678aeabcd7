"""
Container Gateway
容器服务网关

Async HTTP client for the remote container service. Every call carries the
service bearer token; failures are raised as ContainerGatewayError with the
upstream error detail so tools can hand it back to the model.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

import code_gen_config as config

from .models import (
    CommandResult,
    ContainerCreated,
    ContainerStarted,
    FileContent,
    PathTree,
    PreviewURL,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================
# Errors
# ============================================

class ContainerGatewayError(Exception):
    """A container service call failed (transport error or non-2xx response)"""

    def __init__(self, operation: str, detail: Any, status_code: Optional[int] = None):
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{operation} failed: {self.detail_text}")

    @property
    def detail_text(self) -> str:
        if isinstance(self.detail, str):
            return self.detail
        return json.dumps(self.detail, ensure_ascii=False, default=str)


class ContainerCreationError(ContainerGatewayError):
    """Container could not be created. Aborts the whole run."""


def _error_detail(response: httpx.Response) -> Any:
    """Pull the service's `error` field out of a failed response"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error") is not None:
        return body["error"]
    return body


# ============================================
# Gateway
# ============================================

class ContainerGateway:
    """
    Client for the container service
    容器服务客户端

    Usage:
        gateway = ContainerGateway()
        await gateway.create_container("my-app", "vite-react")
        ...
        await gateway.close()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Container service URL (defaults to CONTAINER_API_URL)
            api_key: Bearer token (defaults to MAIN_API_KEY)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.base_url = base_url or config.CONTAINER_API_URL
        headers = {"Content-Type": "application/json"}
        token = api_key if api_key is not None else config.MAIN_API_KEY
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or config.CONTAINER_API_TIMEOUT,
            transport=transport,
        )
        logger.info(f"[Gateway] Container service: {self.base_url}")

    async def close(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        payload: Dict[str, Any],
        error_cls: type = ContainerGatewayError,
    ) -> Dict[str, Any]:
        """Send a JSON request and return the decoded body"""
        operation = path.lstrip("/")
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[Gateway] {operation} transport error: {e}")
            raise error_cls(operation, str(e)) from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error(f"[Gateway] {operation} returned {response.status_code}: {detail}")
            raise error_cls(operation, detail, response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise error_cls(operation, f"Invalid JSON response: {response.text[:200]}") from e
        if not isinstance(body, dict):
            raise error_cls(operation, f"Unexpected response body: {str(body)[:200]}")
        return body

    def _parse(
        self,
        model: Type[ModelT],
        path: str,
        data: Any,
        error_cls: type = ContainerGatewayError,
    ) -> ModelT:
        """Validate a response body; a malformed body is a service failure"""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            operation = path.lstrip("/")
            logger.error(f"[Gateway] {operation} returned a malformed body: {e}")
            raise error_cls(operation, f"Malformed response: {e}") from e

    # ============================================
    # Container Lifecycle
    # ============================================

    async def create_container(self, container_name: str, template_name: str) -> ContainerCreated:
        data = await self._request(
            "POST",
            "/create-browser-container",
            {"containerName": container_name, "templateName": template_name},
            error_cls=ContainerCreationError,
        )
        return self._parse(ContainerCreated, "/create-browser-container", data, error_cls=ContainerCreationError)

    async def start_container(self, container_name: str) -> ContainerStarted:
        data = await self._request(
            "POST",
            "/start-browser-container",
            {"containerName": container_name},
        )
        return self._parse(ContainerStarted, "/start-browser-container", data)

    async def get_preview_url(self, container_name: str, port: int, is_expo: bool) -> PreviewURL:
        data = await self._request(
            "POST",
            "/get-browser-container-preview-url",
            {"containerName": container_name, "port": port, "isExpo": is_expo},
        )
        return self._parse(PreviewURL, "/get-browser-container-preview-url", data)

    # ============================================
    # Commands
    # ============================================

    async def execute_command(self, container_name: str, argv: List[str]) -> CommandResult:
        """Run an argv list inside the container's /app directory"""
        data = await self._request(
            "POST",
            "/execute-command",
            {"containerName": container_name, "command": argv},
        )
        return self._parse(CommandResult, "/execute-command", data.get("result") or {})

    async def start_npm_dev(self, container_name: str, port: int) -> Optional[str]:
        data = await self._request(
            "POST",
            "/start-npm-dev",
            {"containerName": container_name, "port": port},
        )
        return data.get("message")

    async def restart_npm_dev(self, container_name: str, port: int) -> Optional[str]:
        data = await self._request(
            "POST",
            "/restart-npm-dev",
            {"containerName": container_name, "port": port},
        )
        return data.get("message")

    async def check_for_errors(self, container_name: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/check-for-errors",
            {"containerName": container_name},
        )

    # ============================================
    # File Operations
    # ============================================

    async def write_file(self, container_name: str, path: str, content: str) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            "/write-file-with-diff",
            {"containerName": container_name, "path": path, "content": content},
        )

    async def read_file(self, container_name: str, path: str) -> FileContent:
        data = await self._request(
            "POST",
            "/read-file",
            {"containerName": container_name, "path": path},
        )
        return self._parse(FileContent, "/read-file", data)

    async def read_path_tree(self, container_name: str, path: str) -> PathTree:
        data = await self._request(
            "POST",
            "/read-path-tree",
            {"containerName": container_name, "path": path},
        )
        return self._parse(PathTree, "/read-path-tree", data)


# ============================================
# Global Instance
# ============================================

_gateway: Optional[ContainerGateway] = None


def get_container_gateway() -> ContainerGateway:
    """Get or create the shared gateway"""
    global _gateway
    if _gateway is None:
        _gateway = ContainerGateway()
    return _gateway


async def close_container_gateway():
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
