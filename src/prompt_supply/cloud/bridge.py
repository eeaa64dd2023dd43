"""Hosted fallback: provision remote MCP server instances and proxy tool calls.

Instance rows live in ``cloud_bridge_instances``. The endpoint the
provisioning API hands back is kept in ``provisioned_endpoint``;
``endpoint_url`` is only populated while the instance is running.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import asdict

import httpx

from prompt_supply.errors import CloudBridgeError, StorageError
from prompt_supply.models import (
    CloudBridgeInstance,
    CloudInstanceStatus,
    CloudToolCall,
    CloudToolResult,
    OAuthTokens,
    ServerInfo,
    ToolInfo,
)
from prompt_supply.oauth.providers import env_var_for_provider
from prompt_supply.storage.base import RecordStorePort
from prompt_supply.storage.schema import CLOUD_BRIDGE_INSTANCES

logger = logging.getLogger(__name__)

# Remote statuses that mean the instance will never come up.
_REMOTE_FAILED = frozenset({"error", "failed"})


def prepare_cloud_config(
    server_info: ServerInfo,
    oauth_tokens: Mapping[str, OAuthTokens] | None = None,
) -> dict[str, object]:
    """Deployable config: install/runtime fields plus OAuth-derived env vars."""
    env = dict(server_info.env)
    for provider_id, tokens in (oauth_tokens or {}).items():
        env[env_var_for_provider(provider_id)] = tokens.access_token
    return {
        "id": server_info.id,
        "name": server_info.name,
        "source": server_info.source.value,
        "sourceUrl": server_info.source_url,
        "installCommand": server_info.install_command,
        "installArgs": list(server_info.install_args),
        "command": server_info.command,
        "args": list(server_info.args),
        "env": env,
    }


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or default)
    return default


class CloudBridgeClient:
    """Adapter for the cloud bridge provisioning API. Holds the httpx client and store."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        store: RecordStorePort,
        *,
        base_url: str,
        service_token: str = "",
        provision_timeout_seconds: float = 300.0,
        call_timeout_seconds: float = 30.0,
        health_timeout_seconds: float = 5.0,
    ) -> None:
        self._http = http_client
        self._store = store
        self._base_url = base_url.rstrip("/")
        self._token = service_token
        self._provision_timeout = provision_timeout_seconds
        self._call_timeout = call_timeout_seconds
        self._health_timeout = health_timeout_seconds

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    # ─── Provisioning ────────────────────────────────────────

    async def create_instance(
        self,
        user_id: str,
        server_info: ServerInfo,
        oauth_tokens: Mapping[str, OAuthTokens] | None = None,
    ) -> CloudBridgeInstance:
        """Provision a remote instance and record it with status ``starting``.

        If the row cannot be written the remote instance is deleted again
        and the storage error is re-raised.

        Raises:
            CloudBridgeError: The provisioning API failed or timed out.
            StorageError: The instance row could not be written.
        """
        config = prepare_cloud_config(server_info, oauth_tokens)
        try:
            resp = await self._http.post(
                f"{self._base_url}/api/instances",
                json={
                    "userId": user_id,
                    "serverConfig": config,
                    "timeout": int(self._provision_timeout * 1000),
                },
                headers=self._headers(),
                timeout=self._provision_timeout,
            )
        except httpx.TimeoutException as exc:
            raise CloudBridgeError(
                f"Cloud instance provisioning timed out after {self._provision_timeout:.0f}s."
            ) from exc
        except httpx.HTTPError as exc:
            raise CloudBridgeError(f"Could not reach the cloud bridge: {exc}") from exc

        if resp.status_code not in (200, 201):
            raise CloudBridgeError(_error_message(resp, "Failed to create cloud instance"))
        try:
            remote = resp.json()
        except ValueError as exc:
            raise CloudBridgeError("Cloud bridge returned an unreadable response.") from exc
        if not isinstance(remote, dict) or not remote.get("id"):
            raise CloudBridgeError("Cloud bridge response is missing the instance id.")

        instance_id = str(remote["id"])
        try:
            row = await self._store.insert(
                CLOUD_BRIDGE_INSTANCES,
                {
                    "id": instance_id,
                    "user_id": user_id,
                    "server_id": server_info.id,
                    "server_name": server_info.name,
                    "server_config": asdict(server_info),
                    "status": CloudInstanceStatus.STARTING.value,
                    "provisioned_endpoint": remote.get("endpoint"),
                    "endpoint_url": None,
                    "requests_count": 0,
                    "last_request": None,
                    "error_message": None,
                },
            )
        except StorageError:
            logger.error("Failed to record cloud instance %s; tearing it down", instance_id)
            try:
                await self._destroy_remote(instance_id)
            except CloudBridgeError as cleanup_exc:
                logger.error("Orphaned cloud instance %s: %s", instance_id, cleanup_exc)
            raise

        logger.info("Created cloud instance %s for '%s'", instance_id, server_info.id)
        return CloudBridgeInstance.from_row(row)

    async def _destroy_remote(self, instance_id: str) -> None:
        try:
            resp = await self._http.delete(
                f"{self._base_url}/api/instances/{instance_id}",
                headers=self._headers(),
                timeout=self._call_timeout,
            )
        except httpx.HTTPError as exc:
            raise CloudBridgeError(f"Could not reach the cloud bridge: {exc}") from exc
        # 404: already gone remotely.
        if resp.status_code not in (200, 202, 204, 404):
            raise CloudBridgeError(_error_message(resp, "Failed to destroy cloud instance"))

    # ─── Instance rows ───────────────────────────────────────

    async def get_user_instances(self, user_id: str) -> list[CloudBridgeInstance]:
        try:
            rows = await self._store.select(
                CLOUD_BRIDGE_INSTANCES, order_by="created_at", descending=True, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to fetch cloud instances: %s", exc)
            return []
        return [CloudBridgeInstance.from_row(r) for r in rows]

    async def _get_row(self, user_id: str, instance_id: str) -> dict[str, object] | None:
        try:
            return await self._store.select_one(
                CLOUD_BRIDGE_INSTANCES, id=instance_id, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to load cloud instance %s: %s", instance_id, exc)
            return None

    async def get_instance(self, user_id: str, instance_id: str) -> CloudBridgeInstance | None:
        row = await self._get_row(user_id, instance_id)
        return CloudBridgeInstance.from_row(row) if row else None

    async def update_status(
        self,
        user_id: str,
        instance_id: str,
        status: CloudInstanceStatus,
        *,
        endpoint_url: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Move an instance along its lifecycle. Invalid transitions are refused."""
        row = await self._get_row(user_id, instance_id)
        if row is None:
            return False
        current = CloudInstanceStatus(row["status"])
        if not current.can_transition_to(status):
            logger.warning(
                "Refused cloud instance %s transition %s -> %s", instance_id, current, status
            )
            return False

        changes: dict[str, object] = {"status": status.value}
        if status == CloudInstanceStatus.RUNNING:
            endpoint = endpoint_url or row.get("endpoint_url") or row.get("provisioned_endpoint")
            if not endpoint:
                logger.warning("Cloud instance %s has no endpoint to run on", instance_id)
                return False
            changes["endpoint_url"] = endpoint
            changes["error_message"] = None
        else:
            changes["endpoint_url"] = None
        if status == CloudInstanceStatus.ERROR:
            changes["error_message"] = error_message or "Unknown error"

        try:
            updated = await self._store.update(
                CLOUD_BRIDGE_INSTANCES, changes, id=instance_id, user_id=user_id
            )
        except StorageError as exc:
            logger.error("Failed to update cloud instance %s: %s", instance_id, exc)
            return False
        return bool(updated)

    async def sync_instance(self, user_id: str, instance_id: str) -> CloudBridgeInstance | None:
        """Pull the remote status of a starting instance into its row."""
        instance = await self.get_instance(user_id, instance_id)
        if instance is None or instance.status != CloudInstanceStatus.STARTING:
            return instance

        try:
            resp = await self._http.get(
                f"{self._base_url}/api/instances/{instance_id}",
                headers=self._headers(),
                timeout=self._call_timeout,
            )
            remote = resp.json() if resp.status_code == 200 else None
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Could not sync cloud instance %s: %s", instance_id, exc)
            return instance
        if not isinstance(remote, dict):
            return instance

        remote_status = str(remote.get("status") or "").lower()
        if remote_status == CloudInstanceStatus.RUNNING:
            await self.update_status(
                user_id,
                instance_id,
                CloudInstanceStatus.RUNNING,
                endpoint_url=remote.get("endpoint") or None,
            )
        elif remote_status in _REMOTE_FAILED:
            await self.update_status(
                user_id,
                instance_id,
                CloudInstanceStatus.ERROR,
                error_message=str(remote.get("error") or remote.get("message") or ""),
            )
        return await self.get_instance(user_id, instance_id)

    async def destroy_instance(self, user_id: str, instance_id: str) -> bool:
        """Delete the remote instance and walk the row to ``stopped``."""
        instance = await self.get_instance(user_id, instance_id)
        if instance is None:
            return False
        if instance.status == CloudInstanceStatus.STOPPED:
            return True

        try:
            await self._destroy_remote(instance_id)
        except CloudBridgeError as exc:
            logger.error("Failed to destroy cloud instance %s: %s", instance_id, exc)
            return False

        if instance.status == CloudInstanceStatus.STARTING:
            path = [CloudInstanceStatus.ERROR, CloudInstanceStatus.STOPPED]
        elif instance.status == CloudInstanceStatus.RUNNING:
            path = [CloudInstanceStatus.STOPPING, CloudInstanceStatus.STOPPED]
        else:
            path = [CloudInstanceStatus.STOPPED]

        for status in path:
            ok = await self.update_status(
                user_id,
                instance_id,
                status,
                error_message="Destroyed before it finished starting",
            )
            if not ok:
                return False
        logger.info("Destroyed cloud instance %s", instance_id)
        return True

    # ─── Tool proxy ──────────────────────────────────────────

    async def _running_instance(
        self, user_id: str, instance_id: str
    ) -> tuple[CloudBridgeInstance | None, str]:
        instance = await self.get_instance(user_id, instance_id)
        if instance is None:
            return None, "Instance not found"
        if instance.status != CloudInstanceStatus.RUNNING or not instance.endpoint_url:
            return None, f"Instance is {instance.status}, not running"
        return instance, ""

    async def execute_tool_call(self, user_id: str, call: CloudToolCall) -> CloudToolResult:
        """Invoke a tool on a running instance. Never raises."""
        instance, problem = await self._running_instance(user_id, call.instance_id)
        if instance is None:
            return CloudToolResult(success=False, error=problem)

        started = time.monotonic()
        try:
            resp = await self._http.post(
                f"{instance.endpoint_url}/tools/call",
                json={"name": call.tool_name, "arguments": call.arguments},
                headers=self._headers(),
                timeout=self._call_timeout,
            )
        except httpx.TimeoutException:
            return CloudToolResult(
                success=False,
                error=f"Tool call timed out after {self._call_timeout:.0f}s",
                execution_time_ms=int((time.monotonic() - started) * 1000),
            )
        except httpx.HTTPError as exc:
            return CloudToolResult(
                success=False,
                error=str(exc) or "Tool call failed",
                execution_time_ms=int((time.monotonic() - started) * 1000),
            )
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if resp.status_code != 200:
            return CloudToolResult(
                success=False,
                error=_error_message(resp, "Tool call failed"),
                execution_time_ms=elapsed_ms,
            )
        try:
            body = resp.json()
        except ValueError:
            return CloudToolResult(
                success=False, error="Invalid tool call response", execution_time_ms=elapsed_ms
            )

        await self._record_usage(instance.id)
        content = body.get("content") if isinstance(body, dict) else body
        return CloudToolResult(success=True, data=content, execution_time_ms=elapsed_ms)

    async def _record_usage(self, instance_id: str) -> None:
        try:
            await self._store.increment(
                CLOUD_BRIDGE_INSTANCES, instance_id, "requests_count", stamp="last_request"
            )
        except StorageError as exc:
            logger.warning("Failed to update usage stats for %s: %s", instance_id, exc)

    async def list_instance_tools(self, user_id: str, instance_id: str) -> list[ToolInfo]:
        """Tools exposed by a running instance.

        Raises CloudBridgeError when the instance is not running or the call fails.
        """
        instance, problem = await self._running_instance(user_id, instance_id)
        if instance is None:
            raise CloudBridgeError(problem)

        try:
            resp = await self._http.get(
                f"{instance.endpoint_url}/tools/list",
                headers=self._headers(),
                timeout=self._call_timeout,
            )
        except httpx.HTTPError as exc:
            raise CloudBridgeError(f"Failed to list instance tools: {exc}") from exc
        if resp.status_code != 200:
            raise CloudBridgeError(_error_message(resp, "Failed to list tools"))
        try:
            body = resp.json()
        except ValueError as exc:
            raise CloudBridgeError("Invalid tools list response") from exc
        tools = body.get("tools") if isinstance(body, dict) else None
        return [ToolInfo.from_dict(t) for t in tools or [] if isinstance(t, dict)]

    async def is_available(self) -> bool:
        """Probe the health endpoint. Fails closed."""
        try:
            resp = await self._http.get(
                f"{self._base_url}/health", timeout=self._health_timeout
            )
        except Exception as exc:
            logger.debug("Cloud bridge health check failed: %s", exc)
            return False
        return 200 <= resp.status_code < 300
