"""
Node Discovery
Fetches the raw node list from the gossip network.

Every source exposes the same capability:

    source.fetch_latest() -> List[dict]

and raises DiscoveryError when it cannot produce a non-empty list. The
Collector never cares which transport delivered the records.

Usage:
    source = build_data_source(settings.discovery)
    raw = source.fetch_latest()
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests
import websockets

from pnode_analytics.config import DiscoverySettings
from pnode_analytics.core.errors import DiscoveryError
from pnode_analytics.core.models import utc_now

logger = logging.getLogger(__name__)

GET_PODS = "get-pods"
GET_CLUSTER_NODES = "getClusterNodes"
DEFAULT_GOSSIP_PORT = 9001


class NodeDataSource(Protocol):
    def fetch_latest(self) -> List[Dict[str, Any]]:
        ...


def rpc_request(method: str, params: Optional[list] = None, request_id: int = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}


def extract_pods(payload: Any) -> List[Dict[str, Any]]:
    """
    Pull the node list out of a JSON-RPC response.

    Accepts {"result": {"pods": [...]}}, {"result": [...]} or a bare list.
    """
    if isinstance(payload, dict):
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise DiscoveryError(f"RPC error: {message}")
        payload = payload.get("result", payload)
    if isinstance(payload, dict):
        payload = payload.get("pods", [])
    if not isinstance(payload, list):
        raise DiscoveryError(f"Unexpected discovery payload: {type(payload).__name__}")
    return payload


def cluster_nodes_to_pods(nodes: List[Dict[str, Any]], seen_at: datetime) -> List[Dict[str, Any]]:
    """
    getClusterNodes carries no last-seen time; a node present in the
    answer is taken to have been seen at fetch time.
    """
    pods = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        pubkey = node.get("pubkey")
        pods.append({
            "pubkey": pubkey,
            "address": node.get("gossip") or (f"{pubkey}:{DEFAULT_GOSSIP_PORT}" if pubkey else None),
            "version": node.get("version") or "unknown",
            "last_seen_timestamp": int(seen_at.timestamp()),
            "rpc": node.get("rpc"),
            "tpu": node.get("tpu"),
        })
    return pods


# =============================================================================
# Polling (JSON-RPC over HTTP)
# =============================================================================

class PollingDataSource:
    """
    get-pods on the primary endpoint, then getClusterNodes on the primary
    and each fallback in order. First non-empty answer wins.
    """

    def __init__(
        self,
        rpc_url: str,
        fallback_urls: Optional[List[str]] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.fallback_urls = [u.rstrip("/") for u in (fallback_urls or []) if u]
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock

    @property
    def endpoints(self) -> List[str]:
        return list(dict.fromkeys([self.rpc_url, *self.fallback_urls]))

    def _call(self, endpoint: str, method: str) -> Any:
        resp = self.session.post(endpoint, json=rpc_request(method), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def fetch_latest(self) -> List[Dict[str, Any]]:
        errors: List[str] = []

        try:
            pods = extract_pods(self._call(self.rpc_url, GET_PODS))
            if pods:
                logger.debug("Fetched %d pods from %s", len(pods), self.rpc_url)
                return pods
            errors.append(f"{self.rpc_url} ({GET_PODS}): empty result")
        except (requests.RequestException, ValueError, DiscoveryError) as e:
            logger.debug("%s failed on %s: %s", GET_PODS, self.rpc_url, e)
            errors.append(f"{self.rpc_url} ({GET_PODS}): {e}")

        for endpoint in self.endpoints:
            try:
                nodes = extract_pods(self._call(endpoint, GET_CLUSTER_NODES))
            except (requests.RequestException, ValueError, DiscoveryError) as e:
                logger.warning("Failed to fetch cluster nodes from %s: %s", endpoint, e)
                errors.append(f"{endpoint}: {e}")
                continue
            if nodes:
                logger.debug("Fetched %d cluster nodes from %s", len(nodes), endpoint)
                return cluster_nodes_to_pods(nodes, self.clock())
            errors.append(f"{endpoint}: empty result")

        raise DiscoveryError(
            f"No discovery endpoint answered. Errors: {'; '.join(errors)}",
            endpoints=self.endpoints,
        )


# =============================================================================
# WebSocket
# =============================================================================

class WebSocketDataSource:
    """One JSON-RPC request / response over a short-lived websocket."""

    def __init__(self, ws_url: str, timeout: float = 10.0, method: str = GET_PODS):
        self.ws_url = ws_url
        self.timeout = timeout
        self.method = method

    async def _fetch(self) -> Any:
        async with websockets.connect(self.ws_url, open_timeout=self.timeout) as ws:
            await ws.send(json.dumps(rpc_request(self.method)))
            message = await asyncio.wait_for(ws.recv(), timeout=self.timeout)
        return json.loads(message)

    def fetch_latest(self) -> List[Dict[str, Any]]:
        try:
            payload = asyncio.run(self._fetch())
        except asyncio.TimeoutError:
            raise DiscoveryError(f"Timed out waiting for {self.ws_url}", endpoints=[self.ws_url])
        except (OSError, ValueError, websockets.WebSocketException) as e:
            raise DiscoveryError(f"WebSocket discovery failed: {e}", endpoints=[self.ws_url]) from e

        pods = extract_pods(payload)
        if not pods:
            raise DiscoveryError("WebSocket discovery returned no nodes", endpoints=[self.ws_url])
        return pods


# =============================================================================
# Fallback
# =============================================================================

class FallbackDataSource:
    """Primary first; on DiscoveryError, the secondary."""

    def __init__(self, primary: NodeDataSource, secondary: NodeDataSource):
        self.primary = primary
        self.secondary = secondary

    def fetch_latest(self) -> List[Dict[str, Any]]:
        try:
            return self.primary.fetch_latest()
        except DiscoveryError as e:
            logger.warning("Primary discovery source failed (%s), falling back", e)
            return self.secondary.fetch_latest()


def build_data_source(settings: Optional[DiscoverySettings] = None) -> NodeDataSource:
    settings = settings or DiscoverySettings()
    polling = PollingDataSource(
        settings.rpc_url,
        fallback_urls=settings.fallback_rpc_urls,
        timeout=settings.timeout_seconds,
    )

    if settings.mode == "polling" or settings.ws_url is None:
        if settings.mode == "websocket":
            logger.warning("DISCOVERY_MODE=websocket without DISCOVERY_WS_URL, using polling")
        return polling

    ws = WebSocketDataSource(settings.ws_url, timeout=settings.timeout_seconds)
    if settings.mode == "websocket":
        return ws
    return FallbackDataSource(ws, polling)
