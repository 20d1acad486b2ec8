"""Record store collaborator backed by Solana JSON-RPC."""

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from .config import ClientConfig
from .errors import RemoteUnavailable, RpcError, SubmissionRejected, Timeout

logger = logging.getLogger(__name__)


class Deadline:
    """Absolute monotonic deadline shared by every round trip of one operation."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self, operation: str = "request") -> float:
        left = self.expires_at - self._clock()
        if left <= 0:
            raise Timeout(operation)
        return left

    def expired(self) -> bool:
        return self.expires_at - self._clock() <= 0


class RecordStore(ABC):
    @abstractmethod
    def get(self, address: str, deadline: Optional[Deadline] = None) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist."""
        pass

    @abstractmethod
    def get_balance(self, address: str, deadline: Optional[Deadline] = None) -> int:
        pass

    @abstractmethod
    def get_latest_blockhash(self, deadline: Optional[Deadline] = None) -> str:
        pass

    @abstractmethod
    def send_transaction(self, raw: bytes, deadline: Optional[Deadline] = None) -> str:
        """Submit a signed transaction; returns its signature."""
        pass

    @abstractmethod
    def get_signature_status(self, signature: str, deadline: Optional[Deadline] = None) -> Optional[dict]:
        """Status of a submitted transaction, or None while the cluster has not seen it."""
        pass


class RpcRecordStore(RecordStore):
    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self._request_id = 0

    def rpc_request(self, method: str, params: list, deadline: Optional[Deadline] = None):
        """Make a JSON-RPC request and return its `result`."""
        timeout = self.config.request_timeout
        if deadline is not None:
            timeout = min(timeout, deadline.remaining(method))

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            response = self.session.post(self.config.rpc_endpoint, json=payload, timeout=timeout)
            response.raise_for_status()
            result = response.json()
        except requests.Timeout as e:
            raise Timeout(method) from e
        except (requests.RequestException, ValueError) as e:
            raise RemoteUnavailable(self.config.display_endpoint, e) from e

        if "error" in result:
            raise RpcError(method, result["error"])
        return result.get("result")

    def get(self, address: str, deadline: Optional[Deadline] = None) -> Optional[bytes]:
        result = self.rpc_request("getAccountInfo", [
            address,
            {"encoding": "base64", "commitment": self.config.commitment}
        ], deadline)
        value = result.get("value") if result else None
        if not value:
            logger.debug(f"Account {address} not found")
            return None
        data = value.get("data") or []
        if isinstance(data, list) and len(data) >= 1:
            return base64.b64decode(data[0])
        return b""

    def get_balance(self, address: str, deadline: Optional[Deadline] = None) -> int:
        result = self.rpc_request("getBalance", [address, {"commitment": self.config.commitment}], deadline)
        return int(result["value"]) if result else 0

    def get_latest_blockhash(self, deadline: Optional[Deadline] = None) -> str:
        result = self.rpc_request("getLatestBlockhash", [{"commitment": self.config.commitment}], deadline)
        return result["value"]["blockhash"]

    def send_transaction(self, raw: bytes, deadline: Optional[Deadline] = None) -> str:
        params = [
            base64.b64encode(raw).decode(),
            {"encoding": "base64", "preflightCommitment": self.config.commitment},
        ]
        try:
            return self.rpc_request("sendTransaction", params, deadline)
        except RpcError as e:
            logger.debug(f"sendTransaction rejected: {e.rpc_message}")
            for line in e.logs:
                logger.debug(f"  {line}")
            raise SubmissionRejected(e.method, {"code": e.code, "message": e.rpc_message, "data": e.data}) from e

    def get_signature_status(self, signature: str, deadline: Optional[Deadline] = None) -> Optional[dict]:
        result = self.rpc_request("getSignatureStatuses", [
            [signature],
            {"searchTransactionHistory": True}
        ], deadline)
        statuses = result.get("value") if result else None
        return statuses[0] if statuses else None
