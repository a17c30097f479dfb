"""HTTP client for the Sensay REST API."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping, Protocol

import requests
from pydantic import ValidationError

from sensay_cli.core.config import API_VERSION, Settings
from sensay_cli.core.logging import get_logger
from sensay_cli.models.dto import (
    CreateEntryResponse,
    KnowledgeEntryListResponse,
    KnowledgeEntryPayload,
    ReplicaCreateResponse,
    ReplicaListResponse,
    ReplicaPayload,
    ReplicaUpsertRequest,
    SuccessResponse,
    UploadLocationResponse,
    UserPayload,
)
from sensay_cli.models.entities import KnowledgeEntry, Replica, Status, User

logger = get_logger(__name__)


class ApiError(RuntimeError):
    """Non-success response or transport failure talking to the API."""

    def __init__(self, message: str, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def request_id(self) -> str | None:
        if isinstance(self.body, Mapping):
            return self.body.get("request_id")
        return None

    @property
    def fingerprint(self) -> str | None:
        if isinstance(self.body, Mapping):
            return self.body.get("fingerprint")
        return None


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Immutable per-invocation request settings passed to every call site."""

    api_key: str
    base_url: str = "https://api.sensay.io"
    api_version: str = API_VERSION
    user_id: str | None = None
    vercel_protection_bypass: str | None = None
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestContext":
        return cls(
            api_key=settings.require_api_key(),
            base_url=settings.base_url,
            api_version=settings.api_version,
            user_id=settings.user_id,
            vercel_protection_bypass=settings.vercel_protection_bypass,
            timeout=settings.request_timeout,
        )

    def with_user(self, user_id: str | None) -> "RequestContext":
        return replace(self, user_id=user_id)

    def headers(self) -> dict[str, str]:
        headers = {
            "X-API-Version": self.api_version,
            "X-ORGANIZATION-SECRET": self.api_key,
        }
        if self.user_id:
            headers["X-USER-ID"] = self.user_id
        if self.vercel_protection_bypass:
            headers["x-vercel-protection-bypass"] = self.vercel_protection_bypass
        return headers


@dataclass(frozen=True, slots=True)
class UploadLocation:
    url: str
    entry_id: int


@dataclass(frozen=True, slots=True)
class EntryPage:
    items: list[KnowledgeEntry]
    page: int
    page_size: int
    total: int | None = None

    @property
    def has_more(self) -> bool:
        if self.total is not None:
            return self.page * self.page_size < self.total
        return len(self.items) == self.page_size


class KnowledgeService(Protocol):
    """Remote operations the training pipeline depends on."""

    def create_blank_entry(self, replica_id: str) -> int | None: ...

    def submit_raw_text(self, replica_id: str, entry_id: int, text: str) -> bool: ...

    def request_upload_location(self, replica_id: str, filename: str) -> UploadLocation | None: ...

    def write_bytes_to_location(self, upload_url: str, data: bytes) -> bool: ...

    def get_entry(self, entry_id: int) -> KnowledgeEntry: ...

    def list_entries(self, replica_id: str | None, page: int, page_size: int) -> EntryPage: ...

    def update_entry_status(self, entry_id: int, replica_id: str, status: Status) -> bool: ...

    def delete_entry(self, entry_id: int) -> bool: ...


class ReplicaService(KnowledgeService, Protocol):
    """Knowledge operations plus the replica lookups used by workflows."""

    def list_replicas(self) -> list[Replica]: ...

    def get_replica(self, replica_id: str) -> Replica: ...


class SensayClient:
    """Session-backed implementation of the Sensay API operations used by the CLI."""

    def __init__(self, context: RequestContext, session: requests.Session | None = None) -> None:
        self.context = context
        self.session = session or requests.Session()

    def with_user(self, user_id: str | None) -> "SensayClient":
        return SensayClient(self.context.with_user(user_id), session=self.session)

    # Knowledge base ----------------------------------------------------

    def create_blank_entry(self, replica_id: str) -> int | None:
        payload = self._request("POST", f"/v1/replicas/{replica_id}/training")
        return _validate(CreateEntryResponse, payload).knowledge_base_id

    def submit_raw_text(self, replica_id: str, entry_id: int, text: str) -> bool:
        payload = self._request(
            "PUT",
            f"/v1/replicas/{replica_id}/training/{entry_id}",
            json={"rawText": text},
        )
        return _validate(SuccessResponse, payload).success

    def request_upload_location(self, replica_id: str, filename: str) -> UploadLocation | None:
        payload = self._request(
            "GET",
            f"/v1/replicas/{replica_id}/training/files/upload",
            params={"filename": filename},
        )
        response = _validate(UploadLocationResponse, payload)
        if not response.signed_url or response.knowledge_base_id is None:
            return None
        return UploadLocation(url=response.signed_url, entry_id=response.knowledge_base_id)

    def write_bytes_to_location(self, upload_url: str, data: bytes) -> bool:
        # signed URL requests go out without the API headers
        try:
            resp = self.session.request(
                "PUT",
                upload_url,
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.context.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"Upload transfer failed: {exc}") from exc
        if not resp.ok:
            logger.warning("Signed upload returned HTTP %s", resp.status_code)
        return resp.ok

    def get_entry(self, entry_id: int) -> KnowledgeEntry:
        payload = self._request("GET", f"/v1/knowledge-base/{entry_id}")
        return _to_entity(_validate(KnowledgeEntryPayload, payload))

    def list_entries(self, replica_id: str | None, page: int = 1, page_size: int = 100) -> EntryPage:
        path = f"/v1/replicas/{replica_id}/knowledge-base" if replica_id else "/v1/knowledge-base"
        payload = self._request("GET", path, params={"page": page, "pageSize": page_size})
        response = _validate(KnowledgeEntryListResponse, payload)
        return EntryPage(
            items=[_to_entity(item, replica_id) for item in response.items],
            page=page,
            page_size=page_size,
            total=response.total,
        )

    def update_entry_status(self, entry_id: int, replica_id: str, status: Status) -> bool:
        payload = self._request(
            "PATCH",
            f"/v1/replicas/{replica_id}/knowledge-base/{entry_id}",
            json={"status": Status(status).value},
        )
        if payload is None:
            return True
        return _validate(SuccessResponse, payload).success

    def delete_entry(self, entry_id: int) -> bool:
        payload = self._request("DELETE", f"/v1/knowledge-base/{entry_id}")
        if payload is None:
            return True
        return _validate(SuccessResponse, payload).success

    # Users and replicas -----------------------------------------------

    def get_current_user(self) -> User:
        return _validate(UserPayload, self._request("GET", "/v1/users/me")).to_entity()

    def create_user(self, name: str, email: str) -> User:
        payload = self._request("POST", "/v1/users", json={"name": name, "email": email})
        return _validate(UserPayload, payload).to_entity()

    def list_replicas(self) -> list[Replica]:
        response = _validate(ReplicaListResponse, self._request("GET", "/v1/replicas"))
        return [item.to_entity() for item in response.items]

    def get_replica(self, replica_id: str) -> Replica:
        return _validate(ReplicaPayload, self._request("GET", f"/v1/replicas/{replica_id}")).to_entity()

    def create_replica(self, request: ReplicaUpsertRequest) -> str:
        payload = self._request("POST", "/v1/replicas", json=request.model_dump(by_alias=True))
        response = _validate(ReplicaCreateResponse, payload)
        if not response.success or not response.uuid:
            raise ApiError("Failed to create replica", body=payload)
        return response.uuid

    def update_replica(self, replica_id: str, request: ReplicaUpsertRequest) -> None:
        self._request("PUT", f"/v1/replicas/{replica_id}", json=request.model_dump(by_alias=True))

    # Internal helpers -------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self.context.base_url}{path}"
        logger.debug("%s %s", method, url, extra={"ctx_params": dict(params or {})})
        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self.context.headers(),
                timeout=self.context.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"{method} {path} failed: {exc}") from exc
        if not resp.ok:
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text
            message = detail.get("error") if isinstance(detail, Mapping) else None
            raise ApiError(
                f"Request failed ({resp.status_code}): {message or detail or resp.reason}",
                status=resp.status_code,
                body=detail,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(f"{method} {path} returned invalid JSON", status=resp.status_code) from exc


def _validate(model: Any, payload: Any) -> Any:
    try:
        return model.model_validate(payload or {})
    except ValidationError as exc:
        raise ApiError(f"Unexpected response shape for {model.__name__}: {exc}", body=payload) from exc


def _to_entity(payload: KnowledgeEntryPayload, replica_id: str | None = None) -> KnowledgeEntry:
    try:
        return payload.to_entity(replica_id)
    except ValueError as exc:
        raise ApiError(f"Unsupported knowledge entry {payload.id}: {exc}") from exc


__all__ = [
    "ApiError",
    "EntryPage",
    "KnowledgeService",
    "ReplicaService",
    "RequestContext",
    "SensayClient",
    "UploadLocation",
]
