from __future__ import annotations

import asyncio
import base64
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, TypeVar
from urllib.parse import quote

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import PermissionDenied, RemoteStoreError, TransportUnavailable
from ..models import FIELD_CREATED_AT
from .base import Document, DocumentStore, auto_id

if TYPE_CHECKING:
    from ..config import RemoteConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://firestore.googleapis.com"
DEFAULT_DATABASE = "(default)"

T = TypeVar("T")

_SIMPLE_FIELD = re.compile(r"[A-Za-z_][A-Za-z_0-9]*")
_FRACTION = re.compile(r"\.(\d+)")


# ---------- Value encoding ----------

def quote_field(name: str) -> str:
    """Quote one segment of a Firestore field path when it is not a simple name."""
    if _SIMPLE_FIELD.fullmatch(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; Firestore may send nanosecond precision."""
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def encode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k): encode_value(v) for k, v in fields.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "nullValue" in value:
        return None
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    raise ValueError(f"Unknown Firestore value: {sorted(value)}")


def decode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


def decode_document(raw: Mapping[str, Any]) -> Document:
    doc = decode_fields(raw.get("fields", {}))
    doc["id"] = str(raw.get("name", "")).rsplit("/", 1)[-1]
    return doc


# ---------- Client ----------

class FirestoreClient(DocumentStore):
    """Cloud Firestore REST v1 client for the glyph collections.

    Calls block on ``requests`` and are pushed to worker threads, so awaiting
    one suspends only the calling task.

    One ``requests.Session`` is shared by those worker threads during
    fan-outs. Its headers are set once in ``__init__`` and never touched
    afterwards; per-call state (api key, body, timeout) is passed to each
    request, and the connection pool underneath is thread-safe. Callers
    that inject their own session must not mutate it while requests are
    in flight.

    Usage:
      client = FirestoreClient(project_id="my-project", api_key=os.environ["GLYPHSHARE_API_KEY"])
    """

    def __init__(
        self,
        project_id: str,
        api_key: Optional[str] = None,
        *,
        database: str = DEFAULT_DATABASE,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        read_attempts: int = 3,
        read_retry_wait: float = 0.5,
    ) -> None:
        if not project_id:
            raise ValueError("Firestore project id must be provided")
        self.project_id = project_id
        self.api_key = api_key
        self.database = database
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.read_attempts = max(1, read_attempts)
        self.read_retry_wait = read_retry_wait
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": "glyphshare/1.0",
            }
        )

    @classmethod
    def from_config(cls, config: "RemoteConfig") -> "FirestoreClient":
        return cls(
            project_id=config.project_id,
            api_key=config.api_key,
            database=config.database,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    @property
    def database_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database}"

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/v1/{self.database_path}/documents"

    def document_name(self, collection: str, doc_id: str) -> str:
        return f"{self.database_path}/documents/{collection}/{doc_id}"

    # ---------- Low-level request wrapper ----------
    def _request(self, method: str, url: str, *, allow_not_found: bool = False, **kwargs: Any) -> requests.Response:
        """Send a request and map failures onto the error taxonomy.

        With ``allow_not_found`` a 404 response is returned to the caller
        instead of raising.
        """
        params = dict(kwargs.pop("params", None) or {})
        if self.api_key:
            params["key"] = self.api_key
        logger.debug("Firestore %s %s", method, url)
        try:
            resp = self.session.request(method, url, params=params, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransportUnavailable(
                f"Firestore unavailable: please check your internet connection ({e})"
            ) from e
        except requests.RequestException as e:
            raise RemoteStoreError(f"Firestore request failed: {e}") from e

        if resp.status_code == 404 and allow_not_found:
            return resp
        if resp.status_code >= 400:
            raise self._error_for(resp)
        return resp

    @staticmethod
    def _error_for(resp: requests.Response) -> RemoteStoreError:
        status = ""
        message = resp.text
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, list) and body:
            body = body[0]
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            status = str(body["error"].get("status", ""))
            message = str(body["error"].get("message", message))

        code = resp.status_code
        if code in (401, 403) or status in ("PERMISSION_DENIED", "UNAUTHENTICATED"):
            logger.error("Firestore rejected request (%s %s): %s", code, status, message)
            return PermissionDenied(
                f"Permission denied: please check the Firestore security rules ({message})",
                status_code=code,
            )
        if code in (503, 504) or status in ("UNAVAILABLE", "DEADLINE_EXCEEDED"):
            logger.warning("Firestore unavailable (%s %s): %s", code, status, message)
            return TransportUnavailable(
                f"Firestore unavailable: please check your internet connection ({message})",
                status_code=code,
            )
        logger.error("Firestore API error %s: %s", code, message)
        return RemoteStoreError(f"Firestore API error {code}: {message}", status_code=code)

    def _read_with_retry(self, fn: Callable[..., T], *args: Any) -> T:
        retryer = Retrying(
            wait=wait_exponential(multiplier=self.read_retry_wait, min=self.read_retry_wait, max=4),
            stop=stop_after_attempt(self.read_attempts),
            retry=retry_if_exception_type(TransportUnavailable),
            reraise=True,
        )
        return retryer(fn, *args)

    def _commit(self, writes: List[Dict[str, Any]]) -> Dict[str, Any]:
        resp = self._request("POST", f"{self.documents_url}:commit", json={"writes": writes})
        return resp.json()

    # ---------- Blocking operations ----------
    def add_document_sync(self, collection: str, fields: Mapping[str, Any]) -> str:
        doc_id = auto_id()
        payload = {k: v for k, v in fields.items() if k != FIELD_CREATED_AT}
        write = {
            "update": {"name": self.document_name(collection, doc_id), "fields": encode_fields(payload)},
            # Never overwrite: the pool is append-only
            "currentDocument": {"exists": False},
            "updateTransforms": [{"fieldPath": FIELD_CREATED_AT, "setToServerValue": "REQUEST_TIME"}],
        }
        self._commit([write])
        logger.debug("Created %s/%s", collection, doc_id)
        return doc_id

    def merge_fields_sync(self, collection: str, doc_id: str, path: str, mapping: Mapping[str, Any]) -> None:
        if not mapping:
            return
        write = {
            "update": {
                "name": self.document_name(collection, doc_id),
                "fields": {path: encode_value(dict(mapping))},
            },
            # Only the named keys are touched; everything else in the document survives
            "updateMask": {"fieldPaths": [f"{quote_field(path)}.{quote_field(k)}" for k in mapping]},
        }
        self._commit([write])

    def get_document_sync(self, collection: str, doc_id: str) -> Optional[Document]:
        url = f"{self.documents_url}/{quote(collection, safe='')}/{quote(doc_id, safe='')}"
        resp = self._request("GET", url, allow_not_found=True)
        if resp.status_code == 404:
            return None
        return decode_document(resp.json())

    def query_equal_sync(self, collection: str, field: str, value: Any) -> List[Document]:
        body = {
            "structuredQuery": {
                "from": [{"collectionId": collection}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": quote_field(field)},
                        "op": "EQUAL",
                        "value": encode_value(value),
                    }
                },
            }
        }
        resp = self._request("POST", f"{self.documents_url}:runQuery", json=body)
        # One entry per result; an empty result still yields an entry with only readTime
        return [decode_document(item["document"]) for item in resp.json() if "document" in item]

    # ---------- DocumentStore ----------
    async def add_document(self, collection: str, fields: Mapping[str, Any]) -> str:
        return await asyncio.to_thread(self.add_document_sync, collection, fields)

    async def merge_fields(self, collection: str, doc_id: str, path: str, mapping: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self.merge_fields_sync, collection, doc_id, path, mapping)

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        return await asyncio.to_thread(self._read_with_retry, self.get_document_sync, collection, doc_id)

    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]:
        return await asyncio.to_thread(self._read_with_retry, self.query_equal_sync, collection, field, value)

    async def close(self) -> None:
        self.session.close()
