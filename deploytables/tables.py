"""
Azure Table Storage client using httpx.
Handles SharedKeyLite request signing, OData filters and continuation paging.
Entity wire format is translated to RevisionRecord here and nowhere else.
"""
import base64
import hashlib
import hmac
import re
from datetime import datetime
from email.utils import formatdate
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .errors import BackendError, ConfigurationError, DuplicateKeyError
from .models import DeployConfig, FrozenModel, RevisionRecord, RowKeyFilter

API_VERSION = "2019-02-02"
DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"

# Well-known credentials of the local storage emulator (Azurite)
DEV_ACCOUNT_NAME = "devstoreaccount1"
DEV_ACCOUNT_KEY = "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="
DEV_TABLE_ENDPOINT = "http://127.0.0.1:10002/devstoreaccount1"

_TIMESTAMP_RE = re.compile(r"^(?P<base>.+?)(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$")


class TableEndpoint(FrozenModel):
    account_name: str
    account_key: str
    base_url: str

def parse_connection_string(connection_string: str) -> TableEndpoint:
    """Parse an Azure storage connection string into a table endpoint."""
    parts: Dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        name, sep, value = segment.partition("=")
        if not sep:
            raise ConfigurationError(f"Malformed connection string segment: '{name}'")
        parts[name.strip().lower()] = value.strip()

    if parts.get("usedevelopmentstorage", "").lower() == "true":
        return TableEndpoint(
            account_name=DEV_ACCOUNT_NAME,
            account_key=DEV_ACCOUNT_KEY,
            base_url=DEV_TABLE_ENDPOINT,
        )

    account = parts.get("accountname")
    key = parts.get("accountkey")
    missing = [name for name, value in (("AccountName", account), ("AccountKey", key)) if not value]
    if missing:
        raise ConfigurationError(f"Connection string is missing: {', '.join(missing)}")

    base_url = parts.get("tableendpoint")
    if not base_url:
        protocol = parts.get("defaultendpointsprotocol", "https")
        suffix = parts.get("endpointsuffix", DEFAULT_ENDPOINT_SUFFIX)
        base_url = f"{protocol}://{account}.table.{suffix}"

    return TableEndpoint(account_name=account, account_key=key, base_url=base_url.rstrip("/"))

def resolve_endpoint(config: DeployConfig) -> TableEndpoint:
    """Pick the endpoint from a connection string or an account/key pair."""
    if config.connection_string:
        return parse_connection_string(config.connection_string)

    missing = config.missing_credentials()
    if missing:
        raise ConfigurationError(
            "Missing connection string or storage account / access key combination "
            f"(not set: {', '.join(missing)})."
        )
    return TableEndpoint(
        account_name=config.storage_account,
        account_key=config.storage_access_key,
        base_url=f"https://{config.storage_account}.table.{DEFAULT_ENDPOINT_SUFFIX}",
    )

def sign_request(request: httpx.Request, account_name: str, account_key: str) -> None:
    """Add x-ms-date and a SharedKeyLite Authorization header to the request."""
    date = formatdate(usegmt=True)
    request.headers["x-ms-date"] = date

    path = request.url.raw_path.split(b"?", 1)[0].decode("ascii")
    resource = f"/{account_name}{path}"
    comp = request.url.params.get("comp")
    if comp:
        resource += f"?comp={comp}"

    try:
        secret = base64.b64decode(account_key)
    except ValueError as e:
        raise ConfigurationError(f"Storage access key is not valid base64: {e}") from e
    digest = hmac.new(secret, f"{date}\n{resource}".encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("ascii")
    request.headers["Authorization"] = f"SharedKeyLite {account_name}:{signature}"

def quote_odata(value: str) -> str:
    """Quote a string literal for an OData expression."""
    return "'" + value.replace("'", "''") + "'"

def row_key_eq(value: str) -> RowKeyFilter:
    return RowKeyFilter(op="eq", value=value)

def row_key_ne(value: str) -> RowKeyFilter:
    return RowKeyFilter(op="ne", value=value)

def build_filter(partition: str, row_filter: RowKeyFilter) -> str:
    return f"PartitionKey eq {quote_odata(partition)} and RowKey {row_filter.op} {quote_odata(row_filter.value)}"

def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse service timestamps, which carry up to 7 fractional digits."""
    if not value:
        return None
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise BackendError(f"Unexpected timestamp from table service: {value!r}")
    frac = (match.group("frac") or "").ljust(6, "0")[:6]
    tz = match.group("tz") or "Z"
    if tz == "Z":
        tz = "+00:00"
    try:
        return datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")
    except ValueError as e:
        raise BackendError(f"Unexpected timestamp from table service: {value!r}") from e

def entity_to_record(entity: Dict[str, Any]) -> RevisionRecord:
    return RevisionRecord(
        partition_key=entity["PartitionKey"],
        row_key=entity["RowKey"],
        content=entity.get("content") or "",
        timestamp=parse_timestamp(entity.get("Timestamp")),
    )

def record_to_entity(record: RevisionRecord) -> Dict[str, Any]:
    return {
        "PartitionKey": record.partition_key,
        "RowKey": record.row_key,
        "content": record.content,
    }

def _error_code(response: httpx.Response) -> Optional[str]:
    """Extract the service error code from an OData error body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("odata.error") or body.get("error")
        if isinstance(err, dict) and err.get("code"):
            return str(err["code"])
    return response.headers.get("x-ms-error-code")


class TableClient:
    """
    Thin async adapter over one Azure table.
    No retries are performed here; every failure surfaces as BackendError.
    """
    def __init__(
        self,
        endpoint: TableEndpoint,
        table_name: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.table_name = table_name
        self._client = client or httpx.AsyncClient(
            http2=True,
            base_url=endpoint.base_url,
            timeout=timeout,
        )
        self._owns_client = client is None
        self._headers = {
            "Accept": "application/json;odata=nometadata",
            "x-ms-version": API_VERSION,
            "DataServiceVersion": "3.0;NetFx",
            "MaxDataServiceVersion": "3.0;NetFx",
        }

    @classmethod
    def from_config(cls, config: DeployConfig, client: Optional[httpx.AsyncClient] = None) -> "TableClient":
        return cls(resolve_endpoint(config), config.table_name, timeout=config.timeout, client=client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TableClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def _entity_path(self, partition: str, row_key: str) -> str:
        pk = quote(partition.replace("'", "''"), safe="")
        rk = quote(row_key.replace("'", "''"), safe="")
        return f"/{self.table_name}(PartitionKey='{pk}',RowKey='{rk}')"

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Sign and send one request, wrapping transport failures."""
        request = self._client.build_request(
            method, path, params=params, json=json, headers={**self._headers, **(headers or {})}
        )
        sign_request(request, self.endpoint.account_name, self.endpoint.account_key)
        try:
            return await self._client.send(request)
        except httpx.HTTPError as e:
            raise BackendError(f"Table service request failed: {method} {path}: {e}") from e

    def _backend_error(self, response: httpx.Response, action: str) -> BackendError:
        code = _error_code(response)
        if response.status_code in (401, 403):
            message = f"Table service rejected credentials while trying to {action} ({response.status_code} {code or ''})."
        else:
            message = f"Failed to {action}: {response.status_code} {code or response.text}"
        return BackendError(message.strip(), status_code=response.status_code, error_code=code)

    async def ensure_table(self) -> bool:
        """Create the table if absent. Returns True when it was created by this call."""
        resp = await self._send(
            "POST", "/Tables",
            json={"TableName": self.table_name},
            headers={"Prefer": "return-no-content"},
        )
        if resp.status_code in (201, 204):
            return True
        if resp.status_code == 409 and _error_code(resp) == "TableAlreadyExists":
            return False
        raise self._backend_error(resp, f"create table '{self.table_name}'")

    async def query_entities(self, partition: str, row_filter: RowKeyFilter) -> List[RevisionRecord]:
        """Return every entity in the partition matching the row key predicate."""
        params = {"$filter": build_filter(partition, row_filter)}
        records: List[RevisionRecord] = []

        while True:
            resp = await self._send("GET", f"/{self.table_name}()", params=params)
            if resp.status_code != 200:
                raise self._backend_error(resp, f"query table '{self.table_name}'")
            try:
                body = resp.json()
                records.extend(entity_to_record(e) for e in body.get("value", []))
            except (ValueError, KeyError, AttributeError) as e:
                raise BackendError(f"Malformed query response from table service: {e}") from e

            next_pk = resp.headers.get("x-ms-continuation-NextPartitionKey")
            next_rk = resp.headers.get("x-ms-continuation-NextRowKey")
            if not next_pk:
                return records
            params = {"$filter": params["$filter"], "NextPartitionKey": next_pk}
            if next_rk:
                params["NextRowKey"] = next_rk

    async def insert_entity(self, record: RevisionRecord) -> RevisionRecord:
        """Insert a new entity, failing with DuplicateKeyError if the key is taken."""
        resp = await self._send(
            "POST", f"/{self.table_name}",
            json=record_to_entity(record),
            headers={"Prefer": "return-content"},
        )
        if resp.status_code == 201:
            try:
                return entity_to_record(resp.json())
            except (ValueError, KeyError) as e:
                raise BackendError(f"Malformed insert response from table service: {e}") from e
        if resp.status_code == 204:
            return record
        if resp.status_code == 409 and _error_code(resp) == "EntityAlreadyExists":
            raise DuplicateKeyError(
                f"Entity {record.partition_key}/{record.row_key} already exists.",
                status_code=409,
                error_code="EntityAlreadyExists",
            )
        raise self._backend_error(resp, f"insert {record.row_key}")

    async def insert_or_replace_entity(self, record: RevisionRecord) -> None:
        """Unconditionally write the entity, replacing any existing one."""
        resp = await self._send(
            "PUT", self._entity_path(record.partition_key, record.row_key),
            json=record_to_entity(record),
        )
        if resp.status_code not in (200, 204):
            raise self._backend_error(resp, f"write {record.row_key}")
