import httpx
import pytest

from deploytables.errors import BackendError, ConfigurationError, DuplicateKeyError
from deploytables.models import DeployConfig, RevisionRecord
from deploytables.tables import (
    DEV_ACCOUNT_NAME,
    DEV_TABLE_ENDPOINT,
    TableClient,
    TableEndpoint,
    build_filter,
    parse_connection_string,
    parse_timestamp,
    resolve_endpoint,
    row_key_eq,
    row_key_ne,
)

from .fakes import ACCOUNT, ACCOUNT_KEY, BASE_URL, FakeTableService


def test_parse_connection_string_builds_endpoint():
    endpoint = parse_connection_string(
        f"DefaultEndpointsProtocol=https;AccountName={ACCOUNT};AccountKey={ACCOUNT_KEY};EndpointSuffix=core.windows.net"
    )
    assert endpoint.account_name == ACCOUNT
    assert endpoint.account_key == ACCOUNT_KEY
    assert endpoint.base_url == BASE_URL

def test_parse_connection_string_prefers_table_endpoint():
    endpoint = parse_connection_string(
        f"AccountName={ACCOUNT};AccountKey={ACCOUNT_KEY};TableEndpoint=http://localhost:10002/{ACCOUNT}/"
    )
    assert endpoint.base_url == f"http://localhost:10002/{ACCOUNT}"

def test_parse_connection_string_development_storage():
    endpoint = parse_connection_string("UseDevelopmentStorage=true")
    assert endpoint.account_name == DEV_ACCOUNT_NAME
    assert endpoint.base_url == DEV_TABLE_ENDPOINT

def test_parse_connection_string_missing_key():
    with pytest.raises(ConfigurationError, match="AccountKey"):
        parse_connection_string(f"AccountName={ACCOUNT}")

def test_resolve_endpoint_names_missing_fields():
    with pytest.raises(ConfigurationError) as exc:
        resolve_endpoint(DeployConfig(storage_account=ACCOUNT))
    assert "storage_access_key" in str(exc.value)
    assert "storage_account," not in str(exc.value)

def test_resolve_endpoint_from_account_pair():
    endpoint = resolve_endpoint(DeployConfig(storage_account=ACCOUNT, storage_access_key=ACCOUNT_KEY))
    assert endpoint.base_url == BASE_URL

def test_build_filter_quotes_values():
    assert build_filter("manifest", row_key_eq("it's")) == "PartitionKey eq 'manifest' and RowKey eq 'it''s'"
    assert build_filter("manifest", row_key_ne("demo:current")) == "PartitionKey eq 'manifest' and RowKey ne 'demo:current'"

def test_parse_timestamp_handles_seven_fraction_digits():
    ts = parse_timestamp("2024-03-05T10:20:30.1234567Z")
    assert ts.year == 2024 and ts.second == 30
    assert ts.microsecond == 123456
    assert ts.utcoffset().total_seconds() == 0

def test_parse_timestamp_without_fraction():
    assert parse_timestamp("2024-03-05T10:20:30Z").microsecond == 0
    assert parse_timestamp(None) is None


@pytest.mark.asyncio
async def test_requests_are_signed(table_client: TableClient, table_service):
    await table_client.ensure_table()
    request = table_service.requests[-1]
    assert request.headers["Authorization"].startswith(f"SharedKeyLite {ACCOUNT}:")
    assert "x-ms-date" in request.headers
    assert request.headers["x-ms-version"]

@pytest.mark.asyncio
async def test_ensure_table_is_idempotent(table_client: TableClient, table_service):
    assert await table_client.ensure_table() is True
    assert await table_client.ensure_table() is False
    assert table_service.tables == {"emberdeploy"}

@pytest.mark.asyncio
async def test_insert_returns_server_timestamp(table_client: TableClient):
    await table_client.ensure_table()
    stored = await table_client.insert_entity(RevisionRecord(partition_key="manifest", row_key="demo:1", content="<html>"))
    assert stored.row_key == "demo:1"
    assert stored.content == "<html>"
    assert stored.timestamp is not None

@pytest.mark.asyncio
async def test_insert_duplicate_raises_duplicate_key(table_client: TableClient):
    await table_client.ensure_table()
    record = RevisionRecord(partition_key="manifest", row_key="demo:1", content="a")
    await table_client.insert_entity(record)
    with pytest.raises(DuplicateKeyError) as exc:
        await table_client.insert_entity(record)
    assert exc.value.status_code == 409
    assert exc.value.error_code == "EntityAlreadyExists"

@pytest.mark.asyncio
async def test_insert_other_conflict_is_backend_error(table_client: TableClient, table_service):
    await table_client.ensure_table()
    table_service.insert_conflict = "TableBeingDeleted"
    record = RevisionRecord(partition_key="manifest", row_key="demo:1", content="a")
    with pytest.raises(BackendError) as exc:
        await table_client.insert_entity(record)
    assert not isinstance(exc.value, DuplicateKeyError)
    assert exc.value.status_code == 409
    assert exc.value.error_code == "TableBeingDeleted"

@pytest.mark.asyncio
async def test_insert_or_replace_overwrites(table_client: TableClient):
    await table_client.ensure_table()
    await table_client.insert_or_replace_entity(RevisionRecord(partition_key="manifest", row_key="demo:current", content="demo:1"))
    await table_client.insert_or_replace_entity(RevisionRecord(partition_key="manifest", row_key="demo:current", content="demo:2"))
    rows = await table_client.query_entities("manifest", row_key_eq("demo:current"))
    assert [r.content for r in rows] == ["demo:2"]

@pytest.mark.asyncio
async def test_query_follows_continuation(table_client: TableClient, table_service):
    await table_client.ensure_table()
    for i in range(5):
        await table_client.insert_entity(RevisionRecord(partition_key="manifest", row_key=f"demo:{i}", content=str(i)))
    table_service.page_size = 2

    rows = await table_client.query_entities("manifest", row_key_ne("demo:current"))

    assert sorted(r.row_key for r in rows) == [f"demo:{i}" for i in range(5)]
    gets = [r for r in table_service.requests if r.method == "GET"]
    assert len(gets) == 3
    assert gets[-1].url.params["NextRowKey"] == "demo:4"

@pytest.mark.asyncio
async def test_server_error_is_backend_error(table_client: TableClient, table_service):
    table_service.fail_with = 500
    with pytest.raises(BackendError) as exc:
        await table_client.ensure_table()
    assert exc.value.status_code == 500
    assert not isinstance(exc.value, DuplicateKeyError)

@pytest.mark.asyncio
async def test_query_missing_table_is_backend_error(table_client: TableClient):
    with pytest.raises(BackendError) as exc:
        await table_client.query_entities("manifest", row_key_eq("demo:1"))
    assert exc.value.error_code == "TableNotFound"

@pytest.mark.asyncio
async def test_rejected_credentials_are_reported():
    endpoint = TableEndpoint(account_name="other", account_key=ACCOUNT_KEY, base_url=BASE_URL)
    service = FakeTableService()
    client = TableClient(endpoint, "emberdeploy", client=httpx.AsyncClient(transport=httpx.MockTransport(service.handler), base_url=BASE_URL))
    with pytest.raises(BackendError, match="credentials") as exc:
        await client.ensure_table()
    assert exc.value.status_code == 403

@pytest.mark.asyncio
async def test_transport_error_is_backend_error():
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    endpoint = TableEndpoint(account_name=ACCOUNT, account_key=ACCOUNT_KEY, base_url=BASE_URL)
    client = TableClient(endpoint, "emberdeploy", client=httpx.AsyncClient(transport=httpx.MockTransport(_handler), base_url=BASE_URL))
    with pytest.raises(BackendError, match="connection refused"):
        await client.ensure_table()
