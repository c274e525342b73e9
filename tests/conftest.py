import httpx
import keyring
import pytest
from keyring.errors import PasswordDeleteError

from deploytables.manifest import ManifestStore
from deploytables.models import DeployConfig
from deploytables.tables import TableClient, TableEndpoint

from .fakes import ACCOUNT, ACCOUNT_KEY, BASE_URL, FakeTableService


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Keep profiles and audit logs out of the real config directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for var in ("AZURE_STORAGE_CONNECTION_STRING", "AZURE_STORAGE_ACCOUNT", "AZURE_STORAGE_ACCESS_KEY"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path / "config" / "deploytables"

@pytest.fixture
def table_service() -> FakeTableService:
    return FakeTableService()

@pytest.fixture
def http_client(table_service: FakeTableService) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(table_service.handler), base_url=BASE_URL)

@pytest.fixture
def deploy_config() -> DeployConfig:
    return DeployConfig(storage_account=ACCOUNT, storage_access_key=ACCOUNT_KEY)

@pytest.fixture
def table_client(http_client: httpx.AsyncClient) -> TableClient:
    endpoint = TableEndpoint(account_name=ACCOUNT, account_key=ACCOUNT_KEY, base_url=BASE_URL)
    return TableClient(endpoint, "emberdeploy", client=http_client)

@pytest.fixture
def store(table_client: TableClient) -> ManifestStore:
    return ManifestStore(table_client)

@pytest.fixture
def fake_keyring(monkeypatch):
    """Dict-backed keyring so tests never touch the OS credential store."""
    secrets = {}

    def _delete(service, name):
        if (service, name) not in secrets:
            raise PasswordDeleteError("not found")
        del secrets[(service, name)]

    monkeypatch.setattr(keyring, "set_password", lambda service, name, value: secrets.__setitem__((service, name), value))
    monkeypatch.setattr(keyring, "get_password", lambda service, name: secrets.get((service, name)))
    monkeypatch.setattr(keyring, "delete_password", _delete)
    return secrets
