from datetime import datetime, timezone

from deploytables import doctor
from deploytables.config import save_profile
from deploytables.doctor import run_diagnostics
from deploytables.models import DeployProfile


def test_diagnostics_without_profiles_skip_network():
    checks = {c.name: c for c in run_diagnostics()}

    assert checks["2. Profile Schema"].status == "warn"
    assert checks["3. Credentials"].status == "warn"
    assert checks["4. Table Service"].status == "warn"
    assert checks["6. Dependencies"].status == "pass"

def test_diagnostics_report_missing_credentials(fake_keyring):
    profile = DeployProfile(
        name="site",
        project="demo",
        dist_dir="/tmp/dist",
        secret_ref="deploytables_site_secret",
        created_at=datetime.now(timezone.utc),
    )
    save_profile(profile, None)

    checks = {c.name: c for c in run_diagnostics("site")}

    assert checks["2. Profile Schema"].status == "pass"
    assert checks["3. Credentials"].status == "fail"
    assert "storage_access_key" in checks["3. Credentials"].detail
    assert checks["4. Table Service"].status == "warn"

def test_credentials_check_masks_key(fake_keyring, monkeypatch):
    profile = DeployProfile(
        name="site",
        project="demo",
        dist_dir="/tmp/dist",
        storage_account="devacct",
        secret_ref="deploytables_site_secret",
        created_at=datetime.now(timezone.utc),
    )
    save_profile(profile, "c2VjcmV0LWtleQ==")

    async def _offline_probe(config):
        return 5

    monkeypatch.setattr(doctor, "_probe_table", _offline_probe)

    checks = {c.name: c for c in run_diagnostics("site")}

    assert checks["3. Credentials"].status == "pass"
    assert "c2VjcmV0LWtleQ==" not in checks["3. Credentials"].detail
    assert checks["3. Credentials"].detail.endswith("eQ==")
    assert checks["4. Table Service"].status == "pass"
