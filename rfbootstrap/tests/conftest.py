import pytest

from ..config import Settings
from ..modules.readiness import ReadinessWaiter
from .fakes import FakeClusterApi, FakeHttp, FakeRunner


@pytest.fixture
def settings(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    etc = tmp_path / "etc"
    return Settings(
        kubeconfig_path=home / ".kube" / "config",
        credentials_path=home / ".rapidfort" / "credentials",
        registry_secret_path=home / ".rapidfort" / "rapidfort-registry-secret.yaml",
        bashrc_path=home / ".bashrc",
        rke2_config_dir=etc / "rancher" / "rke2",
        rke2_data_dir=tmp_path / "var" / "lib" / "rancher" / "rke2",
        rke2_binary=tmp_path / "usr" / "local" / "bin" / "rke2",
        rke2_uninstall_script=tmp_path / "usr" / "local" / "bin" / "rke2-uninstall.sh",
        sysctl_path=etc / "sysctl.d" / "k8s.conf",
        fstab_path=etc / "fstab",
        meminfo_path=tmp_path / "meminfo",
        uds_work_dir=tmp_path / "uds-work",
        uds_bin_dir=tmp_path / "bin",
        exemption_dir=tmp_path / "exemptions",
        service_ready_timeout=3,
        service_ready_interval=1,
        node_ready_timeout=3,
        ready_interval=1,
        ingress_ready_timeout=3,
        registry_ready_timeout=3,
        runtime_ready_timeout=3,
        registry_probe_delay=1,
    )


@pytest.fixture
def credentials_file(settings):
    path = settings.credentials_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "# RapidFort credentials\n"
        "access_id=rf-access-123\n"
        "secret_key=s3cr3t==\n"
        "rf_root_url=https://us01.rapidfort.com\n"
    )
    return path


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def waiter(sleeps):
    return ReadinessWaiter(sleep=sleeps.append)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def api():
    return FakeClusterApi()


@pytest.fixture
def http():
    return FakeHttp()
