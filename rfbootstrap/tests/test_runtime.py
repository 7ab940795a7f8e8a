import pytest

from ..modules.credentials import Credentials
from ..modules.errors import DeployError, DeployFailure
from ..modules.manifests import ManifestApplier
from ..modules.models import ClusterTarget, ClusterVariant, PodInfo, RuntimeOptions
from ..modules.runtime import (CREDENTIALS_SECRET, RuntimeDeployer, build_overrides,
                               helm_install_args, resolve_use_local_registry)
from .fakes import FakeApplier, FakeClusterApi, FakeProbe, FakeProvisioner, FakeRunner


def rke2_target(settings, registry_ip=None):
    return ClusterTarget(ClusterVariant.RKE2, 'rke2', settings.kubeconfig_path, registry_ip=registry_ip)


def uds_target(settings):
    return ClusterTarget(ClusterVariant.UDS, 'uds-jira', settings.kubeconfig_path)


def running_pods(namespace):
    return {namespace: [PodInfo('rfruntime-sentry-abc', 'Running', ready=True)]}


def make_deployer(settings, waiter, runner=None, api=None, applier=None, ready=True, host_ip='10.0.0.5'):
    runner = runner or FakeRunner(tools={'helm'})
    return RuntimeDeployer(
        settings, runner, FakeProbe(runner, host_ip=host_ip),
        api if api is not None else FakeClusterApi(pods=running_pods('rapidfort')),
        applier or FakeApplier(), FakeProvisioner(ready=ready), waiter,
    )


def test_local_registry_overrides(settings):
    overrides = build_overrides(rke2_target(settings), '192.168.1.50', True, '3.1.32-dev6',
                                pull_secret_present=True)
    assert overrides['registry'] == '192.168.1.50:5000/rapidfort'
    assert overrides['imageTag'] == '3.1.32-dev6'
    assert overrides['imagePullPolicy'] == 'Always'
    assert 'imagePullSecrets.names' not in overrides
    assert overrides['ClusterName'] == 'rke2'
    assert overrides['variant'] == 'generic'


def test_pull_secret_overrides_without_local_registry(settings):
    overrides = build_overrides(uds_target(settings), '10.0.0.5', False, pull_secret_present=True)
    assert overrides['imagePullSecrets.names'] == '{rapidfort-registry-secret}'
    assert 'registry' not in overrides
    assert overrides['variant'] == 'k3s'
    assert overrides['ClusterCaption'] == 'UDS Cluster'


def test_local_registry_without_tag(settings):
    overrides = build_overrides(rke2_target(settings), '192.168.1.50', True)
    assert 'imageTag' not in overrides
    assert overrides['imagePullPolicy'] == 'Always'


@pytest.mark.parametrize("flag,env_value,expected", [
    (None, True, True),
    (None, False, False),
    (False, True, False),
    (True, False, True),
])
def test_resolve_use_local_registry(flag, env_value, expected):
    assert resolve_use_local_registry(flag, env_value) is expected


def test_helm_install_args():
    args = helm_install_args('rapidfort', {'a': '1', 'b': 'x'}, '5m')
    assert args == [
        'upgrade', '--install', 'rfruntime', 'oci://quay.io/rapidfort/runtime', '--namespace', 'rapidfort',
        '--set', 'a=1', '--set', 'b=x', '--wait', '--timeout=5m',
    ]


def test_cluster_checked_before_helm(settings, waiter, credentials_file):
    deployer = make_deployer(settings, waiter, runner=FakeRunner(), ready=False)
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.CLUSTER_UNREACHABLE


def test_unreachable_api(settings, waiter, credentials_file):
    deployer = make_deployer(settings, waiter, api=FakeClusterApi(reachable=False))
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.CLUSTER_UNREACHABLE


def test_helm_checked_before_credentials(settings, waiter):
    deployer = make_deployer(settings, waiter, runner=FakeRunner())
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.NO_HELM


def test_incomplete_credentials_create_no_secret(settings, waiter):
    settings.credentials_path.parent.mkdir(parents=True)
    settings.credentials_path.write_text("access_id=abc\n")
    applier = FakeApplier()
    deployer = make_deployer(settings, waiter, applier=applier)

    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))

    assert exc.value.reason is DeployFailure.NO_CREDENTIALS
    assert applier.applied == []
    assert not deployer.runner.ran('helm upgrade')


def test_no_host_ip(settings, waiter, credentials_file):
    applier = FakeApplier()
    deployer = make_deployer(settings, waiter, applier=applier, host_ip=None)
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.NO_HOST_IP
    assert applier.applied == []


def test_deploy_rke2_with_local_registry(settings, waiter, credentials_file):
    applier = FakeApplier()
    deployer = make_deployer(settings, waiter, applier=applier)

    result = deployer.deploy(
        rke2_target(settings, registry_ip='192.168.1.50'),
        RuntimeOptions(local_registry=True, image_tag='3.1.32-dev6'),
    )

    assert applier.kinds == ['Namespace', 'Secret']
    secret, namespace = applier.applied[1]
    assert namespace == 'rapidfort'
    assert secret['metadata']['name'] == CREDENTIALS_SECRET
    assert secret['stringData']['RF_ACCESS_ID'] == 'rf-access-123'

    helm = next(call for call in deployer.runner.calls if call.cmd[:3] == ['helm', 'upgrade', '--install'])
    assert '--set' in helm.cmd
    assert 'registry=192.168.1.50:5000/rapidfort' in helm.cmd
    assert 'imageTag=3.1.32-dev6' in helm.cmd
    assert 'imagePullPolicy=Always' in helm.cmd
    assert not any(arg.startswith('imagePullSecrets.names=') for arg in helm.cmd)

    assert result.namespace == 'rapidfort'
    assert [pod.name for pod in result.pods] == ['rfruntime-sentry-abc']


def test_registry_ip_option_wins(settings, waiter, credentials_file):
    deployer = make_deployer(settings, waiter)
    result = deployer.deploy(rke2_target(settings, registry_ip='10.1.1.1'),
                             RuntimeOptions(registry_ip='10.9.9.9', local_registry=True))
    assert result.overrides['registry'] == '10.9.9.9:5000/rapidfort'


def test_env_local_registry_default(settings, waiter, credentials_file):
    settings.use_local_registry = True
    deployer = make_deployer(settings, waiter)
    assert deployer.deploy(rke2_target(settings)).overrides['registry'] == '10.0.0.5:5000/rapidfort'

    result = deployer.deploy(rke2_target(settings), RuntimeOptions(local_registry=False))
    assert 'registry' not in result.overrides


def test_deploy_uds_labels_and_restarts_jira(settings, waiter, credentials_file):
    settings.registry_secret_path.write_text("apiVersion: v1\nkind: Secret\nmetadata:\n  name: x\n")
    api = FakeClusterApi(namespaces={'default', 'jira'}, pods=running_pods('default'))
    applier = FakeApplier()
    deployer = make_deployer(settings, waiter, api=api, applier=applier)

    result = deployer.deploy(uds_target(settings))

    assert applier.kinds == ['Secret']
    assert applier.files == [(str(settings.registry_secret_path), 'default')]
    assert result.overrides['imagePullSecrets.names'] == '{rapidfort-registry-secret}'
    assert api.labeled == [('jira', {'rapidfort.io/profile': 'enabled'})]
    assert api.deleted_pods == ['jira']


def test_helm_failure_dumps_diagnostics(settings, waiter, credentials_file):
    runner = FakeRunner(tools={'helm'}, results={'helm upgrade': (1, '')})
    deployer = make_deployer(settings, waiter, runner=runner)
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.INSTALL_FAILED
    assert runner.ran('kubectl describe pods -n rapidfort -l app=rfruntime')


def test_pods_never_ready(settings, waiter, credentials_file):
    api = FakeClusterApi(pods={'rapidfort': [PodInfo('rfruntime-abc', 'Pending', ready=False)]})
    deployer = make_deployer(settings, waiter, api=api)
    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))
    assert exc.value.reason is DeployFailure.NOT_READY
    assert deployer.runner.ran('kubectl describe pods')


def test_teardown_skips_when_release_absent(settings, waiter):
    runner = FakeRunner(tools={'helm'}, results={'helm list': (0, 'other-release\n')})
    api = FakeClusterApi(namespaces={'rapidfort'})
    deployer = make_deployer(settings, waiter, runner=runner, api=api)
    assert deployer.teardown(rke2_target(settings)) == []
    assert not runner.ran('helm uninstall')


def test_teardown_removes_release_and_namespace(settings, waiter):
    runner = FakeRunner(tools={'helm'}, results={'helm list': (0, 'rfruntime\n')})
    api = FakeClusterApi(namespaces={'rapidfort'})
    deployer = make_deployer(settings, waiter, runner=runner, api=api)

    outcomes = deployer.teardown(rke2_target(settings))

    assert all(o.ok for o in outcomes)
    assert runner.ran('helm uninstall rfruntime -n rapidfort')
    assert api.deleted_namespaces == ['rapidfort']


def test_teardown_keeps_default_namespace(settings, waiter):
    runner = FakeRunner(tools={'helm'}, results={'helm list': (0, 'rfruntime\n')})
    api = FakeClusterApi(namespaces={'default'})
    deployer = make_deployer(settings, waiter, runner=runner, api=api)
    deployer.teardown(uds_target(settings))
    assert api.deleted_namespaces == []


def test_explicit_credentials_skip_file(settings, waiter):
    applier = FakeApplier()
    deployer = make_deployer(settings, waiter, applier=applier)
    creds = Credentials('id-from-caller', 'key', 'https://rf.example.com')

    deployer.deploy(rke2_target(settings), credentials=creds)

    secret = applier.applied[-1][0]
    assert secret['stringData']['RF_ACCESS_ID'] == 'id-from-caller'


def test_malformed_pull_secret_is_install_failure(settings, waiter, credentials_file):
    settings.registry_secret_path.write_text("kind: [unclosed\n")
    applier = FakeApplier()
    applier.apply_file = ManifestApplier(FakeClusterApi()).apply_file
    deployer = make_deployer(settings, waiter, applier=applier)

    with pytest.raises(DeployError) as exc:
        deployer.deploy(rke2_target(settings))

    assert exc.value.reason is DeployFailure.INSTALL_FAILED
    assert not deployer.runner.ran('helm upgrade')
