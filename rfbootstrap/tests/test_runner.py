import pytest

from ..modules.errors import CommandError
from ..modules.runner import CommandRunner


def test_captures_output_and_merges_env():
    runner = CommandRunner(env={'KUBECONFIG': '/tmp/kubeconfig'})
    result = runner.run(['sh', '-c', 'echo "$KUBECONFIG $EXTRA"'], env={'EXTRA': 'yes'})
    assert result.ok
    assert result.stdout.strip() == '/tmp/kubeconfig yes'


def test_nonzero_exit():
    result = CommandRunner().run(['sh', '-c', 'echo oops >&2; exit 3'])
    assert not result.ok
    assert result.returncode == 3
    assert 'oops' in result.stderr


def test_check_raises_command_error():
    with pytest.raises(CommandError) as exc:
        CommandRunner().run(['sh', '-c', 'exit 2'], check=True)
    assert exc.value.returncode == 2


def test_missing_binary():
    result = CommandRunner().run(['definitely-not-a-real-binary-xyz'])
    assert result.returncode == 127
    assert not result.ok


def test_timeout():
    result = CommandRunner(timeout=1).run(['sleep', '5'])
    assert result.timed_out
    assert result.returncode is None
    assert not result.ok


def test_input_is_fed_to_stdin():
    result = CommandRunner().run(['sh', '-'], input='echo from-stdin\n')
    assert result.stdout.strip() == 'from-stdin'


def test_with_env_does_not_mutate_original():
    base = CommandRunner(env={'A': '1'})
    extended = base.with_env(B='2')
    assert base.env == {'A': '1'}
    assert extended.env == {'A': '1', 'B': '2'}
