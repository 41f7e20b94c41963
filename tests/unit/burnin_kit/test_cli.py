"""
Unit tests for the disk-burnin command line.
"""

from unittest.mock import patch

import pytest
import yaml

from burnin_kit import cli
from burnin_kit.config import BurnInConfig
from burnin_kit.device.models import PatternMode, RunMode
from burnin_kit.exceptions import BurnInError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in BurnInConfig.ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def dirs(tmp_path):
    return ['--log-dir', str(tmp_path / 'logs'), '--status-dir', str(tmp_path / 'status')]


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestParser:

    def test_target_required(self, capsys):
        assert cli.main([]) == cli.EXIT_USAGE
        assert "--device, --multi or --self-test" in capsys.readouterr().err

    def test_targets_are_exclusive(self):
        with pytest.raises(SystemExit) as excinfo:
            parse('--device', '/dev/sdb', '--self-test')
        assert excinfo.value.code == 2

    def test_plan_and_run_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse('--device', '/dev/sdb', '--plan', '--run')

    @pytest.mark.parametrize('flags, mode', [
        ([], RunMode.NON_DESTRUCTIVE),
        (['--plan'], RunMode.PLAN),
        (['--run'], RunMode.DESTRUCTIVE),
    ])
    def test_run_mode(self, flags, mode):
        assert cli.run_mode_of(parse('--device', '/dev/sdb', *flags)) is mode

    def test_unset_flags_do_not_override(self):
        assert cli.flag_overrides(parse('--device', '/dev/sdb')) == {}

    def test_flag_overrides(self):
        args = parse('--device', '/dev/sdb', '--no-badblocks', '--conveyance', '--patterns', 'single',
                     '--block-size', '4096', '--auto-push')
        assert cli.flag_overrides(args) == {
            'badblocks': False,
            'smart_conveyance': True,
            'bb_patterns': 'single',
            'bb_block_size': 4096,
            'auto_push': True,
        }


class TestBuildSettings:

    def test_precedence(self, tmp_path):
        config = tmp_path / 'burnin.yaml'
        config.write_text(yaml.safe_dump({'burnin': {'bb_block_size': 4096, 'bb_patterns': 'single'}}))
        environ = {'BB_BLOCK_SIZE': '16384', 'GIT_BRANCH': 'racks'}

        settings = cli.build_settings(parse('--device', '/dev/sdb', '--config', str(config)), environ)
        assert settings.bb_block_size == 16384
        assert settings.bb_patterns == 'single'
        assert settings.git_branch == 'racks'

        args = parse('--device', '/dev/sdb', '--config', str(config), '--block-size', '65536')
        assert cli.build_settings(args, environ).bb_block_size == 65536

    def test_bad_config_is_a_usage_error(self, tmp_path):
        assert cli.main(['--device', '/dev/sdb', '--config', str(tmp_path / 'missing.yaml')]) == cli.EXIT_USAGE

    def test_invalid_environment_is_a_usage_error(self, monkeypatch):
        monkeypatch.setenv('BB_PATTERNS', 'triple')
        assert cli.main(['--device', '/dev/sdb']) == cli.EXIT_USAGE


class TestMain:

    def test_single_device(self, dirs):
        with patch('burnin_kit.cli.run_single', return_value=True) as run_single:
            assert cli.main(['--device', '/dev/sdb', '--run', *dirs]) == cli.EXIT_OK
        settings, device, run_mode, _ = run_single.call_args.args
        assert device == '/dev/sdb'
        assert run_mode is RunMode.DESTRUCTIVE

    def test_failed_burnin(self, dirs):
        with patch('burnin_kit.cli.run_single', return_value=False):
            assert cli.main(['--device', '/dev/sdb', *dirs]) == cli.EXIT_FAILED

    def test_environment_failure(self, dirs):
        with patch('burnin_kit.cli.run_single', side_effect=BurnInError("Must run as root (use sudo).")):
            assert cli.main(['--device', '/dev/sdb', *dirs]) == cli.EXIT_FAILED

    def test_multi(self, dirs):
        with patch('burnin_kit.cli.MultiDeviceOrchestrator') as orchestrator:
            orchestrator.return_value.run.return_value = True
            assert cli.main(['--multi', '/dev/sdb /dev/sdc', '--patterns', 'single', *dirs]) == cli.EXIT_OK
        orchestrator.return_value.run.assert_called_once_with(
            ['/dev/sdb', '/dev/sdc'], RunMode.NON_DESTRUCTIVE, PatternMode.SINGLE
        )

    def test_self_test(self, dirs, tmp_path):
        with patch('burnin_kit.clock.Clock.sleep'):
            assert cli.main(['--self-test', *dirs]) == cli.EXIT_OK

        (identity_dir,) = (tmp_path / 'status').iterdir()
        assert identity_dir.name.startswith('SELFTEST_')
        assert '"selftest_complete"' in (identity_dir / 'status.json').read_text()
        assert list((tmp_path / 'logs').glob('burnin-SELFTEST_*.log'))

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            cli.main(['--version'])
        assert '1.0.0' in capsys.readouterr().out
