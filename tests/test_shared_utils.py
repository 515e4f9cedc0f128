import logging

import pytest

from shared_utils import ensure_directory, get_logger, load_config, safe_filename, setup_logging
from shared_utils.config_utils import CONFIG_ENV_VAR


def test_load_config_from_explicit_path(tmp_path):
    path = tmp_path / 'custom.yaml'
    path.write_text('study:\n  start_year: 2015\n')

    config = load_config(path)

    assert config['study']['start_year'] == 2015
    assert config['_meta']['config_file'] == str(path.absolute())


def test_load_config_from_environment(tmp_path, monkeypatch):
    path = tmp_path / 'env.yaml'
    path.write_text('logging:\n  level: DEBUG\n')
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    assert load_config()['logging']['level'] == 'DEBUG'


def test_load_config_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'missing.yaml')


def test_component_loggers_share_root():
    assert get_logger('zonal_histogram').name == 'valid_obs.zonal_histogram'


def test_setup_logging_writes_to_file(tmp_path):
    log_file = tmp_path / 'logs' / 'run.log'
    root = logging.getLogger()
    previous = list(root.handlers)
    try:
        logger = setup_logging('INFO', 'pipeline', log_file=log_file)
        logger.info('mosaics ready')
        for handler in root.handlers:
            handler.flush()
        assert 'mosaics ready' in log_file.read_text()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous


def test_safe_filename():
    assert safe_filename('S2 ValidObs 2019/7') == 'S2_ValidObs_2019_7'
    assert safe_filename('CVE9_2015-07-01') == 'CVE9_2015-07-01'


def test_ensure_directory(tmp_path):
    path = ensure_directory(tmp_path / 'a' / 'b')

    assert path.is_dir()
