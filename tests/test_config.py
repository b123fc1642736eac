import pytest

from swivel_prep.config import KB, MB, PrepConfig
from swivel_prep.errors import InvalidArgumentError


def test_defaults():
    config = PrepConfig()
    assert config.num_workers == 1
    assert config.pool_size == 1
    assert config.max_buffer_bytes == 100 * MB
    assert config.max_token_length == 10 * KB
    assert config.timeout is None


def test_pool_size_is_independent_of_chunks():
    assert PrepConfig(num_workers=16).pool_size == 16
    assert PrepConfig(num_workers=16, processes=4).pool_size == 4


def test_buffer_size_is_capped_by_range():
    config = PrepConfig(max_buffer_mb=1)
    assert config.buffer_size_for(10) == 10
    assert config.buffer_size_for(5 * MB) == MB


@pytest.mark.parametrize(
    "kwargs",
    [
        {"num_workers": 0},
        {"processes": 0},
        {"max_buffer_mb": 0},
        {"max_token_length": -1},
        {"timeout": 0},
        {"poll_interval": 0},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(InvalidArgumentError):
        PrepConfig(**kwargs)


def test_config_is_frozen():
    with pytest.raises(AttributeError):
        PrepConfig().num_workers = 2
