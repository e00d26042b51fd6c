"""
Command-line entry point
"""

import logging

import pytest

from config.config import EngineConfig, save_config
from engine import TallyData
from main import build_demo_poll, main


@pytest.fixture
def small_config(tmp_path):
    config = EngineConfig(state_tree_depth=4, initial_voice_credits=25, vote_option_tree_depth=1,
                          message_batch_size=2, vote_options=3, log_level="WARNING")
    path = tmp_path / "engine.yaml"
    save_config(config, path)
    return config, path


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.INFO)


class TestDemo:

    def test_build_demo_poll(self, small_config):
        config, _ = small_config
        registry, poll = build_demo_poll(config, 3)
        assert registry.num_signups == 4
        assert len(poll.messages) == 3
        assert poll.num_signups == 4

    def test_too_many_voters(self, small_config):
        config, _ = small_config
        with pytest.raises(ValueError):
            build_demo_poll(config, 16)

    def test_demo_then_verify(self, small_config, tmp_path):
        _, config_path = small_config
        output_dir = tmp_path / "out"
        assert main(["--config", str(config_path), "--voters", "3", "--output-dir", str(output_dir)]) == 0

        tally_path = output_dir / "tally.json"
        tally = TallyData.load(tally_path)
        assert sum(tally.results) > 0
        assert (output_dir / "process_0.json").exists()

        assert main(["--mode", "verify", "--config", str(config_path), "--tally", str(tally_path),
                     "--commitment", str(tally.new_tally_commitment)]) == 0
        assert main(["--mode", "verify", "--config", str(config_path), "--tally", str(tally_path),
                     "--commitment", str(tally.new_tally_commitment + 1)]) == 1

    def test_verify_needs_tally_path(self, small_config):
        _, config_path = small_config
        with pytest.raises(SystemExit):
            main(["--mode", "verify", "--config", str(config_path)])
