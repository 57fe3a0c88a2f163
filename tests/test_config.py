import structlog

from mettools.config import MetColumns, MetConfig, configure_logging, default_config, met_data_file, results_dir


def test_default_config_error_sd_matches_environments():
    cfg = default_config()
    assert len(cfg.error_sd) == cfg.n_environments
    assert cfg.columns == MetColumns()


def test_error_sd_cycles_for_larger_trials():
    cfg = MetConfig(n_environments=8)
    assert len(cfg.error_sd) == 8
    assert cfg.error_sd[6] == cfg.error_sd[0]


def test_columns_helpers():
    cols = MetColumns(response="gy")
    assert cols.factors == ("environment", "block", "genotype")
    assert cols.all[-1] == "gy"


def test_result_paths_live_under_results():
    assert met_data_file().name == "met_data.csv"
    assert results_dir("tutorial2").parts[-2:] == ("results", "tutorial2")


def test_configure_logging_filters_below_level(capsys):
    configure_logging("WARNING")
    logger = structlog.get_logger("mettools.test")
    logger.info("hidden event")
    logger.warning("shown event")
    out = capsys.readouterr().out
    assert "hidden event" not in out
    assert "shown event" in out
    configure_logging("INFO")
