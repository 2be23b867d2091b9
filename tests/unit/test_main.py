import pytest
import structlog

import scanner.main as main


def test_configure_logging_accepts_levels():
    main.configure_logging("DEBUG")
    main.configure_logging("WARNING")
    structlog.get_logger("t").info("configured")
    structlog.reset_defaults()


def test_run_exits_on_bad_config(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda: None)
    monkeypatch.setenv("MIN_VOLUME", "lots")

    def _never(*a, **kw):
        raise AssertionError("scanner must not start with bad config")

    monkeypatch.setattr(main.asyncio, "run", _never)
    with pytest.raises(SystemExit) as ei:
        main.run()
    assert ei.value.code == 2
    structlog.reset_defaults()
