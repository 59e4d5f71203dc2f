"""Tests for main module."""

from todo_mcp import main as main_module


def test_main_starts_uvicorn_with_settings(monkeypatch) -> None:
    calls: list = []
    monkeypatch.setenv("PORT", "4321")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setattr(
        main_module.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs))
    )

    main_module.main()

    ((args, kwargs),) = calls
    assert args == ("todo_mcp.api.asgi:app",)
    assert kwargs["port"] == 4321
    assert kwargs["log_level"] == "debug"
