"""Import smoke tests for tinyclaw."""


def test_import():
    """Verify the package can be imported."""
    import tinyclaw

    assert isinstance(tinyclaw.__version__, str)


def test_processor_import():
    """Verify processor module exposes its entry point."""
    from tinyclaw import processor

    assert hasattr(processor, "main")


def test_sessions_import():
    """Verify sessions module exposes its entry point."""
    from tinyclaw import sessions

    assert hasattr(sessions, "main")


def test_watch_import():
    """Verify watch module exposes its entry point."""
    from tinyclaw import watch

    assert hasattr(watch, "main")
