"""Test that the project setup is working correctly."""

import token_signal_tracker


def test_version() -> None:
    """Test that version is defined."""
    assert token_signal_tracker.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from token_signal_tracker import alerter, jobs, metrics, providers, scheduler, storage

    # Just verify imports work
    assert providers is not None
    assert storage is not None
    assert metrics is not None
    assert alerter is not None
    assert jobs is not None
    assert scheduler is not None
