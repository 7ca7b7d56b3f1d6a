"""
Pytest configuration for the ccbuild test suite.

Tests marked ``integration`` compile with the host's real C compiler and
archiver. pyproject.toml deselects them by default; ``--full`` runs them too.
"""


def pytest_addoption(parser):
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Also run integration tests against the host C toolchain",
    )


def pytest_configure(config):
    if not config.getoption("--full"):
        return
    # Only the default deselection is cleared; other -m expressions are kept
    if config.getoption("-m", "") == "not integration":
        config.option.markexpr = ""
