import pytest

from matrixci.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def console():
    c = Console()
    set_console(c)
    return c
