import pytest
from packaging.version import Version

from pkgsolve.exceptions import RequirementError
from pkgsolve.models.markers import Environment, get_marker


def test_environment_for_python():
    environment = Environment.for_python("3.8.10", sys_platform="win32")
    markers = environment.markers()

    assert markers["python_version"] == "3.8"
    assert markers["python_full_version"] == "3.8.10"
    assert markers["sys_platform"] == "win32"
    assert environment.python_version == Version("3.8.10")


def test_development_python_version():
    environment = Environment(python_full_version="3.13.0+", python_version="3.13")
    assert environment.python_version == Version("3.13.0")


@pytest.mark.parametrize(
    "marker,expected",
    [
        ('python_version >= "3.6"', True),
        ('python_version < "3.10"', False),
        ('sys_platform == "linux" and os_name == "posix"', True),
        ('sys_platform == "win32" or implementation_name == "cpython"', True),
        ('platform_python_implementation == "PyPy"', False),
    ],
)
def test_evaluate_marker(environment, marker, expected):
    assert environment.evaluate(get_marker(marker)) is expected


def test_evaluate_no_marker(environment):
    assert environment.evaluate(None)
    assert environment.evaluate(get_marker(""))


def test_environment_equality():
    assert Environment.for_python("3.10") == Environment.for_python("3.10")
    assert hash(Environment.for_python("3.10")) == hash(Environment.for_python("3.10"))
    assert Environment.for_python("3.10") != Environment.for_python("3.11")


def test_split_extras():
    rest, extras = get_marker('extra == "a" and python_version >= "3"').split_extras()
    assert str(rest) == 'python_version >= "3"'
    assert str(extras) == 'extra == "a"'


def test_invalid_marker():
    with pytest.raises(RequirementError):
        get_marker("os_name ==")
