from bolinqa import show_versions
from bolinqa.utils._show_versions import _get_deps_info, _get_sys_info


def test_get_sys_info():
    sys_info = _get_sys_info()
    assert set(sys_info) == {'python', 'executable', 'machine'}


def test_get_deps_info():
    deps_info = _get_deps_info()
    assert 'numpy' in deps_info
    assert 'scipy' in deps_info
    assert deps_info['numpy'] is not None


def test_show_versions(capsys):
    show_versions()
    captured = capsys.readouterr()
    assert 'System settings' in captured.out
    assert 'Python dependencies' in captured.out
    assert 'numpy' in captured.out
