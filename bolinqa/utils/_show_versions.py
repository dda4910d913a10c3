import os
import platform
import re
import sys
from importlib.metadata import PackageNotFoundError, requires, version


def _get_sys_info():
    """
    Get system-related information.
    """
    return {
        "python": sys.version.replace(os.linesep, " "),
        "executable": sys.executable,
        "machine": platform.platform(),
    }


def _get_deps_info():
    """
    Get information on the package and its dependencies.
    """
    deps = ["setuptools", "pip", "bolinqa"]
    try:
        # Extras are skipped, as they are not needed at runtime.
        for req in requires("bolinqa") or []:
            if "extra ==" not in req:
                match = re.match(r"\s*(?P<dep>[\w\-.]+)", req, flags=re.ASCII)
                if match:
                    deps.append(match.group("dep"))
    except PackageNotFoundError:
        deps.extend(["numpy", "scipy"])
    deps_info = {}
    for module in deps:
        try:
            deps_info[module] = version(module)
        except PackageNotFoundError:
            deps_info[module] = None
    return deps_info


def show_versions():
    """
    Print debugging information.
    """
    print("System settings")
    print("---------------")
    sys_info = _get_sys_info()
    sys_width = max(map(len, sys_info.keys())) + 1
    for k, stat in sys_info.items():
        print(f"{k:>{sys_width}}: {stat}")

    print()
    print("Python dependencies")
    print("-------------------")
    deps_info = _get_deps_info()
    deps_width = max(map(len, deps_info.keys())) + 1
    for k, stat in sorted(deps_info.items()):
        print(f"{k:>{deps_width}}: {stat}")
