#!/usr/bin/env python3
import os
import re
import runpy
import shutil
from pathlib import Path

from setuptools import Command, find_packages, setup

CWD = Path(__file__).resolve(strict=True).parent

# The package is not imported here, as its dependencies may not be installed
# yet. The version and the minimum dependencies are read from the sources.
min_deps = runpy.run_path(str(CWD / 'bolinqa' / '_min_dependencies.py'))
with open(CWD / 'bolinqa' / '__init__.py') as fd:
    VERSION = re.search(r'^__version__ = "(?P<version>[^"]+)"', fd.read(), re.MULTILINE).group('version')


class CleanCommand(Command):
    description = 'Remove build artifacts from the source tree'
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        # Remove the 'build', 'dist', '*.egg-info', '.pytest_cache', and '.tox'
        # directories from the current working directory.
        shutil.rmtree(CWD / 'build', ignore_errors=True)
        shutil.rmtree(CWD / 'dist', ignore_errors=True)
        for dirname in CWD.glob('*.egg-info'):
            shutil.rmtree(dirname)
        shutil.rmtree(CWD / '.pytest_cache', ignore_errors=True)
        shutil.rmtree(CWD / '.tox', ignore_errors=True)

        # Remove the 'MANIFEST' file.
        if Path(CWD, 'MANIFEST').is_file():
            os.unlink(CWD / 'MANIFEST')

        for dirpath, dirnames, _ in os.walk(CWD / 'bolinqa'):
            dirpath = Path(dirpath).resolve(strict=True)
            for dirname in dirnames:
                if dirname == '__pycache__':
                    shutil.rmtree(dirpath / dirname)


def setup_package():
    metadata = dict(
        name='bolinqa',
        version=VERSION,
        description='BOund and LINear constrained optimization by Quadratic Approximation',
        long_description=open(CWD / 'README.rst').read().rstrip(),
        long_description_content_type='text/x-rst',
        keywords='derivative-free optimization, trust-region method, quadratic interpolation',
        license='BSD-3-Clause',
        classifiers=[
            'Development Status :: 2 - Pre-Alpha',
            'Intended Audience :: Developers',
            'Intended Audience :: Education',
            'Intended Audience :: Science/Research',
            'License :: OSI Approved :: BSD License',
            'Operating System :: MacOS',
            'Operating System :: Microsoft :: Windows',
            'Operating System :: POSIX',
            'Operating System :: POSIX :: Linux',
            'Operating System :: Unix',
            'Programming Language :: Python',
            'Programming Language :: Python :: 3',
            'Programming Language :: Python :: 3 :: Only',
            'Programming Language :: Python :: Implementation :: CPython',
            'Topic :: Scientific/Engineering',
            'Topic :: Scientific/Engineering :: Mathematics',
            'Topic :: Software Development',
            'Topic :: Software Development :: Libraries',
            'Topic :: Software Development :: Libraries :: Python Modules',
        ],
        platforms=['Linux', 'macOS', 'Unix', 'Windows'],
        cmdclass={'clean': CleanCommand},
        python_requires='>=3.8',
        packages=find_packages(include=['bolinqa', 'bolinqa.*']),
        install_requires=min_deps['tag_to_pkgs']['install'],
        extras_require={'tests': min_deps['tag_to_pkgs']['tests']},
        zip_safe=False,
    )
    setup(**metadata)


if __name__ == '__main__':
    setup_package()
