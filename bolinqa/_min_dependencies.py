import argparse

NUMPY_MIN_VERSION = '1.17.0'
SCIPY_MIN_VERSION = '1.5.0'
PYTEST_MIN_VERSION = '5.0.1'

dependent_pkgs = dict(
    numpy=(NUMPY_MIN_VERSION, 'install'),
    scipy=(SCIPY_MIN_VERSION, 'install'),
    pytest=(PYTEST_MIN_VERSION, 'tests'),
)

tag_to_pkgs = {extra: [] for extra in {'install', 'tests'}}
for pkg, (min_version, extras) in dependent_pkgs.items():
    for extra in extras.split(', '):
        tag_to_pkgs[extra].append(f'{pkg}>={min_version}')

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Minimum dependencies')

    parser.add_argument('package', choices=dependent_pkgs)
    args = parser.parse_args()
    min_version = dependent_pkgs[args.package][0]
    print(min_version)
