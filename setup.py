from setuptools import setup, find_packages

setup(
    name             = 'commbook-reports',
    version          = '1.0.0',
    description      = 'commbook: communications notebook report engine (digest, escalations, cumulative alerts)',
    author           = 'commbook maintainers',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest>=7', 'httpx>=0.24'],
    },
    entry_points     = {
        'console_scripts': [
            'commbook = commbook.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
