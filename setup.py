from setuptools import setup, find_packages

setup(
    name='ardactl',
    version='0.1.0',
    packages=find_packages(exclude=['ardactl.tests', 'ardactl.tests.*']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'pydantic>=2',
        'PyYAML',
        'jsonschema',
        'python-dotenv',
    ],
    extras_require={
        'mpi': ['mpi4py'],
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'ardactl=ardactl.cli:app'
        ]
    },
    description='Distributed metagenomic classification runs across a cluster of nodes',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
