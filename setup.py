from setuptools import setup, find_packages

setup(
    name='rfbootstrap',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer',
        'kubernetes',
        'pyyaml',
        'python-dotenv',
        'requests',
        'tenacity',
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
        ],
    },
    entry_points={
        'console_scripts': [
            'rfbootstrap=rfbootstrap.cli:app'
        ]
    },
    description='Single-node RKE2/UDS cluster bootstrap with a local registry and RapidFort Runtime',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
