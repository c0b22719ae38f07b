from setuptools import setup, find_packages

setup(
    name='kubeprov',
    version='0.1.0',
    packages=find_packages(exclude=['kubeprov.tests']),
    include_package_data=True,
    install_requires=[
        'typer',
        'rich',
        'pyyaml',
        'pydantic>=2',
        'jsonschema',
        'kubernetes',
        'python-dotenv',
        'requests'
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'kubeprov=kubeprov.cli:run'
        ]
    },
    description='Transactional Kubernetes host provisioning with automatic rollback',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
