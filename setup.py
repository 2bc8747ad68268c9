from setuptools import setup, find_packages

setup(
    name='swarmctl',
    version='0.1.0',
    packages=find_packages(exclude=['swarmctl.tests']),
    include_package_data=True,
    package_data={
        'swarmctl': [
            'assets/scripts/*.sh',
            'assets/stacks/*/*.yml',
            'assets/stacks/*/*.conf',
        ],
    },
    install_requires=[
        'typer>=0.9',
        'rich',
        'paramiko',
        'pydantic>=2',
        'python-dotenv',
        'pyyaml',
        'requests',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'swarmctl=swarmctl.cli:app'
        ]
    },
    author='Your Name',
    description='One-command bootstrap of a Docker Swarm cluster with registry, ingress and monitoring stacks',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
