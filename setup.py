from setuptools import setup, find_packages

setup(
    name='vastkmm',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'python-dotenv',
        'pyyaml',
        'pydantic>=2',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'vastkmm=vastkmm.cli:app'
        ]
    },
    description='VAST NFS kernel module lifecycle management for Kubernetes/OpenShift clusters running KMM',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
