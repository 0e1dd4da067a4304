from setuptools import setup, find_packages

setup(
    name='fontfin',
    version='0.1.0',
    description='A font package manager',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'PyYAML',
        'urllib3',
        'platformdirs',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'fontfin=fontfin.cli:main',
        ],
    },
)
